"""
Tests for BlobStore: key generation, single-blob I/O, archive packing and
the restore procedure.
"""

import asyncio
import json
import re
import zipfile

import pytest

from file_tracker.errors import ValidationError
from file_tracker.services.blob_storage import (
    BlobNotFoundError,
    BlobStore,
    RestoreError,
    to_base36,
)


@pytest.fixture
def store(tmp_path):
    blob_store = BlobStore(tmp_path / "storage", tmp_path / "temp")
    asyncio.run(blob_store.initialize())
    return blob_store


@pytest.fixture
def target(tmp_path):
    blob_store = BlobStore(tmp_path / "target", tmp_path / "target_temp")
    asyncio.run(blob_store.initialize())
    return blob_store


def save_all(store, items):
    return [asyncio.run(store.save(data, name)) for name, data in items]


class FakeImporter:
    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    def import_snapshot(self, snapshot, overwrite=False):
        self.calls.append((snapshot, overwrite))
        if self.fail:
            raise RuntimeError("import exploded")
        return {"master_files": {"imported": 0, "skipped": 0, "errors": 0}}


class TestKeys:
    """Blob key format and validation."""

    def test_base36(self):
        """Test base36 encoding."""
        assert to_base36(0) == "0"
        assert to_base36(35) == "z"
        assert to_base36(36) == "10"

    def test_key_keeps_extension(self, store):
        """Test generated keys keep the upload extension."""
        key = asyncio.run(store.save(b"data", "Scan Page.PDF"))
        assert key.endswith(".PDF")
        assert re.fullmatch(r"[0-9a-z]{12,}\.PDF", key)

    def test_key_without_extension(self, store):
        """Test names without extension give bare keys."""
        key = asyncio.run(store.save(b"data", "README"))
        assert re.fullmatch(r"[0-9a-z]{12,}", key)

    @pytest.mark.parametrize("name", ["scan.p\\df", "page.p\x00f"])
    def test_unusable_extension_dropped(self, store, name):
        """Test an extension holding a backslash or NUL is dropped from the key."""
        key = asyncio.run(store.save(b"x", name))
        assert re.fullmatch(r"[0-9a-z]{12,}", key)
        assert asyncio.run(store.read(key)) == b"x"
        assert asyncio.run(store.delete(key)) is True

    def test_keys_are_unique(self, store):
        """Test rapid saves never share a key."""
        keys = save_all(store, [("a.png", b"x")] * 50)
        assert len(set(keys)) == 50

    @pytest.mark.parametrize("key", ["", ".", "..", "../escape.pdf", "sub/dir.pdf", "back\\slash.pdf"])
    def test_invalid_keys_rejected(self, store, key):
        """Test keys with separators or dot names are refused."""
        with pytest.raises(ValidationError):
            asyncio.run(store.read(key))
        with pytest.raises(ValidationError):
            asyncio.run(store.delete(key))
        with pytest.raises(ValidationError):
            store.full_path(key)


class TestBlobIO:
    """save/read/delete/exists/stats."""

    def test_roundtrip(self, store):
        """Test saved bytes read back unchanged."""
        key = asyncio.run(store.save(b"%PDF-1.7 hello", "doc.pdf"))
        assert asyncio.run(store.read(key)) == b"%PDF-1.7 hello"
        assert asyncio.run(store.exists(key)) is True
        assert store.full_path(key).is_file()

    def test_read_missing(self, store):
        """Test reading an absent key raises BlobNotFoundError."""
        with pytest.raises(BlobNotFoundError):
            asyncio.run(store.read("missing.pdf"))

    def test_delete_is_idempotent(self, store):
        """Test second delete reports False."""
        key = asyncio.run(store.save(b"x", "a.txt"))
        assert asyncio.run(store.delete(key)) is True
        assert asyncio.run(store.delete(key)) is False
        assert asyncio.run(store.exists(key)) is False

    def test_stats(self, store):
        """Test stats totals and per-file timestamps."""
        save_all(store, [("a.pdf", b"12345"), ("b.png", b"123")])
        stats = asyncio.run(store.stats())
        assert stats["totalFiles"] == 2
        assert stats["totalSize"] == 8
        assert {f["size"] for f in stats["files"]} == {5, 3}
        assert all("T" in f["created"] and "T" in f["modified"] for f in stats["files"])


class TestPacking:
    """Archive creation."""

    def test_pack_all_at_root(self, store, tmp_path):
        """Test packing every blob at the archive root."""
        keys = save_all(store, [("a.pdf", b"a"), ("b.pdf", b"b")])
        archive = tmp_path / "out" / "files.zip"

        size = asyncio.run(store.pack_archive(archive))

        assert size == archive.stat().st_size
        with zipfile.ZipFile(archive) as zipf:
            assert sorted(zipf.namelist()) == sorted(keys)

    def test_pack_selection_skips_missing(self, store, tmp_path):
        """Test packing a selection ignores absent keys."""
        keys = save_all(store, [("a.pdf", b"a"), ("b.pdf", b"b")])
        archive = tmp_path / "subset.zip"

        asyncio.run(store.pack_archive(archive, [keys[0], "gone.pdf"]))

        with zipfile.ZipFile(archive) as zipf:
            assert zipf.namelist() == [keys[0]]

    def test_pack_with_snapshot(self, store, tmp_path):
        """Test combined archive layout."""
        keys = save_all(store, [("a.pdf", b"a")])
        snapshot = tmp_path / "snap.json"
        snapshot.write_text(json.dumps({"version": "1.0"}))
        archive = tmp_path / "full.zip"

        asyncio.run(store.pack_archive_with_snapshot(archive, snapshot))

        with zipfile.ZipFile(archive) as zipf:
            assert sorted(zipf.namelist()) == sorted(["database.json", f"files/{keys[0]}"])


class TestRestore:
    """unpack_and_merge."""

    def _restore(self, store, archive, **kwargs):
        return asyncio.run(store.unpack_and_merge(archive, **kwargs))

    def test_files_only_restore_is_idempotent(self, store, target, tmp_path):
        """Test a second restore skips existing blobs."""
        save_all(store, [("a.pdf", b"a"), ("b.pdf", b"b"), ("c.png", b"c")])
        archive = tmp_path / "files.zip"
        asyncio.run(store.pack_archive(archive))

        first = self._restore(target, archive)
        second = self._restore(target, archive)

        assert (first.restored, first.skipped, first.errors) == (3, 0, 0)
        assert (second.restored, second.skipped, second.errors) == (0, 3, 0)
        assert all(entry.reason == "File already exists" for entry in second.files)
        assert first.database_found is False

    def test_overwrite_replaces_existing(self, store, target, tmp_path):
        """Test overwrite replaces blob contents."""
        archive = tmp_path / "files.zip"
        with zipfile.ZipFile(archive, "w") as zipf:
            zipf.writestr("same.pdf", b"new")
        (target.storage_path / "same.pdf").write_bytes(b"old")

        report = self._restore(target, archive, overwrite=True)

        assert report.restored == 1
        assert (target.storage_path / "same.pdf").read_bytes() == b"new"

    def test_files_dir_without_snapshot(self, target, tmp_path):
        """Test a files/ folder is used even without a snapshot."""
        archive = tmp_path / "nested.zip"
        with zipfile.ZipFile(archive, "w") as zipf:
            zipf.writestr("files/one.pdf", b"1")
            zipf.writestr("files/two.pdf", b"2")

        report = self._restore(target, archive, importer=FakeImporter())

        assert report.database_found is False
        assert report.database_restored is False
        assert report.restored == 2
        assert sorted(asyncio.run(target.list_keys())) == ["one.pdf", "two.pdf"]

    def test_snapshot_without_importer_is_skipped(self, target, tmp_path):
        """Test the snapshot entry is skipped when no importer is given."""
        archive = tmp_path / "full.zip"
        with zipfile.ZipFile(archive, "w") as zipf:
            zipf.writestr("database.json", json.dumps({"version": "1.0"}))
            zipf.writestr("files/one.pdf", b"1")

        report = self._restore(target, archive)

        assert report.database_found is True
        assert report.database_restored is False
        skipped = [e for e in report.files if e.filename == "database.json"]
        assert skipped[0].status == "skipped"
        assert skipped[0].reason == "Database restoration not requested"
        assert report.restored == 1

    def test_snapshot_handed_to_importer(self, target, tmp_path):
        """Test the parsed snapshot goes to the importer."""
        archive = tmp_path / "full.zip"
        with zipfile.ZipFile(archive, "w") as zipf:
            zipf.writestr("database.json", json.dumps({"version": "1.0", "files": []}))
            zipf.writestr("files/one.pdf", b"1")
        importer = FakeImporter()

        report = self._restore(target, archive, overwrite=True, importer=importer)

        assert report.database_restored is True
        assert importer.calls == [({"version": "1.0", "files": []}, True)]
        assert report.to_dict()["databaseRestored"] is True

    @pytest.mark.parametrize("payload", ["{not json", json.dumps({"files": []})])
    def test_bad_snapshot_is_an_entry_error(self, target, tmp_path, payload):
        """Test unparseable snapshot JSON is reported per entry."""
        archive = tmp_path / "full.zip"
        with zipfile.ZipFile(archive, "w") as zipf:
            zipf.writestr("database.json", payload)
            zipf.writestr("files/one.pdf", b"1")
        importer = FakeImporter()

        report = self._restore(target, archive, importer=importer)

        assert importer.calls == []
        assert report.database_found is True
        assert report.database_restored is False
        assert report.errors == 1
        assert report.restored == 1
        assert report.files[0].filename == "database.json"
        assert report.files[0].status == "error"

    def test_importer_failure_is_an_entry_error(self, target, tmp_path):
        """Test importer exceptions are reported per entry."""
        archive = tmp_path / "full.zip"
        with zipfile.ZipFile(archive, "w") as zipf:
            zipf.writestr("database.json", json.dumps({"version": "1.0"}))

        report = self._restore(target, archive, importer=FakeImporter(fail=True))

        assert report.errors == 1
        assert "import exploded" in report.files[0].reason

    def test_corrupt_archive(self, target, tmp_path):
        """Test a corrupt archive raises RestoreError."""
        archive = tmp_path / "broken.zip"
        archive.write_bytes(b"this is not a zip file")

        with pytest.raises(RestoreError):
            self._restore(target, archive)

        assert list(target.temp_path.glob("restore_*")) == []

    def test_missing_archive(self, target, tmp_path):
        """Test a missing archive raises RestoreError."""
        with pytest.raises(RestoreError):
            self._restore(target, tmp_path / "nope.zip")

    def test_scratch_removed_after_success(self, store, target, tmp_path):
        """Test the scratch directory is removed after restore."""
        save_all(store, [("a.pdf", b"a")])
        archive = tmp_path / "files.zip"
        asyncio.run(store.pack_archive(archive))

        self._restore(target, archive)

        assert list(target.temp_path.glob("restore_*")) == []
