"""
Tests for snapshot export/import: round-trips, conflict handling, id
remapping across tables and per-row error isolation.
"""

import json

import pytest

from file_tracker.services.snapshot_service import (
    SNAPSHOT_VERSION,
    SnapshotValidationError,
    parse_timestamp,
)


def tables(snapshot):
    return {key: snapshot[key] for key in ("master_files", "files", "scans")}


class TestExport:
    """export_snapshot shape."""

    def test_shape(self, context, seeded):
        """Test snapshot version, timestamp and tables."""
        snapshot = context.snapshots.export_snapshot()

        assert snapshot["version"] == SNAPSHOT_VERSION
        assert "T" in snapshot["exported_at"]
        assert [m["name"] for m in snapshot["master_files"]] == ["Tax", "Property"]
        assert [f["id"] for f in snapshot["files"]] == sorted(f["id"] for f in snapshot["files"])
        assert len(snapshot["scans"]) == 2
        assert set(snapshot["files"][0]) >= {
            "id", "title", "reference_number", "description", "date_received",
            "date_sent", "tags", "master_file_id", "created_at", "updated_at",
        }

    def test_snapshot_file_is_indented_json(self, context, seeded, tmp_path):
        """Test snapshot files are indented UTF-8 JSON."""
        path = context.snapshots.write_snapshot_file(tmp_path / "export" / "snap.json")
        text = path.read_text(encoding="utf-8")
        assert text.startswith("{\n  ")
        assert context.snapshots.read_snapshot_file(path)["version"] == SNAPSHOT_VERSION

    def test_read_malformed_file(self, context, tmp_path):
        """Test malformed JSON raises a validation error."""
        path = tmp_path / "bad.json"
        path.write_text("{oops", encoding="utf-8")
        with pytest.raises(SnapshotValidationError):
            context.snapshots.read_snapshot_file(path)


class TestRoundTrip:
    """Export from one store, import into another."""

    def test_into_empty_store_is_identical(self, context, seeded, other_context):
        """Test import into an empty store reproduces the rows."""
        snapshot = context.snapshots.export_snapshot()

        results = other_context.snapshots.import_snapshot(snapshot, overwrite=True)

        assert results.master_files.imported == 2
        assert results.files.imported == 3
        assert results.scans.imported == 2
        assert tables(other_context.snapshots.export_snapshot()) == tables(snapshot)

    def test_through_json_text(self, context, seeded, other_context):
        """Test import of a snapshot that went through a file."""
        snapshot = json.loads(json.dumps(context.snapshots.export_snapshot()))
        other_context.snapshots.import_snapshot(snapshot)
        assert tables(other_context.snapshots.export_snapshot()) == tables(snapshot)

    def test_reimport_skips_everything(self, context, seeded):
        """Test re-importing the same snapshot skips every row."""
        snapshot = context.snapshots.export_snapshot()

        results = context.snapshots.import_snapshot(snapshot)

        assert results.master_files.skipped == 2
        assert results.files.skipped == 3
        assert results.scans.skipped == 2
        assert results.master_files.imported == results.files.imported == results.scans.imported == 0


class TestConflicts:
    """Skip versus overwrite."""

    def test_existing_master_file_untouched(self, context, other_context):
        """Test an existing master file is kept without overwrite."""
        context.records.create_master_file("Receipts", "from source")
        other = other_context.records.create_master_file("Receipts", "keep me")

        results = other_context.snapshots.import_snapshot(context.snapshots.export_snapshot())

        assert results.master_files.skipped == 1
        assert results.master_files.imported == 0
        assert other_context.records.get_master_file(other["id"])["description"] == "keep me"

    def test_overwrite_replaces_in_place(self, context, other_context):
        """Test overwrite updates the matching rows in place."""
        source = context.records.create_master_file("Receipts", "from source")
        other_context.records.create_master_file("Padding")
        existing = other_context.records.create_master_file("Receipts", "old")

        results = other_context.snapshots.import_snapshot(
            context.snapshots.export_snapshot(), overwrite=True
        )

        assert results.master_files.imported == 1
        replaced = other_context.records.get_master_file(existing["id"])
        assert replaced["description"] == "from source"
        assert replaced["created_at"] == source["created_at"]
        assert replaced["updated_at"] == source["updated_at"]

    def test_file_conflict_key_is_title_and_reference(self, context, other_context):
        """Test files match on title plus reference number."""
        context.records.create_file_record({"title": "Lease", "reference_number": "A"})
        context.records.create_file_record({"title": "Lease", "reference_number": "B"})
        other_context.records.create_file_record({"title": "Lease", "reference_number": "A"})

        results = other_context.snapshots.import_snapshot(context.snapshots.export_snapshot())

        assert results.files.skipped == 1
        assert results.files.imported == 1


class TestIdRemapping:
    """Foreign keys follow rows whose ids had to change."""

    def test_links_follow_new_ids(self, context, seeded, other_context):
        """Test links are remapped to the new ids."""
        # occupy the low ids in the target so every imported row is renumbered
        other_context.records.create_master_file("Occupied 1")
        other_context.records.create_master_file("Occupied 2")
        for i in range(3):
            other_context.records.create_file_record({"title": f"Occupied {i}"})

        other_context.snapshots.import_snapshot(context.snapshots.export_snapshot())

        rows = other_context.records.list_file_records({"search": "Invoice March"})["data"]
        assert len(rows) == 1
        invoice = rows[0]
        assert invoice["id"] != seeded["files"]["invoice"]["id"]
        assert invoice["master_file_name"] == "Tax"
        assert invoice["scan_count"] == 2
        assert [s["filename"] for s in other_context.records.list_scans(invoice["id"])] == [
            "page2.png", "invoice.pdf"
        ]

    def test_skipped_master_maps_to_existing_row(self, context, seeded, other_context):
        """Test a skipped master maps to the existing row."""
        other_context.records.create_master_file("Padding")
        existing_tax = other_context.records.create_master_file("Tax")

        other_context.snapshots.import_snapshot(context.snapshots.export_snapshot())

        invoice = other_context.records.list_file_records({"search": "Invoice March"})["data"][0]
        assert invoice["master_file_id"] == existing_tax["id"]

    def test_unknown_master_link_dropped(self, other_context):
        """Test an unknown master link is dropped."""
        snapshot = {
            "version": "1.0",
            "files": [{"id": 1, "title": "Stray", "master_file_id": 42}],
        }
        results = other_context.snapshots.import_snapshot(snapshot)
        assert results.files.imported == 1
        assert other_context.records.get_file_record(1)["master_file_id"] is None


class TestValidationAndErrors:
    """Rejected payloads and per-row isolation."""

    @pytest.mark.parametrize("payload", [None, [], "1.0", {}, {"files": []}, {"version": ""}])
    def test_rejected_without_effect(self, other_context, payload):
        """Test an invalid snapshot changes nothing."""
        with pytest.raises(SnapshotValidationError):
            other_context.snapshots.import_snapshot(payload)
        assert other_context.records.list_file_records()["pagination"]["total"] == 0

    def test_non_list_table_rejected(self, other_context):
        """Test a non-list table is refused."""
        with pytest.raises(SnapshotValidationError):
            other_context.snapshots.import_snapshot({"version": "1.0", "files": "nope"})

    def test_bad_rows_are_counted(self, other_context):
        """Test bad rows are counted as errors and the rest import."""
        snapshot = {
            "version": "1.0",
            "master_files": [{"id": 1, "name": "Good"}, {"id": 2}],
            "files": [
                {"id": 1, "title": "Kept", "master_file_id": 1},
                {"id": 2, "title": None},
                "not a row",
            ],
            "scans": [
                {"id": 1, "file_id": 1, "filename": "a.pdf", "filepath": "k1.pdf",
                 "mimetype": "application/pdf", "size": 3},
                {"id": 2, "file_id": 99, "filename": "b.pdf", "filepath": "k2.pdf",
                 "mimetype": "application/pdf", "size": 3},
            ],
        }

        results = other_context.snapshots.import_snapshot(snapshot)

        assert results.model_dump() == {
            "master_files": {"imported": 1, "skipped": 0, "errors": 1},
            "files": {"imported": 1, "skipped": 0, "errors": 2},
            "scans": {"imported": 1, "skipped": 0, "errors": 1},
        }
        kept = other_context.records.get_file_record(1)
        assert kept["master_file_name"] == "Good"
        assert len(other_context.records.list_scans(1)) == 1

    def test_non_integer_ids_do_not_abort(self, other_context):
        """Test rows with list ids import and only references through them fail."""
        snapshot = {
            "version": "1.0",
            "master_files": [{"id": [1], "name": "Odd"}, {"id": 2, "name": "Plain"}],
            "files": [
                {"id": [5], "title": "Odd file", "master_file_id": [1]},
                {"id": 1, "title": "Plain file", "master_file_id": 2},
            ],
            "scans": [
                {"id": 1, "file_id": [5], "filename": "a.pdf", "filepath": "k1.pdf", "size": 3},
                {"id": 2, "file_id": 1, "filename": "b.pdf", "filepath": "k2.pdf", "size": 3},
            ],
        }

        results = other_context.snapshots.import_snapshot(snapshot)

        assert results.model_dump() == {
            "master_files": {"imported": 2, "skipped": 0, "errors": 0},
            "files": {"imported": 2, "skipped": 0, "errors": 0},
            "scans": {"imported": 1, "skipped": 0, "errors": 1},
        }
        rows = other_context.records.list_file_records({"limit": "all"})["data"]
        masters = {row["title"]: row["master_file_name"] for row in rows}
        assert masters == {"Odd file": None, "Plain file": "Plain"}

    def test_missing_timestamps_default_to_now(self, other_context):
        """Test missing timestamps default to now."""
        other_context.snapshots.import_snapshot({"version": "1.0", "master_files": [{"name": "Now"}]})
        master = other_context.records.list_all_master_files()[0]
        assert master["created_at"]


class TestParseTimestamp:
    """Accepted timestamp spellings."""

    @pytest.mark.parametrize("value,expected", [
        ("2024-01-02 03:04:05", "2024-01-02T03:04:05"),
        ("2024-01-02T03:04:05.123000", "2024-01-02T03:04:05.123000"),
        ("2024-01-02T03:04:05Z", "2024-01-02T03:04:05"),
        ("2024-01-02T05:04:05+02:00", "2024-01-02T03:04:05"),
    ])
    def test_formats(self, value, expected):
        """Test accepted timestamp formats."""
        assert parse_timestamp(value).isoformat() == expected
