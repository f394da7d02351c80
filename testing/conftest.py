"""Shared fixtures: a throwaway data directory and a ready service context."""

import asyncio
from pathlib import Path

import pytest

from file_tracker.config import PathsConfig, SystemConfig
from file_tracker.context import build_context


def make_config(data_dir: Path) -> SystemConfig:
    return SystemConfig(paths=PathsConfig(data=data_dir))


@pytest.fixture
def config(tmp_path):
    return make_config(tmp_path / "data")


@pytest.fixture
def context(config):
    ctx = asyncio.run(build_context(config))
    yield ctx
    ctx.close()


@pytest.fixture
def other_context(tmp_path):
    """A second, empty store for restore/import targets."""
    ctx = asyncio.run(build_context(make_config(tmp_path / "other")))
    yield ctx
    ctx.close()


@pytest.fixture
def records(context):
    return context.records


@pytest.fixture
def seeded(records):
    """Two master files, three file records, one of them with two scans."""
    tax = records.create_master_file("Tax", "Tax paperwork")
    property_ = records.create_master_file("Property")

    invoice = records.create_file_record({
        "title": "Invoice March",
        "reference_number": "INV-001",
        "date_received": "2024-03-02",
        "tags": "invoice,2024",
        "master_file_id": tax["id"],
    })
    deed = records.create_file_record({
        "title": "House deed",
        "reference_number": "DEED-7",
        "description": "Original deed of sale",
        "date_received": "2019-06-15",
        "tags": "legal",
        "master_file_id": property_["id"],
    })
    letter = records.create_file_record({
        "title": "Letter from bank",
        "date_received": "2024-01-20",
        "tags": "bank",
    })

    scan_a = asyncio.run(records.add_scan(invoice["id"], b"%PDF-1.4 first page", "invoice.pdf"))
    scan_b = asyncio.run(records.add_scan(invoice["id"], b"\x89PNG second page", "page2.png"))

    return {
        "masters": {"tax": tax, "property": property_},
        "files": {"invoice": invoice, "deed": deed, "letter": letter},
        "scans": [scan_a, scan_b],
    }
