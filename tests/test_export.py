"""Tests for session export."""

import csv
import json

import pytest

from inbox_triage.export import export_session


def test_export_csv(tmp_path, scan_session):
    out = tmp_path / "out.csv"
    count = export_session(scan_session, format="csv", output_path=str(out))

    assert count == 10
    with open(out, newline="") as f:
        rows = list(csv.DictReader(f))
    assert len(rows) == 10
    assert rows[0]["category"] == "important"
    assert rows[0]["remote_id"] == "m0"


def test_export_json(tmp_path, scan_session):
    out = tmp_path / "out.json"
    export_session(scan_session, format="json", output_path=str(out))

    data = json.loads(out.read_text())
    assert data["session_id"] == scan_session.id
    assert len(data["messages"]) == 10


def test_export_unknown_format(tmp_path, scan_session):
    with pytest.raises(ValueError):
        export_session(scan_session, format="xml", output_path=str(tmp_path / "out.xml"))
