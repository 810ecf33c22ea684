"""
Tests for Program Preference Stores
===================================
"""

import json

import pytest

from h10cm.access.preferences import JsonPreferenceStore, MemoryPreferenceStore
from h10cm.config import Settings


class TestMemoryPreferenceStore:

    def test_save_and_clear(self):
        store = MemoryPreferenceStore()
        store.save_program("u1", "tf-main")
        assert store.load_program("u1") == "tf-main"

        store.save_program("u1", None)
        assert store.load_program("u1") is None


class TestJsonPreferenceStore:
    """Tests for the file-backed store."""

    def test_missing_file(self, tmp_path):
        assert JsonPreferenceStore(tmp_path / "prefs.json").load_program("u1") is None

    def test_round_trip_creates_directories(self, tmp_path):
        path = tmp_path / "state" / "prefs.json"
        store = JsonPreferenceStore(path)
        store.save_program("u1", "tf-main")
        store.save_program("u2", "aero")

        assert json.loads(path.read_text()) == {"u1": "tf-main", "u2": "aero"}
        assert JsonPreferenceStore(path).load_program("u2") == "aero"
        assert not path.with_suffix(".json.tmp").exists()

    def test_clear(self, tmp_path):
        store = JsonPreferenceStore(tmp_path / "prefs.json")
        store.save_program("u1", "tf-main")
        store.save_program("u1", None)
        assert store.load_program("u1") is None

    def test_corrupt_file_treated_as_empty(self, tmp_path, caplog):
        path = tmp_path / "prefs.json"
        path.write_text("{not json")

        store = JsonPreferenceStore(path)
        assert store.load_program("u1") is None
        assert "Could not read preferences" in caplog.text

        store.save_program("u1", "tf-main")
        assert store.load_program("u1") == "tf-main"

    def test_non_object_ignored(self, tmp_path):
        path = tmp_path / "prefs.json"
        path.write_text(json.dumps(["tf-main"]))
        assert JsonPreferenceStore(path).load_program("u1") is None

    @pytest.mark.asyncio
    async def test_session_persists_to_configured_file(self, make_session, tech_record, tmp_path):
        path = tmp_path / "prefs.json"
        settings = Settings(_env_file=None, PROGRAM_PREFERENCE_FILE=str(path))
        session, _, _ = make_session(tech_record, settings=settings, preference_store=None)
        await session.initialize()

        assert session.switch_program("tf-main")
        assert json.loads(path.read_text()) == {"tech-001": "tf-main"}
