"""Unit tests for the data layer (database, storage, catalog, models, config)."""

import json
from dataclasses import FrozenInstanceError
import sqlite3
import pytest
from datetime import datetime

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from cadence.config import AppConfig, DEFAULT_CONFIG
from cadence.data.catalog import Catalog, DEFAULT_MODEL_ID
from cadence.data.database import Database, SCHEMA_SQL
from cadence.data.models import (
    Context, FederatedContribution, FederatedInsight, GlobalModel,
    PerformanceAggregate, AssessmentFingerprint, PerformanceMetrics,
    PerformanceRecord,
)
from cadence.data.storage import Storage


@pytest.fixture
def storage():
    """Key/value store over an in-memory database."""
    conn = sqlite3.connect(":memory:")
    conn.executescript(SCHEMA_SQL)
    conn.commit()
    return Storage(conn)


class TestDatabase:
    def test_connect_creates_schema(self, tmp_path):
        db = Database(db_path=tmp_path / "cadence.db")
        conn = db.connect()
        tables = [r[0] for r in conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table'").fetchall()]
        assert "kv_store" in tables
        # connect() is idempotent
        assert db.connect() is conn
        db.close()
        assert db.conn is None


class TestStorage:
    def test_missing_key_returns_default(self, storage: Storage):
        assert storage.get("nope") is None
        assert storage.get("nope", []) == []

    def test_set_and_get(self, storage: Storage):
        assert storage.set("answer", {"value": 42, "items": [1, 2]})
        assert storage.get("answer") == {"value": 42, "items": [1, 2]}

    def test_set_overwrites(self, storage: Storage):
        storage.set("k", 1)
        storage.set("k", 2)
        assert storage.get("k") == 2
        assert storage.keys() == ["k"]

    def test_delete(self, storage: Storage):
        storage.set("k", 1)
        storage.delete("k")
        assert storage.get("k", "gone") == "gone"

    def test_corrupt_value_degrades_to_default(self, storage: Storage):
        storage.conn.execute(
            "INSERT INTO kv_store (key, value) VALUES (?, ?)", ("bad", "{not json"))
        assert storage.get("bad", "fallback") == "fallback"

    def test_unserialisable_value_is_rejected(self, storage: Storage):
        assert storage.set("when", datetime.now()) is False
        assert storage.get("when") is None

    def test_unavailable_storage(self):
        s = Storage(None)
        assert s.get("k", 5) == 5
        assert s.set("k", 1) is False
        assert s.keys() == []

    def test_closed_connection_degrades(self, storage: Storage):
        storage.conn.close()
        assert storage.get("k", "default") == "default"
        assert storage.set("k", 1) is False


class TestCatalog:
    def test_builtin_models(self):
        catalog = Catalog()
        assert len(catalog) == 6
        pomodoro = catalog.by_id("pomodoro-classic")
        assert pomodoro.work_duration == 25
        assert pomodoro.rest_duration == 5
        assert pomodoro.cycles == 4
        assert pomodoro.long_rest_duration == 15

    def test_unknown_id(self):
        assert Catalog().by_id("does-not-exist") is None

    def test_default(self):
        assert Catalog().default().id == DEFAULT_MODEL_ID

    def test_empty_catalog(self):
        catalog = Catalog([])
        assert not catalog
        assert catalog.default() is None
        assert catalog.list() == []

    def test_models_are_immutable(self):
        model = Catalog().list()[0]
        with pytest.raises(FrozenInstanceError):
            model.work_duration = 1


class TestModels:
    def test_performance_record_round_trip(self):
        record = PerformanceRecord(
            model_id="pomodoro-classic",
            context=Context("morning", "high", "deep_coding", 42.0, 0),
            performance=PerformanceMetrics(0.9, 4.0, 90.0, 0.7),
            timestamp=datetime(2024, 3, 4, 10, 30),
        )
        restored = PerformanceRecord.from_dict(json.loads(json.dumps(record.to_dict())))
        assert restored == record

    def test_contribution_from_dict_fills_range(self):
        c = FederatedContribution.from_dict({
            "proof": "ab" * 32,
            "commitment": "sealed",
            "timestamp": "2024-03-04T09:00:00",
        })
        assert c.range.min_validity == 0.8
        assert c.timestamp == datetime(2024, 3, 4, 9, 0)

    def test_global_model_serialises_insights(self):
        model = GlobalModel(
            version="1.0.3",
            contributor_count=9,
            insights=[FederatedInsight(
                assessment_fingerprints=[AssessmentFingerprint(
                    "focused_bursts", "mind_clearing", 0.5, 3, 0.85, ["morning_focus"])],
                performance_aggregates=[PerformanceAggregate(
                    "morning_focus", 0.85, 4.0, 3, (0.75, 0.95))],
            )],
            last_updated=datetime(2024, 3, 4, 9, 0),
        )
        restored = GlobalModel.from_dict(json.loads(json.dumps(model.to_dict())))
        assert restored.version == "1.0.3"
        assert restored.insights[0].performance_aggregates[0].confidence_interval == (0.75, 0.95)
        assert restored.insights[0].assessment_fingerprints[0].work_style == "focused_bursts"


class TestConfig:
    def test_defaults_when_missing(self, tmp_path):
        config = AppConfig(tmp_path / "cadence.json")
        assert config.startup_model_id is None
        assert config.get("snooze_minutes") == DEFAULT_CONFIG["snooze_minutes"]

    def test_remember_model_persists(self, tmp_path):
        path = tmp_path / "cadence.json"
        AppConfig(path).remember_model("who-1hour-work-30min-rest")
        assert AppConfig(path).startup_model_id == "who-1hour-work-30min-rest"

    def test_file_values_override_defaults(self, tmp_path):
        path = tmp_path / "cadence.json"
        path.write_text(json.dumps({"snooze_minutes": 10}))
        config = AppConfig(path)
        assert config.get("snooze_minutes") == 10
        assert config.get("confirmation_timeout_minutes") == 2

    def test_corrupt_file_falls_back(self, tmp_path):
        path = tmp_path / "cadence.json"
        path.write_text("{broken")
        assert AppConfig(path).get("auto_switching") is True

    def test_reset(self, tmp_path):
        config = AppConfig(tmp_path / "cadence.json")
        config.set("snooze_minutes", 15)
        config.reset()
        assert config.get("snooze_minutes") == 5
