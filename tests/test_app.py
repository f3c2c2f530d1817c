"""
App wiring: health check, settings and log formatting.
"""
import json
import logging

from aura.core.config import Settings
from aura.core.logging import JSONFormatter


class TestHealth:
    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "ok"
        assert r.json()["db"] == "ok"


class TestSettings:
    def test_defaults(self):
        s = Settings(_env_file=None)
        assert s.DEFAULT_COOLDOWN_SECONDS == 300
        assert s.FREQUENCY_ENFORCEMENT == "uniform"
        assert s.is_production is False

    def test_cors_origins(self):
        s = Settings(_env_file=None, CORS_ORIGINS="https://a.dev, https://b.dev,")
        assert s.cors_origins_list == ["https://a.dev", "https://b.dev"]
        assert Settings(_env_file=None, CORS_ORIGINS="*").cors_origins_list == ["*"]

    def test_production_flag(self):
        assert Settings(_env_file=None, APP_ENV="Production").is_production is True


class TestJSONFormatter:
    def test_extra_fields(self):
        record = logging.LogRecord("aura.test", logging.INFO, __file__, 1, "fired %s", ("r1",), None)
        record.rule_id = "r1"
        payload = json.loads(JSONFormatter().format(record))
        assert payload["message"] == "fired r1"
        assert payload["level"] == "INFO"
        assert payload["rule_id"] == "r1"
        assert "aura_id" not in payload
