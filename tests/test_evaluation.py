"""
Tests for rule evaluation over HTTP and for the evaluation worker.
"""
import logging
import threading
import time
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.orm import sessionmaker

from aura.core.config import settings
from aura.core.errors import AuraNotFoundError
from aura.main import app
from aura.models import Aura
from aura.routers import evaluation as evaluation_router
from aura.services import rules as rule_store
from aura.services.cache import InvalidationBus
from aura.services import evaluation_worker as worker_module
from aura.services.evaluation_worker import EvaluationWorker
from aura.services.providers import (
    LoggingNotificationDispatcher,
    NotificationPayload,
    SenseReading,
    StaticSenseDataProvider,
)
from aura.schemas.rule import EvaluateRequest, RuleCreate
from aura.services.sensor_catalog import DEFAULT_CATALOG
from aura.services.trigger_log import aura_lane

T0 = datetime(2030, 1, 2, 14, 30, tzinfo=timezone.utc)
HOT = {"sensor": "weather.temperature", "operator": ">", "value": 30, "cooldown": 3600}
HOT_DAY = {"weather": {"temperature": 35}}


def at(seconds):
    return (T0 + timedelta(seconds=seconds)).isoformat()


@pytest.fixture()
def aura(client):
    return client.post("/auras", json={"name": "Sunny", "senses": ["weather"]}).json()


@pytest.fixture()
def hot_rule(client, aura):
    r = client.post(f"/auras/{aura['id']}/rules", json={
        "name": "Hot day",
        "trigger": HOT,
        "action": {"message": "It's {weather.temperature}°C!", "channels": ["IN_APP", "PUSH"]},
    })
    assert r.status_code == 201
    return r.json()


def evaluate(client, aura_id, seconds, sense_data=HOT_DAY, **extra):
    r = client.post(f"/auras/{aura_id}/rules/evaluate", json={
        "sense_data": sense_data, "now": at(seconds), **extra,
    })
    assert r.status_code == 200, r.text
    return r.json()


# ---------------------------------------------------------------------------
# POST /auras/{id}/rules/evaluate
# ---------------------------------------------------------------------------

class TestEvaluateEndpoint:
    def test_fires_with_rendered_message(self, client, aura, hot_rule):
        body = evaluate(client, aura["id"], 0)
        assert body["time_of_day"] == "afternoon"
        assert body["day_of_week"] == "Wednesday"
        [hit] = body["triggered"]
        assert hit["rule_id"] == hot_rule["id"]
        assert hit["message"] == "It's 35°C!"
        assert hit["channels"] == ["IN_APP", "PUSH"]
        assert hit["action_type"] == "notify"

    def test_cooldown_persists_across_calls(self, client, aura, hot_rule):
        assert len(evaluate(client, aura["id"], 0)["triggered"]) == 1
        assert evaluate(client, aura["id"], 500)["triggered"] == []
        assert len(evaluate(client, aura["id"], 3700)["triggered"]) == 1

    def test_missing_reading_does_not_fire(self, client, aura, hot_rule):
        assert evaluate(client, aura["id"], 0, sense_data={"fitness": {"steps": 10}})["triggered"] == []

    def test_dry_run_records_nothing(self, client, aura, hot_rule):
        assert len(evaluate(client, aura["id"], 0, dry_run=True)["triggered"]) == 1
        assert len(evaluate(client, aura["id"], 10, dry_run=True)["triggered"]) == 1
        assert client.get(f"/auras/{aura['id']}/triggers").json()["total"] == 0

    def test_disabled_rule_never_fires(self, client, aura, hot_rule):
        client.patch(f"/rules/{hot_rule['id']}/enabled", json={"enabled": False})
        assert evaluate(client, aura["id"], 0)["triggered"] == []

    def test_trigger_edit_resets_cooldown(self, client, aura, hot_rule):
        evaluate(client, aura["id"], 0)
        client.put(f"/rules/{hot_rule['id']}", json={"trigger": {**HOT, "value": 31}})
        assert len(evaluate(client, aura["id"], 10)["triggered"]) == 1

    def test_message_edit_keeps_cooldown(self, client, aura, hot_rule):
        evaluate(client, aura["id"], 0)
        client.put(f"/rules/{hot_rule['id']}", json={"action": {"message": "Still hot"}})
        assert evaluate(client, aura["id"], 10)["triggered"] == []

    def test_reenable_resets_cooldown(self, client, aura, hot_rule):
        evaluate(client, aura["id"], 0)
        client.patch(f"/rules/{hot_rule['id']}/enabled", json={"enabled": False})
        client.patch(f"/rules/{hot_rule['id']}/enabled", json={"enabled": True})
        assert len(evaluate(client, aura["id"], 10)["triggered"]) == 1

    def test_auras_do_not_share_history(self, client, aura, hot_rule):
        other = client.post("/auras", json={"name": "Cloudy"}).json()
        client.post(f"/auras/{other['id']}/rules", json={"name": "Hot", "trigger": HOT, "action": {}})
        evaluate(client, aura["id"], 0)
        [hit] = evaluate(client, other["id"], 10)["triggered"]
        assert hit["message"] == "A rule was triggered!"

    def test_unknown_aura(self, client):
        r = client.post("/auras/999999/rules/evaluate", json={"sense_data": {}})
        assert r.status_code == 404


# ---------------------------------------------------------------------------
# GET /auras/{id}/triggers
# ---------------------------------------------------------------------------

class TestTriggerLog:
    def test_newest_first(self, client, aura, hot_rule):
        evaluate(client, aura["id"], 0)
        evaluate(client, aura["id"], 4000, sense_data={"weather": {"temperature": 40}})
        body = client.get(f"/auras/{aura['id']}/triggers").json()
        assert body["total"] == 2
        assert [i["message"] for i in body["items"]] == ["It's 40°C!", "It's 35°C!"]
        assert body["items"][0]["rule_id"] == hot_rule["id"]

    def test_paging(self, client, aura, hot_rule):
        for n in range(3):
            evaluate(client, aura["id"], n * 4000)
        body = client.get(f"/auras/{aura['id']}/triggers", params={"limit": 1, "offset": 1}).json()
        assert body["total"] == 3
        assert len(body["items"]) == 1

    def test_deleting_rule_drops_its_log(self, client, aura, hot_rule):
        evaluate(client, aura["id"], 0)
        client.delete(f"/rules/{hot_rule['id']}")
        assert client.get(f"/auras/{aura['id']}/triggers").json()["total"] == 0


# ---------------------------------------------------------------------------
# POST /rules/preview
# ---------------------------------------------------------------------------

class TestPreview:
    def test_would_fire(self, client):
        body = client.post("/rules/preview", json={
            "trigger": {"sensor": "weather.temperature", "operator": "between", "value": [18, 24]},
            "action": {"message": "Lovely {weather.temperature}°C"},
            "sense_data": {"weather.temperature": 24},
        }).json()
        assert body == {"triggered": True, "message": "Lovely 24°C", "effective_cooldown": 300}

    def test_would_not_fire(self, client):
        body = client.post("/rules/preview", json={
            "trigger": {"sensor": "weather.temperature", "operator": ">", "value": 30,
                        "frequencyLimit": 4, "frequencyPeriod": "hour"},
            "sense_data": {"weather.temperature": 20},
        }).json()
        assert body["triggered"] is False
        assert body["message"] is None
        assert body["effective_cooldown"] == 900

    def test_time_trigger(self, client):
        body = client.post("/rules/preview", json={
            "trigger": {"type": "time", "timeRange": [12, 17], "daysOfWeek": [3]},
            "now": T0.isoformat(),
        }).json()
        assert body["triggered"] is True


# ---------------------------------------------------------------------------
# Cron endpoint
# ---------------------------------------------------------------------------

class TestCronEndpoint:
    def test_cycle_evaluates_and_dispatches(self, client, clean_db):
        aura = client.post("/auras", json={"name": "Sunny", "senses": ["weather"]}).json()
        client.post(f"/auras/{aura['id']}/rules", json={
            "name": "Hot day", "trigger": HOT, "action": {"message": "Hot: {weather.temperature}"},
        })
        client.post("/sensors/readings", json={
            "readings": [{"sense_id": "weather", "data": {"temperature": 33}}],
        })
        dispatcher = app.state.dispatcher
        sent_before = len(dispatcher.sent)

        body = client.post("/cron/evaluate-rules").json()
        assert body["success"] is True
        assert body["result"]["processed"] == 1
        assert body["result"]["triggered"] == 1
        assert dispatcher.sent[-1].message == "Hot: 33"
        assert len(dispatcher.sent) == sent_before + 1

        # evaluated moments ago: not eligible again yet
        again = client.post("/cron/evaluate-rules").json()
        assert again["result"]["processed"] == 0
        assert client.get(f"/auras/{aura['id']}").json()["last_evaluation_at"] is not None

    def test_non_proactive_aura_is_skipped(self, client, clean_db):
        aura = client.post("/auras", json={"name": "Quiet", "proactive_enabled": False}).json()
        client.post(f"/auras/{aura['id']}/rules", json={"name": "Hot", "trigger": HOT, "action": {}})
        assert client.post("/cron/evaluate-rules").json()["result"]["processed"] == 0

    def test_status(self, client):
        body = client.get("/cron/evaluate-rules").json()
        assert body["status"] == "healthy"
        assert body["is_running"] is False
        assert body["config"]["default_cooldown_seconds"] == settings.DEFAULT_COOLDOWN_SECONDS
        assert body["config"]["frequency_enforcement"] == "uniform"

    def test_secret_required_in_production(self, client, clean_db, monkeypatch):
        monkeypatch.setattr(settings, "APP_ENV", "production")
        monkeypatch.setattr(settings, "CRON_SECRET", "s3cret")
        r = client.post("/cron/evaluate-rules")
        assert r.status_code == 401
        assert r.json()["code"] == "CRON_UNAUTHORIZED"
        assert client.post("/cron/evaluate-rules", headers={"X-Cron-Secret": "nope"}).status_code == 401
        assert client.post("/cron/evaluate-rules", headers={"X-Cron-Secret": "s3cret"}).status_code == 200


# ---------------------------------------------------------------------------
# EvaluationWorker
# ---------------------------------------------------------------------------

class ExplodingDispatcher:
    def dispatch(self, payload):
        raise RuntimeError("push service down")


class ExplodingProvider:
    def get_sense_data(self, sense_ids):
        raise RuntimeError("weather API down")


def seed(db, name="Sunny", **aura_kwargs):
    aura = rule_store.create_aura(db, name, senses=["weather"], **aura_kwargs)
    rule_store.create_rule(db, aura.id, RuleCreate(name="Hot", trigger=HOT, action={"message": "hot"}))
    return aura


def make_worker(provider=None, dispatcher=None, **kwargs):
    if provider is None:
        provider = StaticSenseDataProvider({"weather": {"temperature": 35}})
    return EvaluationWorker(provider, dispatcher or LoggingNotificationDispatcher(), **kwargs)


class TestEvaluationWorker:
    def test_cycle_and_cooldown(self, clean_db):
        db = clean_db
        seed(db)
        dispatcher = LoggingNotificationDispatcher()
        worker = make_worker(dispatcher=dispatcher, interval_seconds=60)

        first = worker.run_cycle(db, now=T0)
        assert (first.processed, first.succeeded, first.triggered) == (1, 1, 1)
        assert dispatcher.sent[0].channels == ["IN_APP"]

        # eligible again after the interval, but the rule is still cooling down
        second = worker.run_cycle(db, now=T0 + timedelta(seconds=120))
        assert (second.processed, second.triggered) == (1, 0)

        third = worker.run_cycle(db, now=T0 + timedelta(seconds=3600))
        assert third.triggered == 1
        assert worker.last_result is third

    def test_batches_cover_every_aura(self, clean_db):
        for n in range(5):
            seed(clean_db, name=f"aura-{n}")
        result = make_worker(batch_size=2).run_cycle(clean_db, now=T0)
        assert result.processed == 5
        assert result.triggered == 5

    def test_disabled_aura_is_not_eligible(self, clean_db):
        seed(clean_db, enabled=False)
        assert make_worker().run_cycle(clean_db, now=T0).processed == 0

    def test_sense_fetch_failure_evaluates_empty(self, clean_db):
        seed(clean_db)
        result = make_worker(provider=ExplodingProvider()).run_cycle(clean_db, now=T0)
        assert (result.succeeded, result.failed, result.triggered) == (1, 0, 0)

    def test_dispatch_failure_is_reported(self, clean_db):
        seed(clean_db)
        result = make_worker(dispatcher=ExplodingDispatcher()).run_cycle(clean_db, now=T0)
        assert result.triggered == 1
        assert result.errors and "dispatch failed" in result.errors[0]

    def test_failing_aura_does_not_stop_cycle(self, clean_db, monkeypatch):
        bad = seed(clean_db, name="bad")
        seed(clean_db, name="good")
        worker = make_worker()
        real_rules_for = worker.rules_for

        def rules_for(db, aura_id):
            if aura_id == bad.id:
                raise RuntimeError("corrupt rules")
            return real_rules_for(db, aura_id)

        monkeypatch.setattr(worker, "rules_for", rules_for)
        result = worker.run_cycle(clean_db, now=T0)
        assert (result.processed, result.succeeded, result.failed) == (2, 1, 1)
        assert "corrupt rules" in result.errors[0]

    def test_overlapping_cycle_is_skipped(self, clean_db):
        seed(clean_db)
        worker = make_worker()
        worker._lock.acquire()
        try:
            assert worker.is_running
            result = worker.run_cycle(clean_db, now=T0)
        finally:
            worker._lock.release()
        assert result.skipped is True
        assert result.processed == 0

    def test_rule_cache_invalidated_by_bus(self, clean_db):
        bus = InvalidationBus()
        aura = seed(clean_db)
        worker = make_worker(bus=bus, interval_seconds=0)
        worker.run_cycle(clean_db, now=T0)
        assert aura.id in worker.rule_cache

        rule_store.create_rule(
            clean_db, aura.id,
            RuleCreate(name="Warm", trigger={**HOT, "value": 20}, action={}),
            bus=bus,
        )
        assert aura.id not in worker.rule_cache
        result = worker.run_cycle(clean_db, now=T0 + timedelta(seconds=10))
        assert result.triggered == 1

    def test_provider_readings_shape(self):
        provider = StaticSenseDataProvider({"weather": {"temperature": 1}, "sleep": {}})
        assert provider.get_sense_data(["weather", "news"]) == [
            SenseReading(sense_id="weather", data={"temperature": 1}),
        ]


# ---------------------------------------------------------------------------
# Overlapping evaluations of one Aura
# ---------------------------------------------------------------------------

def slowed(real, delay=0.2):
    """Wrap load_history so a second run has time to start before the first writes."""
    def load_history(*args, **kwargs):
        history = real(*args, **kwargs)
        time.sleep(delay)
        return history
    return load_history


def run_in_threads(*targets):
    errors = []

    def guard(target):
        try:
            target()
        except Exception as exc:  # surfaced by the assertion below
            errors.append(exc)

    threads = [threading.Thread(target=guard, args=(t,)) for t in targets]
    for t in threads:
        t.start()
    for t in threads:
        t.join(10)
    assert errors == []


class TestEvaluationLane:
    def test_concurrent_http_evaluations_fire_once(self, client, db, aura, hot_rule, monkeypatch):
        monkeypatch.setattr(evaluation_router, "load_history", slowed(evaluation_router.load_history))
        Session = sessionmaker(bind=db.get_bind())
        fired = []

        def call(offset):
            def target():
                session = Session()
                try:
                    body = evaluation_router.evaluate_aura_rules(
                        aura["id"],
                        EvaluateRequest(sense_data=HOT_DAY, now=T0 + timedelta(seconds=offset)),
                        db=session,
                        catalog=DEFAULT_CATALOG,
                    )
                    fired.append(len(body.triggered))
                finally:
                    session.close()
            return target

        run_in_threads(call(0), call(10))
        assert sorted(fired) == [0, 1]
        assert client.get(f"/auras/{aura['id']}/triggers").json()["total"] == 1

    def test_worker_and_http_evaluation_fire_once(self, client, db, aura, hot_rule, monkeypatch):
        monkeypatch.setattr(evaluation_router, "load_history", slowed(evaluation_router.load_history))
        monkeypatch.setattr(worker_module, "load_history", slowed(worker_module.load_history))
        Session = sessionmaker(bind=db.get_bind())
        fired = []

        def from_worker():
            session = Session()
            try:
                evaluation = make_worker().evaluate_aura(session, session.get(Aura, aura["id"]), T0)
                fired.append(len(evaluation.triggered))
            finally:
                session.close()

        def from_http():
            session = Session()
            try:
                body = evaluation_router.evaluate_aura_rules(
                    aura["id"],
                    EvaluateRequest(sense_data=HOT_DAY, now=T0 + timedelta(seconds=5)),
                    db=session,
                    catalog=DEFAULT_CATALOG,
                )
                fired.append(len(body.triggered))
            finally:
                session.close()

        run_in_threads(from_worker, from_http)
        assert sum(fired) == 1
        assert client.get(f"/auras/{aura['id']}/triggers").json()["total"] == 1

    def test_lane_is_exclusive_until_released(self, db, aura):
        Session = sessionmaker(bind=db.get_bind())
        entered = threading.Event()

        def other():
            session = Session()
            try:
                with aura_lane(session, aura["id"]):
                    entered.set()
                    session.commit()
            finally:
                session.close()

        with aura_lane(db, aura["id"]) as locked:
            assert locked.id == aura["id"]
            thread = threading.Thread(target=other)
            thread.start()
            assert not entered.wait(0.2)
            db.commit()
        thread.join(5)
        assert entered.is_set()

    def test_lane_for_unknown_aura(self, db):
        with pytest.raises(AuraNotFoundError):
            with aura_lane(db, 999999):
                pass


# ---------------------------------------------------------------------------
# Evaluation clock
# ---------------------------------------------------------------------------

class TestEvaluationClock:
    def test_now_is_read_in_its_own_offset(self, client, aura, hot_rule):
        # 09:30 in UTC-5 is 14:30 UTC
        r = client.post(f"/auras/{aura['id']}/rules/evaluate", json={
            "sense_data": {}, "now": "2030-01-02T09:30:00-05:00", "dry_run": True,
        })
        assert r.json()["time_of_day"] == "morning"

    def test_time_trigger_uses_request_offset(self, client):
        body = client.post("/rules/preview", json={
            "trigger": {"type": "time", "timeRange": [8, 10]},
            "now": "2030-01-02T09:30:00-05:00",
        }).json()
        assert body["triggered"] is True

    def test_time_trigger_defaults_to_utc(self, client):
        body = client.post("/rules/preview", json={
            "trigger": {"type": "time", "timeRange": [8, 10]},
            "now": "2030-01-02T14:30:00",
        }).json()
        assert body["triggered"] is False


# ---------------------------------------------------------------------------
# Dispatcher and log fields
# ---------------------------------------------------------------------------

def payload(n):
    return NotificationPayload(aura_id=1, rule_id=n, message=f"m{n}")


class TestLoggingDispatcher:
    def test_keeps_most_recent(self):
        dispatcher = LoggingNotificationDispatcher(keep=2)
        for n in range(3):
            dispatcher.dispatch(payload(n))
        assert [p.message for p in dispatcher.sent] == ["m1", "m2"]

    def test_keep_zero_retains_nothing(self):
        dispatcher = LoggingNotificationDispatcher(keep=0)
        for n in range(3):
            dispatcher.dispatch(payload(n))
        assert dispatcher.sent == []


class TestWorkerLogFields:
    def test_failed_sense_fetch_logs_aura_id(self, clean_db, caplog):
        aura = seed(clean_db)
        with caplog.at_level(logging.WARNING, logger="aura"):
            make_worker(provider=ExplodingProvider()).run_cycle(clean_db, now=T0)
        [record] = [r for r in caplog.records if r.name == "aura.services.evaluation_worker"]
        assert record.aura_id == aura.id

    def test_failed_aura_logs_aura_id(self, clean_db, caplog, monkeypatch):
        aura = seed(clean_db)
        aura_id = aura.id
        worker = make_worker()

        def rules_for(db, aura_id):
            raise RuntimeError("corrupt rules")

        monkeypatch.setattr(worker, "rules_for", rules_for)
        with caplog.at_level(logging.ERROR, logger="aura"):
            worker.run_cycle(clean_db, now=T0)
        assert [r.aura_id for r in caplog.records if r.levelno == logging.ERROR] == [aura_id]
