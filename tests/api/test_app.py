"""Integration tests for the HTTP adapter."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from zapflow.api import create_app
from zapflow.api.errors import status_for_error
from zapflow.container import ZapflowContainer
from zapflow.core.errors import ConfigError, ScheduleError, SourceError
from zapflow.core.models import PollTrigger, ScheduleSpec, ScheduleType, TriggerSource
from zapflow.core.repositories import OutboxRepository, PollTriggerRepository, RunRepository
from zapflow.core.settings import ZapflowSettings
from zapflow.execution.actions import ActionRegistry
from zapflow.polling.sources import SheetValuesSource

SECRET = "s3cret"


class Sheet:
    def __init__(self):
        self.rows = [["Name", "Status"], ["Ada", "Open"]]

    def __call__(self, trigger):
        return [list(r) for r in self.rows]


@pytest.fixture
def calls() -> list:
    return []


@pytest.fixture
def sheet() -> Sheet:
    return Sheet()


@pytest.fixture
def make_container(conn, clock, recording_action, calls, sheet):
    def build(**overrides) -> ZapflowContainer:
        registry = ActionRegistry()
        registry.register(recording_action("Email", calls))
        options = {
            "conn": conn,
            "registry": registry,
            "sources": {"sheets": SheetValuesSource(sheet, service="sheets")},
            "clock": clock.now,
            "sleep": clock.sleep,
        }
        options.update(overrides)
        settings = options.pop("settings", ZapflowSettings(cron_secret=SECRET))
        return ZapflowContainer(settings, **options)

    return build


@pytest.fixture
def container(make_container) -> ZapflowContainer:
    return make_container()


@pytest.fixture
def client(container, seed_workflow):
    seed_workflow("wf-1", [(1, "Email", {"to": "{{email}}"})])
    with TestClient(create_app(container)) as test_client:
        yield test_client


AUTH = {"Authorization": f"Bearer {SECRET}"}


class TestHooks:
    def test_creates_run(self, client, conn):
        response = client.post("/hooks/user-1/wf-1", json={"email": "ada@example.com"})

        assert response.status_code == 201
        body = response.json()
        assert body["message"] == "Hook triggered"
        run = RunRepository(conn).get(body["run_id"])
        assert run.workflow_id == "wf-1"
        assert run.payload == {"email": "ada@example.com"}
        assert run.source is TriggerSource.WEBHOOK
        assert OutboxRepository(conn).get(run.id)["processed"] is False

    def test_empty_body(self, client, conn):
        response = client.post("/hooks/user-1/wf-1")
        assert response.status_code == 201
        assert RunRepository(conn).get(response.json()["run_id"]).payload == {}

    def test_non_object_body_is_wrapped(self, client, conn):
        response = client.post("/hooks/user-1/wf-1", json=[1, 2])
        assert RunRepository(conn).get(response.json()["run_id"]).payload == {"body": [1, 2]}

    def test_invalid_json(self, client, conn):
        response = client.post(
            "/hooks/user-1/wf-1", content=b"{not json", headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 400
        assert RunRepository(conn).count() == 0

    def test_each_delivery_is_a_new_run(self, client, conn):
        client.post("/hooks/user-1/wf-1", json={"a": 1})
        client.post("/hooks/user-1/wf-1", json={"a": 1})
        assert RunRepository(conn).count("wf-1") == 2

    def test_signature_gate(self, make_container, conn):
        seen = []

        def verify(workflow_id, headers, body):
            seen.append((workflow_id, body))
            return headers.get("x-signature") == "good"

        app = create_app(make_container(verify_signature=verify))
        with TestClient(app) as client:
            rejected = client.post("/hooks/u/wf-1", json={}, headers={"x-signature": "bad"})
            accepted = client.post("/hooks/u/wf-1", json={}, headers={"x-signature": "good"})

        assert rejected.status_code == 401
        assert accepted.status_code == 201
        assert RunRepository(conn).count() == 1
        assert seen[0] == ("wf-1", b"{}")


class TestCronAuth:
    def test_missing_secret(self, client):
        assert client.post("/process").status_code == 401

    def test_wrong_secret(self, client):
        assert client.post("/process", headers={"Authorization": "Bearer nope"}).status_code == 401

    def test_bearer(self, client):
        assert client.post("/process", headers=AUTH).status_code == 200

    def test_header(self, client):
        assert client.post("/process", headers={"x-cron-secret": SECRET}).status_code == 200

    def test_open_without_configured_secret(self, make_container):
        app = create_app(make_container(settings=ZapflowSettings(cron_secret=None)))
        with TestClient(app) as client:
            assert client.post("/process").status_code == 200


class TestWorkers:
    def test_process_drains_outbox(self, client, conn, calls):
        run_id = client.post("/hooks/u/wf-1", json={"email": "ada@example.com"}).json()["run_id"]

        body = client.post("/process", headers=AUTH).json()

        assert body["success"] is True
        assert body["claimed"] == 1
        assert body["processed"] == 1
        assert body["reports"][0]["run_id"] == run_id
        assert calls == [("Email", {"to": "ada@example.com"})]
        assert client.post("/process", headers=AUTH).json()["claimed"] == 0

    def test_process_limit(self, client):
        for _ in range(3):
            client.post("/hooks/u/wf-1", json={})
        assert client.post("/process?limit=2", headers=AUTH).json()["claimed"] == 2

    def test_poll(self, client, conn, sheet):
        triggers = PollTriggerRepository(conn)
        triggers.create_trigger(PollTrigger(id="t-1", workflow_id="wf-1", source_name="sheets"))
        triggers.commit()

        baseline = client.post("/poll", headers=AUTH).json()
        sheet.rows[1][1] = "Paid"
        changed = client.post("/poll?service=sheets", headers=AUTH).json()

        assert baseline["success"] is True
        assert (baseline["processed"], baseline["runs_created"]) == (1, 0)
        assert changed["service"] == "sheets"
        assert changed["runs_created"] == 1
        assert RunRepository(conn).count("wf-1") == 1

    def test_process_schedules(self, client, container, clock):
        container.schedules.register("wf-1", ScheduleSpec(ScheduleType.HOURLY, minute=30))
        assert client.post("/cron/process-schedules", headers=AUTH).json()["processed"] == 0

        clock.advance(30 * 60)
        body = client.post("/cron/process-schedules", headers=AUTH).json()

        assert body["success"] is True
        assert body["due"] == 1
        assert body["processed"] == 1
        assert len(body["run_ids"]) == 1


class TestHealth:
    def test_health(self, client):
        client.post("/hooks/u/wf-1", json={})
        body = client.get("/health").json()
        assert body["status"] == "ok"
        assert body["version"] == "0.1.0"
        assert body["pending_runs"] == 1


class TestErrors:
    def test_zapflow_error_response(self, container):
        app = create_app(container)

        @app.get("/boom")
        def boom():
            raise ScheduleError("hour out of range: 25")

        with TestClient(app) as client:
            response = client.get("/boom")

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"]["message"] == "hour out of range: 25"
        assert body["error"]["category"] == "SCHEDULE"

    @pytest.mark.parametrize(
        "error,status",
        [
            (ScheduleError("x"), 400),
            (ConfigError("x"), 500),
            (SourceError("x", retryable=True), 503),
            (SourceError("x", retryable=False), 500),
        ],
    )
    def test_status_for_error(self, error, status):
        assert status_for_error(error) == status
