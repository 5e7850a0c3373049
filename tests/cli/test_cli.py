"""Tests for the zapflow CLI."""

from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from zapflow.cli.app import app
from zapflow.container import ZapflowContainer
from zapflow.core.repositories import OutboxRepository, WorkflowRepository
from zapflow.core.settings import ZapflowSettings

runner = CliRunner()


def invoke(*args: str):
    return runner.invoke(app, ["--log-level", "WARNING", *args])


@pytest.fixture
def db_path(tmp_path) -> str:
    return str(tmp_path / "zapflow.db")


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert "zapflow 0.1.0" in result.stdout


class TestNextRun:
    def test_json_lists_upcoming_runs(self):
        result = invoke(
            "next-run", "daily", "--hour", "9", "--now", "2025-03-10T08:00:00+00:00", "-n", "3", "--json"
        )
        assert result.exit_code == 0
        assert json.loads(result.stdout) == [
            "2025-03-10T09:00:00.000000+00:00",
            "2025-03-11T09:00:00.000000+00:00",
            "2025-03-12T09:00:00.000000+00:00",
        ]

    def test_weekly_in_timezone(self):
        result = invoke(
            "next-run", "weekly", "--day-of-week", "0", "--hour", "9",
            "--tz", "America/New_York", "--now", "2025-03-10T08:00:00+00:00", "--json",
        )
        assert json.loads(result.stdout) == ["2025-03-16T13:00:00.000000+00:00"]

    def test_plain_output(self):
        result = invoke("next-run", "minutely", "--now", "2025-03-10T08:00:30+00:00")
        assert result.exit_code == 0
        assert "2025-03-10T08:01:00.000000+00:00" in result.stdout

    def test_invalid_schedule(self):
        result = invoke("next-run", "daily", "--hour", "25")
        assert result.exit_code == 1

    def test_unknown_type(self):
        assert invoke("next-run", "yearly").exit_code != 0


class TestDatabaseCommands:
    def test_init_db(self, db_path):
        result = invoke("init-db", "-d", db_path)
        assert result.exit_code == 0
        with ZapflowContainer(ZapflowSettings(database_path=db_path)) as c:
            assert c.outbox.pending_count() == 0

    def test_process_outbox(self, db_path):
        invoke("init-db", "-d", db_path)
        with ZapflowContainer(ZapflowSettings(database_path=db_path)) as c:
            workflows = WorkflowRepository(c.conn)
            with workflows.transaction():
                workflows.create_workflow("wf-1", name="Tip jar")
                workflows.add_step("wf-1", 1, "Solana", {"address": "{wallet}", "amount": "0.5"})
            run = c.run_creator.create_run("wf-1", {"wallet": "9xQe"})

        result = invoke("process-outbox", "-d", db_path, "--json")

        assert result.exit_code == 0
        body = json.loads(result.stdout)
        assert body["claimed"] == 1
        assert body["processed"] == 1
        assert body["reports"][0]["run_id"] == run.id
        assert body["reports"][0]["actions_executed"] == 1
        with ZapflowContainer(ZapflowSettings(database_path=db_path)) as c:
            assert OutboxRepository(c.conn).get(run.id)["processed"] is True

    def test_process_outbox_table(self, db_path):
        invoke("init-db", "-d", db_path)
        result = invoke("process-outbox", "-d", db_path)
        assert result.exit_code == 0
        assert "No items." in result.stdout

    def test_run_schedules_nothing_due(self, db_path):
        invoke("init-db", "-d", db_path)
        result = invoke("run-schedules", "-d", db_path, "--json")
        assert result.exit_code == 0
        assert json.loads(result.stdout) == {"due": 0, "processed": 0, "failed": 0, "run_ids": []}

    def test_poll_without_triggers(self, db_path):
        invoke("init-db", "-d", db_path)
        result = invoke("poll", "-d", db_path, "--json")
        assert result.exit_code == 0
        body = json.loads(result.stdout)
        assert body["service"] == "all"
        assert (body["processed"], body["errors"]) == (0, 0)
