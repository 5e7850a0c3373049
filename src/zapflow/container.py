"""
Lazy-initialised dependency container.

:class:`ZapflowContainer` wires the engine from :class:`ZapflowSettings`:
one database connection, one resilience pool, the action registry, and the
services built on top of them. Components are created on first access;
anything passed to the constructor replaces the default (tests inject
in-memory connections, fake stores and fake clocks this way).

Usage::

    from zapflow.container import ZapflowContainer

    with ZapflowContainer() as c:
        c.init_db()
        c.run_creator.create_run("wf-1", {"email": "a@b.co"})
        c.worker.process_pending()
"""

from __future__ import annotations

import sqlite3
import threading
import time
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

import httpx

from zapflow.core.dialect import Dialect, get_dialect
from zapflow.core.errors import ConfigError
from zapflow.core.models import PollTrigger
from zapflow.core.protocols import Connection
from zapflow.core.repositories import OutboxRepository, PollTriggerRepository, WorkflowRepository
from zapflow.core.schema import create_tables
from zapflow.core.settings import ZapflowSettings, get_settings
from zapflow.core.timestamps import utc_now
from zapflow.execution.actions import ActionRegistry, default_registry
from zapflow.execution.executor import ActionExecutor, OutboxWorker
from zapflow.execution.outbox import RunCreator
from zapflow.execution.resilience import ResiliencePool
from zapflow.polling.poller import ChangeDetectionPoller, PollOrchestrator
from zapflow.polling.rowhash import InMemoryRowHashStore, RedisRowHashStore, RowHashStore
from zapflow.polling.sources import RecordSource, SheetValuesSource

SignatureVerifier = Callable[[str, Mapping[str, str], bytes], bool]


def _config_token(trigger: PollTrigger) -> str:
    token = trigger.config.get("access_token")
    if not token:
        raise ConfigError(f"Trigger {trigger.id} has no access_token")
    return str(token)


class ZapflowContainer:
    """Lazy-initialised dependency container.

    Args:
        settings: Runtime settings (default: cached :func:`get_settings`)
        conn: Database connection; default opens ``settings.database_path``
        rowhash_store: Row-hash store; default Redis when ``redis_url`` is set
        sources: Poll sources by name; default registers ``google_sheets``
        registry: Action registry; default :func:`default_registry`
        verify_signature: Webhook gate ``(workflow_id, headers, body) -> bool``
        clock: Wall clock shared by every service
        sleep: Backoff sleep used by the resilience pool
    """

    def __init__(
        self,
        settings: ZapflowSettings | None = None,
        *,
        conn: Connection | None = None,
        rowhash_store: RowHashStore | None = None,
        sources: Mapping[str, RecordSource] | None = None,
        registry: ActionRegistry | None = None,
        http_client: httpx.Client | None = None,
        verify_signature: SignatureVerifier | None = None,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._settings = settings
        self._conn = conn
        self._owns_conn = conn is None
        self._rowhash_store = rowhash_store
        self._sources = dict(sources) if sources is not None else None
        self._registry = registry
        self._http_client = http_client
        self._owns_http = http_client is None
        self.verify_signature = verify_signature
        self.clock = clock
        self.sleep = sleep

        # request handlers run in a thread pool and may race the lazy builds
        self._init_lock = threading.RLock()
        self._dialect: Dialect | None = None
        self._clients: ResiliencePool | None = None
        self._run_creator: RunCreator | None = None
        self._executor: ActionExecutor | None = None
        self._worker: OutboxWorker | None = None
        self._poll_orchestrator: PollOrchestrator | None = None
        self._schedules: Any | None = None

    # ── Properties (lazy) ────────────────────────────────────────

    @property
    def settings(self) -> ZapflowSettings:
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    @property
    def conn(self) -> Connection:
        with self._init_lock:
            if self._conn is None:
                self._conn = sqlite3.connect(self.settings.database_path, check_same_thread=False)
        return self._conn

    @property
    def dialect(self) -> Dialect:
        if self._dialect is None:
            self._dialect = get_dialect(self.conn)
        return self._dialect

    @property
    def http_client(self) -> httpx.Client:
        if self._http_client is None:
            self._http_client = httpx.Client(timeout=self.settings.http_timeout)
        return self._http_client

    @property
    def clients(self) -> ResiliencePool:
        """One resilient client per external service."""
        if self._clients is None:
            self._clients = ResiliencePool.from_settings(self.settings, sleep=self.sleep)
        return self._clients

    @property
    def registry(self) -> ActionRegistry:
        if self._registry is None:
            self._registry = default_registry(self.settings.smtp, self.http_client)
        return self._registry

    @property
    def rowhash_store(self) -> RowHashStore:
        if self._rowhash_store is None:
            s = self.settings
            if s.redis_url:
                self._rowhash_store = RedisRowHashStore.from_url(
                    s.redis_url, s.rowhash_namespace, s.rowhash_ttl_seconds
                )
            else:
                self._rowhash_store = InMemoryRowHashStore(s.rowhash_namespace, s.rowhash_ttl_seconds)
        return self._rowhash_store

    @property
    def sources(self) -> dict[str, RecordSource]:
        if self._sources is None:
            self._sources = {
                "google_sheets": SheetValuesSource.google_sheets(_config_token, self.http_client),
            }
        return self._sources

    @property
    def workflows(self) -> WorkflowRepository:
        return WorkflowRepository(self.conn, self.dialect)

    @property
    def outbox(self) -> OutboxRepository:
        return OutboxRepository(self.conn, self.dialect)

    @property
    def triggers(self) -> PollTriggerRepository:
        return PollTriggerRepository(self.conn, self.dialect)

    @property
    def run_creator(self) -> RunCreator:
        with self._init_lock:
            if self._run_creator is None:
                self._run_creator = RunCreator(self.conn, self.dialect, clock=self.clock)
        return self._run_creator

    @property
    def executor(self) -> ActionExecutor:
        with self._init_lock:
            if self._executor is None:
                self._executor = ActionExecutor(
                    self.conn, self.registry, self.clients, self.dialect, clock=self.clock
                )
        return self._executor

    @property
    def worker(self) -> OutboxWorker:
        with self._init_lock:
            if self._worker is None:
                self._worker = OutboxWorker(
                    self.conn,
                    self.executor,
                    self.dialect,
                    batch_size=self.settings.outbox_batch_size,
                    lease_seconds=self.settings.outbox_lease_seconds,
                    clock=self.clock,
                )
        return self._worker

    @property
    def poll_orchestrator(self) -> PollOrchestrator:
        if self._poll_orchestrator is None:
            self._poll_orchestrator = PollOrchestrator(
                ChangeDetectionPoller(self.rowhash_store, self.clients),
                self.run_creator,
                self.triggers,
                self.sources,
                clock=self.clock,
            )
        return self._poll_orchestrator

    @property
    def schedules(self) -> Any:
        """:class:`~zapflow.scheduling.service.ScheduleService`."""
        if self._schedules is None:
            from zapflow.scheduling.service import ScheduleService

            self._schedules = ScheduleService(
                self.conn, self.run_creator, self.dialect, clock=self.clock
            )
        return self._schedules

    # ── Lifecycle ────────────────────────────────────────────────

    def init_db(self) -> None:
        """Create every zapflow table (idempotent)."""
        create_tables(self.conn)

    def health(self) -> dict[str, Any]:
        return {
            "status": "ok",
            "pending_runs": self.outbox.pending_count(),
            "clients": self.clients.status(),
        }

    def close(self) -> None:
        """Dispose of managed resources."""
        if self._http_client is not None and self._owns_http:
            self._http_client.close()
            self._http_client = None
        if self._conn is not None and self._owns_conn:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> ZapflowContainer:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


__all__ = ["SignatureVerifier", "ZapflowContainer"]
