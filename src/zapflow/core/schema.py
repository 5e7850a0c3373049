"""
Engine tables: workflows, action steps, runs, outbox, schedules, poll triggers.

Defines table names and DDL statements for the durable state the engine
reads and writes. Workflow and trigger definitions are owned by an external
CRUD surface; the engine only reads them, plus the ``last_*``/``next_*``
bookkeeping columns it updates itself.

Architecture:
    ::

        Table Registry (TABLES):
        ┌────────────────────────────────────────────────────────────┐
        │ workflows      → zf_workflows       (read)                 │
        │ action_steps   → zf_action_steps    (read, ordered)        │
        │ runs           → zf_runs            (append-only)          │
        │ outbox         → zf_outbox          (pending → processed)  │
        │ schedules      → zf_schedules       (next/last run)        │
        │ poll_triggers  → zf_poll_triggers   (last_polled_at)       │
        └────────────────────────────────────────────────────────────┘

        Atomic admission:
        ┌────────────────────────────────────────────────────────────┐
        │ BEGIN                                                      │
        │   INSERT zf_runs   (id, workflow_id, payload, ...)         │
        │   INSERT zf_outbox (run_id, processed = 0)                 │
        │ COMMIT                                                     │
        └────────────────────────────────────────────────────────────┘

Examples:
    >>> from zapflow.core.schema import TABLES, create_tables
    >>> TABLES["outbox"]
    'zf_outbox'
    >>> create_tables(conn)

Guardrails:
    ❌ DON'T: UPDATE or DELETE rows of zf_runs
    ✅ DO: Track progress on zf_outbox only

Tags:
    schema, ddl, outbox, zapflow
"""

TABLES = {
    "workflows": "zf_workflows",
    "action_steps": "zf_action_steps",
    "runs": "zf_runs",
    "outbox": "zf_outbox",
    "schedules": "zf_schedules",
    "poll_triggers": "zf_poll_triggers",
}


DDL = {
    "workflows": """
        CREATE TABLE IF NOT EXISTS zf_workflows (
            id TEXT PRIMARY KEY,
            user_id TEXT,
            name TEXT NOT NULL DEFAULT '',
            is_active INTEGER NOT NULL DEFAULT 1,
            filters TEXT,                   -- JSON list of {field, operator, value}
            created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
        )
    """,
    # Ordered by step_order, ties by insertion (rowid)
    "action_steps": """
        CREATE TABLE IF NOT EXISTS zf_action_steps (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            workflow_id TEXT NOT NULL REFERENCES zf_workflows(id),
            step_order INTEGER NOT NULL,
            action_type TEXT NOT NULL,
            metadata TEXT                   -- JSON template with placeholders
        )
    """,
    "action_steps_idx_workflow": """
        CREATE INDEX IF NOT EXISTS idx_action_steps_workflow
        ON zf_action_steps(workflow_id, step_order, id)
    """,
    "runs": """
        CREATE TABLE IF NOT EXISTS zf_runs (
            id TEXT PRIMARY KEY,            -- ULID
            workflow_id TEXT NOT NULL,
            payload TEXT NOT NULL,          -- JSON
            source TEXT NOT NULL DEFAULT 'manual',
            created_at TEXT NOT NULL
        )
    """,
    "runs_idx_workflow": """
        CREATE INDEX IF NOT EXISTS idx_runs_workflow
        ON zf_runs(workflow_id, created_at)
    """,
    "outbox": """
        CREATE TABLE IF NOT EXISTS zf_outbox (
            run_id TEXT PRIMARY KEY REFERENCES zf_runs(id),
            processed INTEGER NOT NULL DEFAULT 0,
            claimed_at TEXT,
            processed_at TEXT,
            created_at TEXT NOT NULL
        )
    """,
    "outbox_idx_pending": """
        CREATE INDEX IF NOT EXISTS idx_outbox_pending
        ON zf_outbox(processed, created_at)
    """,
    "schedules": """
        CREATE TABLE IF NOT EXISTS zf_schedules (
            id TEXT PRIMARY KEY,
            workflow_id TEXT NOT NULL,
            schedule_type TEXT NOT NULL,    -- minutely, hourly, daily, weekly, monthly
            hour INTEGER,
            minute INTEGER NOT NULL DEFAULT 0,
            day_of_week INTEGER,            -- 0 = Sunday
            day_of_month INTEGER,
            timezone TEXT NOT NULL DEFAULT 'UTC',
            last_run_at TEXT,
            next_run_at TEXT NOT NULL,
            is_active INTEGER NOT NULL DEFAULT 1
        )
    """,
    "schedules_idx_due": """
        CREATE INDEX IF NOT EXISTS idx_schedules_due
        ON zf_schedules(next_run_at) WHERE is_active = 1
    """,
    "poll_triggers": """
        CREATE TABLE IF NOT EXISTS zf_poll_triggers (
            id TEXT PRIMARY KEY,
            workflow_id TEXT NOT NULL,
            source_name TEXT NOT NULL,
            config TEXT,                    -- JSON, source specific
            is_active INTEGER NOT NULL DEFAULT 1,
            last_polled_at TEXT
        )
    """,
}


def create_tables(conn) -> None:
    """
    Create all engine tables.

    Safe to call multiple times (CREATE IF NOT EXISTS).
    """
    for _name, ddl in DDL.items():
        conn.execute(ddl)
    conn.commit()


__all__ = ["DDL", "TABLES", "create_tables"]
