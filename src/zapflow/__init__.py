"""
zapflow — trigger-to-action workflow engine.

Inbound events (webhooks, polled row changes, timers) become durable Runs
through a transactional outbox; an executor drains the outbox and runs each
workflow's ordered action chain behind a rate limiter, circuit breaker and
exponential backoff.

Quick start::

    from zapflow import ZapflowContainer

    with ZapflowContainer() as c:
        c.init_db()
        c.run_creator.create_run("wf-1", {"email": "a@b.co"})
        c.worker.process_pending()
"""

__version__ = "0.1.0"

from zapflow.container import ZapflowContainer  # noqa: E402

__all__ = ["ZapflowContainer", "__version__"]
