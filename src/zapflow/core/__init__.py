"""zapflow core -- shared primitives for the trigger-to-action engine.

Architecture::

    Layer 1 -- Type System & Errors
        errors.py          Error hierarchy + ClassifiedError payload
        result.py          Outcome envelope (Ok / Retryable / Fatal)
        protocols.py       Connection protocol
        timestamps.py      ULID generation + UTC helpers
        hashing.py         Row content hashing for change detection

    Layer 2 -- Database
        dialect.py         SQL dialect abstraction
        repository.py      BaseRepository with dialect-aware helpers
        schema.py          DDL registry + create_tables()
        repositories.py    Workflow, run, outbox, schedule, trigger repositories

    Layer 3 -- Ambient
        logging.py         structlog configuration
        settings.py        pydantic-settings configuration
        models.py          Frozen dataclass domain model
"""

from zapflow.core.errors import (
    ApiErrorType,
    ClassifiedApiError,
    ClassifiedError,
    ErrorCategory,
    ZapflowError,
)
from zapflow.core.hashing import hash_row
from zapflow.core.result import Fatal, Ok, Outcome, Retryable
from zapflow.core.timestamps import generate_ulid, utc_now

__all__ = [
    "ApiErrorType",
    "ClassifiedApiError",
    "ClassifiedError",
    "ErrorCategory",
    "Fatal",
    "Ok",
    "Outcome",
    "Retryable",
    "ZapflowError",
    "generate_ulid",
    "hash_row",
    "utc_now",
]
