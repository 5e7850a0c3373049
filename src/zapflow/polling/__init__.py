"""zapflow polling -- content-hash change detection for pull-only sources."""

from zapflow.polling.poller import ChangeDetectionPoller, PollOrchestrator, PollSummary
from zapflow.polling.rowhash import InMemoryRowHashStore, RedisRowHashStore, RowHashStore
from zapflow.polling.sources import CallableSource, RecordSource, SheetValuesSource

__all__ = [
    "CallableSource",
    "ChangeDetectionPoller",
    "InMemoryRowHashStore",
    "PollOrchestrator",
    "PollSummary",
    "RecordSource",
    "RedisRowHashStore",
    "RowHashStore",
    "SheetValuesSource",
]
