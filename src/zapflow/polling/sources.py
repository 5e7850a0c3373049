"""Record sources for the change-detection poller.

A source returns the full current record set of a watched resource plus a
stable header schema. Sources do no diffing; they only fetch.

- :class:`SheetValuesSource` — a values grid (first row = headers), e.g. a
  Google Sheets ``values.get`` response. Row key = 1-based sheet row.
- :class:`CallableSource` — any function returning a list of mappings,
  keyed by one field.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable
from urllib.parse import quote

import httpx

from zapflow.core.errors import SourceError
from zapflow.core.models import PollTrigger


@dataclass(frozen=True)
class SourceRecord:
    row_key: str
    row_number: int
    values: tuple[Any, ...]


@dataclass(frozen=True)
class SourceSnapshot:
    headers: tuple[str, ...] = ()
    records: tuple[SourceRecord, ...] = field(default_factory=tuple)

    def row_data(self, record: SourceRecord) -> dict[str, Any]:
        """Map headers to a record's values (missing cells → ``""``)."""
        data: dict[str, Any] = {}
        for i, header in enumerate(self.headers):
            value = record.values[i] if i < len(record.values) else None
            data[header] = "" if value is None else value
        return data


@runtime_checkable
class RecordSource(Protocol):
    """A pollable resource. ``service`` selects the resilience client."""

    service: str

    def fetch(self, trigger: PollTrigger) -> SourceSnapshot: ...


class SheetValuesSource:
    """Grid of cell values whose first row holds the headers.

    Args:
        fetch_values: Returns the raw grid for a trigger
        service: Resilience client name
    """

    def __init__(
        self,
        fetch_values: Callable[[PollTrigger], list[list[Any]]],
        service: str = "google_sheets",
    ):
        self._fetch_values = fetch_values
        self.service = service

    @classmethod
    def google_sheets(
        cls,
        token_provider: Callable[[PollTrigger], str],
        client: httpx.Client | None = None,
        base_url: str = "https://sheets.googleapis.com/v4/spreadsheets",
    ) -> SheetValuesSource:
        """Source reading ``spreadsheet_id`` / ``range`` from the trigger config.

        ``token_provider`` returns an OAuth access token for the trigger's
        owner; token storage and refresh live outside the engine.
        """
        http = client or httpx.Client(timeout=30.0)

        def fetch_values(trigger: PollTrigger) -> list[list[Any]]:
            spreadsheet_id = trigger.config.get("spreadsheet_id")
            if not spreadsheet_id:
                raise SourceError(f"Trigger {trigger.id} has no spreadsheet_id")
            cell_range = trigger.config.get("range") or trigger.config.get("sheet_name") or "Sheet1"
            response = http.get(
                f"{base_url}/{spreadsheet_id}/values/{quote(str(cell_range), safe='')}",
                headers={"Authorization": f"Bearer {token_provider(trigger)}"},
            )
            response.raise_for_status()
            return response.json().get("values", [])

        return cls(fetch_values)

    def fetch(self, trigger: PollTrigger) -> SourceSnapshot:
        rows = self._fetch_values(trigger) or []
        if not rows:
            return SourceSnapshot()
        headers = tuple(str(h).strip() for h in rows[0])
        records = tuple(
            SourceRecord(
                row_key=str(index + 2),
                row_number=index + 2,
                values=tuple(row) + ("",) * max(0, len(headers) - len(row)),
            )
            for index, row in enumerate(rows[1:])
        )
        return SourceSnapshot(headers=headers, records=records)


class CallableSource:
    """Records from a function returning mappings keyed by ``key_field``.

    Headers are the union of keys in first-seen order. Records lacking the
    key field fall back to their 1-based position.
    """

    def __init__(
        self,
        fetch_records: Callable[[PollTrigger], Iterable[Mapping[str, Any]]],
        key_field: str = "id",
        service: str = "callable",
    ):
        self._fetch_records = fetch_records
        self.key_field = key_field
        self.service = service

    def fetch(self, trigger: PollTrigger) -> SourceSnapshot:
        items = list(self._fetch_records(trigger))
        headers: list[str] = []
        for item in items:
            for key in item:
                if key not in headers:
                    headers.append(key)
        records = tuple(
            SourceRecord(
                row_key=str(item.get(self.key_field, position)),
                row_number=position,
                values=tuple(item.get(h) for h in headers),
            )
            for position, item in enumerate(items, start=1)
        )
        return SourceSnapshot(headers=tuple(headers), records=records)


__all__ = [
    "CallableSource",
    "RecordSource",
    "SheetValuesSource",
    "SourceRecord",
    "SourceSnapshot",
]
