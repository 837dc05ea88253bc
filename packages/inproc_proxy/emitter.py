"""Utilities for recording routing decisions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Protocol


@dataclass
class RequestRecord:
    client: str
    url: str
    host: str
    intercepted: bool


class RequestEmitter(Protocol):
    def emit(self, record: RequestRecord) -> None:  # pragma: no cover - interface
        ...


class NoopEmitter:
    def emit(self, record: RequestRecord) -> None:  # pragma: no cover
        return None


class RecordingEmitter:
    """Keeps every record in memory so tests can assert on routing."""

    def __init__(self) -> None:
        self.records: List[RequestRecord] = []

    def emit(self, record: RequestRecord) -> None:
        self.records.append(record)

    @property
    def intercepted(self) -> List[RequestRecord]:
        return [r for r in self.records if r.intercepted]

    @property
    def passed_through(self) -> List[RequestRecord]:
        return [r for r in self.records if not r.intercepted]

    def clear(self) -> None:
        self.records.clear()


DEFAULT_EMITTER: RequestEmitter = NoopEmitter()
