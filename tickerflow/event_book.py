"""Event logs for several data sources behind one lock."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from types import MappingProxyType
from typing import Iterator, Mapping

from tickerflow.event_log import EventLog, EventLogError
from tickerflow.models import Datasource, TickerCalc, TickerCommon

logger = logging.getLogger(__name__)


class BookError(Exception):
    """An entry could not be stored in the book."""


class EventBook:
    """One ``EventLog`` per data source, created on first use."""

    def __init__(self) -> None:
        self._book: dict[Datasource, EventLog] = {}
        self._lock = threading.RLock()

    def push_log(self, key: Datasource, val: TickerCommon) -> None:
        """Store a ticker in the log for ``key``, creating the log if needed."""
        with self._lock:
            log = self._book.get(key, EventLog())
            try:
                log.push_log(val)
            except EventLogError as exc:
                logger.error("[push] event log push error: %s", exc)
                raise BookError(f"could not store ticker for {key}") from exc
            self._book[key] = log

    def push_calc(self, source: Datasource, val: TickerCalc) -> None:
        """Store a calculation in the log for ``source``, creating the log if needed."""
        with self._lock:
            log = self._book.get(source, EventLog())
            try:
                log.push_calc(val)
            except EventLogError as exc:
                logger.error("[push] event log push error: %s", exc)
                raise BookError(f"could not store calculation for {source}") from exc
            self._book[source] = log

    @contextmanager
    def read(self) -> Iterator[Mapping[Datasource, EventLog]]:
        """Hold the book's lock and yield a read-only view of its logs."""
        with self._lock:
            yield MappingProxyType(self._book)