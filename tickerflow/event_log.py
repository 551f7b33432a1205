"""In-memory log of tickers and derived calculations, with SQL access."""

from __future__ import annotations

import csv
import logging
import math
import sqlite3
import time
import uuid
from collections import deque
from contextlib import closing
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Iterable, NamedTuple, Optional, Sequence, Union

from tickerflow.models import (
    CalculationId,
    ChartDataset,
    ChartTimeSeries,
    Datasource,
    SymbolCommon,
    TickerCalc,
    TickerCommon,
)

logger = logging.getLogger(__name__)

VISUAL_CORRECTION_FACTOR = 10.0
MAX_RANGE = 10.0

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_NAIVE_EPOCH = datetime(1970, 1, 1)
_MILLI = timedelta(milliseconds=1)

SCHEMA = ("dtg", "product_id", "price")

_ERROR_KINDS = frozenset(
    {
        "PushError",
        "ReadLockError",
        "WriteLockError",
        "OtherError",
        "ArrowError",
        "CalculationSlope",
        "CalculationSlopeNotFinite",
    }
)


class EventLogError(Exception):
    """A failure inside the event log."""

    def __init__(self, kind: str, detail: Optional[str] = None) -> None:
        if kind not in _ERROR_KINDS:
            raise ValueError(f"unknown error kind: {kind!r}")
        self.kind = kind
        self.detail = detail
        super().__init__(str(self))

    def __str__(self) -> str:
        return self.kind if self.detail is None else f"{self.kind}: {self.detail}"


class _Table(NamedTuple):
    columns: tuple[str, ...]
    rows: list[tuple[Any, ...]]


def _to_millis(dtg: datetime) -> int:
    if dtg.tzinfo is None:
        dtg = dtg.replace(tzinfo=timezone.utc)
    return (dtg - _EPOCH) // _MILLI


def _from_millis(millis: int) -> datetime:
    return _NAIVE_EPOCH + timedelta(milliseconds=millis)


def _whole_millis(delta: timedelta) -> int:
    """Milliseconds in ``delta``, truncated towards zero."""
    if delta >= timedelta(0):
        return delta // _MILLI
    return -((-delta) // _MILLI)


def _format_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        text = value.strftime("%Y-%m-%dT%H:%M:%S")
        micro = value.microsecond
        if micro == 0:
            return text
        if micro % 1000 == 0:
            return f"{text}.{micro // 1000:03d}"
        return f"{text}.{micro:06d}"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        return repr(value)
    return str(value)


def format_table(columns: Sequence[str], rows: Iterable[Sequence[Any]]) -> str:
    """Render columns and rows as a bordered text table."""
    header = [str(c) for c in columns]
    cells = [[_format_cell(v) for v in row] for row in rows]
    widths = [len(h) for h in header]
    for row in cells:
        widths = [max(w, len(c)) for w, c in zip(widths, row)]
    border = "+" + "+".join("-" * (w + 2) for w in widths) + "+"

    def line(values: Sequence[str]) -> str:
        return "| " + " | ".join(v.ljust(w) for v, w in zip(values, widths)) + " |"

    lines = [border, line(header), border]
    lines.extend(line(row) for row in cells)
    if cells:
        lines.append(border)
    return "\n".join(lines)


class EventLog:
    """Tickers and calculations, newest first."""

    def __init__(self) -> None:
        self._log: deque[TickerCommon] = deque()
        self._calc_log: deque[TickerCalc] = deque()

    def __len__(self) -> int:
        return len(self._log)

    def push_log(self, ticker: TickerCommon) -> None:
        self._log.appendleft(ticker)

    def push_calc(self, calc: TickerCalc) -> None:
        self._calc_log.appendleft(calc)

    def chart_since(
        self,
        ds: Datasource,
        symbols: Iterable[SymbolCommon],
        since: Optional[datetime] = None,
        limit: int = 1000,
    ) -> list[ChartDataset]:
        """Chart datasets per symbol: prices first, then each calculation."""

        def recent(dtg: datetime) -> bool:
            return since is None or dtg > since

        data: list[ChartDataset] = []
        for symbol in symbols:
            prices = (t for t in self._log if t.symbol == symbol and recent(t.dtg))
            points = [ChartTimeSeries(x=t.dtg, y=t.price) for _, t in zip(range(limit), prices)]
            data.append(ChartDataset(label=f"{symbol}_{ds}", data=points))

            for calc_id in CalculationId:
                calcs = (
                    c
                    for c in self._calc_log
                    if c.symbol == symbol and c.calc_id == calc_id and recent(c.dtg)
                )
                points = [ChartTimeSeries(x=c.dtg, y=c.val) for _, c in zip(range(limit), calcs)]
                data.append(ChartDataset(label=f"{symbol}_{calc_id}_{ds}", data=points))
        return data

    def calculate_moving_avg_n(self, calc_id: CalculationId, symbol: SymbolCommon) -> TickerCalc:
        """Average price of ``symbol`` among the newest ``calc_id.value()`` entries."""
        window = min(len(self._log), calc_id.value())
        matching = [t for _, t in zip(range(window), self._log) if t.symbol == symbol]
        avg = sum(t.price for t in matching) / len(matching) if matching else math.nan
        dtg = matching[0].dtg if matching else datetime.now(timezone.utc)
        return TickerCalc(dtg=dtg, symbol=symbol, calc_id=calc_id, val=avg)

    def calculate_diff_slope(
        self,
        source_calc_id: CalculationId,
        dest_calc_id: CalculationId,
        symbol: SymbolCommon,
    ) -> TickerCalc:
        """Rate of change of a calculation, scaled and clamped to ±MAX_RANGE."""
        matching = (
            c for c in self._calc_log if c.symbol == symbol and c.calc_id == source_calc_id
        )
        recent = [c for _, c in zip(range(source_calc_id.value()), matching)]
        logger.debug("[calculate_diff_slope] r len: %d", len(recent))
        if len(recent) <= 1:
            raise EventLogError("CalculationSlope", "not enough values")

        first, last = recent[0], recent[-1]
        elapsed_sec = _whole_millis(first.dtg - last.dtg) / 1000.0
        value_change = first.val - last.val
        if elapsed_sec != 0:
            slope = value_change / elapsed_sec * VISUAL_CORRECTION_FACTOR
        elif value_change != 0 and not math.isnan(value_change):
            slope = math.copysign(math.inf, value_change)
        else:
            slope = math.nan
        if slope > MAX_RANGE:
            slope = MAX_RANGE
        elif slope < -MAX_RANGE:
            slope = -MAX_RANGE
        logger.debug(
            "[calculate_diff_slope] value_change: %s, elapsed: %s, %s",
            value_change, elapsed_sec, slope,
        )
        return TickerCalc(dtg=first.dtg, symbol=symbol, calc_id=dest_calc_id, val=slope)

    def record_batch(self) -> _Table:
        """The price log as a table of (dtg, product_id, price), newest first."""
        rows = [
            (_from_millis(_to_millis(t.dtg)), str(t.symbol), t.price) for t in self._log
        ]
        return _Table(SCHEMA, rows)

    def _query(self, sql: str) -> _Table:
        rows = [(_to_millis(t.dtg), str(t.symbol), t.price) for t in self._log]
        with closing(sqlite3.connect(":memory:")) as conn:
            conn.execute(
                "create table t_one (dtg integer not null, "
                "product_id text not null, price real not null)"
            )
            conn.executemany("insert into t_one values (?, ?, ?)", rows)
            cursor = conn.execute(sql)
            columns = tuple(d[0] for d in cursor.description)
            fetched = cursor.fetchall()
        if "dtg" in columns:
            idx = columns.index("dtg")
            fetched = [
                row[:idx] + (_from_millis(row[idx]),) + row[idx + 1:] for row in fetched
            ]
        return _Table(columns, [tuple(r) for r in fetched])

    def query_sql_for_chart(self) -> _Table:
        logger.debug("[query_sql_for_chart]")
        return self._query("select dtg, product_id, price from t_one order by dtg desc")

    def query_sql_all(self) -> _Table:
        return self._query("select * from t_one order by dtg desc")

    def calc_with_sql(self) -> _Table:
        """Latest prices, short averages and their difference via SQL."""
        start = time.perf_counter()
        table = self._query(
            """
            select price_no_order, price_ordered, p4, p10, p4-p10 as diff, count from (
                select
                    (select price from t_one limit 1) as price_no_order
                    ,(select price from t_one order by dtg desc limit 1) as price_ordered
                    ,(select avg(price) from (select * from t_one order by dtg desc limit 4)) as p4
                    ,(select avg(price) from (select * from t_one order by dtg desc limit 10)) as p10
                    ,(select count(*) from t_one) as count
            )
            """
        )
        logger.debug("[sql] elapsed: %s ms", (time.perf_counter() - start) * 1000.0)
        return table

    def write_csv(self, directory: Union[str, Path]) -> Path:
        """Write the whole log as CSV into ``directory``; return the file path."""
        table = self.query_sql_all()
        target = Path(directory)
        target.mkdir(parents=True, exist_ok=True)
        path = target / f"{uuid.uuid4().hex[:16]}.csv"
        with path.open("w", newline="", encoding="utf-8") as handle:
            writer = csv.writer(handle)
            writer.writerow(table.columns)
            writer.writerows([_format_cell(v) for v in row] for row in table.rows)
        return path