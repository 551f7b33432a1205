"""Market data types shared by the feed, the store and the charts."""

from __future__ import annotations

import json
import re
from concurrent.futures import Future
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Mapping, Union

_TIMESTAMP_RE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})[Tt ](\d{2}):(\d{2}):(\d{2})"
    r"(?:\.(\d+))?"
    r"([Zz]|[+-]\d{2}:\d{2})$"
)


def _parse_timestamp(text: str) -> datetime:
    """Parse an RFC 3339 timestamp into an aware UTC datetime."""
    if not isinstance(text, str):
        raise ValueError(f"timestamp must be a string, got {type(text).__name__}")
    match = _TIMESTAMP_RE.match(text)
    if match is None:
        raise ValueError(f"invalid RFC 3339 timestamp: {text!r}")
    year, month, day, hour, minute, second, fraction, offset = match.groups()
    micro = int((fraction or "0")[:6].ljust(6, "0"))
    if offset in ("Z", "z"):
        tz = timezone.utc
    else:
        sign = 1 if offset[0] == "+" else -1
        hours, minutes = int(offset[1:3]), int(offset[4:6])
        tz = timezone(sign * timedelta(hours=hours, minutes=minutes))
    parsed = datetime(
        int(year), int(month), int(day),
        int(hour), int(minute), int(second), micro, tzinfo=tz,
    )
    return parsed.astimezone(timezone.utc)


def _format_timestamp(ts: datetime) -> str:
    """Render a datetime as RFC 3339 in UTC with a trailing Z."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    ts = ts.astimezone(timezone.utc)
    micro = ts.microsecond
    if micro == 0:
        fraction = ""
    elif micro % 1000 == 0:
        fraction = f".{micro // 1000:03d}"
    else:
        fraction = f".{micro:06d}"
    return f"{ts.strftime('%Y-%m-%dT%H:%M:%S')}{fraction}Z"


def _parse_price(raw: Any) -> float:
    if not isinstance(raw, str):
        raise ValueError(f"price must be a string, got {type(raw).__name__}")
    if raw != raw.strip() or "_" in raw or not raw:
        raise ValueError(f"invalid price: {raw!r}")
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"invalid price: {raw!r}") from exc


class Datasource(Enum):
    """Where a ticker came from."""

    COINBASE = "coinbase"
    ALPACA = "alpaca"

    def __str__(self) -> str:
        return self.name.capitalize()


class SymbolCommon(Enum):
    """Exchange-independent trading pair."""

    BTC_USD = "btc_usd"
    ETH_USD = "eth_usd"
    ETH_BTC = "eth_btc"

    def __str__(self) -> str:
        return self.value


class SymbolCoinbase(Enum):
    """Trading pair as Coinbase names it."""

    BTC_USD = "btc_usd"
    ETH_USD = "eth_usd"
    ETH_BTC = "eth_btc"

    def __str__(self) -> str:
        return self.value

    def to_string_coinbase(self) -> str:
        """The Coinbase product id, e.g. ``BTC-USD``."""
        return self.name.replace("_", "-")

    def to_common(self) -> SymbolCommon:
        return SymbolCommon[self.name]

    @classmethod
    def from_product_id(cls, product_id: str) -> "SymbolCoinbase":
        """Look up a symbol by the product id found in feed messages."""
        try:
            return _PRODUCT_IDS[product_id]
        except (KeyError, TypeError):
            raise ValueError(f"unknown product id: {product_id!r}") from None


_PRODUCT_IDS = {
    "BTC-USD": SymbolCoinbase.BTC_USD,
    "btc_usd": SymbolCoinbase.BTC_USD,
    "ETH-USD": SymbolCoinbase.ETH_USD,
    "ETH-BTC": SymbolCoinbase.ETH_BTC,
}


class CalculationId(Enum):
    """Kinds of derived series computed from the price log."""

    MOVING_AVG_0010 = "MovingAvg0010"
    MOVING_AVG_0100 = "MovingAvg0100"
    MOVING_AVG_1000 = "MovingAvg1000"
    MOV_AVG_DIFF_0010_1000 = "MovAvgDiff0010_1000"
    MOV_AVG_DIFF_0100_1000 = "MovAvgDiff0100_1000"
    MOV_AVG_DIFF_SLOPE_0100_1000 = "MovAvgDiffSlope0100_1000"

    def __str__(self) -> str:
        return self._value_

    def to_string_coinbase(self) -> str:
        return _CALC_NAMES[self]

    def value(self) -> int:
        """Window size: how many entries the calculation looks back over."""
        return _CALC_WINDOWS[self]


_CALC_NAMES = {
    CalculationId.MOVING_AVG_0010: "mov_avg_0010",
    CalculationId.MOVING_AVG_0100: "mov_avg_0100",
    CalculationId.MOVING_AVG_1000: "mov_avg_1000",
    CalculationId.MOV_AVG_DIFF_0010_1000: "mov_avg_diff_0010_1000",
    CalculationId.MOV_AVG_DIFF_0100_1000: "mov_avg_diff_0100_1000",
    CalculationId.MOV_AVG_DIFF_SLOPE_0100_1000: "mov_avg_diff_slope_0010_1000",
}

_CALC_WINDOWS = {
    CalculationId.MOVING_AVG_0010: 10,
    CalculationId.MOVING_AVG_0100: 100,
    CalculationId.MOVING_AVG_1000: 1000,
    CalculationId.MOV_AVG_DIFF_0010_1000: 10,
    # number of values the slope averages over to reduce jitter
    CalculationId.MOV_AVG_DIFF_0100_1000: 50,
    CalculationId.MOV_AVG_DIFF_SLOPE_0100_1000: 0,
}


@dataclass(frozen=True)
class TickerCommon:
    """A price observation in exchange-independent form."""

    source: Datasource
    symbol: SymbolCommon
    price: float
    dtg: datetime


@dataclass(frozen=True)
class TickerCoinbase:
    """A ticker message from the Coinbase feed."""

    dtg: datetime
    symbol: SymbolCoinbase
    price: float

    @classmethod
    def from_json(cls, data: Union[str, bytes, Mapping[str, Any]]) -> "TickerCoinbase":
        """Build a ticker from a feed message (JSON text or decoded mapping)."""
        if isinstance(data, (str, bytes, bytearray)):
            data = json.loads(data)
        if not isinstance(data, Mapping):
            raise ValueError("ticker message must be a JSON object")
        try:
            time_raw = data["time"]
            product_raw = data["product_id"]
            price_raw = data["price"]
        except KeyError as exc:
            raise ValueError(f"missing field {exc.args[0]!r}") from None
        return cls(
            dtg=_parse_timestamp(time_raw),
            symbol=SymbolCoinbase.from_product_id(product_raw),
            price=_parse_price(price_raw),
        )

    def to_common(self) -> TickerCommon:
        return TickerCommon(
            source=Datasource.COINBASE,
            dtg=self.dtg,
            symbol=self.symbol.to_common(),
            price=self.price,
        )


@dataclass(frozen=True)
class TickerCalc:
    """A computed value for one symbol at one point in time."""

    dtg: datetime
    symbol: SymbolCommon
    calc_id: CalculationId
    val: float


@dataclass(frozen=True)
class ChartTimeSeries:
    """One chart point."""

    x: datetime
    y: float

    def to_json(self) -> dict[str, Any]:
        return {"x": _format_timestamp(self.x), "y": self.y}


@dataclass
class ChartDataset:
    """A labelled series of chart points."""

    label: str
    data: list[ChartTimeSeries] = field(default_factory=list)

    def to_json(self) -> dict[str, Any]:
        return {"label": self.label, "data": [point.to_json() for point in self.data]}


_ERROR_KINDS = frozenset(
    {"DbError", "JsonError", "Serde", "RecvError", "SendError", "NoMessageMatch"}
)


class UniversalError(Exception):
    """Failure passing messages between the feed, store and web parts."""

    def __init__(self, kind: str, detail: str | None = None) -> None:
        if kind not in _ERROR_KINDS:
            raise ValueError(f"unknown error kind: {kind!r}")
        self.kind = kind
        self.detail = detail
        super().__init__(str(self))

    def __str__(self) -> str:
        return self.kind if self.detail is None else f"{self.kind}: {self.detail}"


@dataclass(frozen=True)
class Insert:
    """Store a ticker under its source."""

    source: Datasource
    ticker: TickerCommon


@dataclass(frozen=True)
class Ping:
    """Liveness message."""


@dataclass
class ChartMultiRequest:
    """Ask for chart data for several symbols; answered through ``reply``."""

    symbols: list[SymbolCommon]
    reply: Future = field(default_factory=Future, compare=False, repr=False)


@dataclass
class ChartSinceRequest:
    """Ask for chart data newer than ``since``; answered through ``reply``."""

    symbols: list[SymbolCommon]
    since: datetime
    reply: Future = field(default_factory=Future, compare=False, repr=False)