from datetime import datetime, timedelta, timezone

import pytest

from tickerflow.calculation import refresh_calculations
from tickerflow.event_book import EventBook
from tickerflow.models import (
    CalculationId,
    Datasource,
    SymbolCommon,
    TickerCommon,
)

T0 = datetime(1996, 12, 20, 0, 39, 57, tzinfo=timezone.utc)


def _push(book, price, dtg):
    book.push_log(
        Datasource.COINBASE,
        TickerCommon(source=Datasource.COINBASE, symbol=SymbolCommon.BTC_USD, price=price, dtg=dtg),
    )


def _stored_calc_ids(book):
    with book.read() as logs:
        charts = logs[Datasource.COINBASE].chart_since(
            Datasource.COINBASE, [SymbolCommon.BTC_USD]
        )
    return {c.label: len(c.data) for c in charts}


def test_first_refresh_has_no_slope():
    book = EventBook()
    for _ in range(3):
        _push(book, 10.0, T0)
    calcs = refresh_calculations(Datasource.COINBASE, book, SymbolCommon.BTC_USD)
    assert [c.calc_id for c in calcs] == [
        CalculationId.MOVING_AVG_0010,
        CalculationId.MOVING_AVG_0100,
        CalculationId.MOVING_AVG_1000,
        CalculationId.MOV_AVG_DIFF_0100_1000,
    ]
    assert [c.val for c in calcs[:3]] == [10.0, 10.0, 10.0]
    assert calcs[3].val == 0.0
    assert all(c.symbol is SymbolCommon.BTC_USD for c in calcs)


def test_refresh_stores_calculations_in_book():
    book = EventBook()
    _push(book, 10.0, T0)
    refresh_calculations(Datasource.COINBASE, book, SymbolCommon.BTC_USD)
    counts = _stored_calc_ids(book)
    assert counts["btc_usd_MovingAvg0010_Coinbase"] == 1
    assert counts["btc_usd_MovAvgDiff0100_1000_Coinbase"] == 1
    assert counts["btc_usd_MovAvgDiffSlope0100_1000_Coinbase"] == 0


def test_slope_appears_once_two_diffs_exist():
    book = EventBook()
    _push(book, 10.0, T0)
    refresh_calculations(Datasource.COINBASE, book, SymbolCommon.BTC_USD)
    later = T0 + timedelta(seconds=5)
    _push(book, 10.0, later)
    second = refresh_calculations(Datasource.COINBASE, book, SymbolCommon.BTC_USD)
    assert len(second) == 4

    third = refresh_calculations(Datasource.COINBASE, book, SymbolCommon.BTC_USD)
    assert len(third) == 5
    slope = third[-1]
    assert slope.calc_id is CalculationId.MOV_AVG_DIFF_SLOPE_0100_1000
    assert slope.dtg == later
    assert slope.val == 0.0
    assert _stored_calc_ids(book)["btc_usd_MovAvgDiffSlope0100_1000_Coinbase"] == 1


def test_diff_uses_moving_average_timestamp():
    book = EventBook()
    _push(book, 10.0, T0)
    _push(book, 20.0, T0 + timedelta(seconds=1))
    calcs = refresh_calculations(Datasource.COINBASE, book, SymbolCommon.BTC_USD)
    assert calcs[3].dtg == calcs[1].dtg == T0 + timedelta(seconds=1)
    assert calcs[3].val == calcs[1].val - calcs[2].val


def test_missing_source_raises_key_error():
    book = EventBook()
    with pytest.raises(KeyError):
        refresh_calculations(Datasource.ALPACA, book, SymbolCommon.BTC_USD)