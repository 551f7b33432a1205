"""Derived series computed from the newest prices in the book."""

from __future__ import annotations

import logging
import time

from tickerflow.event_book import BookError, EventBook
from tickerflow.event_log import EventLogError
from tickerflow.models import CalculationId, Datasource, SymbolCommon, TickerCalc

logger = logging.getLogger(__name__)


def refresh_calculations(
    source: Datasource, book: EventBook, symbol: SymbolCommon
) -> list[TickerCalc]:
    """Compute moving averages, their difference and its slope; store them.

    Returns the calculations that were computed. Raises ``KeyError`` when
    the book holds no log for ``source``.
    """
    logger.debug("[refresh_calculations]")
    start = time.perf_counter()

    with book.read() as logs:
        try:
            log = logs[source]
        except KeyError:
            raise KeyError(f"no event log for {source}") from None

        ma_0010 = log.calculate_moving_avg_n(CalculationId.MOVING_AVG_0010, symbol)
        ma_0100 = log.calculate_moving_avg_n(CalculationId.MOVING_AVG_0100, symbol)
        ma_1000 = log.calculate_moving_avg_n(CalculationId.MOVING_AVG_1000, symbol)

        # positive means trending upward, negative means turning down
        ma_diff = TickerCalc(
            dtg=ma_0100.dtg,
            symbol=ma_0100.symbol,
            calc_id=CalculationId.MOV_AVG_DIFF_0100_1000,
            val=ma_0100.val - ma_1000.val,
        )
        calcs = [ma_0010, ma_0100, ma_1000, ma_diff]

        try:
            calcs.append(
                log.calculate_diff_slope(
                    CalculationId.MOV_AVG_DIFF_0100_1000,
                    CalculationId.MOV_AVG_DIFF_SLOPE_0100_1000,
                    symbol,
                )
            )
        except EventLogError as exc:
            logger.debug("[refresh_calculations] no slope: %s", exc)

    for calc in calcs:
        try:
            book.push_calc(source, calc)
        except BookError as exc:
            logger.error("[refresh_calculations] %s", exc)

    logger.debug(
        "[refresh_calculations] %sms", (time.perf_counter() - start) * 1000.0
    )
    return calcs