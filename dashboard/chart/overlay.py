from __future__ import annotations

import logging
import math
from typing import Dict, List, Optional, Sequence

from ..formatting import price_formatter
from ..models import Candle, ChartPayload
from .panes import (
    CandlePoint,
    CandleStyle,
    ChartRenderer,
    LinePane,
    LineStyle,
    PaneOptions,
    PriceLine,
    PriceLineSpec,
    PriceSeries,
    SeriesPoint,
    Unsubscribe,
    VisibleRange,
)


logger = logging.getLogger(__name__)

MA5_STYLE = LineStyle(color="#2196F3", width=1)
MA20_STYLE = LineStyle(color="#FF9800", width=1)
BB_STYLE = LineStyle(color="#9c27b080", width=1, dashed=True)
RSI_STYLE = LineStyle(color="#ab47bc", width=2)

# key, title, color, width, dashed
LEVEL_LINES = (
    ("entry", "진입", "#2196F3", 2, False),
    ("stop_loss", "손절", "#ef5350", 2, True),
    ("take_profit", "익절", "#26a69a", 2, True),
    ("take_profit_2", "2차익절", "#4caf50", 1, True),
)
RSI_REFERENCE_LINES = ((30.0, "#26a69a"), (70.0, "#ef5350"))


def check_candles(candles: Sequence[Candle]) -> None:
    for prev, cur in zip(candles, candles[1:]):
        if cur.time <= prev.time:
            raise ValueError(f"candle times must be strictly increasing ({prev.time} -> {cur.time})")


def align_series(candles: Sequence[Candle], values: Sequence[Optional[float]]) -> List[SeriesPoint]:
    """Pair indicator value i with candle i; a shorter array covers only its indices."""
    points: List[SeriesPoint] = []
    for candle, value in zip(candles, values):
        if value is None or math.isnan(value):
            continue
        points.append(SeriesPoint(time=candle.time, value=float(value)))
    return points


class ChartOverlay:
    """Price pane plus an optional RSI pane built from a ChartPayload.

    The RSI pane follows the price pane's visible range; nothing flows back
    the other way.
    """

    def __init__(
        self,
        renderer: ChartRenderer,
        width: int = 900,
        main_height: int = 350,
        rsi_height: int = 100,
    ) -> None:
        self._renderer = renderer
        self._width = width
        self._main_height = main_height
        self._rsi_height = rsi_height
        self._main: Optional[LinePane] = None
        self._rsi: Optional[LinePane] = None
        self._series: Dict[str, PriceSeries] = {}
        self._price_lines: Dict[str, PriceLine] = {}
        self._unsubscribe: List[Unsubscribe] = []

    @property
    def main_pane(self) -> Optional[LinePane]:
        return self._main

    @property
    def rsi_pane(self) -> Optional[LinePane]:
        return self._rsi

    @property
    def series(self) -> Dict[str, PriceSeries]:
        return dict(self._series)

    @property
    def price_lines(self) -> Dict[str, PriceLine]:
        return dict(self._price_lines)

    @property
    def built(self) -> bool:
        return self._main is not None

    def build(self, payload: ChartPayload) -> None:
        check_candles(payload.candles)
        self.dispose()
        try:
            self._build(payload)
        except Exception:
            self.dispose()
            raise

    def _build(self, payload: ChartPayload) -> None:
        main = self._renderer.create_pane(
            PaneOptions(
                width=self._width,
                height=self._main_height,
                price_formatter=price_formatter(payload.exchange),
            )
        )
        self._main = main

        candles = main.add_candles(CandleStyle())
        candles.set_data(
            [CandlePoint(time=c.time, open=c.open, high=c.high, low=c.low, close=c.close) for c in payload.candles]
        )
        self._series["candles"] = candles

        for name, style in (("ma5", MA5_STYLE), ("ma20", MA20_STYLE)):
            values = payload.indicator(name)
            if values:
                self._add_line(main, name, style, payload.candles, values)

        upper = payload.indicator("bb_upper")
        lower = payload.indicator("bb_lower")
        if upper and lower:
            self._add_line(main, "bb_upper", BB_STYLE, payload.candles, upper)
            self._add_line(main, "bb_lower", BB_STYLE, payload.candles, lower)

        for key, title, color, width, dashed in LEVEL_LINES:
            price = getattr(payload.levels, key)
            if price is None:
                continue
            self._price_lines[key] = candles.create_price_line(
                PriceLineSpec(price=price, color=color, width=width, dashed=dashed, title=title)
            )

        main.fit_content()

        rsi_values = payload.indicator("rsi")
        if not rsi_values:
            return
        rsi = self._renderer.create_pane(
            PaneOptions(width=self._width, height=self._rsi_height, time_axis_visible=False)
        )
        self._rsi = rsi
        rsi_series = self._add_line(rsi, "rsi", RSI_STYLE, payload.candles, rsi_values)
        for level, color in RSI_REFERENCE_LINES:
            self._price_lines[f"rsi_{int(level)}"] = rsi_series.create_price_line(
                PriceLineSpec(price=level, color=color, width=1, dashed=True, axis_label_visible=False)
            )
        rsi.fit_content()

        self._unsubscribe.append(main.subscribe_visible_range(self._follow_main))
        current = main.visible_range()
        if current is not None:
            rsi.set_visible_range(current)

    def _add_line(
        self,
        pane: LinePane,
        name: str,
        style: LineStyle,
        candles: Sequence[Candle],
        values: Sequence[Optional[float]],
    ) -> PriceSeries:
        series = pane.add_line(style)
        series.set_data(align_series(candles, values))
        self._series[name] = series
        return series

    def _follow_main(self, rng: Optional[VisibleRange]) -> None:
        if rng is not None and self._rsi is not None:
            self._rsi.set_visible_range(rng)

    def resize(self, width: int) -> None:
        self._width = width
        for pane in (self._main, self._rsi):
            if pane is not None:
                pane.resize(width)

    def dispose(self) -> None:
        unsubscribe, self._unsubscribe = self._unsubscribe, []
        for unsub in unsubscribe:
            unsub()
        rsi, main = self._rsi, self._main
        self._rsi = None
        self._main = None
        self._series.clear()
        self._price_lines.clear()
        for pane in (rsi, main):
            if pane is not None:
                pane.dispose()
