from .modal import ChartModal
from .mpl import MplRenderer
from .overlay import ChartOverlay, align_series, check_candles
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
)

__all__ = [
    "CandlePoint",
    "CandleStyle",
    "ChartModal",
    "ChartOverlay",
    "ChartRenderer",
    "LinePane",
    "LineStyle",
    "MplRenderer",
    "PaneOptions",
    "PriceLine",
    "PriceLineSpec",
    "PriceSeries",
    "SeriesPoint",
    "align_series",
    "check_candles",
]
