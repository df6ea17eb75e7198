from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Sequence, Tuple, runtime_checkable

from ..formatting import PriceFormatter


VisibleRange = Tuple[float, float]
RangeCallback = Callable[[Optional[VisibleRange]], None]
Unsubscribe = Callable[[], None]


@dataclass(frozen=True, slots=True)
class SeriesPoint:
    time: int
    value: float


@dataclass(frozen=True, slots=True)
class CandlePoint:
    time: int
    open: float
    high: float
    low: float
    close: float


@dataclass(frozen=True, slots=True)
class LineStyle:
    color: str
    width: float = 1.0
    dashed: bool = False


@dataclass(frozen=True, slots=True)
class CandleStyle:
    up_color: str = "#26a69a"
    down_color: str = "#ef5350"


@dataclass(frozen=True, slots=True)
class PriceLineSpec:
    price: float
    color: str
    width: float = 1.0
    dashed: bool = False
    title: str = ""
    axis_label_visible: bool = True


@dataclass(frozen=True, slots=True)
class PaneOptions:
    width: int
    height: int
    price_formatter: Optional[PriceFormatter] = None
    time_axis_visible: bool = True


@runtime_checkable
class PriceLine(Protocol):
    def remove(self) -> None: ...


@runtime_checkable
class PriceSeries(Protocol):
    def set_data(self, points: Sequence) -> None: ...

    def create_price_line(self, spec: PriceLineSpec) -> PriceLine: ...


@runtime_checkable
class LinePane(Protocol):
    def add_candles(self, style: CandleStyle) -> PriceSeries: ...

    def add_line(self, style: LineStyle) -> PriceSeries: ...

    def visible_range(self) -> Optional[VisibleRange]: ...

    def set_visible_range(self, rng: VisibleRange) -> None: ...

    def subscribe_visible_range(self, callback: RangeCallback) -> Unsubscribe: ...

    def fit_content(self) -> None: ...

    def resize(self, width: int) -> None: ...

    def dispose(self) -> None: ...


@runtime_checkable
class ChartRenderer(Protocol):
    def create_pane(self, options: PaneOptions) -> LinePane: ...
