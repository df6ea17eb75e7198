from __future__ import annotations

import io
import logging
from datetime import datetime
from typing import List, Optional, Sequence
from zoneinfo import ZoneInfo

from matplotlib.backends.backend_agg import FigureCanvasAgg
from matplotlib.figure import Figure
from matplotlib.ticker import FuncFormatter

from .panes import (
    CandlePoint,
    CandleStyle,
    LineStyle,
    PaneOptions,
    PriceLineSpec,
    RangeCallback,
    SeriesPoint,
    Unsubscribe,
    VisibleRange,
)


logger = logging.getLogger(__name__)

BACKGROUND = "#1a1a2e"
GRID = "#2b2b43"
TEXT = "#d1d4dc"


def _linestyle(dashed: bool) -> str:
    return "--" if dashed else "-"


class MplPriceLine:
    def __init__(self, artists: List) -> None:
        self._artists = artists

    def remove(self) -> None:
        artists, self._artists = self._artists, []
        for artist in artists:
            artist.remove()


class MplLineSeries:
    def __init__(self, pane: "MplPane", style: LineStyle) -> None:
        self._pane = pane
        (self._line,) = pane.ax.plot(
            [], [], color=style.color, linewidth=style.width, linestyle=_linestyle(style.dashed)
        )

    def set_data(self, points: Sequence[SeriesPoint]) -> None:
        self._line.set_data([p.time for p in points], [p.value for p in points])
        self._pane.ax.relim()
        self._pane.track([p.time for p in points])

    def create_price_line(self, spec: PriceLineSpec) -> MplPriceLine:
        return self._pane.price_line(spec)


class MplCandleSeries:
    def __init__(self, pane: "MplPane", style: CandleStyle) -> None:
        self._pane = pane
        self._style = style
        self._artists: List = []

    def set_data(self, points: Sequence[CandlePoint]) -> None:
        for artist in self._artists:
            artist.remove()
        self._artists = []
        if not points:
            return
        times = [p.time for p in points]
        steps = [b - a for a, b in zip(times, times[1:])]
        body_width = 0.6 * (min(steps) if steps else 60)
        colors = [self._style.up_color if p.close >= p.open else self._style.down_color for p in points]
        ax = self._pane.ax
        self._artists.append(ax.vlines(times, [p.low for p in points], [p.high for p in points], colors=colors, linewidth=1))
        bars = ax.bar(
            times,
            [max(abs(p.close - p.open), 1e-12) for p in points],
            bottom=[min(p.open, p.close) for p in points],
            width=body_width,
            color=colors,
        )
        self._artists.append(bars)
        self._pane.track(times)

    def create_price_line(self, spec: PriceLineSpec) -> MplPriceLine:
        return self._pane.price_line(spec)


class MplPane:
    """One chart pane drawn on its own Agg figure."""

    def __init__(self, options: PaneOptions, dpi: int = 100, tz: Optional[ZoneInfo] = None) -> None:
        self._options = options
        self._dpi = dpi
        self._tz = tz
        self._height = options.height
        self._times: List[int] = []
        self._cids: List[int] = []
        self._disposed = False

        self.figure = Figure(figsize=(options.width / dpi, options.height / dpi), dpi=dpi, facecolor=BACKGROUND)
        self._canvas = FigureCanvasAgg(self.figure)
        self.ax = self.figure.add_subplot(1, 1, 1)
        self._apply_theme()

    @property
    def disposed(self) -> bool:
        return self._disposed

    def _apply_theme(self) -> None:
        ax = self.ax
        ax.set_facecolor(BACKGROUND)
        ax.grid(True, color=GRID, linewidth=0.5)
        for spine in ax.spines.values():
            spine.set_color(GRID)
        ax.tick_params(colors=TEXT, labelsize=8)
        ax.yaxis.tick_right()
        fmt = self._options.price_formatter
        if fmt is not None:
            ax.yaxis.set_major_formatter(FuncFormatter(lambda value, _pos: fmt(value)))
        if self._options.time_axis_visible:
            ax.xaxis.set_major_formatter(FuncFormatter(self._format_time))
        else:
            ax.tick_params(labelbottom=False)

    def _format_time(self, value: float, _pos: int) -> str:
        return datetime.fromtimestamp(value, tz=self._tz).strftime("%m-%d %H:%M")

    def track(self, times: Sequence[int]) -> None:
        self._times.extend(times)

    def add_candles(self, style: CandleStyle) -> MplCandleSeries:
        return MplCandleSeries(self, style)

    def add_line(self, style: LineStyle) -> MplLineSeries:
        return MplLineSeries(self, style)

    def price_line(self, spec: PriceLineSpec) -> MplPriceLine:
        artists = [
            self.ax.axhline(spec.price, color=spec.color, linewidth=spec.width, linestyle=_linestyle(spec.dashed))
        ]
        if spec.axis_label_visible and spec.title:
            fmt = self._options.price_formatter
            label = f"{spec.title} {fmt(spec.price) if fmt else spec.price}"
            artists.append(
                self.ax.text(
                    1.0,
                    spec.price,
                    label,
                    transform=self.ax.get_yaxis_transform(),
                    color="white",
                    fontsize=7,
                    ha="right",
                    va="bottom",
                    backgroundcolor=spec.color,
                )
            )
        return MplPriceLine(artists)

    def visible_range(self) -> Optional[VisibleRange]:
        if not self._times:
            return None
        lo, hi = self.ax.get_xlim()
        return (float(lo), float(hi))

    def set_visible_range(self, rng: VisibleRange) -> None:
        self.ax.set_xlim(rng[0], rng[1])

    def subscribe_visible_range(self, callback: RangeCallback) -> Unsubscribe:
        cid = self.ax.callbacks.connect("xlim_changed", lambda ax: callback(tuple(ax.get_xlim())))
        self._cids.append(cid)

        def unsubscribe() -> None:
            if cid in self._cids:
                self._cids.remove(cid)
                self.ax.callbacks.disconnect(cid)

        return unsubscribe

    def fit_content(self) -> None:
        self.ax.relim()
        self.ax.autoscale_view()
        if self._times:
            lo, hi = min(self._times), max(self._times)
            pad = (hi - lo) * 0.02 or 60
            self.ax.set_xlim(lo - pad, hi + pad)

    def resize(self, width: int) -> None:
        self.figure.set_size_inches(width / self._dpi, self._height / self._dpi)

    def render_png(self) -> bytes:
        buf = io.BytesIO()
        self.figure.savefig(buf, format="png", facecolor=self.figure.get_facecolor())
        return buf.getvalue()

    def dispose(self) -> None:
        if self._disposed:
            return
        for cid in self._cids:
            self.ax.callbacks.disconnect(cid)
        self._cids.clear()
        self._times.clear()
        self.figure.clear()
        self._disposed = True


class MplRenderer:
    def __init__(self, dpi: int = 100, timezone: Optional[str] = None) -> None:
        self._dpi = dpi
        self._tz = ZoneInfo(timezone) if timezone else None

    def create_pane(self, options: PaneOptions) -> MplPane:
        return MplPane(options, dpi=self._dpi, tz=self._tz)
