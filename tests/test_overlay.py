from __future__ import annotations

import math

import pytest

from dashboard.chart.overlay import ChartOverlay, align_series, check_candles
from dashboard.formatting import format_krw_price, format_usdt_price
from dashboard.models import Candle, chart_from_dict

from .conftest import FakeRenderer, candle_rows, chart_body


def _payload(**overrides):
    return chart_from_dict(chart_body(**overrides))


def _candles(n):
    return [Candle(time=r["time"], open=r["open"], high=r["high"], low=r["low"], close=r["close"], volume=0.0) for r in candle_rows(n)]


def test_align_series_pairs_by_index():
    candles = _candles(5)
    points = align_series(candles, [1.0, 2.0, 3.0])
    assert [p.time for p in points] == [c.time for c in candles[:3]]
    assert [p.value for p in points] == [1.0, 2.0, 3.0]


def test_align_series_longer_indicator_is_truncated():
    candles = _candles(3)
    points = align_series(candles, [1.0, 2.0, 3.0, 4.0, 5.0])
    assert len(points) == 3


def test_align_series_skips_gaps():
    candles = _candles(4)
    points = align_series(candles, [None, 2.0, math.nan, 4.0])
    assert [p.time for p in points] == [candles[1].time, candles[3].time]


def test_check_candles_requires_increasing_times():
    candles = _candles(3)
    check_candles(candles)
    candles[2].time = candles[1].time
    with pytest.raises(ValueError):
        check_candles(candles)


def test_build_main_pane(renderer):
    overlay = ChartOverlay(renderer)
    overlay.build(_payload())

    main = renderer.panes[0]
    assert overlay.main_pane is main
    assert main.options.height == 350
    assert main.options.price_formatter is format_krw_price
    assert set(overlay.series) == {"candles", "ma5", "ma20", "bb_upper", "bb_lower", "rsi"}
    assert len(overlay.series["candles"].points) == 5
    assert main.fitted


def test_level_lines_drawn_only_when_present(renderer):
    overlay = ChartOverlay(renderer)
    overlay.build(_payload())
    lines = overlay.price_lines
    assert {"entry", "stop_loss", "take_profit"} <= set(lines)
    assert "take_profit_2" not in lines
    assert lines["stop_loss"].spec.price == 95.0
    assert lines["stop_loss"].spec.title == "손절"


def test_zero_level_is_still_drawn(renderer):
    body = chart_body()
    body["levels"]["take_profit_2"] = 0
    overlay = ChartOverlay(renderer)
    overlay.build(chart_from_dict(body))
    assert "take_profit_2" in overlay.price_lines


def test_bollinger_needs_both_bands(renderer):
    body = chart_body()
    del body["indicators"]["bb_lower"]
    overlay = ChartOverlay(renderer)
    overlay.build(chart_from_dict(body))
    assert "bb_upper" not in overlay.series
    assert "bb_lower" not in overlay.series


def test_shorter_indicator_covers_prefix(renderer):
    body = chart_body(n=6)
    body["indicators"]["ma20"] = [None, None, 1.0, 2.0]
    overlay = ChartOverlay(renderer)
    overlay.build(chart_from_dict(body))
    times = [p.time for p in overlay.series["ma20"].points]
    assert times == [body["candles"][2]["time"], body["candles"][3]["time"]]


def test_no_rsi_pane_without_rsi(renderer):
    body = chart_body()
    del body["indicators"]["rsi"]
    overlay = ChartOverlay(renderer)
    overlay.build(chart_from_dict(body))
    assert overlay.rsi_pane is None
    assert len(renderer.panes) == 1


def test_rsi_pane_with_reference_lines(renderer):
    overlay = ChartOverlay(renderer, main_height=300, rsi_height=80)
    overlay.build(_payload())
    rsi = overlay.rsi_pane
    assert rsi is renderer.panes[1]
    assert rsi.options.height == 80
    assert rsi.options.time_axis_visible is False
    assert overlay.price_lines["rsi_30"].spec.price == 30.0
    assert overlay.price_lines["rsi_70"].spec.price == 70.0
    assert rsi.fitted
    # Starts aligned with the fitted main pane.
    assert rsi.range == renderer.panes[0].range


def test_rsi_follows_main_but_not_back(renderer):
    overlay = ChartOverlay(renderer)
    overlay.build(_payload())
    main, rsi = renderer.panes

    main.set_visible_range((10.0, 20.0))
    assert rsi.range == (10.0, 20.0)

    rsi.set_visible_range((1.0, 2.0))
    assert main.range == (10.0, 20.0)


def test_invalid_candles_touch_no_renderer(renderer):
    body = chart_body()
    body["candles"][3]["time"] = body["candles"][1]["time"]
    overlay = ChartOverlay(renderer)
    with pytest.raises(ValueError):
        overlay.build(chart_from_dict(body))
    assert renderer.panes == []
    assert not overlay.built


def test_dispose_is_idempotent(renderer):
    overlay = ChartOverlay(renderer)
    overlay.build(_payload())
    main, rsi = renderer.panes

    overlay.dispose()
    overlay.dispose()
    assert main.disposed == 1
    assert rsi.disposed == 1
    assert overlay.main_pane is None
    assert overlay.rsi_pane is None
    assert main.callbacks == []


def test_dispose_before_build_is_noop(renderer):
    overlay = ChartOverlay(renderer)
    overlay.dispose()
    assert not overlay.built


def test_rebuild_disposes_previous_panes(renderer):
    overlay = ChartOverlay(renderer)
    overlay.build(_payload())
    first_main, first_rsi = renderer.panes
    overlay.build(_payload())
    assert first_main.disposed == 1
    assert first_rsi.disposed == 1
    assert overlay.main_pane is renderer.panes[2]

    # Old panes no longer drive the new RSI pane.
    first_main.set_visible_range((0.0, 1.0))
    assert renderer.panes[3].range != (0.0, 1.0)


def test_derivatives_payload_uses_usdt(renderer):
    overlay = ChartOverlay(renderer)
    overlay.build(_payload(exchange="bybit"))
    assert renderer.panes[0].options.price_formatter is format_usdt_price


def test_renderer_failure_cleans_up():
    renderer = FakeRenderer(fail_on=2)
    overlay = ChartOverlay(renderer)
    with pytest.raises(RuntimeError):
        overlay.build(_payload())
    assert renderer.panes[0].disposed == 1
    assert not overlay.built


def test_resize(renderer):
    overlay = ChartOverlay(renderer)
    overlay.build(_payload())
    overlay.resize(600)
    assert all(p.width == 600 for p in renderer.panes)
