from __future__ import annotations

import pytest

from dashboard.formatting import (
    DERIVATIVES,
    SPOT,
    format_coin_name,
    format_krw,
    format_krw_price,
    format_level,
    format_percent,
    format_usdt,
    format_usdt_price,
    log_tone,
    price_formatter,
)


def test_price_formatter_depends_on_exchange():
    assert price_formatter(DERIVATIVES) is format_usdt_price
    assert price_formatter(SPOT) is format_krw_price
    assert price_formatter("something-else") is format_krw_price


@pytest.mark.parametrize(
    "price,usdt,krw",
    [
        (0.5, "$0.5", "₩0.5"),
        (1500, "$1,500", "₩1,500"),
        (12.345678, "$12.3457", "₩12.3457"),
        (0.1234567, "$0.123457", "₩0.1235"),
    ],
)
def test_quote_currency_formatters(price, usdt, krw):
    assert format_usdt_price(price) == usdt
    assert format_krw_price(price) == krw
    assert usdt != krw


def test_format_krw_precision_by_magnitude():
    assert format_krw(5.12345678) == "5.12345678"
    assert format_krw(50.5) == "50.5"
    assert format_krw(1234.5) == "1,235"
    assert format_krw(100) == "100"


def test_format_usdt():
    assert format_usdt(0.12346) == "0.1235"
    assert format_usdt(1234.5) == "1,234.50"


def test_format_percent():
    assert format_percent(None) == "-"
    assert format_percent(3.456) == "+3.46%"
    assert format_percent(-1.2) == "-1.20%"
    assert format_percent(0) == "+0.00%"


def test_format_level():
    assert format_level(None, SPOT) == "-"
    assert format_level(95000, SPOT) == "₩95,000"
    assert format_level(2.5, DERIVATIVES) == "$2.5"


def test_format_coin_name():
    assert format_coin_name("KRW-BTC", SPOT) == "BTC"
    assert format_coin_name("ETHUSDT", DERIVATIVES) == "ETH"


def test_log_tone_spot():
    assert log_tone("[BTC] 매수 실행 100,000원") == ("buy", True)
    assert log_tone("손절 매도 완료") == ("sell", True)
    assert log_tone("전략 분석 완료: 3종목") == ("default", True)
    assert log_tone("감시종목 변경: ETH") == ("watch", False)
    assert log_tone("heartbeat") == ("default", False)


def test_log_tone_derivatives():
    assert log_tone("BTCUSDT 롱 진입", DERIVATIVES) == ("buy", True)
    assert log_tone("ETHUSDT 손절", DERIVATIVES) == ("sell", True)
    assert log_tone("펀딩비 정산", DERIVATIVES) == ("funding", False)
    assert log_tone("매수 실행", DERIVATIVES) == ("default", False)
