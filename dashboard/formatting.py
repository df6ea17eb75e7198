from __future__ import annotations

import math
from typing import Callable, Optional, Tuple


SPOT = "upbit"
DERIVATIVES = "bybit"

PriceFormatter = Callable[[float], str]


def _trim(text: str) -> str:
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def format_krw(value: float) -> str:
    # Low-priced coins keep more digits.
    if 0 < value < 10:
        return _trim(f"{value:.8f}")
    if value < 100:
        return _trim(f"{value:,.2f}")
    return f"{_round_half_up(value):,}"


def format_usdt(value: float) -> str:
    if value < 1:
        return f"{value:.4f}"
    return f"{value:,.2f}"


def format_price(value: float) -> str:
    if value >= 100:
        return f"{value:.2f}"
    return f"{value:.4f}"


def format_percent(value: Optional[float]) -> str:
    if value is None:
        return "-"
    sign = "+" if value >= 0 else ""
    return f"{sign}{value:.2f}%"


def format_coin_name(coin: str, exchange: str) -> str:
    """KRW-BTC -> BTC, BTCUSDT -> BTC."""
    if exchange == DERIVATIVES:
        return coin.replace("USDT", "")
    return coin.replace("KRW-", "")


def format_krw_price(price: float) -> str:
    digits = 0 if abs(price) >= 1000 else 4
    return "₩" + _trim(f"{price:,.{digits}f}")


def format_usdt_price(price: float) -> str:
    size = abs(price)
    if size >= 1000:
        digits = 2
    elif size >= 1:
        digits = 4
    else:
        digits = 6
    return "$" + _trim(f"{price:,.{digits}f}")


def price_formatter(exchange: str) -> PriceFormatter:
    """Axis/tooltip formatter for an exchange's quote currency."""
    if exchange == DERIVATIVES:
        return format_usdt_price
    return format_krw_price


def format_level(price: Optional[float], exchange: str) -> str:
    if price is None:
        return "-"
    return price_formatter(exchange)(price)


def log_tone(message: str, exchange: str = SPOT) -> Tuple[str, bool]:
    """Tone name and emphasis for a system log line."""
    if exchange == DERIVATIVES:
        if "롱 진입" in message:
            return "buy", True
        if "롱 청산" in message or "손절" in message:
            return "sell", True
        if "펀딩비" in message:
            return "funding", False
        return "default", False

    if "매수 실행" in message or "매수실행" in message:
        return "buy", True
    if "청산" in message or "매도" in message:
        return "sell", True
    if "전략 분석 완료" in message or "매수 가능성 TOP" in message:
        return "default", True
    if "감시종목 변경" in message:
        return "watch", False
    return "default", False
