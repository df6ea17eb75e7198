"""Decoding of backend trade reasons into user-facing explanations.

The backend's ``reason`` field is partially free text: entry rows carry codes
such as ``entry_squirrel`` or a bare strategy name, exit rows carry tokens like
``stop_loss (lost -2.5%)`` or their Korean equivalents. ``decode`` maps any
``(reason, side, strategy)`` triple to a ReasonInfo and never fails.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional, Tuple, Union

from .models import ReasonInfo


ENTRY_SIDES = ("buy", "long_open")
SHORT_ENTRY_SIDE = "short_open"

_LEVERAGE_NOTE = " (Bybit 5x 레버리지)"

LONG_ENTRY_REASONS: Dict[str, ReasonInfo] = {
    "entry_squirrel": ReasonInfo(
        "다람쥐 진입",
        "🐿️",
        "최근에 이 코인이 크게 상승한 적이 있어요!",
        "과거에 가격이 크게 오른 날이 있었고(기관 매수 신호), 지금은 잠시 조정을 받으며 쉬고 있는 상태예요. "
        "거래량이 줄어든 것은 \"팔 사람은 다 팔았다\"는 뜻이에요. "
        "조용히 힘을 모은 후 다시 상승할 가능성이 높아서 매수했어요.",
    ),
    "entry_morning": ReasonInfo(
        "샛별형 진입",
        "⭐",
        "어두운 밤(하락) 뒤에 새벽(반등)이 올 것 같아요!",
        "가격이 계속 떨어지다가 바닥을 찍고 반등하는 패턴이 나타났어요. "
        "마치 롤러코스터가 내려가다가 바닥을 찍고 다시 올라가는 것처럼요. "
        "기술적으로 바닥 신호가 나타나서 매수했어요.",
    ),
    "entry_inverted_hammer": ReasonInfo(
        "윗꼬리양봉 진입",
        "🔨",
        "하락하다가 강한 반등 신호가 나타났어요!",
        "가격이 떨어지던 중, 한 번 크게 올랐다가 내려온 캔들(긴 윗꼬리)이 나타났어요. "
        "이건 \"매수세가 들어오고 있다\"는 신호예요. "
        "바닥 근처에서 이 신호가 나오면 반등할 가능성이 높아서 매수했어요.",
    ),
    "entry_divergence": ReasonInfo(
        "다이버전스 진입",
        "📊",
        "가격은 내려갔는데 지표는 올라갔어요!",
        "RSI가 가격과 반대로 움직이는 \"다이버전스\"가 발생했어요. "
        "이건 하락세가 힘을 잃고 있다는 강력한 반등 신호예요.",
    ),
    "entry_harmonic": ReasonInfo(
        "하모닉 진입",
        "🎯",
        "피보나치 반전 포인트(D점)에 도달했어요!",
        "가격이 수학적으로 계산된 정확한 반전 지점에 도달했어요. "
        "가틀리/배트 패턴의 D점은 높은 확률로 반등이 시작되는 자리예요.",
    ),
    "entry_leading_diagonal": ReasonInfo(
        "리딩다이아 진입",
        "📐",
        "하락 쐐기 패턴을 상단 돌파했어요!",
        "가격이 삼각형 모양으로 수렴하다가 위쪽으로 터져나왔어요. "
        "새로운 상승 추세가 시작되는 강력한 신호예요.",
    ),
    # Derivatives rows name the strategy instead of an entry_* code.
    "divergence": ReasonInfo(
        "다이버전스 롱",
        "📊",
        "가격은 내려갔는데 지표는 올라갔어요!",
        "RSI가 가격과 반대로 움직이는 \"다이버전스\"가 발생했어요. "
        "이건 하락세가 힘을 잃고 있다는 강력한 반등 신호예요." + _LEVERAGE_NOTE,
    ),
    "harmonic": ReasonInfo(
        "하모닉 롱",
        "🎯",
        "피보나치 반전 포인트(D점)에 도달했어요!",
        "가격이 수학적으로 계산된 정확한 반전 지점에 도달했어요. "
        "가틀리/배트 패턴의 D점은 높은 확률로 반등이 시작되는 자리예요." + _LEVERAGE_NOTE,
    ),
    "leading_diagonal": ReasonInfo(
        "리딩다이아 롱",
        "📐",
        "하락 쐐기 패턴을 상단 돌파했어요!",
        "가격이 삼각형 모양으로 수렴하다가 위쪽으로 터져나왔어요. "
        "새로운 상승 추세가 시작되는 강력한 신호예요." + _LEVERAGE_NOTE,
    ),
    "squirrel": ReasonInfo(
        "다람쥐 롱",
        "🐿️",
        "최근에 크게 상승한 적이 있어요!",
        "과거에 가격이 크게 오른 날이 있었고, 지금은 잠시 조정을 받으며 쉬고 있는 상태예요." + _LEVERAGE_NOTE,
    ),
    "morning": ReasonInfo(
        "샛별형 롱",
        "⭐",
        "하락 뒤에 반등이 올 것 같아요!",
        "가격이 계속 떨어지다가 바닥을 찍고 반등하는 패턴이 나타났어요." + _LEVERAGE_NOTE,
    ),
    "inverted_hammer": ReasonInfo(
        "윗꼬리양봉 롱",
        "🔨",
        "강한 반등 신호가 나타났어요!",
        "가격이 떨어지던 중, 한 번 크게 올랐다가 내려온 캔들이 나타났어요." + _LEVERAGE_NOTE,
    ),
}

SHORT_ENTRY_REASONS: Dict[str, ReasonInfo] = {
    "bearish_divergence": ReasonInfo(
        "하락 다이버전스",
        "📉",
        "가격과 지표가 엇갈리고 있어요! 하락 가능성이 높아요.",
        "가격은 높은 고점을 찍었는데, RSI 지표는 낮은 고점을 찍었어요. "
        "이건 상승 힘이 약해지고 있다는 의미예요. "
        "곧 가격이 떨어질 가능성이 높아서 숏 진입했어요." + _LEVERAGE_NOTE,
    ),
    "evening_star": ReasonInfo(
        "석양형",
        "🌅",
        "상승 후 반전 신호가 나타났어요!",
        "3개의 캔들이 연속으로 나타나서 \"상승→망설임→하락\" 패턴을 보였어요. "
        "해가 지듯이 상승 추세가 끝나고 하락이 시작될 신호예요." + _LEVERAGE_NOTE,
    ),
    "shooting_star": ReasonInfo(
        "유성형",
        "💫",
        "위로 쏘았다가 다시 내려온 캔들이에요!",
        "가격이 한 번 크게 올랐다가 다시 떨어진 캔들이 나타났어요. "
        "위쪽에서 강한 저항을 받았다는 의미로, 하락 가능성이 높아요." + _LEVERAGE_NOTE,
    ),
    "bearish_engulfing": ReasonInfo(
        "하락 장악형",
        "🐻",
        "큰 음봉이 이전 양봉을 완전히 덮었어요!",
        "작은 양봉 다음에 훨씬 큰 음봉이 나타나서 완전히 덮어버렸어요. "
        "매도 세력이 강하게 장악했다는 의미로, 하락 추세로 전환될 신호예요." + _LEVERAGE_NOTE,
    ),
    "breakdown": ReasonInfo(
        "이탈 하락",
        "📐",
        "지지선을 뚫고 하락했어요!",
        "가격이 삼각형 모양으로 수렴하다가 아래쪽으로 뚫렸어요. "
        "새로운 하락 추세가 시작되는 강력한 신호예요." + _LEVERAGE_NOTE,
    ),
}
SHORT_ENTRY_REASONS["leading_diagonal_breakdown"] = SHORT_ENTRY_REASONS["breakdown"]

EXIT_REASONS: Dict[str, ReasonInfo] = {
    "take_profit": ReasonInfo(
        "익절",
        "💰",
        "익절 목표가에 도달했어요!",
        "매수할 때 설정한 목표가(TP)에 도달해서 전량 청산했어요. 수익을 확정하는 것이 중요해요!",
    ),
    "stop_loss": ReasonInfo(
        "손절",
        "🛑",
        "손절가에 도달해서 손실을 제한했어요.",
        "매수할 때 설정한 손절가(SL)에 도달해서 전량 청산했어요. "
        "더 큰 손실을 막기 위해 빠르게 정리했어요. "
        "손절은 나쁜 게 아니라, 자산을 지키는 현명한 선택이에요!",
    ),
    "panic_sell": ReasonInfo(
        "긴급매도",
        "🚨",
        "긴급 전량 매도를 실행했어요.",
        "사용자가 직접 \"전량 매도\" 버튼을 눌러서 모든 코인을 즉시 팔았어요.",
    ),
    "manual_close": ReasonInfo(
        "수동 청산",
        "👆",
        "사용자가 직접 청산했어요.",
        "사용자가 직접 청산 버튼을 눌러서 포지션을 정리했어요.",
    ),
}

# Localized reason strings the backend sometimes sends instead of tokens.
EXIT_ALIASES: Dict[str, str] = {
    "익절": "take_profit",
    "손절": "stop_loss",
    "긴급매도": "panic_sell",
    "수동 청산": "manual_close",
    "수동청산": "manual_close",
}

GENERIC_ENTRY = ReasonInfo(
    "진입",
    "📈",
    "전략 조건 충족! 좋은 매수 기회예요.",
    "봇이 분석한 결과, 이 코인이 상승할 가능성이 높다고 판단해서 매수했어요.",
)
GENERIC_LONG_ENTRY = ReasonInfo(
    "롱 진입",
    GENERIC_ENTRY.emoji,
    GENERIC_ENTRY.description,
    GENERIC_ENTRY.details,
)
GENERIC_SHORT_ENTRY = ReasonInfo(
    "숏 진입",
    "📉",
    "하락 신호 감지! 숏 포지션을 잡았어요.",
    "봇이 분석한 결과, 이 코인이 하락할 가능성이 높다고 판단해서 숏 진입했어요." + _LEVERAGE_NOTE,
)
NO_REASON = ReasonInfo("-", "", "", "")


@dataclass(frozen=True, slots=True)
class Recognized:
    code: str
    via: str
    info: ReasonInfo


@dataclass(frozen=True, slots=True)
class Fallback:
    kind: str  # entry/long_entry/short_entry/none
    info: ReasonInfo


@dataclass(frozen=True, slots=True)
class Unrecognized:
    raw: str

    @property
    def info(self) -> ReasonInfo:
        return ReasonInfo(self.raw, "📝", f"사유: {self.raw}", "상세 정보가 없습니다.")


Decoded = Union[Recognized, Fallback, Unrecognized]

# (name, key extractor) pairs tried in order for entry sides.
KeyFn = Callable[[Optional[str], str, Optional[str]], Optional[str]]
ENTRY_LOOKUP_ORDER: Tuple[Tuple[str, KeyFn], ...] = (
    ("reason", lambda reason, base, strategy: reason),
    ("entry_code", lambda reason, base, strategy: base if base.startswith("entry_") else None),
    ("strategy", lambda reason, base, strategy: strategy),
    ("strategy_in_reason", lambda reason, base, strategy: base),
)


def base_reason(reason: Optional[str]) -> str:
    """``"stop_loss (lost -2.5%)"`` -> ``"stop_loss"``."""
    if not reason:
        return ""
    head = reason.strip().split(" ")[0]
    return head.split("(")[0].strip()


def normalize_exit_reason(reason: Optional[str]) -> str:
    if not reason:
        return ""
    stripped = reason.strip()
    if stripped in EXIT_ALIASES:
        return EXIT_ALIASES[stripped]
    base = base_reason(stripped)
    return EXIT_ALIASES.get(base, base)


def _cascade(
    table: Mapping[str, ReasonInfo], reason: Optional[str], base: str, strategy: Optional[str]
) -> Optional[Recognized]:
    for via, key_fn in ENTRY_LOOKUP_ORDER:
        key = key_fn(reason, base, strategy)
        if key and key in table:
            return Recognized(code=key, via=via, info=table[key])
    return None


def classify(reason: Optional[str], side: str, strategy: Optional[str] = None) -> Decoded:
    base = base_reason(reason)

    if side in ENTRY_SIDES:
        hit = _cascade(LONG_ENTRY_REASONS, reason, base, strategy)
        if hit is not None:
            return hit
        if side == "long_open":
            return Fallback(kind="long_entry", info=GENERIC_LONG_ENTRY)
        return Fallback(kind="entry", info=GENERIC_ENTRY)

    if side == SHORT_ENTRY_SIDE:
        hit = _cascade(SHORT_ENTRY_REASONS, reason, base, strategy)
        if hit is not None:
            return hit
        return Fallback(kind="short_entry", info=GENERIC_SHORT_ENTRY)

    if not reason or not reason.strip():
        return Fallback(kind="none", info=NO_REASON)
    code = normalize_exit_reason(reason)
    if code in EXIT_REASONS:
        return Recognized(code=code, via="exit", info=EXIT_REASONS[code])
    return Unrecognized(raw=reason)


def decode(reason: Optional[str], side: str, strategy: Optional[str] = None) -> ReasonInfo:
    return classify(reason, side, strategy).info


_SIDE_LABELS: Dict[str, Tuple[str, bool]] = {
    "buy": ("매수", True),
    "sell": ("매도", False),
    "long_open": ("롱진입", True),
    "long_close": ("롱청산", False),
    "short_open": ("숏진입", False),
    "short_close": ("숏청산", True),
}


def side_info(side: str) -> Tuple[str, bool]:
    """Korean side label and whether the row is colored as a long."""
    if side in _SIDE_LABELS:
        return _SIDE_LABELS[side]
    return side, ("buy" in side or "long" in side)


STRATEGY_LABELS: Dict[str, str] = {
    "squirrel": "상승 다람쥐",
    "morning": "샛별형",
    "inverted_hammer": "윗꼬리양봉",
    "divergence": "다이버전스",
    "harmonic": "하모닉",
    "leading_diagonal": "리딩다이아",
    "bearish_divergence": "하락다이버전스",
    "evening_star": "석별형",
    "shooting_star": "슈팅스타",
    "bearish_engulfing": "장대음봉",
    "leading_diagonal_breakdown": "리딩다이아BD",
    "manual": "수동",
}

_TIMEFRAME_LABELS = {"day": "1D", "1D": "1D", "minute240": "4H", "4H": "4H"}


def strategy_label(strategy: str, timeframe: Optional[str] = None) -> str:
    label = STRATEGY_LABELS.get(strategy, strategy)
    if timeframe:
        return f"{label}({_TIMEFRAME_LABELS.get(timeframe, timeframe)})"
    return label
