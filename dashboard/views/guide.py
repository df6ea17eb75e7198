from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple


# Stop-loss buffer: long -ATR*1.0, short +ATR*1.0. Take-profit buffer: long -ATR*0.2, short +ATR*0.2.


@dataclass(frozen=True, slots=True)
class StrategyGuide:
    id: str
    name: str
    emoji: str
    direction: str  # long/short
    description: str
    timeframes: Tuple[str, ...]
    entry_conditions: Tuple[str, ...]
    stop_loss: str
    take_profit: str
    tips: Tuple[str, ...] = ()


DAILY = "1D (일봉)"
FOUR_HOUR = "4H (4시간봉)"

STRATEGIES: Tuple[StrategyGuide, ...] = (
    StrategyGuide(
        id="divergence",
        name="상승 다이버전스",
        emoji="📊",
        direction="long",
        description="가격은 Lower Low(저점 갱신), RSI는 Higher Low(저점 상승)하는 현상. 과매도 구간에서 반전 신호로 매수.",
        timeframes=(DAILY, FOUR_HOUR),
        entry_conditions=(
            "가격 Lower Low: 현재 저점 < 이전 저점",
            "RSI Higher Low: 현재 RSI > 이전 RSI",
            "과매도: 이전 RSI ≤ 30",
            "트리거: RSI 반등 or 양봉 마감",
        ),
        stop_loss="Swing Low - ATR×1.0",
        take_profit="진입가 + 손절폭×2 - ATR×0.2 (1:2 RR)",
        tips=(
            "RSI가 30 이하에서 발생하는 다이버전스가 더 강력합니다",
            "거래량이 동반되면 신뢰도가 높아집니다",
            "일봉 다이버전스가 4시간봉보다 신뢰도가 높습니다",
        ),
    ),
    StrategyGuide(
        id="harmonic",
        name="하모닉 패턴",
        emoji="🦋",
        direction="long",
        description="XABCD 피보나치 비율 패턴. D점(PRZ)에서 양봉 반전 시 진입.",
        timeframes=(DAILY, FOUR_HOUR),
        entry_conditions=("XABCD 패턴 완성 (Gartley/Bat)", "피보나치 정확도 ≥ 80%", "D점에서 양봉 반전 확인"),
        stop_loss="X점 or XA 1.13 확장 - ATR×1.0",
        take_profit="D + AD×0.382 - ATR×0.2 (1차 TP)",
        tips=("피보나치 비율 정확도가 높을수록 신뢰도가 높습니다", "D점에서 양봉 반등이 필수입니다", "2차 TP: D + AD×0.618"),
    ),
    StrategyGuide(
        id="leading_diagonal",
        name="리딩 다이아고날",
        emoji="💎",
        direction="long",
        description="폴링 웻지(Falling Wedge) 상단 돌파 시 매수.",
        timeframes=(DAILY, FOUR_HOUR),
        entry_conditions=("고점/저점 수렴 형태 (폴링 웻지)", "상단 저항선 양봉 돌파", "돌파 캔들이 양봉으로 마감"),
        stop_loss="하단 지지선 - ATR×1.0",
        take_profit="진입가 + 웻지 입구 크기 - ATR×0.2",
        tips=("쐐기 폭이 좁을수록 돌파 시 상승폭이 큽니다", "거래량 증가 동반 시 더 강력합니다", "양봉 마감 확인 필수"),
    ),
    StrategyGuide(
        id="morning_star",
        name="샛별형",
        emoji="⭐",
        direction="long",
        description="3캔들 반전 패턴: 긴 음봉(N-2) → 도지(N-1) → 긴 양봉(N). 50% 이상 회복 시 진입.",
        timeframes=(DAILY, FOUR_HOUR),
        entry_conditions=("N-2: 긴 음봉 (몸통 ≥ 1%)", "N-1: 도지/팽이 (몸통 ≤ 1%)", "N: 양봉 + N-2의 50% 이상 회복"),
        stop_loss="N-1 Low - ATR×1.0",
        take_profit="진입가 + 손절폭×2 - ATR×0.2 (1:2 RR)",
        tips=("N-2 음봉이 클수록 반전 신호가 강합니다", "N-1이 도지에 가까울수록 좋습니다", "N 양봉 거래량이 많을수록 신뢰도 상승"),
    ),
    StrategyGuide(
        id="inverted_hammer",
        name="역망치형",
        emoji="🔨",
        direction="long",
        description="하락 추세에서 긴 윗꼬리 캔들 출현 후 확인 캔들로 진입.",
        timeframes=(DAILY, FOUR_HOUR),
        entry_conditions=(
            "하락 추세: Close < MA20",
            "윗꼬리 ≥ 몸통×2",
            "아래꼬리 ≤ 몸통×0.5",
            "확인: 다음 캔들 양봉 or 고점 돌파",
        ),
        stop_loss="역망치 Low - ATR×1.0",
        take_profit="진입가 + 윗꼬리 길이 - ATR×0.2 (1:1 RR)",
        tips=("윗꼬리가 길수록 매수 시도가 강했다는 의미", "지지선 근처에서 발생하면 더 유효", "확인 캔들 필수"),
    ),
    StrategyGuide(
        id="squirrel",
        name="다람쥐 꼬리",
        emoji="🐿️",
        direction="long",
        description="지지선 근처에서 긴 아래꼬리 캔들(Pin Bar) 출현 시 매수.",
        timeframes=(DAILY,),
        entry_conditions=(
            "주요 지지선 근처 발생",
            "아래꼬리 ≥ 몸통×2",
            "윗꼬리 < 아래꼬리",
            "확인: 다음 캔들이 패턴 종가 위로 마감",
        ),
        stop_loss="꼬리 최저점 - ATR×1.0 (긴 경우 꼬리 50%)",
        take_profit="Range High (최근 10캔들 고점) - ATR×0.2",
        tips=("아래꼬리가 길수록 매수세가 강했다는 의미", "지지선에서 발생 시 더 신뢰도 높음", "확인 캔들 필수"),
    ),
    StrategyGuide(
        id="bearish_divergence",
        name="하락 다이버전스",
        emoji="📉",
        direction="short",
        description="가격은 Higher High, RSI는 Lower High. 과매수 구간에서 하락 반전 신호로 숏.",
        timeframes=(DAILY, FOUR_HOUR),
        entry_conditions=(
            "가격 Higher High: 현재 고점 > 이전 고점",
            "RSI Lower High: 현재 RSI < 이전 RSI",
            "과매수: 이전 RSI ≥ 70",
            "트리거: RSI 하락 or 음봉 마감",
        ),
        stop_loss="Current High + ATR×1.0",
        take_profit="Fib 0.5 되돌림 + ATR×0.2",
        tips=(
            "RSI가 70 이상에서 발생하는 다이버전스가 더 강력합니다",
            "저항선 근처에서 발생하면 신뢰도가 높아집니다",
            "일봉 다이버전스가 4시간봉보다 신뢰도가 높습니다",
        ),
    ),
    StrategyGuide(
        id="evening_star",
        name="석양형",
        emoji="🌆",
        direction="short",
        description="3캔들 반전 패턴: 긴 양봉(N-2) → 도지(N-1) → 긴 음봉(N). 50% 이상 하락 시 진입.",
        timeframes=(DAILY,),
        entry_conditions=("N-2: 긴 양봉 (몸통 ≥ 1%)", "N-1: 도지/팽이 (몸통 ≤ 1%)", "N: 음봉 + N-2의 50% 이상 하락"),
        stop_loss="N-1 High + ATR×1.0",
        take_profit="진입가 - 손절폭×2 + ATR×0.2 (1:2 RR)",
        tips=("N-2 양봉이 클수록 반전 신호가 강합니다", "N-1이 도지에 가까울수록 좋습니다", "N 음봉 거래량이 많을수록 신뢰도 상승"),
    ),
    StrategyGuide(
        id="shooting_star",
        name="유성형",
        emoji="☄️",
        direction="short",
        description="상승 추세에서 긴 윗꼬리 캔들 출현 후 확인 캔들로 숏 진입.",
        timeframes=(DAILY,),
        entry_conditions=(
            "상승 추세: Close > MA20",
            "윗꼬리 ≥ 몸통×2",
            "아래꼬리 ≤ 몸통×0.5",
            "확인: 다음 캔들 음봉 or 저점 이탈",
        ),
        stop_loss="유성형 High + ATR×1.0",
        take_profit="진입가 - 캔들길이 + ATR×0.2",
        tips=("윗꼬리가 길수록 매도 압력이 강했다는 의미", "저항선 근처에서 발생하면 더 유효", "확인 캔들 필수"),
    ),
    StrategyGuide(
        id="bearish_engulfing",
        name="하락장악형",
        emoji="🔻",
        direction="short",
        description="양봉(N-1)을 음봉(N)이 완전히 장악. 거래량 증가 시 강한 하락 신호.",
        timeframes=(DAILY,),
        entry_conditions=(
            "N-1: 양봉",
            "N: 음봉",
            "장악: N.Open ≥ N-1.Close, N.Close < N-1.Open",
            "추세: SMA20↑ or RSI ≥ 60",
            "거래량: N > N-1",
        ),
        stop_loss="N High + ATR×1.0",
        take_profit="Fib 0.618 되돌림 + ATR×0.2",
        tips=("장악 비율이 클수록 강한 하락 신호", "거래량이 함께 증가하면 더 신뢰할 수 있습니다", "상승 추세 끝에서 나오면 더 강력한 신호"),
    ),
    StrategyGuide(
        id="leading_diagonal_breakdown",
        name="리딩다이아 하단이탈",
        emoji="📐",
        direction="short",
        description="상승 쐐기(Rising Wedge) 하단 지지선 이탈 시 숏 진입.",
        timeframes=(DAILY, FOUR_HOUR),
        entry_conditions=("상승 쐐기: 고점↑ 저점↑ 수렴", "트리거: Close < 지지 추세선", "거래량: 이탈 캔들 > 평균"),
        stop_loss="Recent High + ATR×1.0",
        take_profit="Start + (Range×0.5) + ATR×0.2 (Fib 0.5)",
        tips=("상승 쐐기 이탈 = 상승 에너지 소진", "거래량 동반 이탈은 강력한 신호", "쐐기 폭이 좁을수록 이탈 시 하락폭이 큽니다"),
    ),
)


def find_strategy(strategy_id: str) -> Optional[StrategyGuide]:
    return next((s for s in STRATEGIES if s.id == strategy_id), None)


def _as_dict(guide: StrategyGuide) -> Dict[str, Any]:
    return {
        "id": guide.id,
        "name": guide.name,
        "emoji": guide.emoji,
        "direction": guide.direction,
        "description": guide.description,
        "timeframes": list(guide.timeframes),
        "entry_conditions": list(guide.entry_conditions),
        "stop_loss": guide.stop_loss,
        "take_profit": guide.take_profit,
        "tips": list(guide.tips),
    }


class GuideView:
    def __init__(self, selected: str = "divergence") -> None:
        self.selected = selected if find_strategy(selected) else STRATEGIES[0].id

    def select(self, strategy_id: str) -> StrategyGuide:
        guide = find_strategy(strategy_id)
        if guide is None:
            raise ValueError(f"unknown strategy: {strategy_id}")
        self.selected = guide.id
        return guide

    def snapshot(self, direction: Optional[str] = None) -> Dict[str, Any]:
        items: List[StrategyGuide] = [s for s in STRATEGIES if direction is None or s.direction == direction]
        current = find_strategy(self.selected) or STRATEGIES[0]
        return {
            "view": "guide",
            "strategies": [{"id": s.id, "name": s.name, "emoji": s.emoji, "direction": s.direction} for s in items],
            "selected": _as_dict(current),
        }
