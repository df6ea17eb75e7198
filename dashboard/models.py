from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional


def _opt_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    return float(value)


def _opt_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


@dataclass(slots=True)
class TradeRecord:
    id: int
    exchange: str  # upbit/bybit
    mode: str  # simulation/real
    strategy: str
    timeframe: str
    symbol: str
    side: str  # buy/sell/long_open/long_close/short_open/short_close
    price: float
    quantity: float
    total_amount: float
    pnl: Optional[float]
    pnl_percent: Optional[float]
    reason: Optional[str]
    stop_loss: Optional[float]
    take_profit: Optional[float]
    take_profit_2: Optional[float]
    created_at: str
    confidence: Optional[float] = None
    leverage: Optional[float] = None
    funding_fee: Optional[float] = None
    order_id: Optional[str] = None

    @property
    def is_closing(self) -> bool:
        return self.side in ("sell", "long_close", "short_close")


@dataclass(slots=True)
class PositionRecord:
    id: int
    symbol: str
    direction: str  # long/short
    quantity: float
    entry_price: float
    current_price: float
    leverage: float
    margin_used: float
    position_value: float
    total_buy_amount: float
    unrealized_pnl: float
    unrealized_pnl_percent: float
    liquidation_price: Optional[float]
    strategy: str
    timeframe: str
    source: str  # ai/manual
    created_at: str


@dataclass(slots=True)
class Holding:
    coin: str
    balance: float
    avg_buy_price: float
    current_price: Optional[float]
    unrealized_pnl: Optional[float]
    unrealized_pnl_percent: Optional[float]
    source: str  # ai/manual
    strategy: Optional[str]
    can_sell: bool


@dataclass(slots=True)
class LogEntry:
    id: int
    level: str
    message: str
    created_at: str
    mode: Optional[str] = None


@dataclass(slots=True)
class HistoryPage:
    total: int
    logs: List[TradeRecord]


@dataclass(frozen=True, slots=True)
class ReasonInfo:
    label: str
    emoji: str
    description: str
    details: str


@dataclass(slots=True)
class Candle:
    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass(slots=True)
class ChartLevels:
    entry: Optional[float] = None
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    take_profit_2: Optional[float] = None


@dataclass(slots=True)
class ChartPayload:
    candles: List[Candle]
    indicators: Dict[str, List[Optional[float]]]
    levels: ChartLevels
    trade: Optional[Dict[str, Any]] = None
    position: Optional[Dict[str, Any]] = None
    pattern: Optional[Dict[str, Any]] = None

    @property
    def info(self) -> Optional[Dict[str, Any]]:
        return self.trade or self.position

    @property
    def exchange(self) -> str:
        info = self.info or {}
        return str(info.get("exchange") or "upbit")

    def indicator(self, name: str) -> Optional[List[Optional[float]]]:
        return self.indicators.get(name)


def trade_from_dict(raw: Mapping[str, Any], exchange: str = "upbit") -> TradeRecord:
    # Spot rows carry "coin", derivatives rows carry "symbol".
    return TradeRecord(
        id=int(raw["id"]),
        exchange=exchange,
        mode=str(raw.get("mode") or "simulation"),
        strategy=str(raw.get("strategy") or ""),
        timeframe=str(raw.get("timeframe") or ""),
        symbol=str(raw.get("coin") or raw.get("symbol") or ""),
        side=str(raw["side"]),
        price=float(raw.get("price") or 0.0),
        quantity=float(raw.get("quantity") or 0.0),
        total_amount=float(raw.get("total_amount") or 0.0),
        pnl=_opt_float(raw.get("pnl")),
        pnl_percent=_opt_float(raw.get("pnl_percent")),
        reason=_opt_str(raw.get("reason")),
        stop_loss=_opt_float(raw.get("stop_loss")),
        take_profit=_opt_float(raw.get("take_profit")),
        take_profit_2=_opt_float(raw.get("take_profit_2")),
        created_at=str(raw.get("created_at") or ""),
        confidence=_opt_float(raw.get("confidence")),
        leverage=_opt_float(raw.get("leverage")),
        funding_fee=_opt_float(raw.get("funding_fee")),
        order_id=_opt_str(raw.get("order_id")),
    )


def history_from_dict(raw: Mapping[str, Any], exchange: str = "upbit") -> HistoryPage:
    logs = [trade_from_dict(r, exchange) for r in raw.get("logs") or []]
    return HistoryPage(total=int(raw.get("total") or 0), logs=logs)


def position_from_dict(raw: Mapping[str, Any]) -> PositionRecord:
    side = str(raw.get("direction") or raw.get("side") or "long").lower()
    direction = "short" if side in ("short", "sell") else "long"
    return PositionRecord(
        id=int(raw["id"]),
        symbol=str(raw["symbol"]),
        direction=direction,
        quantity=float(raw.get("quantity") or 0.0),
        entry_price=float(raw.get("entry_price") or 0.0),
        current_price=float(raw.get("current_price") or 0.0),
        leverage=float(raw.get("leverage") or 1.0),
        margin_used=float(raw.get("margin_used") or 0.0),
        position_value=float(raw.get("position_value") or 0.0),
        total_buy_amount=float(raw.get("total_buy_amount") or 0.0),
        unrealized_pnl=float(raw.get("unrealized_pnl") or 0.0),
        unrealized_pnl_percent=float(raw.get("unrealized_pnl_percent") or 0.0),
        liquidation_price=_opt_float(raw.get("liquidation_price")),
        strategy=str(raw.get("strategy") or ""),
        timeframe=str(raw.get("timeframe") or ""),
        source=str(raw.get("source") or "ai"),
        created_at=str(raw.get("created_at") or ""),
    )


def holding_from_dict(raw: Mapping[str, Any]) -> Holding:
    return Holding(
        coin=str(raw["coin"]),
        balance=float(raw.get("balance") or 0.0),
        avg_buy_price=float(raw.get("avg_buy_price") or 0.0),
        current_price=_opt_float(raw.get("current_price")),
        unrealized_pnl=_opt_float(raw.get("unrealized_pnl")),
        unrealized_pnl_percent=_opt_float(raw.get("unrealized_pnl_percent")),
        source=str(raw.get("source") or "ai"),
        strategy=_opt_str(raw.get("strategy")),
        can_sell=bool(raw.get("can_sell", True)),
    )


def log_entry_from_dict(raw: Mapping[str, Any]) -> LogEntry:
    return LogEntry(
        id=int(raw["id"]),
        level=str(raw.get("level") or "INFO"),
        message=str(raw.get("message") or ""),
        created_at=str(raw.get("created_at") or ""),
        mode=_opt_str(raw.get("mode")),
    )


def chart_from_dict(raw: Mapping[str, Any]) -> ChartPayload:
    candles = [
        Candle(
            time=int(c["time"]),
            open=float(c["open"]),
            high=float(c["high"]),
            low=float(c["low"]),
            close=float(c["close"]),
            volume=float(c.get("volume") or 0.0),
        )
        for c in raw.get("candles") or []
    ]
    indicators: Dict[str, List[Optional[float]]] = {}
    for name, values in (raw.get("indicators") or {}).items():
        if values is None:
            continue
        indicators[name] = [_opt_float(v) for v in values]
    lv = raw.get("levels") or {}
    levels = ChartLevels(
        entry=_opt_float(lv.get("entry")),
        stop_loss=_opt_float(lv.get("stop_loss")),
        take_profit=_opt_float(lv.get("take_profit")),
        take_profit_2=_opt_float(lv.get("take_profit_2")),
    )
    return ChartPayload(
        candles=candles,
        indicators=indicators,
        levels=levels,
        trade=dict(raw["trade"]) if raw.get("trade") else None,
        position=dict(raw["position"]) if raw.get("position") else None,
        pattern=dict(raw["pattern"]) if raw.get("pattern") else None,
    )


@dataclass(slots=True)
class UserProfile:
    id: int
    email: str
    is_active: bool = True
    created_at: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


def user_from_dict(raw: Mapping[str, Any]) -> UserProfile:
    known = {"id", "email", "is_active", "created_at"}
    return UserProfile(
        id=int(raw["id"]),
        email=str(raw["email"]),
        is_active=bool(raw.get("is_active", True)),
        created_at=_opt_str(raw.get("created_at")),
        extra={k: v for k, v in raw.items() if k not in known},
    )
