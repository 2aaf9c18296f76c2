"""
브로커(원장) 추상 클래스 및 주문/포지션/거래/계좌 값 타입 정의.

[ 역할 ]
    주문 실행과 계좌 상태 관리를 추상화하는 인터페이스 정의.
    페이퍼 트레이딩과 실거래 브로커를 교체 가능하게 한다.

[ 구현체 ]
    - brokers/paper_broker.py::PaperBroker  (백테스트/페이퍼 트레이딩용)

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestEngine이 주문 제출/시세 갱신/계좌 조회
    - stores/*.py가 get_account()/restore()로 상태 저장/복원

[ 직렬화 ]
    to_dict()/from_dict()는 JSON에 바로 넣을 수 있는 값만 사용한다.
    (datetime → ISO-8601 문자열, Enum → 값 문자열)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

# 이 수량 이하로 남은 포지션은 청산된 것으로 본다
POSITION_EPSILON = 1e-4


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _to_plain(obj: Any) -> dict[str, Any]:
    """dataclass 필드를 JSON 호환 값으로 변환."""
    data = {}
    for f in fields(obj):
        value = getattr(obj, f.name)
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, datetime):
            value = value.isoformat()
        data[f.name] = value
    return data


def _parse_time(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


# ─── 주문 관련 Enum ──────────────────────────────────────────────────────────

class OrderSide(Enum):
    """주문 방향."""
    BUY = "buy"
    SELL = "sell"


class OrderType(Enum):
    """주문 타입: 시장가(MARKET) 또는 지정가(LIMIT). 지정가는 접수만 되고 체결되지 않음."""
    MARKET = "market"
    LIMIT = "limit"


class OrderStatus(Enum):
    """주문 상태. pending → filled | rejected | cancelled."""
    PENDING = "pending"
    FILLED = "filled"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


# ─── 값 타입 ────────────────────────────────────────────────────────────────

@dataclass
class Order:
    """주문. 엔진이 생성하고 원장만 변경하며, 종료 상태가 되면 더 이상 바뀌지 않는다."""
    side: OrderSide
    symbol: str
    quantity: float                 # 요청 수량
    type: OrderType = OrderType.MARKET
    price: float = 0.0              # 요청 가격 (시장가는 시세가 없을 때만 사용)
    timestamp: datetime = field(default_factory=utc_now)
    id: str = ""                    # 원장이 접수 시 부여
    status: OrderStatus = OrderStatus.PENDING
    filled_price: float = 0.0       # 실제 체결 가격 (슬리피지 적용 후)
    filled_qty: float = 0.0         # 실제 체결 수량
    fee: float = 0.0
    slippage: float = 0.0           # 시세 대비 가격 차이

    def to_dict(self) -> dict[str, Any]:
        return _to_plain(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Order":
        return cls(
            id=data.get("id", ""),
            timestamp=_parse_time(data.get("timestamp")) or utc_now(),
            side=OrderSide(data["side"]),
            type=OrderType(data.get("type", OrderType.MARKET.value)),
            symbol=data["symbol"],
            quantity=float(data["quantity"]),
            price=float(data.get("price", 0.0)),
            status=OrderStatus(data.get("status", OrderStatus.PENDING.value)),
            filled_price=float(data.get("filled_price", 0.0)),
            filled_qty=float(data.get("filled_qty", 0.0)),
            fee=float(data.get("fee", 0.0)),
            slippage=float(data.get("slippage", 0.0)),
        )


@dataclass
class Position:
    """심볼별 보유 포지션. PaperBroker 내부에서만 변경됨."""
    symbol: str
    side: OrderSide
    entry_price: float          # 가중평균 진입가
    quantity: float
    current_price: float        # 마지막 시세 (mark price)
    unrealized_pnl: float = 0.0
    opened_at: Optional[datetime] = None

    def calculate_pnl(self, price: float, quantity: Optional[float] = None) -> float:
        """price 기준 손익 (quantity 생략 시 보유 전량). 숏 포지션은 부호 반전."""
        qty = self.quantity if quantity is None else quantity
        pnl = (price - self.entry_price) * qty
        return -pnl if self.side == OrderSide.SELL else pnl

    def to_dict(self) -> dict[str, Any]:
        return _to_plain(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Position":
        return cls(
            symbol=data["symbol"],
            side=OrderSide(data.get("side", OrderSide.BUY.value)),
            entry_price=float(data["entry_price"]),
            quantity=float(data["quantity"]),
            current_price=float(data.get("current_price", data["entry_price"])),
            unrealized_pnl=float(data.get("unrealized_pnl", 0.0)),
            opened_at=_parse_time(data.get("opened_at")),
        )


@dataclass(frozen=True)
class Trade:
    """진입~청산이 완료된 거래 1건 (부분 청산 포함). 한 번 기록되면 변경되지 않음."""
    id: str
    symbol: str
    side: OrderSide
    entry_price: float
    exit_price: float
    quantity: float
    pnl: float          # 수수료 차감 전 실현 손익
    fee: float
    net_pnl: float      # pnl - fee
    opened_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return _to_plain(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Trade":
        return cls(
            id=data["id"],
            symbol=data["symbol"],
            side=OrderSide(data.get("side", OrderSide.BUY.value)),
            entry_price=float(data["entry_price"]),
            exit_price=float(data["exit_price"]),
            quantity=float(data["quantity"]),
            pnl=float(data["pnl"]),
            fee=float(data["fee"]),
            net_pnl=float(data["net_pnl"]),
            opened_at=_parse_time(data.get("opened_at")),
            closed_at=_parse_time(data.get("closed_at")),
        )


@dataclass
class Account:
    """get_account()의 반환값. 호출 시점의 독립적인 복사본."""
    balance: float                  # 실현 현금
    equity: float                   # balance + 미실현 손익 합계 (항상 계산값)
    positions: list[Position] = field(default_factory=list)
    open_orders: list[Order] = field(default_factory=list)
    trade_history: list[Trade] = field(default_factory=list)
    updated_at: datetime = field(default_factory=utc_now)

    def get_position(self, symbol: str) -> Optional[Position]:
        for pos in self.positions:
            if pos.symbol == symbol:
                return pos
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "balance": self.balance,
            "equity": self.equity,
            "positions": [p.to_dict() for p in self.positions],
            "open_orders": [o.to_dict() for o in self.open_orders],
            "trade_history": [t.to_dict() for t in self.trade_history],
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Account":
        return cls(
            balance=float(data["balance"]),
            equity=float(data.get("equity", data["balance"])),
            positions=[Position.from_dict(p) for p in data.get("positions") or []],
            open_orders=[Order.from_dict(o) for o in data.get("open_orders") or []],
            trade_history=[Trade.from_dict(t) for t in data.get("trade_history") or []],
            updated_at=_parse_time(data.get("updated_at")) or utc_now(),
        )


# ─── 추상 클래스 ────────────────────────────────────────────────────────────

class Broker(ABC):
    """브로커 추상 클래스.

    모든 브로커 구현체는 이 클래스를 상속받아 아래 메서드를 구현해야 한다.
    """

    @abstractmethod
    def get_account(self) -> Account:
        """계좌 스냅샷 조회 (독립 복사본)."""
        ...

    @abstractmethod
    def place_order(self, order: Order) -> None:
        """주문 제출. 실패 시 OrderError 하위 예외 발생."""
        ...

    @abstractmethod
    def cancel_order(self, order_id: str) -> None:
        """미체결 주문 취소. 없으면 OrderNotFoundError."""
        ...

    @abstractmethod
    def update_market_price(self, symbol: str, price: float) -> None:
        """시세 갱신 (미실현 손익 재계산)."""
        ...

    @abstractmethod
    def get_position(self, symbol: str) -> Optional[Position]:
        """심볼 포지션 조회. 없으면 None."""
        ...

    @abstractmethod
    def restore(self, account: Account) -> None:
        """저장된 계좌 스냅샷으로 상태 복원."""
        ...
