import math, time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import NamedTuple, Optional, Sequence


class CardStatus(str, Enum):
    PENDING  = "pending"
    REVEALED = "revealed"
    CREDITED = "credited"
    EXPIRED  = "expired"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]


# Expired is terminal and never reachable from the client
_STATUS_RANK = {
    CardStatus.PENDING: 0,
    CardStatus.REVEALED: 1,
    CardStatus.CREDITED: 2,
    CardStatus.EXPIRED: 3,
}


class Point(NamedTuple):
    x: float
    y: float

    def distance(self, other: "Point") -> float:
        return math.hypot(self.x - other.x, self.y - other.y)


class SurfaceBounds(NamedTuple):
    left: float
    top: float
    width: float
    height: float

    @property
    def empty(self) -> bool:
        return self.width <= 0 or self.height <= 0


class Touch(NamedTuple):
    client_x: float
    client_y: float


@dataclass
class PointerEvent:
    """Raw device event. Touch events carry `touches` / `changed_touches`."""
    client_x: Optional[float] = None
    client_y: Optional[float] = None
    touches: Sequence[Touch] = ()
    changed_touches: Sequence[Touch] = ()


@dataclass
class ScratchProgress:
    fraction: float = 0.0
    sampled_at: Optional[float] = None


@dataclass
class InputSession:
    active: bool = False
    last_point: Optional[Point] = None

    def begin(self):
        self.active = True
        self.last_point = None

    def end(self):
        self.active = False
        self.last_point = None


def _parse_ts(value):
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


def _fmt_ts(value):
    return value.isoformat() if isinstance(value, datetime) else value


@dataclass
class ScratchCard:
    """Client-side cached copy of a ledger card.

    `status` only moves forward. The amount stays hidden while the card is
    pending even if the listing shipped one.
    """
    id: int
    status: CardStatus = CardStatus.PENDING
    _amount: Optional[float] = field(default=None, repr=False)
    created_at: Optional[datetime] = None
    revealed_at: Optional[datetime] = None
    credited_at: Optional[datetime] = None
    order_id: Optional[int] = None
    order_number: Optional[str] = None

    def __post_init__(self):
        self.status = CardStatus(self.status)

    @property
    def amount(self) -> Optional[float]:
        if self.status == CardStatus.PENDING:
            return None
        return self._amount

    @property
    def last_known_amount(self) -> Optional[float]:
        return self._amount

    @property
    def is_pending(self) -> bool:
        return self.status == CardStatus.PENDING

    @property
    def is_terminal(self) -> bool:
        return self.status in (CardStatus.CREDITED, CardStatus.EXPIRED)

    def advance(self, status, amount: Optional[float] = None, at: Optional[datetime] = None) -> bool:
        """Move to `status` if it is ahead of the current one; returns whether it moved."""
        status = CardStatus(status)
        if amount is not None:
            self._amount = amount
        if status.rank <= self.status.rank:
            return False
        at = at or datetime.now().astimezone()
        if status == CardStatus.REVEALED:
            self.revealed_at = self.revealed_at or at
        elif status == CardStatus.CREDITED:
            self.revealed_at = self.revealed_at or at
            self.credited_at = self.credited_at or at
        self.status = status
        return True

    @classmethod
    def from_dict(cls, data: dict) -> "ScratchCard":
        amount = data.get("amount")
        return cls(
            id=data["id"],
            status=data.get("status", "pending"),
            _amount=float(amount) if amount is not None else None,
            created_at=_parse_ts(data.get("createdAt")),
            revealed_at=_parse_ts(data.get("revealedAt")),
            credited_at=_parse_ts(data.get("creditedAt")),
            order_id=data.get("orderId"),
            order_number=data.get("orderNumber"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "orderId": self.order_id,
            "orderNumber": self.order_number,
            "amount": self.amount,
            "status": self.status.value,
            "revealedAt": _fmt_ts(self.revealed_at),
            "creditedAt": _fmt_ts(self.credited_at),
            "createdAt": _fmt_ts(self.created_at),
        }


def now_ms() -> float:
    return time.monotonic() * 1000.0
