"""
In-process reward ledger with the storefront server's rules.

Backs the offline demo and the test-suite. Raises the same errors the
HTTP reconciler raises, and records every call so tests can count
requests.
"""

import logging, threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from scratchcard.errors import AlreadyCredited, AlreadyRevealed, CardNotFound, UnknownServerError
from scratchcard.models import CardStatus, ScratchCard

logger = logging.getLogger(__name__)

REVEAL_MESSAGE = "Cashback will be credited to your wallet after order delivery confirmation"


@dataclass
class LedgerEntry:
    id: int
    amount: int
    status: CardStatus = CardStatus.PENDING
    order_id: Optional[int] = None
    order_number: Optional[str] = None
    order_status: str = "delivered"
    created_at: datetime = field(default_factory=lambda: datetime.now().astimezone())
    revealed_at: Optional[datetime] = None
    credited_at: Optional[datetime] = None


class InMemoryLedger:
    def __init__(self, balance: float = 0.0):
        self.balance = balance
        self.entries: Dict[int, LedgerEntry] = {}
        self.calls: List[tuple] = []
        self.transactions: List[dict] = []
        self._lock = threading.Lock()

    def add_card(self, card_id: int, amount: int, status="pending", order_id=None,
                 order_number=None, order_status="delivered") -> LedgerEntry:
        entry = LedgerEntry(card_id, int(round(amount)), CardStatus(status), order_id,
                            order_number, order_status)
        self.entries[card_id] = entry
        return entry

    def count(self, op: str, card_id=None) -> int:
        return sum(1 for c in self.calls if c[0] == op and (card_id is None or c[1] == card_id))

    def _get(self, card_id) -> LedgerEntry:
        entry = self.entries.get(card_id)
        if entry is None:
            raise CardNotFound("Scratch card not found", 404)
        return entry

    def reveal(self, card_id) -> dict:
        with self._lock:
            self.calls.append(("reveal", card_id))
            entry = self._get(card_id)
            if entry.status != CardStatus.PENDING:
                raise AlreadyRevealed(f"Scratch card already {entry.status.value}", status=entry.status.value)
            entry.status = CardStatus.REVEALED
            entry.revealed_at = datetime.now().astimezone()
            logger.info("Ledger: revealed card %s (%s)", card_id, entry.amount)
            return {"amount": entry.amount, "message": REVEAL_MESSAGE, "status": "revealed"}

    def credit(self, card_id) -> dict:
        with self._lock:
            self.calls.append(("credit", card_id))
            entry = self._get(card_id)
            if entry.status == CardStatus.CREDITED:
                raise AlreadyCredited()
            if entry.status != CardStatus.REVEALED:
                raise UnknownServerError("Scratch card must be revealed before crediting", 400)
            if entry.order_status != "delivered":
                if entry.order_status == "cancelled":
                    raise UnknownServerError("Cannot credit cashback for cancelled orders", 400)
                raise UnknownServerError(
                    f"Order must be delivered before crediting scratch card. Current status: {entry.order_status}", 400)
            entry.status = CardStatus.CREDITED
            entry.credited_at = datetime.now().astimezone()
            self.balance += entry.amount
            self.transactions.append({
                "type": "credit", "amount": entry.amount, "order_id": entry.order_id,
                "description": f"Cashback (Order {entry.order_number or f'#{entry.order_id}'})",
            })
            logger.info("Ledger: credited card %s, balance %s", card_id, self.balance)
            return {"amount": entry.amount, "balance": self.balance}

    def list_cards(self, status: Optional[str] = None) -> List[ScratchCard]:
        with self._lock:
            self.calls.append(("list", status))
            out = []
            for e in sorted(self.entries.values(), key=lambda e: e.created_at, reverse=True):
                if status and e.status.value != status:
                    continue
                out.append(ScratchCard(e.id, e.status, float(e.amount), e.created_at, e.revealed_at,
                                       e.credited_at, e.order_id, e.order_number))
            return out
