"""
Retroactive crediting: walk a card listing, auto-reveal pending cards and
credit everything the ledger accepts. Cards the server refuses (order not
delivered, cancelled, ...) are reported and left as they are.
"""

import argparse, json, logging, sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List

from tqdm import tqdm

from scratchcard.config import load_config
from scratchcard.errors import AlreadyCredited, AlreadyRevealed, RewardError
from scratchcard.models import CardStatus, ScratchCard
from scratchcard.reconciler import RewardReconciler

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    total: int = 0
    revealed: int = 0
    credited: int = 0
    skipped: int = 0
    errors: List[tuple] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def credit_cards(ledger, cards: Iterable[ScratchCard], dry_run=False, progress=True) -> BatchResult:
    cards = [c for c in cards if c.status in (CardStatus.PENDING, CardStatus.REVEALED)]
    res = BatchResult(total=len(cards))
    bar = tqdm(total=len(cards), desc="Credit", unit="card", dynamic_ncols=True, disable=not progress)
    for card in cards:
        label = card.order_number or f"card {card.id}"
        try:
            if dry_run:
                res.skipped += 1
                continue
            if card.status == CardStatus.PENDING:
                try:
                    out = ledger.reveal(card.id)
                    card.advance(CardStatus.REVEALED, out.get("amount"))
                    res.revealed += 1
                except AlreadyRevealed as e:
                    card.advance(e.status, e.amount)
                    if card.status != CardStatus.REVEALED:
                        res.skipped += 1
                        continue
            try:
                out = ledger.credit(card.id)
                card.advance(CardStatus.CREDITED, out.get("amount"))
                res.credited += 1
            except AlreadyCredited:
                card.advance(CardStatus.CREDITED)
                res.skipped += 1
        except RewardError as e:
            tqdm.write(f"[WARN] {label} failed: {e}")
            res.errors.append((card.id, str(e)))
        finally:
            bar.set_postfix_str(f"{label} | credited {res.credited}")
            bar.update(1)
    bar.close()
    return res


def load_cards(path: Path) -> List[ScratchCard]:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = (data.get("data") or {}).get("scratchCards", [])
    return [ScratchCard.from_dict(c) for c in data]


def main(argv=None) -> int:
    p = argparse.ArgumentParser(description="Reveal and credit outstanding scratch cards")
    p.add_argument("--cards", type=Path, help="listing JSON instead of GET /scratch-cards")
    p.add_argument("--api-url", default=None)
    p.add_argument("--dry-run", action="store_true")
    args = p.parse_args(argv)
    logging.basicConfig(level=logging.WARNING, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    overrides = {"api_base_url": args.api_url} if args.api_url else {}
    reconciler = RewardReconciler(load_config(**overrides))
    try:
        cards = load_cards(args.cards) if args.cards else reconciler.list_cards()
        res = credit_cards(reconciler, cards, dry_run=args.dry_run)
    except RewardError as e:
        tqdm.write(f"[ERROR] {e}")
        return 1
    finally:
        reconciler.close()

    tqdm.write("=" * 60)
    tqdm.write(f"Cards processed: {res.total}")
    tqdm.write(f"Auto-revealed:   {res.revealed}")
    tqdm.write(f"Credited:        {res.credited}")
    tqdm.write(f"Skipped:         {res.skipped}")
    tqdm.write(f"Errors:          {len(res.errors)}")
    for card_id, msg in res.errors:
        tqdm.write(f"  - card {card_id}: {msg}")
    return 0 if res.ok else 1


if __name__ == "__main__":
    sys.exit(main())
