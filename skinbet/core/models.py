"""
Domain records shared by the ledger, the game history and the settlement service.
Money is always a Decimal quantized to cents.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Dict, Optional

from skinbet.core.exceptions import InvalidInput
from skinbet.core.outcomes import Outcome, outcome_from_dict

CENTS = Decimal("0.01")


class GameType(str, Enum):
    COINFLIP = "coinflip"
    CRASH = "crash"
    ROULETTE = "roulette"
    JACKPOT = "jackpot"
    BLACKJACK = "blackjack"

    @classmethod
    def parse(cls, value) -> "GameType":
        try:
            return cls(str(value).lower().strip())
        except ValueError:
            raise InvalidInput(f"Unsupported game type: {value}")


def to_money(value) -> Decimal:
    """Coerce a number or numeric string into a Decimal in whole cents. Sub-cent amounts are rejected."""
    if isinstance(value, bool):
        raise InvalidInput(f"Invalid amount: {value!r}")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidInput(f"Invalid amount: {value!r}")
    if not amount.is_finite():
        raise InvalidInput(f"Invalid amount: {value!r}")
    try:
        cents = amount.quantize(CENTS)
    except InvalidOperation:
        raise InvalidInput(f"Invalid amount: {value!r}")
    if cents != amount:
        raise InvalidInput(f"Amount has more than two decimal places: {value!r}")
    return cents


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class User:
    id: str
    username: str
    balance: Decimal
    is_guest: bool = True
    games_played: int = 0
    total_wagered: Decimal = Decimal("0.00")
    total_won: Decimal = Decimal("0.00")
    total_lost: Decimal = Decimal("0.00")
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict:
        data = asdict(self)
        for key in ("balance", "total_wagered", "total_won", "total_lost"):
            data[key] = float(data[key])
        data["created_at"] = self.created_at.isoformat()
        return data


@dataclass(frozen=True)
class GameRecord:
    """One settled bet. Never mutated after it is appended."""

    user_id: str
    game_type: GameType
    bet_amount: Decimal
    win_amount: Decimal
    loss_amount: Decimal
    balance_after: Decimal
    outcome: Outcome
    server_seed: Optional[str] = None
    client_seed: Optional[str] = None
    nonce: Optional[int] = None
    fairness_hash: Optional[str] = None
    game_hash: Optional[str] = None
    idempotency_key: Optional[str] = None
    id: Optional[str] = None
    sequence: Optional[int] = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def won(self) -> bool:
        return self.outcome.won

    @property
    def net(self) -> Decimal:
        return self.win_amount - self.loss_amount

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "sequence": self.sequence,
            "user_id": self.user_id,
            "game_type": self.game_type.value,
            "bet_amount": float(self.bet_amount),
            "win_amount": float(self.win_amount),
            "loss_amount": float(self.loss_amount),
            "balance_after": float(self.balance_after),
            "won": self.won,
            "outcome": self.outcome.to_dict(),
            "server_seed": self.server_seed,
            "client_seed": self.client_seed,
            "nonce": self.nonce,
            "fairness_hash": self.fairness_hash,
            "game_hash": self.game_hash,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_row(cls, row: Dict) -> "GameRecord":
        """Rebuild a record from a storage row (decimals stored as text)."""
        return cls(
            id=row["id"],
            sequence=row["seq"],
            user_id=row["user_id"],
            game_type=GameType(row["type"]),
            bet_amount=Decimal(row["bet_amount"]),
            win_amount=Decimal(row["win_amount"]),
            loss_amount=Decimal(row["loss_amount"]),
            balance_after=Decimal(row["balance_after"]),
            outcome=outcome_from_dict(row["result"]),
            server_seed=row["server_seed"],
            client_seed=row["client_seed"],
            nonce=row["nonce"],
            fairness_hash=row["fairness_hash"],
            game_hash=row["game_hash"],
            idempotency_key=row["idempotency_key"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )


@dataclass(frozen=True)
class SettlementReceipt:
    record: GameRecord

    @property
    def new_balance(self) -> Decimal:
        return self.record.balance_after

    @property
    def win_amount(self) -> Decimal:
        return self.record.win_amount

    @property
    def loss_amount(self) -> Decimal:
        return self.record.loss_amount

    def to_dict(self) -> Dict:
        return {
            "success": True,
            "record": self.record.to_dict(),
            "new_balance": float(self.new_balance),
            "win_amount": float(self.win_amount),
            "loss_amount": float(self.loss_amount),
        }
