"""
Storage contracts for balances and game history.

Two implementations exist: `skinbet.core.memory` (tests, demo mode) and
`skinbet.core.database` (SQLite). The settlement service only talks to
these interfaces.
"""

import uuid
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Dict, List, Optional

from skinbet.core.models import GameRecord, User


def new_user_id() -> str:
    return f"user_{uuid.uuid4()}"


def new_record_id() -> str:
    return f"game_{uuid.uuid4()}"


class UserRepository(ABC):
    """Users and the balance ledger. Every balance change goes through here."""

    @abstractmethod
    def create_user(self, username: str = None, is_guest: bool = True, balance=None) -> User:
        ...

    @abstractmethod
    def get_user(self, user_id: str) -> User:
        """Return a snapshot of the user; raises UserNotFound."""

    @abstractmethod
    def list_users(self) -> List[User]:
        ...

    @abstractmethod
    def debit_and_credit(
        self, user_id: str, bet_amount: Decimal, win_amount: Decimal, record_stats: bool = True
    ) -> Decimal:
        """
        Atomically apply balance - bet_amount + win_amount.

        Raises InsufficientBalance (before any mutation) when bet_amount exceeds
        the current balance, UserNotFound for unknown users. Returns the new
        balance. With record_stats=False the lifetime counters are left alone
        (stake escrow for live crash rounds).
        """

    @abstractmethod
    def credit(self, user_id: str, bet_amount: Decimal, win_amount: Decimal) -> Decimal:
        """Settle a bet whose stake was already escrowed: add win_amount and count the game."""

    @abstractmethod
    def set_balance(self, user_id: str, balance: Decimal) -> User:
        """Explicit balance adjustment (admin/demo top-up)."""


class GameRecordStore(ABC):
    """Append-only history of settled games."""

    @abstractmethod
    def append(self, record: GameRecord) -> str:
        """Store the record, assigning id and insertion sequence. Returns the id."""

    @abstractmethod
    def get(self, record_id: str) -> Optional[GameRecord]:
        ...

    @abstractmethod
    def recent_by_user(self, user_id: str, limit: int = 50) -> List[GameRecord]:
        ...

    @abstractmethod
    def recent_global(self, limit: int = 20) -> List[GameRecord]:
        ...

    @abstractmethod
    def find_by_idempotency_key(self, user_id: str, key: str) -> Optional[GameRecord]:
        ...

    @abstractmethod
    def leaderboard(self, limit: int = 10) -> List[Dict]:
        """Per-user aggregates sorted by total won, descending."""

    @abstractmethod
    def stats(self) -> Dict:
        ...


def aggregate_leaderboard(records, limit: int = 10) -> List[Dict]:
    """Group records by user and rank by total won."""
    rows: Dict[str, Dict] = {}
    for record in records:
        row = rows.setdefault(
            record.user_id,
            {
                "user_id": record.user_id,
                "total_won": Decimal("0.00"),
                "total_lost": Decimal("0.00"),
                "total_wagered": Decimal("0.00"),
                "biggest_win": Decimal("0.00"),
                "games_played": 0,
                "wins": 0,
            },
        )
        row["total_won"] += record.win_amount
        row["total_lost"] += record.loss_amount
        row["total_wagered"] += record.bet_amount
        row["biggest_win"] = max(row["biggest_win"], record.win_amount)
        row["games_played"] += 1
        row["wins"] += 1 if record.won else 0

    ranked = sorted(rows.values(), key=lambda r: r["total_won"], reverse=True)
    return ranked[:limit]
