"""
In-memory storage. Used by the test-suite and by `storage.backend = "memory"`.
"""

import itertools
import threading
from contextlib import contextmanager
from dataclasses import replace
from decimal import Decimal
from typing import Dict, List, Optional

from skinbet.config import settings
from skinbet.core.exceptions import InsufficientBalance, InvalidInput, UserNotFound
from skinbet.core.models import GameRecord, User, to_money, utcnow
from skinbet.core.storage import (
    GameRecordStore,
    UserRepository,
    aggregate_leaderboard,
    new_record_id,
    new_user_id,
)


class InMemoryUserRepository(UserRepository):
    """Users keyed by id, with one lock per user around every balance mutation."""

    def __init__(self, starting_balance=None):
        self.starting_balance = to_money(
            settings.economy.starting_balance if starting_balance is None else starting_balance
        )
        self._users: Dict[str, User] = {}
        self._user_locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    @contextmanager
    def _locked(self, user_id: str):
        with self._registry_lock:
            lock = self._user_locks.get(user_id)
        if lock is None:
            raise UserNotFound(f"User {user_id} not found")
        with lock:
            yield self._users[user_id]

    def create_user(self, username: str = None, is_guest: bool = True, balance=None) -> User:
        user_id = new_user_id()
        user = User(
            id=user_id,
            username=username or f"Guest_{user_id[-4:]}",
            balance=self.starting_balance if balance is None else to_money(balance),
            is_guest=is_guest,
        )
        if user.balance < 0:
            raise InvalidInput("Balance cannot be negative")
        with self._registry_lock:
            self._users[user_id] = user
            self._user_locks[user_id] = threading.Lock()
        return replace(user)

    def get_user(self, user_id: str) -> User:
        with self._locked(user_id) as user:
            return replace(user)

    def list_users(self) -> List[User]:
        with self._registry_lock:
            ids = list(self._users)
        return [self.get_user(user_id) for user_id in ids]

    def debit_and_credit(
        self, user_id: str, bet_amount: Decimal, win_amount: Decimal, record_stats: bool = True
    ) -> Decimal:
        with self._locked(user_id) as user:
            if bet_amount > user.balance:
                raise InsufficientBalance(
                    f"Bet {bet_amount} exceeds balance {user.balance}"
                )
            user.balance = user.balance - bet_amount + win_amount
            if record_stats:
                self._count_game(user, bet_amount, win_amount)
            return user.balance

    def credit(self, user_id: str, bet_amount: Decimal, win_amount: Decimal) -> Decimal:
        with self._locked(user_id) as user:
            user.balance += win_amount
            self._count_game(user, bet_amount, win_amount)
            return user.balance

    @staticmethod
    def _count_game(user: User, bet_amount: Decimal, win_amount: Decimal):
        user.games_played += 1
        user.total_wagered += bet_amount
        user.total_won += win_amount
        if win_amount == 0:
            user.total_lost += bet_amount

    def set_balance(self, user_id: str, balance: Decimal) -> User:
        balance = to_money(balance)
        if balance < 0:
            raise InvalidInput("Balance cannot be negative")
        with self._locked(user_id) as user:
            user.balance = balance
            return replace(user)


class InMemoryGameRecordStore(GameRecordStore):
    def __init__(self):
        self._records: List[GameRecord] = []
        self._by_id: Dict[str, GameRecord] = {}
        self._by_user: Dict[str, List[GameRecord]] = {}
        self._sequence = itertools.count(1)
        self._lock = threading.Lock()

    def append(self, record: GameRecord) -> str:
        with self._lock:
            stored = replace(
                record,
                id=new_record_id(),
                sequence=next(self._sequence),
                created_at=utcnow(),
            )
            self._records.append(stored)
            self._by_id[stored.id] = stored
            self._by_user.setdefault(stored.user_id, []).append(stored)
        return stored.id

    def get(self, record_id: str) -> Optional[GameRecord]:
        with self._lock:
            return self._by_id.get(record_id)

    def recent_by_user(self, user_id: str, limit: int = 50) -> List[GameRecord]:
        with self._lock:
            records = list(self._by_user.get(user_id, ()))
        return records[::-1][:limit]

    def recent_global(self, limit: int = 20) -> List[GameRecord]:
        with self._lock:
            records = list(self._records)
        return records[::-1][:limit]

    def find_by_idempotency_key(self, user_id: str, key: str) -> Optional[GameRecord]:
        with self._lock:
            records = list(self._by_user.get(user_id, ()))
        for record in reversed(records):
            if record.idempotency_key == key:
                return record
        return None

    def leaderboard(self, limit: int = 10) -> List[Dict]:
        with self._lock:
            records = list(self._records)
        return aggregate_leaderboard(records, limit)

    def stats(self) -> Dict:
        with self._lock:
            records = list(self._records)
        return {
            "total_games": len(records),
            "total_wagered": sum((r.bet_amount for r in records), Decimal("0.00")),
            "total_won": sum((r.win_amount for r in records), Decimal("0.00")),
        }
