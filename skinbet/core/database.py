"""
Database module for persistent storage.
Uses SQLite for user balances and the append-only game history.
Decimals are stored as TEXT so balances never pick up float error.
"""

import sqlite3
import threading
import time
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Optional

import orjson

from skinbet.config import settings
from skinbet.core.exceptions import (
    InsufficientBalance,
    InvalidInput,
    StorageUnavailable,
    UserNotFound,
)
from skinbet.core.logger import get_logger
from skinbet.core.models import CENTS, GameRecord, User, to_money, utcnow
from skinbet.core.storage import (
    GameRecordStore,
    UserRepository,
    new_record_id,
    new_user_id,
)

logger = get_logger("database")


class Database:
    """Thread-safe SQLite database wrapper."""

    LOCK_RETRIES = 5
    LOCK_BACKOFF_SECONDS = 0.05

    def __init__(self, db_path: Path = None):
        self.db_path = Path(db_path or settings.storage.get_db_path())
        self._local = threading.local()
        if str(self.db_path) != ":memory:":
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"Initializing database at {self.db_path}")
        with self.translate_errors():
            self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        if getattr(self._local, "connection", None) is None:
            # Autocommit mode; transactions are opened explicitly
            self._local.connection = sqlite3.connect(
                str(self.db_path), check_same_thread=False, timeout=5, isolation_level=None
            )
            self._local.connection.row_factory = sqlite3.Row
        return self._local.connection

    def _init_db(self):
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("PRAGMA journal_mode=WAL")

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                username TEXT NOT NULL,
                is_guest INTEGER DEFAULT 1,
                balance TEXT NOT NULL,
                total_wagered TEXT DEFAULT '0.00',
                total_won TEXT DEFAULT '0.00',
                total_lost TEXT DEFAULT '0.00',
                games_played INTEGER DEFAULT 0,
                created_at TEXT NOT NULL
            )
        """
        )

        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS games (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT UNIQUE NOT NULL,
                type TEXT NOT NULL,
                user_id TEXT NOT NULL,
                bet_amount TEXT NOT NULL,
                win_amount TEXT NOT NULL,
                loss_amount TEXT NOT NULL,
                balance_after TEXT NOT NULL,
                result TEXT NOT NULL,
                server_seed TEXT,
                client_seed TEXT,
                nonce INTEGER,
                fairness_hash TEXT,
                game_hash TEXT,
                idempotency_key TEXT,
                created_at TEXT NOT NULL,
                FOREIGN KEY (user_id) REFERENCES users(id)
            )
        """
        )

        cursor.execute("CREATE INDEX IF NOT EXISTS idx_games_user ON games(user_id, seq)")
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_games_idempotency ON games(user_id, idempotency_key)"
        )

    @contextmanager
    def translate_errors(self):
        """Surface driver failures as StorageUnavailable."""
        try:
            yield
        except sqlite3.Error as e:
            logger.error(f"Storage failure: {e}")
            raise StorageUnavailable(str(e)) from e

    @contextmanager
    def transaction(self):
        """
        Single-writer transaction (BEGIN IMMEDIATE).

        A busy database is retried with exponential backoff; that only happens
        before the transaction starts, so a retry can never repeat a write.
        """
        conn = self._get_connection()
        with self.translate_errors():
            for attempt in range(self.LOCK_RETRIES):
                try:
                    conn.execute("BEGIN IMMEDIATE")
                    break
                except sqlite3.OperationalError as e:
                    if "locked" not in str(e) or attempt == self.LOCK_RETRIES - 1:
                        raise
                    time.sleep(self.LOCK_BACKOFF_SECONDS * (2 ** attempt))
            try:
                yield conn.cursor()
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            else:
                conn.execute("COMMIT")

    def query(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        with self.translate_errors():
            return self._get_connection().execute(sql, params).fetchall()

    def close(self):
        conn = getattr(self._local, "connection", None)
        if conn is not None:
            conn.close()
            self._local.connection = None


def _user_from_row(row) -> User:
    return User(
        id=row["id"],
        username=row["username"],
        is_guest=bool(row["is_guest"]),
        balance=Decimal(row["balance"]),
        total_wagered=Decimal(row["total_wagered"]),
        total_won=Decimal(row["total_won"]),
        total_lost=Decimal(row["total_lost"]),
        games_played=row["games_played"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def from_cents(cents) -> Decimal:
    """Integer cents from an aggregate (NULL on an empty table) back to money."""
    return (Decimal(cents or 0) / 100).quantize(CENTS)


def _record_from_row(row) -> GameRecord:
    data = dict(row)
    data["result"] = orjson.loads(data["result"])
    return GameRecord.from_row(data)


class SQLiteUserRepository(UserRepository):
    def __init__(self, database: Database, starting_balance=None):
        self.db = database
        self.starting_balance = to_money(
            settings.economy.starting_balance if starting_balance is None else starting_balance
        )

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

        with self.db.transaction() as cursor:
            cursor.execute(
                """
                INSERT INTO users (id, username, is_guest, balance, created_at)
                VALUES (?, ?, ?, ?, ?)
            """,
                (user.id, user.username, int(is_guest), str(user.balance), user.created_at.isoformat()),
            )

        logger.info(f"Created new user: {user.username} ({user.id})")
        return user

    def _fetch(self, cursor, user_id: str) -> User:
        cursor.execute("SELECT * FROM users WHERE id = ?", (user_id,))
        row = cursor.fetchone()
        if row is None:
            raise UserNotFound(f"User {user_id} not found")
        return _user_from_row(row)

    def get_user(self, user_id: str) -> User:
        rows = self.db.query("SELECT * FROM users WHERE id = ?", (user_id,))
        if not rows:
            raise UserNotFound(f"User {user_id} not found")
        return _user_from_row(rows[0])

    def list_users(self) -> List[User]:
        return [_user_from_row(row) for row in self.db.query("SELECT * FROM users")]

    def _write_user(self, cursor, user: User):
        cursor.execute(
            """
            UPDATE users SET
                balance = ?, total_wagered = ?, total_won = ?, total_lost = ?, games_played = ?
            WHERE id = ?
        """,
            (
                str(user.balance),
                str(user.total_wagered),
                str(user.total_won),
                str(user.total_lost),
                user.games_played,
                user.id,
            ),
        )

    @staticmethod
    def _count_game(user: User, bet_amount: Decimal, win_amount: Decimal):
        user.games_played += 1
        user.total_wagered += bet_amount
        user.total_won += win_amount
        if win_amount == 0:
            user.total_lost += bet_amount

    def debit_and_credit(
        self, user_id: str, bet_amount: Decimal, win_amount: Decimal, record_stats: bool = True
    ) -> Decimal:
        with self.db.transaction() as cursor:
            user = self._fetch(cursor, user_id)
            if bet_amount > user.balance:
                raise InsufficientBalance(f"Bet {bet_amount} exceeds balance {user.balance}")
            user.balance = user.balance - bet_amount + win_amount
            if record_stats:
                self._count_game(user, bet_amount, win_amount)
            self._write_user(cursor, user)
        return user.balance

    def credit(self, user_id: str, bet_amount: Decimal, win_amount: Decimal) -> Decimal:
        with self.db.transaction() as cursor:
            user = self._fetch(cursor, user_id)
            user.balance += win_amount
            self._count_game(user, bet_amount, win_amount)
            self._write_user(cursor, user)
        return user.balance

    def set_balance(self, user_id: str, balance: Decimal) -> User:
        balance = to_money(balance)
        if balance < 0:
            raise InvalidInput("Balance cannot be negative")
        with self.db.transaction() as cursor:
            user = self._fetch(cursor, user_id)
            user.balance = balance
            self._write_user(cursor, user)
        return user


class SQLiteGameRecordStore(GameRecordStore):
    def __init__(self, database: Database):
        self.db = database

    def append(self, record: GameRecord) -> str:
        record_id = new_record_id()
        with self.db.transaction() as cursor:
            cursor.execute(
                """
                INSERT INTO games (
                    id, type, user_id, bet_amount, win_amount, loss_amount, balance_after,
                    result, server_seed, client_seed, nonce, fairness_hash, game_hash,
                    idempotency_key, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    record_id,
                    record.game_type.value,
                    record.user_id,
                    str(record.bet_amount),
                    str(record.win_amount),
                    str(record.loss_amount),
                    str(record.balance_after),
                    orjson.dumps(record.outcome.to_dict()).decode(),
                    record.server_seed,
                    record.client_seed,
                    record.nonce,
                    record.fairness_hash,
                    record.game_hash,
                    record.idempotency_key,
                    utcnow().isoformat(),
                ),
            )
        return record_id

    def get(self, record_id: str) -> Optional[GameRecord]:
        rows = self.db.query("SELECT * FROM games WHERE id = ?", (record_id,))
        return _record_from_row(rows[0]) if rows else None

    def recent_by_user(self, user_id: str, limit: int = 50) -> List[GameRecord]:
        rows = self.db.query(
            "SELECT * FROM games WHERE user_id = ? ORDER BY seq DESC LIMIT ?",
            (user_id, limit),
        )
        return [_record_from_row(row) for row in rows]

    def recent_global(self, limit: int = 20) -> List[GameRecord]:
        rows = self.db.query("SELECT * FROM games ORDER BY seq DESC LIMIT ?", (limit,))
        return [_record_from_row(row) for row in rows]

    def find_by_idempotency_key(self, user_id: str, key: str) -> Optional[GameRecord]:
        rows = self.db.query(
            """
            SELECT * FROM games WHERE user_id = ? AND idempotency_key = ?
            ORDER BY seq DESC LIMIT 1
        """,
            (user_id, key),
        )
        return _record_from_row(rows[0]) if rows else None

    def leaderboard(self, limit: int = 10) -> List[Dict]:
        # Amounts are TEXT with two decimal places; sum them as integer cents
        rows = self.db.query(
            """
            SELECT
                user_id,
                SUM(CAST(ROUND(win_amount * 100) AS INTEGER)) AS won_cents,
                SUM(CAST(ROUND(loss_amount * 100) AS INTEGER)) AS lost_cents,
                SUM(CAST(ROUND(bet_amount * 100) AS INTEGER)) AS wagered_cents,
                MAX(CAST(ROUND(win_amount * 100) AS INTEGER)) AS biggest_cents,
                COUNT(*) AS games_played,
                SUM(CASE WHEN json_extract(result, '$.won') THEN 1 ELSE 0 END) AS wins
            FROM games
            GROUP BY user_id
            ORDER BY won_cents DESC, MIN(seq) ASC
            LIMIT ?
        """,
            (limit,),
        )
        return [
            {
                "user_id": row["user_id"],
                "total_won": from_cents(row["won_cents"]),
                "total_lost": from_cents(row["lost_cents"]),
                "total_wagered": from_cents(row["wagered_cents"]),
                "biggest_win": from_cents(row["biggest_cents"]),
                "games_played": row["games_played"],
                "wins": row["wins"],
            }
            for row in rows
        ]

    def stats(self) -> Dict:
        row = self.db.query(
            """
            SELECT
                COUNT(*) AS total_games,
                SUM(CAST(ROUND(bet_amount * 100) AS INTEGER)) AS wagered_cents,
                SUM(CAST(ROUND(win_amount * 100) AS INTEGER)) AS won_cents
            FROM games
        """
        )[0]
        return {
            "total_games": row["total_games"],
            "total_wagered": from_cents(row["wagered_cents"]),
            "total_won": from_cents(row["won_cents"]),
        }
