"""
Bet settlement: validate, draw the outcome, pay out, move the balance and
record the game.

Any failure before the ledger write leaves balance and history untouched.
After the ledger write the bet is settled for good; a failed history append
is logged as a consistency warning and the receipt stays retrievable by
idempotency key.
"""

from typing import Callable, Dict, List, Optional

from skinbet.config import settings
from skinbet.core.exceptions import (
    GameNotFound,
    InsufficientBalance,
    InvalidInput,
    SkinBetError,
    StorageUnavailable,
)
from skinbet.core.fairness import (
    SeedVault,
    fairness_hash,
    game_hash,
    generate_client_seed,
    generate_server_seed,
)
from skinbet.core.games import CrashGame, generate_outcome, validate_params
from skinbet.core.idempotency import IdempotencyRegistry
from skinbet.core.logger import get_logger
from skinbet.core.models import GameRecord, GameType, SettlementReceipt, User, to_money
from skinbet.core.outcomes import CrashOutcome
from skinbet.core.payouts import PayoutCalculator, payout_calculator
from skinbet.core.rng import SeededRNG
from skinbet.core.storage import GameRecordStore, UserRepository

logger = get_logger("settlement")

MAX_LIMIT = 100


def clamp_limit(limit, default: int) -> int:
    if limit is None:
        return default
    try:
        limit = int(limit)
    except (TypeError, ValueError):
        raise InvalidInput(f"Invalid limit: {limit!r}")
    return max(1, min(MAX_LIMIT, limit))


class BetSettlementService:
    """Entry point the HTTP layer calls for every bet."""

    def __init__(
        self,
        users: UserRepository,
        records: GameRecordStore,
        seeds: SeedVault = None,
        idempotency: IdempotencyRegistry = None,
        payouts: PayoutCalculator = None,
        rng_factory: Callable = SeededRNG,
        crash: CrashGame = None,
    ):
        self.users = users
        self.records = records
        self.seeds = seeds or SeedVault()
        self.idempotency = idempotency or IdempotencyRegistry()
        self.payouts = payouts or payout_calculator
        self.rng_factory = rng_factory
        self.crash = crash or CrashGame(max_cash_out=settings.crash.max_cash_out)

    # ==================== Validation ====================

    def validate_bet(self, game_type, bet_amount) -> tuple:
        """Return (game type value, cent-quantized bet) or raise InvalidInput."""
        game = GameType.parse(game_type).value
        config = settings.games.get(game)
        if not config.enabled:
            raise InvalidInput(f"{game} is currently disabled")

        bet = to_money(bet_amount)
        if bet <= 0:
            raise InvalidInput("Bet amount must be positive")
        if bet < to_money(config.min_bet) or bet > to_money(config.max_bet):
            raise InvalidInput(f"Bet must be between {config.min_bet} and {config.max_bet}")
        return game, bet

    # ==================== Settlement ====================

    def settle(
        self,
        user_id: str,
        game_type: str,
        bet_amount,
        params: Dict = None,
        client_seed: str = None,
        seed_id: str = None,
        idempotency_key: str = None,
    ) -> SettlementReceipt:
        params = dict(params or {})
        game, bet = self.validate_bet(game_type, bet_amount)
        validate_params(game, params, crash=self.crash)

        with self.idempotency.hold(user_id, idempotency_key):
            prior = self._prior_receipt(user_id, idempotency_key)
            if prior is not None:
                logger.info(
                    "Returning prior settlement for retried request",
                    extra={"user_id": user_id, "idempotency_key": idempotency_key},
                )
                return prior

            user = self.users.get_user(user_id)
            if bet > user.balance:
                logger.warning(
                    "Bet rejected: insufficient balance",
                    extra={"user_id": user_id, "bet": str(bet), "balance": str(user.balance)},
                )
                raise InsufficientBalance(f"Bet {bet} exceeds balance {user.balance}")

            server_seed = self.seeds.consume(user_id, seed_id) if seed_id else generate_server_seed()
            client_seed = client_seed or generate_client_seed()
            nonce = user.games_played + 1
            commitment = fairness_hash(server_seed, client_seed, nonce)

            # No ledger lock is held while the outcome is drawn
            outcome = generate_outcome(
                game, bet, params, self.rng_factory(server_seed, client_seed, nonce), crash=self.crash
            )
            payout = self.payouts.calculate(bet, outcome)

            try:
                new_balance = self.users.debit_and_credit(user_id, bet, payout.win_amount)
            except SkinBetError:
                if seed_id:
                    self.seeds.restore(user_id, seed_id, server_seed)
                raise

            record = GameRecord(
                user_id=user_id,
                game_type=GameType(game),
                bet_amount=bet,
                win_amount=payout.win_amount,
                loss_amount=payout.loss_amount,
                balance_after=new_balance,
                outcome=outcome,
                server_seed=server_seed,
                client_seed=client_seed,
                nonce=nonce,
                fairness_hash=commitment,
                game_hash=game_hash(commitment, outcome.to_dict(), bet, payout.win_amount),
                idempotency_key=idempotency_key,
            )
            receipt = self.record_settlement(record)

        logger.info(
            f"Settled {game} bet",
            extra={
                "user_id": user_id,
                "game_id": receipt.record.id,
                "bet": str(bet),
                "win": str(payout.win_amount),
                "balance": str(new_balance),
            },
        )
        return receipt

    def record_settlement(self, record: GameRecord) -> SettlementReceipt:
        """
        Append a record whose balance change has already been applied.

        The receipt is cached before the append so a retry never settles twice.
        """
        self.idempotency.remember(record.user_id, record.idempotency_key, SettlementReceipt(record))
        try:
            record_id = self.records.append(record)
        except Exception as e:
            logger.warning(
                "Balance settled but game record was not stored",
                exc_info=True,
                extra={
                    "event": "consistency_warning",
                    "user_id": record.user_id,
                    "game_type": record.game_type.value,
                    "bet": str(record.bet_amount),
                    "win": str(record.win_amount),
                    "balance_after": str(record.balance_after),
                    "fairness_hash": record.fairness_hash,
                },
            )
            raise StorageUnavailable("Bet settled but history could not be stored") from e

        stored = self.records.get(record_id) or record
        receipt = SettlementReceipt(stored)
        self.idempotency.remember(record.user_id, record.idempotency_key, receipt)
        return receipt

    def _prior_receipt(self, user_id: str, key: Optional[str]) -> Optional[SettlementReceipt]:
        if not key:
            return None
        receipt = self.idempotency.get(user_id, key)
        if receipt is not None:
            return receipt
        record = self.records.find_by_idempotency_key(user_id, key)
        return SettlementReceipt(record) if record is not None else None

    # ==================== Fairness ====================

    def commit_seed(self, user_id: str):
        self.users.get_user(user_id)
        return self.seeds.commit(user_id)

    def verify(self, record_id: str) -> Dict:
        """Replay a settled game from its revealed seeds."""
        record = self.records.get(record_id)
        if record is None:
            raise GameNotFound(f"Game {record_id} not found")
        if record.server_seed is None:
            raise InvalidInput("Game has no fairness data")

        expected_hash = fairness_hash(record.server_seed, record.client_seed, record.nonce)
        rng = SeededRNG(record.server_seed, record.client_seed, record.nonce)
        outcome = record.outcome

        if isinstance(outcome, CrashOutcome):
            # The crash point is the committed draw; the cash-out is the player's
            replayed = self.crash.generate_crash_point(rng)
            outcome_valid = replayed == outcome.crash_point
            expected = {"crash_point": float(replayed)}
        else:
            params = {
                "choice": getattr(outcome, "choice", None),
                "bet_type": getattr(outcome, "bet_type", None),
                "stand_on": getattr(outcome, "stand_on", None),
            }
            replayed = generate_outcome(
                record.game_type.value, record.bet_amount, params, rng, crash=self.crash
            )
            outcome_valid = replayed.to_dict() == outcome.to_dict()
            expected = replayed.to_dict()

        hash_valid = expected_hash == record.fairness_hash
        return {
            "game_id": record.id,
            "server_seed": record.server_seed,
            "client_seed": record.client_seed,
            "nonce": record.nonce,
            "fairness_hash": record.fairness_hash,
            "fairness_hash_valid": hash_valid,
            "expected_outcome": expected,
            "actual_outcome": outcome.to_dict(),
            "is_fair": hash_valid and outcome_valid,
            "verification_string": f"{record.server_seed}:{record.client_seed}:{record.nonce}",
        }

    # ==================== Users ====================

    def create_user(self, username: str = None, is_guest: bool = True) -> User:
        user = self.users.create_user(username=username, is_guest=is_guest)
        logger.info(f"Created user {user.username}", extra={"user_id": user.id})
        return user

    def get_user(self, user_id: str) -> User:
        return self.users.get_user(user_id)

    def set_balance(self, user_id: str, balance) -> User:
        user = self.users.set_balance(user_id, balance)
        logger.info(
            "Balance adjusted", extra={"user_id": user_id, "balance": str(user.balance)}
        )
        return user

    # ==================== History ====================

    def history(self, user_id: str, limit=None) -> List[GameRecord]:
        self.users.get_user(user_id)
        return self.records.recent_by_user(user_id, clamp_limit(limit, 50))

    def recent(self, limit=None) -> List[GameRecord]:
        return self.records.recent_global(clamp_limit(limit, 20))

    def leaderboard(self, limit: int = 10) -> List[Dict]:
        usernames = {user.id: user.username for user in self.users.list_users()}
        board = []
        for rank, row in enumerate(self.records.leaderboard(limit), start=1):
            games = row["games_played"]
            board.append(
                {
                    "rank": rank,
                    "user_id": row["user_id"],
                    "username": usernames.get(row["user_id"], "Unknown"),
                    "total_won": float(row["total_won"]),
                    "total_wagered": float(row["total_wagered"]),
                    "biggest_win": float(row["biggest_win"]),
                    "games_played": games,
                    "win_rate": round(row["wins"] / games * 100, 1) if games else 0.0,
                }
            )
        return board

    def stats(self) -> Dict:
        stats = self.records.stats()
        return {
            "total_users": len(self.users.list_users()),
            "total_games": stats["total_games"],
            "total_wagered": float(stats["total_wagered"]),
            "total_won": float(stats["total_won"]),
            "house_profit": float(stats["total_wagered"] - stats["total_won"]),
        }
