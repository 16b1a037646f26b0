"""
Live crash rounds.

The crash point is drawn and committed when the bet is placed; the client only
animates towards it. The current multiplier is always computed server-side
from the round's start time, so cash-out timing cannot be faked.

Every escrowed stake ends in exactly one game record: a cash-out, a lost
round noticed on read, or an abandoned round swept up when later rounds start.
"""

import threading
import time
import uuid
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP
from typing import Callable, Dict, Optional

from skinbet.config import settings
from skinbet.core.exceptions import InvalidInput, RoundNotFound, SkinBetError
from skinbet.core.fairness import (
    fairness_hash,
    game_hash,
    generate_client_seed,
    generate_server_seed,
)
from skinbet.core.logger import get_logger
from skinbet.core.models import GameRecord, GameType, SettlementReceipt
from skinbet.core.outcomes import CrashOutcome

logger = get_logger("crash")

TWO_PLACES = Decimal("0.01")


@dataclass
class CrashRound:
    id: str
    user_id: str
    bet_amount: Decimal
    crash_point: Decimal
    server_seed: str
    client_seed: str
    nonce: int
    fairness_hash: str
    started_at: float
    status: str = "flying"  # flying, cashed_out, crashed
    cashed_out_at: Optional[Decimal] = None
    receipt: Optional[SettlementReceipt] = None
    settled_at: Optional[float] = None
    # Guards status changes and the settlement of this round only
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def flying(self) -> bool:
        return self.status == "flying"


class CrashRoundService:
    """Place-bet and cash-out as two discrete calls over a server-held round."""

    def __init__(self, settlement, clock: Callable[[], float] = time.time, growth_per_second: float = None):
        self.settlement = settlement
        self.clock = clock
        self.growth = Decimal(str(growth_per_second or settings.crash.growth_per_second))
        self.round_timeout = settings.crash.round_timeout_seconds
        self._rounds: Dict[str, CrashRound] = {}
        # Only guards the _rounds dict, never held across ledger or storage calls
        self._lock = threading.Lock()

    def multiplier_at(self, crash_round: CrashRound, now: float) -> Decimal:
        elapsed = Decimal(str(max(0.0, now - crash_round.started_at)))
        return (1 + self.growth * elapsed).quantize(TWO_PLACES, rounding=ROUND_DOWN)

    def crashed_at(self, crash_round: CrashRound) -> float:
        """Clock time at which the multiplier reaches the crash point."""
        return crash_round.started_at + float((crash_round.crash_point - 1) / self.growth)

    def _has_crashed(self, crash_round: CrashRound, now: float) -> bool:
        return self.multiplier_at(crash_round, now) >= crash_round.crash_point

    def _cleanup_old_rounds(self, now: float):
        """Settle abandoned rounds that have crashed as losses, then drop old settled rounds."""
        with self._lock:
            rounds = list(self._rounds.values())

        for crash_round in rounds:
            if not crash_round.flying or not self._has_crashed(crash_round, now):
                continue
            try:
                with crash_round.lock:
                    if crash_round.flying:
                        self._resolve(crash_round, None, self.crashed_at(crash_round))
            except SkinBetError:
                # Left flying when the ledger failed; the next sweep retries it
                logger.warning(
                    "Could not settle abandoned crash round",
                    exc_info=True,
                    extra={"user_id": crash_round.user_id, "round_id": crash_round.id},
                )

        with self._lock:
            expired = [
                rid for rid, r in self._rounds.items()
                if r.settled_at is not None and now - r.settled_at > self.round_timeout
            ]
            for rid in expired:
                del self._rounds[rid]

    def start(self, user_id: str, bet_amount, client_seed: str = None, seed_id: str = None) -> Dict:
        _, bet = self.settlement.validate_bet(GameType.CRASH.value, bet_amount)
        now = self.clock()
        self._cleanup_old_rounds(now)

        user = self.settlement.users.get_user(user_id)
        seeds = self.settlement.seeds
        server_seed = seeds.consume(user_id, seed_id) if seed_id else generate_server_seed()
        client_seed = client_seed or generate_client_seed()
        nonce = user.games_played + 1
        commitment = fairness_hash(server_seed, client_seed, nonce)

        rng = self.settlement.rng_factory(server_seed, client_seed, nonce)
        crash_point = self.settlement.crash.generate_crash_point(rng)

        # Escrow the stake; the game is counted when the round resolves
        try:
            self.settlement.users.debit_and_credit(user_id, bet, Decimal("0.00"), record_stats=False)
        except SkinBetError:
            if seed_id:
                seeds.restore(user_id, seed_id, server_seed)
            raise

        crash_round = CrashRound(
            id=f"round_{uuid.uuid4().hex}",
            user_id=user_id,
            bet_amount=bet,
            crash_point=crash_point,
            server_seed=server_seed,
            client_seed=client_seed,
            nonce=nonce,
            fairness_hash=commitment,
            started_at=now,
        )
        with self._lock:
            self._rounds[crash_round.id] = crash_round

        logger.info(
            "Crash round started",
            extra={"user_id": user_id, "round_id": crash_round.id, "bet": str(bet)},
        )
        return self._view(crash_round, now)

    def _get_round(self, user_id: str, round_id: str) -> CrashRound:
        with self._lock:
            crash_round = self._rounds.get(round_id)
        if crash_round is None or crash_round.user_id != user_id:
            raise RoundNotFound(f"Round {round_id} not found")
        return crash_round

    def _resolve(self, crash_round: CrashRound, cash_out_at: Optional[Decimal], settled_at: float):
        """
        Credit the player, mark the round settled and append its game record.

        Caller holds crash_round.lock. If the credit fails the round is left
        flying so the settlement can be retried.
        """
        won = cash_out_at is not None
        bet = crash_round.bet_amount
        win = (bet * cash_out_at).quantize(TWO_PLACES, rounding=ROUND_HALF_UP) if won else Decimal("0.00")

        balance = self.settlement.users.credit(crash_round.user_id, bet, win)

        crash_round.status = "cashed_out" if won else "crashed"
        crash_round.cashed_out_at = cash_out_at
        crash_round.settled_at = settled_at

        outcome = CrashOutcome(crash_point=crash_round.crash_point, cash_out_at=cash_out_at, won=won)
        record = GameRecord(
            user_id=crash_round.user_id,
            game_type=GameType.CRASH,
            bet_amount=bet,
            win_amount=win,
            loss_amount=Decimal("0.00") if won else bet,
            balance_after=balance,
            outcome=outcome,
            server_seed=crash_round.server_seed,
            client_seed=crash_round.client_seed,
            nonce=crash_round.nonce,
            fairness_hash=crash_round.fairness_hash,
            game_hash=game_hash(crash_round.fairness_hash, outcome.to_dict(), bet, win),
        )
        crash_round.receipt = self.settlement.record_settlement(record)

        logger.info(
            f"Crash round {crash_round.status}",
            extra={
                "user_id": crash_round.user_id,
                "round_id": crash_round.id,
                "crash_point": str(crash_round.crash_point),
                "win": str(win),
            },
        )

    def cash_out(self, user_id: str, round_id: str) -> Dict:
        crash_round = self._get_round(user_id, round_id)
        now = self.clock()
        with crash_round.lock:
            if not crash_round.flying:
                raise InvalidInput("Round already settled")
            multiplier = self.multiplier_at(crash_round, now)
            if multiplier < crash_round.crash_point:
                self._resolve(crash_round, multiplier, now)
            else:
                self._resolve(crash_round, None, self.crashed_at(crash_round))
        return self._view(crash_round, now)

    def get(self, user_id: str, round_id: str) -> Dict:
        """Round state; a round past its crash point is settled as lost here."""
        crash_round = self._get_round(user_id, round_id)
        now = self.clock()
        with crash_round.lock:
            if crash_round.flying and self._has_crashed(crash_round, now):
                self._resolve(crash_round, None, self.crashed_at(crash_round))
        return self._view(crash_round, now)

    def __len__(self):
        with self._lock:
            return len(self._rounds)

    def _view(self, crash_round: CrashRound, now: float) -> Dict:
        settled = not crash_round.flying
        view = {
            "round_id": crash_round.id,
            "status": crash_round.status,
            "bet_amount": float(crash_round.bet_amount),
            "fairness_hash": crash_round.fairness_hash,
            "client_seed": crash_round.client_seed,
            "nonce": crash_round.nonce,
            "multiplier": float(
                crash_round.cashed_out_at or crash_round.crash_point
                if settled
                else self.multiplier_at(crash_round, now)
            ),
            # Hidden until the round is over
            "crash_point": float(crash_round.crash_point) if settled else None,
            "server_seed": crash_round.server_seed if settled else None,
            "cashed_out_at": float(crash_round.cashed_out_at) if crash_round.cashed_out_at else None,
        }
        if crash_round.receipt is not None:
            view["receipt"] = crash_round.receipt.to_dict()
        return view
