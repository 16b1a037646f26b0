"""
Game outcomes, one immutable variant per game type.

Each variant carries everything needed to recompute its payout, and
round-trips through a plain dict tagged with `game_type` for storage.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import ClassVar, Dict, Optional, Tuple, Union

from skinbet.core.exceptions import InvalidInput


def _money(value) -> Decimal:
    return Decimal(str(value))


@dataclass(frozen=True)
class CoinflipOutcome:
    game_type: ClassVar[str] = "coinflip"

    choice: str
    outcome: str
    won: bool

    def to_dict(self) -> Dict:
        return {
            "game_type": self.game_type,
            "choice": self.choice,
            "outcome": self.outcome,
            "won": self.won,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "CoinflipOutcome":
        return cls(choice=data["choice"], outcome=data["outcome"], won=data["won"])


@dataclass(frozen=True)
class CrashOutcome:
    game_type: ClassVar[str] = "crash"

    crash_point: Decimal
    cash_out_at: Optional[Decimal]  # None when a live round crashed before any cash-out
    won: bool

    def to_dict(self) -> Dict:
        return {
            "game_type": self.game_type,
            "crash_point": float(self.crash_point),
            "cash_out_at": None if self.cash_out_at is None else float(self.cash_out_at),
            "won": self.won,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "CrashOutcome":
        cash_out_at = data.get("cash_out_at")
        return cls(
            crash_point=_money(data["crash_point"]),
            cash_out_at=None if cash_out_at is None else _money(cash_out_at),
            won=data["won"],
        )


@dataclass(frozen=True)
class RouletteOutcome:
    game_type: ClassVar[str] = "roulette"

    bet_type: str
    number: int
    color: str
    won: bool

    def to_dict(self) -> Dict:
        return {
            "game_type": self.game_type,
            "bet_type": self.bet_type,
            "number": self.number,
            "color": self.color,
            "won": self.won,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "RouletteOutcome":
        return cls(
            bet_type=data["bet_type"],
            number=data["number"],
            color=data["color"],
            won=data["won"],
        )


@dataclass(frozen=True)
class JackpotOutcome:
    game_type: ClassVar[str] = "jackpot"

    participants: int
    total_pot: Decimal
    win_chance: float
    won: bool

    def to_dict(self) -> Dict:
        return {
            "game_type": self.game_type,
            "participants": self.participants,
            "total_pot": float(self.total_pot),
            "win_chance": self.win_chance,
            "won": self.won,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "JackpotOutcome":
        return cls(
            participants=data["participants"],
            total_pot=_money(data["total_pot"]),
            win_chance=data["win_chance"],
            won=data["won"],
        )


@dataclass(frozen=True)
class BlackjackOutcome:
    game_type: ClassVar[str] = "blackjack"

    player_hand: Tuple[str, ...]
    dealer_hand: Tuple[str, ...]
    player_value: int
    dealer_value: int
    result: str  # blackjack, win, dealer_bust, push, lose, bust, dealer_blackjack
    stand_on: int = 17

    WINNING_RESULTS: ClassVar[frozenset] = frozenset({"blackjack", "win", "dealer_bust"})

    @property
    def won(self) -> bool:
        return self.result in self.WINNING_RESULTS

    def to_dict(self) -> Dict:
        return {
            "game_type": self.game_type,
            "player_hand": list(self.player_hand),
            "dealer_hand": list(self.dealer_hand),
            "player_value": self.player_value,
            "dealer_value": self.dealer_value,
            "result": self.result,
            "stand_on": self.stand_on,
            "won": self.won,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "BlackjackOutcome":
        return cls(
            player_hand=tuple(data["player_hand"]),
            dealer_hand=tuple(data["dealer_hand"]),
            player_value=data["player_value"],
            dealer_value=data["dealer_value"],
            result=data["result"],
            stand_on=data.get("stand_on", 17),
        )


Outcome = Union[
    CoinflipOutcome, CrashOutcome, RouletteOutcome, JackpotOutcome, BlackjackOutcome
]

OUTCOME_TYPES = {
    cls.game_type: cls
    for cls in (
        CoinflipOutcome,
        CrashOutcome,
        RouletteOutcome,
        JackpotOutcome,
        BlackjackOutcome,
    )
}


def outcome_from_dict(data: Dict) -> Outcome:
    """Rebuild an outcome from its tagged dict form."""
    try:
        cls = OUTCOME_TYPES[data["game_type"]]
    except KeyError:
        raise InvalidInput(f"Unknown outcome payload: {data!r}")
    return cls.from_dict(data)
