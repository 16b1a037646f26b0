"""
Payout table: maps a bet and its outcome to the amount won or lost.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from skinbet.core.exceptions import InvalidInput
from skinbet.core.outcomes import (
    BlackjackOutcome,
    CoinflipOutcome,
    CrashOutcome,
    JackpotOutcome,
    RouletteOutcome,
)

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


@dataclass(frozen=True)
class Payout:
    win_amount: Decimal
    loss_amount: Decimal

    @property
    def net(self) -> Decimal:
        return self.win_amount - self.loss_amount


class PayoutCalculator:
    """
    Multipliers include the returned stake, so a coinflip win of 50 pays 99.
    """

    COINFLIP_MULTIPLIER = Decimal("1.98")  # 1% house edge
    ROULETTE_COLOR_MULTIPLIER = Decimal("1.98")
    ROULETTE_GREEN_MULTIPLIER = Decimal("14")
    JACKPOT_POT_SHARE = Decimal("0.95")  # 5% house rake
    BLACKJACK_MULTIPLIERS = {
        "blackjack": Decimal("2.5"),  # 3:2
        "win": Decimal("2"),
        "dealer_bust": Decimal("2"),
        "push": Decimal("1"),
    }

    def _coinflip(self, bet_amount: Decimal, outcome: CoinflipOutcome) -> Decimal:
        return bet_amount * self.COINFLIP_MULTIPLIER if outcome.won else ZERO

    def _crash(self, bet_amount: Decimal, outcome: CrashOutcome) -> Decimal:
        return bet_amount * outcome.cash_out_at if outcome.won else ZERO

    def _roulette(self, bet_amount: Decimal, outcome: RouletteOutcome) -> Decimal:
        if not outcome.won:
            return ZERO
        if outcome.bet_type == "green":
            return bet_amount * self.ROULETTE_GREEN_MULTIPLIER
        return bet_amount * self.ROULETTE_COLOR_MULTIPLIER

    def _jackpot(self, bet_amount: Decimal, outcome: JackpotOutcome) -> Decimal:
        return outcome.total_pot * self.JACKPOT_POT_SHARE if outcome.won else ZERO

    def _blackjack(self, bet_amount: Decimal, outcome: BlackjackOutcome) -> Decimal:
        return bet_amount * self.BLACKJACK_MULTIPLIERS.get(outcome.result, ZERO)

    _HANDLERS = {
        CoinflipOutcome: _coinflip,
        CrashOutcome: _crash,
        RouletteOutcome: _roulette,
        JackpotOutcome: _jackpot,
        BlackjackOutcome: _blackjack,
    }

    def calculate(self, bet_amount: Decimal, outcome) -> Payout:
        """
        Compute (win_amount, loss_amount) for a settled outcome.

        Exactly one of the two is non-zero, except a blackjack push which
        returns the stake as its win amount.
        """
        handler = self._HANDLERS.get(type(outcome))
        if handler is None:
            raise InvalidInput(f"No payout rule for outcome {type(outcome).__name__}")

        win_amount = handler(self, bet_amount, outcome).quantize(CENTS, rounding=ROUND_HALF_UP)
        loss_amount = ZERO if win_amount > 0 else bet_amount

        return Payout(win_amount=win_amount, loss_amount=loss_amount)


# Singleton instance
payout_calculator = PayoutCalculator()
