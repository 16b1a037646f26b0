from decimal import Decimal, ROUND_DOWN
from typing import Optional

from skinbet.core.rng import rng as default_rng
from skinbet.core.exceptions import InvalidInput
from skinbet.core.outcomes import CrashOutcome

TWO_PLACES = Decimal("0.01")


class CrashGame:
    """
    Crash multiplier drawn from a tiered distribution, weighted towards low values.
    """

    # (cumulative probability, low, high); each tier is [low, high)
    TIERS = (
        (0.5, 1.0, 3.0),
        (0.8, 3.0, 10.0),
        (1.0, 10.0, 50.0),
    )

    # Synthetic auto-cashout target when the player gives none
    AUTO_CASH_OUT_RANGE = (1.5, 3.5)

    MIN_CASH_OUT = Decimal("1.01")

    def __init__(self, max_cash_out: float = 1000.0):
        self.max_cash_out = Decimal(str(max_cash_out))

    @staticmethod
    def _two_places(value: float) -> Decimal:
        # Truncate so a tier never rounds up into the next one
        return Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_DOWN)

    def generate_crash_point(self, rng=None) -> Decimal:
        rng = rng or default_rng
        roll = rng.random_float()
        for threshold, low, high in self.TIERS:
            if roll < threshold:
                break
        return self._two_places(low + rng.random_float() * (high - low))

    def normalize_cash_out(self, cash_out_at) -> Optional[Decimal]:
        if cash_out_at is None:
            return None
        try:
            target = Decimal(str(cash_out_at)).quantize(TWO_PLACES, rounding=ROUND_DOWN)
        except ArithmeticError:
            raise InvalidInput(f"Invalid cash out target: {cash_out_at!r}")
        if target < self.MIN_CASH_OUT or target > self.max_cash_out:
            raise InvalidInput(
                f"Cash out target must be between {self.MIN_CASH_OUT} and {self.max_cash_out}"
            )
        return target

    def play(self, cash_out_at=None, rng=None) -> CrashOutcome:
        """
        Resolve a crash bet with an automatic cash-out target.

        The crash point is drawn first; a missing target is then drawn
        uniformly from AUTO_CASH_OUT_RANGE.
        """
        rng = rng or default_rng
        target = self.normalize_cash_out(cash_out_at)

        crash_point = self.generate_crash_point(rng)

        if target is None:
            low, high = self.AUTO_CASH_OUT_RANGE
            target = self._two_places(low + rng.random_float() * (high - low))

        return CrashOutcome(
            crash_point=crash_point,
            cash_out_at=target,
            won=crash_point >= target,
        )


# Singleton instance
crash_game = CrashGame()
