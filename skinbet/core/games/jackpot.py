from decimal import Decimal

from skinbet.core.rng import rng as default_rng
from skinbet.core.outcomes import JackpotOutcome


class JackpotGame:
    """
    Pot-odds draw: the bettor joins a pot of equal stakes and wins with
    probability equal to their share of it.
    """

    MIN_PARTICIPANTS = 2
    MAX_PARTICIPANTS = 9

    def draw(self, bet_amount: Decimal, rng=None) -> JackpotOutcome:
        rng = rng or default_rng

        participants = rng.random_int(self.MIN_PARTICIPANTS, self.MAX_PARTICIPANTS)
        total_pot = bet_amount * participants
        win_chance = float(bet_amount / total_pot)

        return JackpotOutcome(
            participants=participants,
            total_pot=total_pot,
            win_chance=win_chance,
            won=rng.random_float() < win_chance,
        )


# Singleton instance
jackpot_game = JackpotGame()
