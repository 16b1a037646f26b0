from skinbet.core.rng import rng as default_rng
from skinbet.core.exceptions import InvalidInput
from skinbet.core.outcomes import CoinflipOutcome


class CoinflipGame:
    """
    Simple 50/50 coin flip.
    """

    SIDES = ("heads", "tails")

    def normalize_choice(self, choice) -> str:
        if not isinstance(choice, str) or choice.lower().strip() not in self.SIDES:
            raise InvalidInput(f"Invalid choice: {choice}. Must be 'heads' or 'tails'.")
        return choice.lower().strip()

    def flip(self, choice: str, rng=None) -> CoinflipOutcome:
        """
        Flip a coin against the player's call.

        Args:
            choice: Player's choice ("heads" or "tails")
            rng: Random source; defaults to the OS-entropy RNG

        Returns:
            CoinflipOutcome with the landed side and win flag
        """
        rng = rng or default_rng
        choice = self.normalize_choice(choice)

        result = "heads" if rng.random_float() < 0.5 else "tails"

        return CoinflipOutcome(choice=choice, outcome=result, won=choice == result)


# Singleton instance
coinflip_game = CoinflipGame()
