from fractions import Fraction

from skinbet.core.rng import rng as default_rng
from skinbet.core.exceptions import InvalidInput
from skinbet.core.outcomes import RouletteOutcome


class RouletteGame:
    """
    Colour roulette: one green zero worth 1/19 of the wheel, the rest split
    evenly between 18 red and 18 black numbers.
    """

    RED_NUMBERS = (1, 3, 5, 7, 9, 12, 14, 16, 18, 19, 21, 23, 25, 27, 30, 32, 34, 36)
    BLACK_NUMBERS = (2, 4, 6, 8, 10, 11, 13, 15, 17, 20, 22, 24, 26, 28, 29, 31, 33, 35)

    GREEN_CHANCE = Fraction(1, 19)
    RED_CHANCE = (1 - GREEN_CHANCE) / 2

    BET_TYPES = ("red", "black", "green")

    def normalize_bet_type(self, bet_type) -> str:
        if not isinstance(bet_type, str) or bet_type.lower().strip() not in self.BET_TYPES:
            raise InvalidInput(f"Invalid bet type: {bet_type}")
        return bet_type.lower().strip()

    def get_color(self, number: int) -> str:
        if number == 0:
            return "green"
        elif number in self.RED_NUMBERS:
            return "red"
        return "black"

    def spin(self, bet_type: str, rng=None) -> RouletteOutcome:
        """
        Spin the wheel and resolve a colour bet.

        Args:
            bet_type: "red", "black" or "green"
            rng: Random source; defaults to the OS-entropy RNG
        """
        rng = rng or default_rng
        bet_type = self.normalize_bet_type(bet_type)

        roll = rng.random_float()
        if roll < self.GREEN_CHANCE:
            number = 0
        elif roll < self.GREEN_CHANCE + self.RED_CHANCE:
            number = rng.random_choice(self.RED_NUMBERS)
        else:
            number = rng.random_choice(self.BLACK_NUMBERS)

        color = self.get_color(number)

        return RouletteOutcome(
            bet_type=bet_type, number=number, color=color, won=color == bet_type
        )


# Singleton instance
roulette_game = RouletteGame()
