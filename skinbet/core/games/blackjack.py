from typing import List

from skinbet.core.rng import rng as default_rng
from skinbet.core.exceptions import InvalidInput
from skinbet.core.outcomes import BlackjackOutcome


class Card:
    """Represents a playing card."""

    SUITS = ["S", "H", "D", "C"]
    RANKS = ["A", "2", "3", "4", "5", "6", "7", "8", "9", "10", "J", "Q", "K"]

    def __init__(self, rank: str, suit: str):
        self.rank = rank
        self.suit = suit

    @property
    def value(self) -> int:
        """Get the blackjack value of the card."""
        if self.rank in ["J", "Q", "K"]:
            return 10
        elif self.rank == "A":
            return 11  # Adjusted in hand calculation
        else:
            return int(self.rank)

    def __str__(self):
        return f"{self.rank}{self.suit}"


class BlackjackHand:
    """Represents a blackjack hand."""

    def __init__(self):
        self.cards: List[Card] = []

    def add_card(self, card: Card):
        self.cards.append(card)

    @property
    def value(self) -> int:
        """Calculate the best hand value, adjusting aces as needed."""
        total = sum(card.value for card in self.cards)
        aces = sum(1 for card in self.cards if card.rank == "A")

        while total > 21 and aces > 0:
            total -= 10
            aces -= 1

        return total

    @property
    def is_bust(self) -> bool:
        return self.value > 21

    @property
    def is_blackjack(self) -> bool:
        return len(self.cards) == 2 and self.value == 21

    def labels(self) -> tuple:
        return tuple(str(card) for card in self.cards)


class BlackjackGame:
    """
    Single-shot blackjack: the player draws until reaching `stand_on`, then
    the dealer draws to 17. The whole hand resolves in one call.
    """

    DEALER_STANDS_ON = 17
    MIN_STAND_ON = 12
    MAX_STAND_ON = 21

    def normalize_stand_on(self, stand_on) -> int:
        if stand_on is None:
            return self.DEALER_STANDS_ON
        try:
            stand_on = int(stand_on)
        except (TypeError, ValueError):
            raise InvalidInput(f"Invalid stand_on: {stand_on!r}")
        if not self.MIN_STAND_ON <= stand_on <= self.MAX_STAND_ON:
            raise InvalidInput(
                f"stand_on must be between {self.MIN_STAND_ON} and {self.MAX_STAND_ON}"
            )
        return stand_on

    def _create_deck(self, rng) -> List[Card]:
        deck = [Card(rank, suit) for suit in Card.SUITS for rank in Card.RANKS]
        return rng.shuffle(deck)

    def play(self, stand_on=None, rng=None) -> BlackjackOutcome:
        rng = rng or default_rng
        stand_on = self.normalize_stand_on(stand_on)

        deck = self._create_deck(rng)
        player = BlackjackHand()
        dealer = BlackjackHand()

        # Deal alternating cards
        player.add_card(deck.pop())
        dealer.add_card(deck.pop())
        player.add_card(deck.pop())
        dealer.add_card(deck.pop())

        if player.is_blackjack:
            result = "push" if dealer.is_blackjack else "blackjack"
        elif dealer.is_blackjack:
            result = "dealer_blackjack"
        else:
            while player.value < stand_on:
                player.add_card(deck.pop())

            if player.is_bust:
                result = "bust"
            else:
                while dealer.value < self.DEALER_STANDS_ON:
                    dealer.add_card(deck.pop())

                if dealer.is_bust:
                    result = "dealer_bust"
                elif player.value > dealer.value:
                    result = "win"
                elif player.value < dealer.value:
                    result = "lose"
                else:
                    result = "push"

        return BlackjackOutcome(
            player_hand=player.labels(),
            dealer_hand=dealer.labels(),
            player_value=player.value,
            dealer_value=dealer.value,
            result=result,
            stand_on=stand_on,
        )


# Singleton instance
blackjack_game = BlackjackGame()
