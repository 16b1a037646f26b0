"""Outcome generators for each supported game."""

from decimal import Decimal
from typing import Dict

from .coinflip import CoinflipGame, coinflip_game
from .crash import CrashGame, crash_game
from .roulette import RouletteGame, roulette_game
from .jackpot import JackpotGame, jackpot_game
from .blackjack import BlackjackGame, blackjack_game


def validate_params(game_type: str, params: Dict, crash: CrashGame = crash_game):
    """Reject malformed game parameters before any randomness is drawn."""
    if game_type == "coinflip":
        coinflip_game.normalize_choice(params.get("choice"))
    elif game_type == "crash":
        crash.normalize_cash_out(params.get("cash_out_at"))
    elif game_type == "roulette":
        roulette_game.normalize_bet_type(params.get("bet_type"))
    elif game_type == "blackjack":
        blackjack_game.normalize_stand_on(params.get("stand_on"))


def generate_outcome(
    game_type: str, bet_amount: Decimal, params: Dict, rng, crash: CrashGame = crash_game
):
    """Draw the outcome for one bet of the given game type."""
    if game_type == "coinflip":
        return coinflip_game.flip(params.get("choice"), rng=rng)
    elif game_type == "crash":
        return crash.play(params.get("cash_out_at"), rng=rng)
    elif game_type == "roulette":
        return roulette_game.spin(params.get("bet_type"), rng=rng)
    elif game_type == "jackpot":
        return jackpot_game.draw(bet_amount, rng=rng)
    elif game_type == "blackjack":
        return blackjack_game.play(params.get("stand_on"), rng=rng)
    raise ValueError(f"No outcome generator for {game_type}")


__all__ = [
    "CoinflipGame",
    "coinflip_game",
    "CrashGame",
    "crash_game",
    "RouletteGame",
    "roulette_game",
    "JackpotGame",
    "jackpot_game",
    "BlackjackGame",
    "blackjack_game",
    "validate_params",
    "generate_outcome",
]
