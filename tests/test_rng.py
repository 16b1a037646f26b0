"""Distribution and determinism checks for the random sources."""

from collections import Counter

import pytest

from skinbet.core.games import CoinflipGame, CrashGame, RouletteGame
from skinbet.core.rng import SeededRNG, TrueRNG

SAMPLES = 100_000


def test_seeded_stream_is_deterministic():
    a = SeededRNG("server", "client", 7)
    b = SeededRNG("server", "client", 7)
    assert [a.random_float() for _ in range(50)] == [b.random_float() for _ in range(50)]


def test_seeded_stream_depends_on_every_seed_part():
    base = SeededRNG("server", "client", 1).random_float()
    assert SeededRNG("other", "client", 1).random_float() != base
    assert SeededRNG("server", "other", 1).random_float() != base
    assert SeededRNG("server", "client", 2).random_float() != base


def test_seeded_floats_in_unit_interval():
    rng = SeededRNG("server", "client", 1)
    for _ in range(10_000):
        value = rng.random_float()
        assert 0.0 <= value < 1.0


def test_seeded_shuffle_is_a_permutation():
    deck = list(range(52))
    shuffled = SeededRNG("server", "client", 1).shuffle(deck)
    assert sorted(shuffled) == deck
    assert shuffled != deck
    assert deck == list(range(52))


@pytest.mark.parametrize("rng", [TrueRNG(), SeededRNG("server", "client", 1)])
def test_random_int_bounds(rng):
    values = {rng.random_int(2, 9) for _ in range(2000)}
    assert values == set(range(2, 10))
    with pytest.raises(ValueError):
        rng.random_int(5, 1)


def test_coinflip_is_fair():
    game, rng = CoinflipGame(), TrueRNG()
    heads = sum(game.flip("heads", rng=rng).won for _ in range(SAMPLES))
    assert abs(heads / SAMPLES - 0.5) < 0.01


def test_roulette_green_frequency():
    game, rng = RouletteGame(), SeededRNG("roulette", "frequency", 1)
    colors = Counter(game.spin("green", rng=rng).color for _ in range(SAMPLES))
    assert abs(colors["green"] / SAMPLES - 1 / 19) < 0.004
    assert abs(colors["red"] / SAMPLES - 9 / 19) < 0.01
    assert abs(colors["black"] / SAMPLES - 9 / 19) < 0.01


def test_crash_tier_frequencies():
    game, rng = CrashGame(), SeededRNG("crash", "frequency", 1)
    points = [game.generate_crash_point(rng) for _ in range(SAMPLES)]
    low = sum(1 for p in points if p < 3)
    mid = sum(1 for p in points if 3 <= p < 10)
    high = sum(1 for p in points if p >= 10)
    assert abs(low / SAMPLES - 0.5) < 0.01
    assert abs(mid / SAMPLES - 0.3) < 0.01
    assert abs(high / SAMPLES - 0.2) < 0.01
