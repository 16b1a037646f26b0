import itertools
from decimal import Decimal

import pytest

from skinbet.core.database import Database, SQLiteGameRecordStore, SQLiteUserRepository
from skinbet.core.memory import InMemoryGameRecordStore, InMemoryUserRepository
from skinbet.core.settlement import BetSettlementService


class StubRNG:
    """
    Replays fixed draws so a test can force an outcome.

    `draw_order` rigs the deck: the listed card labels are dealt first, in order.
    """

    def __init__(self, floats=(0.0,), ints=(2,), draw_order=()):
        self._floats = itertools.cycle(floats)
        self._ints = itertools.cycle(ints)
        self.draw_order = list(draw_order)

    def random_float(self):
        return next(self._floats)

    def random_int(self, min_val, max_val):
        return max(min_val, min(max_val, next(self._ints)))

    def random_choice(self, options):
        return options[0]

    def shuffle(self, deck):
        rigged = [c for label in self.draw_order for c in deck if str(c) == label]
        rest = [c for c in deck if c not in rigged]
        # Cards are dealt with pop(), so the first card to deal goes last
        return rest + rigged[::-1]


def forced(**kwargs):
    """rng_factory producing a fresh StubRNG for every bet."""
    return lambda server_seed, client_seed, nonce: StubRNG(**kwargs)


@pytest.fixture
def memory_service():
    return BetSettlementService(InMemoryUserRepository(), InMemoryGameRecordStore())


@pytest.fixture
def database(tmp_path):
    db = Database(tmp_path / "skinbet-test.db")
    yield db
    db.close()


@pytest.fixture(params=["memory", "sqlite"])
def stores(request, tmp_path):
    """(users, records) for each storage backend."""
    if request.param == "memory":
        yield InMemoryUserRepository(starting_balance=1000), InMemoryGameRecordStore()
    else:
        db = Database(tmp_path / "skinbet-test.db")
        yield SQLiteUserRepository(db, starting_balance=1000), SQLiteGameRecordStore(db)
        db.close()


def make_service(users, records, **rng_kwargs):
    if rng_kwargs:
        return BetSettlementService(users, records, rng_factory=forced(**rng_kwargs))
    return BetSettlementService(users, records)


def money(value) -> Decimal:
    return Decimal(str(value)).quantize(Decimal("0.01"))
