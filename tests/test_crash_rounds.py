import threading
import unittest
from decimal import Decimal
from unittest.mock import patch

from skinbet.core.crash_rounds import CrashRoundService
from skinbet.core.exceptions import InsufficientBalance, InvalidInput, RoundNotFound, StorageUnavailable
from skinbet.core.memory import InMemoryGameRecordStore, InMemoryUserRepository
from skinbet.core.settlement import BetSettlementService

from conftest import forced


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestCrashRounds(unittest.TestCase):
    def setUp(self):
        # Every round crashes at 2.00x
        self.settlement = BetSettlementService(
            InMemoryUserRepository(),
            InMemoryGameRecordStore(),
            rng_factory=forced(floats=[0.0, 0.5]),
        )
        self.clock = FakeClock()
        self.rounds = CrashRoundService(self.settlement, clock=self.clock, growth_per_second=0.10)
        self.user = self.settlement.create_user(username="pilot")
        self.settlement.set_balance(self.user.id, 100)

    def balance(self):
        return self.settlement.get_user(self.user.id).balance

    def test_start_escrows_stake_and_hides_crash_point(self):
        view = self.rounds.start(self.user.id, 10)

        self.assertEqual(view["status"], "flying")
        self.assertEqual(view["multiplier"], 1.0)
        self.assertIsNone(view["crash_point"])
        self.assertIsNone(view["server_seed"])
        self.assertEqual(self.balance(), Decimal("90.00"))
        self.assertEqual(self.settlement.get_user(self.user.id).games_played, 0)

    def test_multiplier_grows_with_time(self):
        view = self.rounds.start(self.user.id, 10)
        self.clock.now += 3
        self.assertEqual(self.rounds.get(self.user.id, view["round_id"])["multiplier"], 1.3)

    def test_cash_out_before_crash_wins(self):
        round_id = self.rounds.start(self.user.id, 10)["round_id"]
        self.clock.now += 5

        view = self.rounds.cash_out(self.user.id, round_id)

        self.assertEqual(view["status"], "cashed_out")
        self.assertEqual(view["cashed_out_at"], 1.5)
        self.assertEqual(view["crash_point"], 2.0)
        self.assertIsNotNone(view["server_seed"])
        self.assertEqual(view["receipt"]["win_amount"], 15.0)
        self.assertEqual(self.balance(), Decimal("105.00"))

        record = self.settlement.history(self.user.id)[0]
        self.assertEqual(record.outcome.cash_out_at, Decimal("1.50"))
        self.assertTrue(record.won)
        self.assertEqual(record.balance_after, Decimal("105.00"))
        self.assertEqual(self.settlement.get_user(self.user.id).games_played, 1)

    def test_cash_out_at_crash_point_loses(self):
        round_id = self.rounds.start(self.user.id, 10)["round_id"]
        self.clock.now += 10

        view = self.rounds.cash_out(self.user.id, round_id)

        self.assertEqual(view["status"], "crashed")
        self.assertIsNone(view["cashed_out_at"])
        self.assertEqual(self.balance(), Decimal("90.00"))
        record = self.settlement.history(self.user.id)[0]
        self.assertIsNone(record.outcome.cash_out_at)
        self.assertEqual(record.loss_amount, Decimal("10.00"))

    def test_round_settles_only_once(self):
        round_id = self.rounds.start(self.user.id, 10)["round_id"]
        self.rounds.cash_out(self.user.id, round_id)
        with self.assertRaises(InvalidInput):
            self.rounds.cash_out(self.user.id, round_id)
        self.assertEqual(len(self.settlement.history(self.user.id)), 1)

    def test_expired_round_settles_as_lost_on_read(self):
        round_id = self.rounds.start(self.user.id, 10)["round_id"]
        self.clock.now += 60

        view = self.rounds.get(self.user.id, round_id)

        self.assertEqual(view["status"], "crashed")
        self.assertEqual(view["multiplier"], 2.0)
        self.assertEqual(len(self.settlement.history(self.user.id)), 1)

    def test_round_is_private_to_its_owner(self):
        round_id = self.rounds.start(self.user.id, 10)["round_id"]
        other = self.settlement.create_user()
        with self.assertRaises(RoundNotFound):
            self.rounds.cash_out(other.id, round_id)
        with self.assertRaises(RoundNotFound):
            self.rounds.get(self.user.id, "round_missing")

    def test_insufficient_balance(self):
        with self.assertRaises(InsufficientBalance):
            self.rounds.start(self.user.id, 500)
        self.assertEqual(self.balance(), Decimal("100.00"))

    def test_settled_rounds_are_cleaned_up(self):
        round_id = self.rounds.start(self.user.id, 10)["round_id"]
        self.rounds.cash_out(self.user.id, round_id)
        self.clock.now += self.rounds.round_timeout + 1
        self.rounds.start(self.user.id, 10)
        with self.assertRaises(RoundNotFound):
            self.rounds.get(self.user.id, round_id)

    def test_abandoned_round_settles_as_lost_when_swept(self):
        round_id = self.rounds.start(self.user.id, 10)["round_id"]
        self.clock.now += self.rounds.round_timeout + 100

        other = self.settlement.create_user()
        self.rounds.start(other.id, 1)

        records = self.settlement.history(self.user.id)
        self.assertEqual(len(records), 1)
        self.assertFalse(records[0].won)
        self.assertEqual(records[0].loss_amount, Decimal("10.00"))
        self.assertEqual(self.balance(), Decimal("90.00"))
        self.assertEqual(self.settlement.get_user(self.user.id).games_played, 1)
        self.assertEqual(len(self.rounds), 1)
        with self.assertRaises(RoundNotFound):
            self.rounds.get(self.user.id, round_id)

    def test_failed_credit_leaves_round_open_for_retry(self):
        round_id = self.rounds.start(self.user.id, 10)["round_id"]
        self.clock.now += 5

        with patch.object(self.settlement.users, "credit", side_effect=StorageUnavailable("down")):
            with self.assertRaises(StorageUnavailable):
                self.rounds.cash_out(self.user.id, round_id)

        self.assertEqual(self.rounds.get(self.user.id, round_id)["status"], "flying")
        self.assertEqual(self.settlement.history(self.user.id), [])

        view = self.rounds.cash_out(self.user.id, round_id)
        self.assertEqual(view["status"], "cashed_out")
        self.assertEqual(self.balance(), Decimal("105.00"))
        self.assertEqual(len(self.settlement.history(self.user.id)), 1)

    def test_cash_outs_for_different_rounds_do_not_wait_on_each_other(self):
        other = self.settlement.create_user()
        self.settlement.set_balance(other.id, 100)
        mine = self.rounds.start(self.user.id, 10)["round_id"]
        theirs = self.rounds.start(other.id, 10)["round_id"]
        self.clock.now += 5

        release = threading.Event()
        entered = threading.Event()
        real_credit = self.settlement.users.credit

        def slow_credit(user_id, bet, win):
            if user_id == self.user.id:
                entered.set()
                release.wait(5)
            return real_credit(user_id, bet, win)

        results = {}
        with patch.object(self.settlement.users, "credit", side_effect=slow_credit):
            blocked = threading.Thread(target=lambda: self.rounds.cash_out(self.user.id, mine))
            blocked.start()
            self.assertTrue(entered.wait(5))

            worker = threading.Thread(
                target=lambda: results.setdefault("view", self.rounds.cash_out(other.id, theirs))
            )
            worker.start()
            worker.join(2)
            finished_while_blocked = not worker.is_alive()

            release.set()
            blocked.join(5)
            worker.join(5)

        self.assertTrue(finished_while_blocked)
        self.assertEqual(results["view"]["status"], "cashed_out")
        self.assertEqual(self.balance(), Decimal("105.00"))


class TestLiveCrashFairness(unittest.TestCase):
    def test_live_round_verifies(self):
        settlement = BetSettlementService(InMemoryUserRepository(), InMemoryGameRecordStore())
        clock = FakeClock()
        rounds = CrashRoundService(settlement, clock=clock)
        user = settlement.create_user()

        round_id = rounds.start(user.id, 5, client_seed="mine")["round_id"]
        clock.now += 0.2
        rounds.cash_out(user.id, round_id)

        record = settlement.history(user.id)[0]
        result = settlement.verify(record.id)
        self.assertTrue(result["is_fair"])
        self.assertEqual(result["client_seed"], "mine")


if __name__ == "__main__":
    unittest.main()
