import unittest
from decimal import Decimal

from skinbet.core.exceptions import InvalidInput
from skinbet.core.outcomes import (
    BlackjackOutcome,
    CoinflipOutcome,
    CrashOutcome,
    JackpotOutcome,
    RouletteOutcome,
)
from skinbet.core.payouts import PayoutCalculator


def blackjack(result):
    return BlackjackOutcome(("10S", "9H"), ("10D", "7C"), 19, 17, result)


class TestPayoutCalculator(unittest.TestCase):
    def setUp(self):
        self.calc = PayoutCalculator()
        self.bet = Decimal("50.00")

    def assertPayout(self, outcome, win, loss):
        payout = self.calc.calculate(self.bet, outcome)
        self.assertEqual(payout.win_amount, Decimal(win))
        self.assertEqual(payout.loss_amount, Decimal(loss))

    def test_coinflip(self):
        self.assertPayout(CoinflipOutcome("heads", "heads", True), "99.00", "0")
        self.assertPayout(CoinflipOutcome("heads", "tails", False), "0", "50.00")

    def test_crash_pays_cash_out_multiplier(self):
        self.assertPayout(CrashOutcome(Decimal("5.00"), Decimal("2.37"), True), "118.50", "0")
        self.assertPayout(CrashOutcome(Decimal("1.20"), Decimal("2.00"), False), "0", "50.00")
        self.assertPayout(CrashOutcome(Decimal("1.20"), None, False), "0", "50.00")

    def test_roulette(self):
        self.assertPayout(RouletteOutcome("red", 1, "red", True), "99.00", "0")
        self.assertPayout(RouletteOutcome("green", 0, "green", True), "700.00", "0")
        self.assertPayout(RouletteOutcome("black", 0, "green", False), "0", "50.00")

    def test_jackpot_takes_rake(self):
        outcome = JackpotOutcome(4, Decimal("200.00"), 0.25, True)
        self.assertPayout(outcome, "190.00", "0")
        self.assertPayout(JackpotOutcome(4, Decimal("200.00"), 0.25, False), "0", "50.00")

    def test_blackjack_table(self):
        cases = {
            "blackjack": ("125.00", "0"),
            "win": ("100.00", "0"),
            "dealer_bust": ("100.00", "0"),
            "push": ("50.00", "0"),
            "lose": ("0", "50.00"),
            "bust": ("0", "50.00"),
            "dealer_blackjack": ("0", "50.00"),
        }
        for result, (win, loss) in cases.items():
            with self.subTest(result=result):
                self.assertPayout(blackjack(result), win, loss)

    def test_rounds_half_up_to_cents(self):
        payout = self.calc.calculate(Decimal("0.25"), CoinflipOutcome("heads", "heads", True))
        # 0.25 * 1.98 = 0.495
        self.assertEqual(payout.win_amount, Decimal("0.50"))

    def test_unknown_outcome(self):
        with self.assertRaises(InvalidInput):
            self.calc.calculate(self.bet, object())


if __name__ == "__main__":
    unittest.main()
