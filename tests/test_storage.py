"""Ledger and game history contracts, run against every storage backend."""

import threading
from dataclasses import replace
from decimal import Decimal

import pytest

from skinbet.core.exceptions import InsufficientBalance, InvalidInput, UserNotFound
from skinbet.core.models import GameRecord, GameType
from skinbet.core.outcomes import BlackjackOutcome, CoinflipOutcome, CrashOutcome

from conftest import money


def make_record(user_id, bet="10.00", win="0.00", key=None, balance="990.00"):
    bet, win = money(bet), money(win)
    return GameRecord(
        user_id=user_id,
        game_type=GameType.COINFLIP,
        bet_amount=bet,
        win_amount=win,
        loss_amount=Decimal("0.00") if win > 0 else bet,
        balance_after=money(balance),
        outcome=CoinflipOutcome("heads", "heads" if win > 0 else "tails", win > 0),
        server_seed="s" * 64,
        client_seed="c" * 32,
        nonce=1,
        fairness_hash="f" * 64,
        game_hash="g" * 64,
        idempotency_key=key,
    )


# ==================== Users ====================


def test_create_user_with_starting_balance(stores):
    users, _ = stores
    user = users.create_user(username="alice", is_guest=False)
    assert user.id.startswith("user_")
    assert user.balance == Decimal("1000.00")

    fetched = users.get_user(user.id)
    assert fetched.username == "alice"
    assert fetched.is_guest is False
    assert fetched.balance == Decimal("1000.00")


def test_guest_username_is_generated(stores):
    users, _ = stores
    user = users.create_user()
    assert user.username.startswith("Guest_")


def test_unknown_user(stores):
    users, _ = stores
    with pytest.raises(UserNotFound):
        users.get_user("user_missing")
    with pytest.raises(UserNotFound):
        users.debit_and_credit("user_missing", money(1), money(0))


def test_debit_and_credit_applies_net(stores):
    users, _ = stores
    user = users.create_user(balance=100)
    assert users.debit_and_credit(user.id, money(50), money(99)) == Decimal("149.00")

    user = users.get_user(user.id)
    assert user.games_played == 1
    assert user.total_wagered == Decimal("50.00")
    assert user.total_won == Decimal("99.00")
    assert user.total_lost == Decimal("0.00")


def test_insufficient_balance_leaves_user_untouched(stores):
    users, _ = stores
    user = users.create_user(balance=100)
    with pytest.raises(InsufficientBalance):
        users.debit_and_credit(user.id, money(150), money(0))

    user = users.get_user(user.id)
    assert user.balance == Decimal("100.00")
    assert user.games_played == 0


def test_bet_of_entire_balance(stores):
    users, _ = stores
    user = users.create_user(balance=25)
    assert users.debit_and_credit(user.id, money(25), money(0)) == Decimal("0.00")
    assert users.get_user(user.id).total_lost == Decimal("25.00")


def test_escrow_then_credit(stores):
    users, _ = stores
    user = users.create_user(balance=100)
    assert users.debit_and_credit(user.id, money(40), money(0), record_stats=False) == Decimal("60.00")
    assert users.get_user(user.id).games_played == 0

    assert users.credit(user.id, money(40), money(80)) == Decimal("140.00")
    user = users.get_user(user.id)
    assert user.games_played == 1
    assert user.total_wagered == Decimal("40.00")


def test_set_balance(stores):
    users, _ = stores
    user = users.create_user()
    assert users.set_balance(user.id, "12.5").balance == Decimal("12.50")
    with pytest.raises(InvalidInput):
        users.set_balance(user.id, "12.345")
    assert users.get_user(user.id).balance == Decimal("12.50")
    with pytest.raises(InvalidInput):
        users.set_balance(user.id, -1)


def test_list_users(stores):
    users, _ = stores
    created = {users.create_user().id for _ in range(3)}
    assert {u.id for u in users.list_users()} == created


def test_concurrent_bets_never_overdraw(stores):
    users, _ = stores
    user = users.create_user(balance=100)
    accepted, rejected = [], []

    def bet():
        try:
            accepted.append(users.debit_and_credit(user.id, money(10), money(0)))
        except InsufficientBalance:
            rejected.append(True)

    threads = [threading.Thread(target=bet) for _ in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(accepted) == 10
    assert len(rejected) == 10
    final = users.get_user(user.id)
    assert final.balance == Decimal("0.00")
    assert final.games_played == 10


# ==================== Game records ====================


def test_append_assigns_id_and_order(stores):
    _, records = stores
    first = records.append(make_record("user_a"))
    second = records.append(make_record("user_a"))
    assert first != second
    assert first.startswith("game_")

    stored = records.get(second)
    assert stored.sequence > records.get(first).sequence
    assert stored.created_at is not None


def test_outcome_survives_storage(stores):
    _, records = stores
    record = make_record("user_a")
    record_id = records.append(record)
    stored = records.get(record_id)
    assert stored.outcome == record.outcome
    assert stored.bet_amount == Decimal("10.00")
    assert stored.fairness_hash == record.fairness_hash


def test_crash_without_cash_out_survives_storage(stores):
    _, records = stores
    record = GameRecord(
        user_id="user_a",
        game_type=GameType.CRASH,
        bet_amount=money(5),
        win_amount=money(0),
        loss_amount=money(5),
        balance_after=money(95),
        outcome=CrashOutcome(Decimal("1.37"), None, False),
    )
    stored = records.get(records.append(record))
    assert stored.outcome.cash_out_at is None
    assert stored.outcome.crash_point == Decimal("1.37")


def test_get_unknown_record(stores):
    _, records = stores
    assert records.get("game_missing") is None


def test_recent_by_user_newest_first_and_filtered(stores):
    _, records = stores
    ids = [records.append(make_record("user_a", bet=str(i + 1))) for i in range(5)]
    records.append(make_record("user_b"))

    recent = records.recent_by_user("user_a", limit=3)
    assert [r.id for r in recent] == ids[::-1][:3]
    assert all(r.user_id == "user_a" for r in recent)
    assert records.recent_by_user("user_c") == []


def test_recent_global(stores):
    _, records = stores
    ids = [records.append(make_record(f"user_{i}")) for i in range(4)]
    assert [r.id for r in records.recent_global(limit=2)] == ids[::-1][:2]


def test_find_by_idempotency_key_is_scoped_to_user(stores):
    _, records = stores
    record_id = records.append(make_record("user_a", key="retry-1"))
    assert records.find_by_idempotency_key("user_a", "retry-1").id == record_id
    assert records.find_by_idempotency_key("user_b", "retry-1") is None
    assert records.find_by_idempotency_key("user_a", "retry-2") is None


def test_leaderboard_and_stats(stores):
    _, records = stores
    records.append(make_record("user_a", bet="10", win="19.80"))
    records.append(make_record("user_a", bet="10", win="0"))
    records.append(make_record("user_b", bet="5", win="70"))

    board = records.leaderboard(limit=10)
    assert [row["user_id"] for row in board] == ["user_b", "user_a"]
    assert board[0]["total_won"] == Decimal("70.00")
    assert board[1]["games_played"] == 2
    assert board[1]["wins"] == 1
    assert board[1]["biggest_win"] == Decimal("19.80")

    stats = records.stats()
    assert stats["total_games"] == 3
    assert stats["total_wagered"] == Decimal("25.00")
    assert stats["total_won"] == Decimal("89.80")


def test_leaderboard_counts_push_as_game_not_win(stores):
    _, records = stores
    push = BlackjackOutcome(("KH", "8S"), ("QD", "8C"), 18, 18, "push")
    records.append(replace(make_record("user_a", bet="10", win="10"), game_type=GameType.BLACKJACK, outcome=push))
    records.append(make_record("user_a", bet="2.50", win="4.95"))

    (row,) = records.leaderboard()
    assert row["games_played"] == 2
    assert row["wins"] == 1
    assert row["total_won"] == Decimal("14.95")
    assert row["total_wagered"] == Decimal("12.50")
    assert row["total_lost"] == Decimal("0.00")
    assert row["biggest_win"] == Decimal("10.00")


def test_leaderboard_limit_and_tie_order(stores):
    _, records = stores
    for user_id in ("user_c", "user_a", "user_b"):
        records.append(make_record(user_id, bet="1", win="0"))
    records.append(make_record("user_b", bet="1", win="1.98"))

    board = records.leaderboard(limit=2)
    assert [row["user_id"] for row in board] == ["user_b", "user_c"]
    assert board[1]["total_lost"] == Decimal("1.00")


def test_stats_on_empty_store(stores):
    _, records = stores
    assert records.stats() == {
        "total_games": 0,
        "total_wagered": Decimal("0.00"),
        "total_won": Decimal("0.00"),
    }
