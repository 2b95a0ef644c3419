"""
Races against the real database. SQLite serialises writers, so the threaded
tests only run against PostgreSQL. The sequential tests below them check the
same counters on every backend.
"""
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest
from django.db import IntegrityError, connection, connections, transaction
from django.db.models import F

from common.exceptions import (
    AlreadyRegistered,
    ApplicationError,
    InsufficientFunds,
    TournamentFull,
)
from tournaments.models import Registration, Tournament
from tournaments.services import admit_slot, register_for_tournament
from users.models import User
from wallet.models import Transaction
from wallet.services import Ledger

postgres_only = pytest.mark.skipif(
    connection.vendor != "postgresql", reason="needs row-level locking"
)


def _run_concurrently(func, args_list):
    def worker(args):
        try:
            return func(*args)
        except ApplicationError as exc:
            return exc
        finally:
            connections.close_all()

    with ThreadPoolExecutor(max_workers=len(args_list)) as pool:
        return list(pool.map(worker, args_list))


@postgres_only
@pytest.mark.django_db(transaction=True)
def test_last_slot_goes_to_exactly_one_player(tournament_factory, user_factory):
    """
    GIVEN a paid tournament with one slot and five funded players
    WHEN all five register at once
    THEN one registration exists and only that player paid.
    """
    tournament = tournament_factory(
        type=Tournament.Type.PAID, entry_fee=Decimal("100"), total_slots=1
    )
    players = [user_factory(balance=100) for _ in range(5)]

    _run_concurrently(
        register_for_tournament, [(player, tournament.pk, "PLAYER-1") for player in players]
    )

    tournament.refresh_from_db()
    assert tournament.registered_slots == 1
    assert Registration.objects.filter(tournament=tournament).count() == 1
    assert Transaction.objects.filter(type=Transaction.TransactionType.ENTRY_FEE).count() == 1
    balances = sorted(User.objects.filter(pk__in=[p.pk for p in players]).values_list("balance", flat=True))
    assert balances == [Decimal("0.00")] + [Decimal("100.00")] * 4


@postgres_only
@pytest.mark.django_db(transaction=True)
def test_parallel_debits_never_overdraw(user_factory):
    user = user_factory(balance=300)

    results = _run_concurrently(
        Ledger.debit,
        [(user.pk, "100", Transaction.TransactionType.ENTRY_FEE) for _ in range(6)],
    )

    user.refresh_from_db()
    assert user.balance == Decimal("0.00")
    assert sum(isinstance(result, Transaction) for result in results) == 3
    assert Transaction.objects.filter(user=user).count() == 3


@postgres_only
@pytest.mark.django_db(transaction=True)
def test_duplicate_registrations_admit_one(tournament_factory, user_factory):
    """
    GIVEN a paid tournament and a player who can afford several entries
    WHEN the same player registers five times at once
    THEN one registration succeeds, the rest fail as AlreadyRegistered
    and only one entry fee is kept.
    """
    tournament = tournament_factory(type=Tournament.Type.PAID, entry_fee=Decimal("100"))
    player = user_factory(balance=500)

    results = _run_concurrently(
        register_for_tournament, [(player, tournament.pk, "PLAYER-1")] * 5
    )

    registrations = [r for r in results if isinstance(r, Registration)]
    failures = [r for r in results if not isinstance(r, Registration)]
    assert len(registrations) == 1
    assert all(isinstance(failure, AlreadyRegistered) for failure in failures)
    tournament.refresh_from_db()
    player.refresh_from_db()
    assert tournament.registered_slots == 1
    assert player.balance == Decimal("400.00")
    assert Transaction.objects.filter(user=player).count() == 1


@postgres_only
@pytest.mark.django_db(transaction=True)
def test_parallel_entries_across_tournaments_stay_within_balance(
    tournament_factory, user_factory
):
    """
    GIVEN five same-fee tournaments and a player holding two and a half fees
    WHEN the player registers for all five at once
    THEN two registrations succeed and the others fail for lack of funds.
    """
    tournaments = [
        tournament_factory(type=Tournament.Type.PAID, entry_fee=Decimal("100"))
        for _ in range(5)
    ]
    player = user_factory(balance=250)

    results = _run_concurrently(
        register_for_tournament, [(player, t.pk, "PLAYER-1") for t in tournaments]
    )

    failures = [r for r in results if not isinstance(r, Registration)]
    assert len(results) - len(failures) == 2
    assert all(isinstance(failure, InsufficientFunds) for failure in failures)
    player.refresh_from_db()
    assert player.balance == Decimal("50.00")
    assert sum(
        Tournament.objects.filter(pk__in=[t.pk for t in tournaments]).values_list(
            "registered_slots", flat=True
        )
    ) == 2


@pytest.mark.django_db
class TestSlotCounterBounds:
    def test_admissions_stop_at_total_slots(self, tournament_factory):
        tournament = tournament_factory(total_slots=3)

        for _ in range(3):
            admit_slot(tournament.pk)
        with pytest.raises(TournamentFull):
            admit_slot(tournament.pk)

        tournament.refresh_from_db()
        assert tournament.registered_slots == 3

    def test_store_refuses_overfilled_counter(self, tournament_factory):
        tournament = tournament_factory(total_slots=2, registered_slots=2)

        with pytest.raises(IntegrityError):
            with transaction.atomic():
                Tournament.objects.filter(pk=tournament.pk).update(
                    registered_slots=F("registered_slots") + 1
                )

        tournament.refresh_from_db()
        assert tournament.registered_slots == 2

    def test_entries_across_tournaments_stay_within_balance(
        self, tournament_factory, user_factory
    ):
        tournaments = [
            tournament_factory(type=Tournament.Type.PAID, entry_fee=Decimal("100"))
            for _ in range(4)
        ]
        player = user_factory(balance=250)
        outcomes = []

        for tournament in tournaments:
            try:
                outcomes.append(register_for_tournament(player, tournament.pk, "PLAYER-1"))
            except InsufficientFunds as exc:
                outcomes.append(exc)

        assert sum(isinstance(outcome, Registration) for outcome in outcomes) == 2
        player.refresh_from_db()
        assert player.balance == Decimal("50.00")

    def test_repeat_registration_keeps_one_fee(self, tournament_factory, user_factory):
        tournament = tournament_factory(type=Tournament.Type.PAID, entry_fee=Decimal("100"))
        player = user_factory(balance=500)
        register_for_tournament(player, tournament.pk, "PLAYER-1")

        for _ in range(3):
            with pytest.raises(AlreadyRegistered):
                register_for_tournament(player, tournament.pk, "PLAYER-1")

        player.refresh_from_db()
        tournament.refresh_from_db()
        assert player.balance == Decimal("400.00")
        assert tournament.registered_slots == 1
