"""
Tests for the registration and result services in tournaments/services.py.
These tests cover the money-moving paths: entry fees, refunds and prizes.
"""
from decimal import Decimal
from unittest.mock import patch

import pytest

from common.exceptions import (
    ApplicationError,
    AlreadyRegistered,
    InsufficientFunds,
    InvalidInput,
    NotFound,
    NotRegistered,
    RegistrationClosed,
    ResultAlreadySubmitted,
    TournamentFull,
    TournamentNotOngoing,
    TournamentNotUpcoming,
    TournamentStarted,
)
from tournaments.models import Registration, Tournament, TournamentResult
from tournaments.services import (
    bulk_import_results,
    cancel_tournament,
    correct_result,
    register_for_tournament,
    set_registration_status,
    submit_result,
    unregister_from_tournament,
)
from wallet.models import Transaction


def _start(tournament):
    Tournament.objects.filter(pk=tournament.pk).update(status=Tournament.Status.ONGOING)
    tournament.refresh_from_db()
    return tournament


@pytest.mark.django_db
class TestRegisterForTournament:
    def test_paid_registration_debits_entry_fee(self, tournament_factory, user_factory):
        """
        GIVEN a one-slot paid tournament and a user holding exactly the fee
        WHEN the user registers
        THEN the balance drops to zero, the slot is consumed and a completed
        entry fee transaction is recorded.
        """
        tournament = tournament_factory(
            type=Tournament.Type.PAID, entry_fee=Decimal("100"), total_slots=1
        )
        user = user_factory(balance=100)

        registration = register_for_tournament(user, tournament.pk, "PLAYER-1")

        user.refresh_from_db()
        tournament.refresh_from_db()
        assert user.balance == Decimal("0.00")
        assert tournament.registered_slots == 1
        txn = Transaction.objects.get(user=user)
        assert txn.type == Transaction.TransactionType.ENTRY_FEE
        assert txn.status == Transaction.Status.COMPLETED
        assert txn.amount == Decimal("100.00")
        assert txn.tournament == tournament
        assert registration.status == Registration.Status.PENDING
        assert registration.payment_status == Registration.PaymentStatus.COMPLETED
        assert registration.payment_method == Registration.PaymentMethod.WALLET
        assert registration.transaction_reference == txn.reference
        assert registration.per_kill == Decimal("10.00")
        assert user.registered_tournaments.filter(pk=tournament.pk).exists()

    def test_second_user_on_full_tournament_is_not_charged(
        self, tournament_factory, user_factory
    ):
        tournament = tournament_factory(
            type=Tournament.Type.PAID, entry_fee=Decimal("100"), total_slots=1
        )
        register_for_tournament(user_factory(balance=100), tournament.pk, "PLAYER-1")
        second = user_factory(balance=250)

        with pytest.raises(TournamentFull):
            register_for_tournament(second, tournament.pk, "PLAYER-2")

        second.refresh_from_db()
        assert second.balance == Decimal("250.00")
        assert not Transaction.objects.filter(user=second).exists()

    def test_free_registration_creates_no_transaction(self, free_tournament, user_factory):
        user = user_factory(balance=0)

        registration = register_for_tournament(user, free_tournament.pk, "PLAYER-1")

        free_tournament.refresh_from_db()
        assert free_tournament.registered_slots == 1
        assert not Transaction.objects.exists()
        assert registration.payment_method == Registration.PaymentMethod.FREE
        assert registration.per_kill == Decimal("0.00")
        assert registration.entry_fee == Decimal("0.00")

    def test_insufficient_funds_consumes_nothing(self, paid_tournament, user_factory):
        user = user_factory(balance=99)

        with pytest.raises(InsufficientFunds):
            register_for_tournament(user, paid_tournament.pk, "PLAYER-1")

        paid_tournament.refresh_from_db()
        assert paid_tournament.registered_slots == 0
        assert not Registration.objects.exists()

    def test_late_admission_failure_leaves_balance_untouched(
        self, paid_tournament, user_factory
    ):
        """
        GIVEN a racing admission that takes the last slot after the fee was debited
        WHEN the registration continues
        THEN TournamentFull is raised and the debit does not persist.
        """
        user = user_factory(balance=100)

        with patch("tournaments.services.admit_slot", side_effect=TournamentFull()):
            with pytest.raises(TournamentFull):
                register_for_tournament(user, paid_tournament.pk, "PLAYER-1")

        user.refresh_from_db()
        assert user.balance == Decimal("100.00")
        assert not Transaction.objects.filter(user=user).exists()
        assert not Registration.objects.exists()

    def test_duplicate_insert_maps_to_already_registered(
        self, paid_tournament, user_factory
    ):
        """
        GIVEN a duplicate request that slipped past the existence check
        WHEN the insert hits the uniqueness constraint
        THEN AlreadyRegistered is raised and neither fee nor slot is taken twice.
        """
        user = user_factory(balance=300)
        register_for_tournament(user, paid_tournament.pk, "PLAYER-1")

        with patch("tournaments.services._registration_exists", return_value=False):
            with pytest.raises(AlreadyRegistered):
                register_for_tournament(user, paid_tournament.pk, "PLAYER-1")

        user.refresh_from_db()
        paid_tournament.refresh_from_db()
        assert user.balance == Decimal("200.00")
        assert paid_tournament.registered_slots == 1
        assert Transaction.objects.filter(user=user).count() == 1

    def test_already_registered(self, free_tournament, default_user):
        register_for_tournament(default_user, free_tournament.pk, "PLAYER-1")
        with pytest.raises(AlreadyRegistered):
            register_for_tournament(default_user, free_tournament.pk, "PLAYER-1")

    @pytest.mark.parametrize("game_id", ["", "  ", "ab", None])
    def test_game_id_is_validated(self, free_tournament, default_user, game_id):
        with pytest.raises(InvalidInput):
            register_for_tournament(default_user, free_tournament.pk, game_id)

    def test_unknown_tournament(self, default_user):
        with pytest.raises(NotFound):
            register_for_tournament(default_user, 424242, "PLAYER-1")

    def test_started_tournament_is_closed(self, free_tournament, default_user):
        _start(free_tournament)
        with pytest.raises(RegistrationClosed):
            register_for_tournament(default_user, free_tournament.pk, "PLAYER-1")


@pytest.mark.django_db
class TestUnregisterFromTournament:
    def test_unregister_releases_slot_without_refund(self, paid_tournament, user_factory):
        user = user_factory(balance=100)
        register_for_tournament(user, paid_tournament.pk, "PLAYER-1")

        unregister_from_tournament(user, paid_tournament.pk)

        user.refresh_from_db()
        paid_tournament.refresh_from_db()
        assert paid_tournament.registered_slots == 0
        assert user.balance == Decimal("0.00")
        assert not Registration.objects.exists()
        assert not user.registered_tournaments.exists()

    def test_unregister_refunds_when_configured(self, settings, paid_tournament, user_factory):
        settings.TOURNAMENT_REFUND_ON_UNREGISTER = True
        user = user_factory(balance=100)
        register_for_tournament(user, paid_tournament.pk, "PLAYER-1")

        unregister_from_tournament(user, paid_tournament.pk)

        user.refresh_from_db()
        assert user.balance == Decimal("100.00")
        assert Transaction.objects.filter(
            user=user, type=Transaction.TransactionType.REFUND
        ).exists()

    def test_refund_is_credited_before_the_slot_is_released(
        self, settings, paid_tournament, user_factory
    ):
        """
        GIVEN refunds on unregister enabled
        WHEN a paid player unregisters
        THEN the wallet is credited before the tournament counter is touched,
        the same row order registration uses.
        """
        settings.TOURNAMENT_REFUND_ON_UNREGISTER = True
        user = user_factory(balance=100)
        register_for_tournament(user, paid_tournament.pk, "PLAYER-1")
        calls = []

        with patch(
            "tournaments.services.Ledger.credit",
            side_effect=lambda *args, **kwargs: calls.append("credit"),
        ), patch(
            "tournaments.services.release_slot",
            side_effect=lambda *args, **kwargs: calls.append("release_slot"),
        ):
            unregister_from_tournament(user, paid_tournament.pk)

        assert calls == ["credit", "release_slot"]

    def test_unregister_after_start_is_rejected(self, free_tournament, default_user):
        """
        GIVEN a registration on a tournament that has since started
        WHEN the player tries to unregister
        THEN TournamentStarted is raised and the registration remains.
        """
        register_for_tournament(default_user, free_tournament.pk, "PLAYER-1")
        _start(free_tournament)

        with pytest.raises(TournamentStarted):
            unregister_from_tournament(default_user, free_tournament.pk)

        assert Registration.objects.filter(user=default_user).exists()

    def test_unregister_without_registration(self, free_tournament, default_user):
        with pytest.raises(NotRegistered):
            unregister_from_tournament(default_user, free_tournament.pk)


@pytest.mark.django_db
class TestRegistrationReview:
    def test_confirm_queues_notification(
        self, free_tournament, default_user, django_capture_on_commit_callbacks
    ):
        registration = register_for_tournament(default_user, free_tournament.pk, "PLAYER-1")

        with patch("tournaments.services.queue_notification") as mock_queue:
            with django_capture_on_commit_callbacks(execute=True):
                updated = set_registration_status(
                    registration.pk, Registration.Status.CONFIRMED, "Welcome"
                )

        assert updated.status == Registration.Status.CONFIRMED
        assert updated.admin_note == "Welcome"
        mock_queue.assert_called_once()

    def test_reject_refunds_and_releases_slot(self, paid_tournament, user_factory):
        user = user_factory(balance=100)
        registration = register_for_tournament(user, paid_tournament.pk, "PLAYER-1")

        updated = set_registration_status(
            registration.pk, Registration.Status.REJECTED, "Wrong game id"
        )

        user.refresh_from_db()
        paid_tournament.refresh_from_db()
        assert updated.status == Registration.Status.REJECTED
        assert updated.payment_status == Registration.PaymentStatus.REFUNDED
        assert user.balance == Decimal("100.00")
        assert paid_tournament.registered_slots == 0
        assert not user.registered_tournaments.exists()

    def test_reviewed_registration_cannot_be_reviewed_again(
        self, free_tournament, default_user
    ):
        registration = register_for_tournament(default_user, free_tournament.pk, "PLAYER-1")
        set_registration_status(registration.pk, Registration.Status.CONFIRMED)

        with pytest.raises(ApplicationError) as exc_info:
            set_registration_status(registration.pk, Registration.Status.REJECTED)
        assert exc_info.value.status_code == 409

    def test_invalid_status(self, free_tournament, default_user):
        registration = register_for_tournament(default_user, free_tournament.pk, "PLAYER-1")
        with pytest.raises(InvalidInput):
            set_registration_status(registration.pk, "approved")


@pytest.mark.django_db
class TestCancelTournament:
    def test_cancel_refunds_paid_registrations(self, paid_tournament, user_factory, operator):
        players = [user_factory(balance=100) for _ in range(2)]
        for player in players:
            register_for_tournament(player, paid_tournament.pk, "PLAYER-1")

        tournament, refunded = cancel_tournament(paid_tournament.pk, cancelled_by=operator)

        assert tournament.status == Tournament.Status.CANCELLED
        assert refunded == 2
        for player in players:
            player.refresh_from_db()
            assert player.balance == Decimal("100.00")
        assert set(Registration.objects.values_list("status", "payment_status")) == {
            (Registration.Status.CANCELLED, Registration.PaymentStatus.REFUNDED)
        }

    def test_cancel_clears_registered_tournaments(self, paid_tournament, user_factory):
        player = user_factory(balance=100)
        register_for_tournament(player, paid_tournament.pk, "PLAYER-1")
        assert player.registered_tournaments.filter(pk=paid_tournament.pk).exists()

        cancel_tournament(paid_tournament.pk)

        assert not player.registered_tournaments.exists()

    def test_cannot_cancel_started_tournament(self, free_tournament):
        _start(free_tournament)
        with pytest.raises(TournamentNotUpcoming):
            cancel_tournament(free_tournament.pk)


@pytest.fixture
def running_paid_tournament(paid_tournament, user_factory):
    """A paid tournament with one registered player, already started."""
    player = user_factory(balance=100, email="player@example.com")
    register_for_tournament(player, paid_tournament.pk, "PLAYER-1")
    _start(paid_tournament)
    return paid_tournament, player


@pytest.mark.django_db
class TestSubmitResult:
    def test_submit_result_credits_prize_and_updates_stats(self, running_paid_tournament):
        """
        GIVEN an ongoing tournament with a 1000 pool and a per-kill rate of 10
        WHEN the player reports 5 kills and second place
        THEN they are credited 30% of the pool plus 50 and their stats grow.
        """
        tournament, player = running_paid_tournament

        registration = submit_result(player, tournament.pk, 5, 2, "https://cdn.example.com/proof.png")

        player.refresh_from_db()
        assert registration.money_earned == Decimal("350.00")
        assert registration.kills == 5
        assert registration.position == 2
        assert player.total_kills == 5
        assert player.wins == 1
        assert player.matches_played == 1
        assert player.balance == Decimal("350.00")
        assert player.money_won == Decimal("350.00")
        winning = Transaction.objects.get(user=player, type=Transaction.TransactionType.WINNING)
        assert winning.amount == Decimal("350.00")
        result = TournamentResult.objects.get(tournament=tournament, user=player)
        assert (result.kills, result.position, result.prize) == (5, 2, Decimal("350.00"))

    def test_outside_top_three_is_not_a_win(self, running_paid_tournament):
        tournament, player = running_paid_tournament

        submit_result(player, tournament.pk, 2, 7)

        player.refresh_from_db()
        assert player.wins == 0
        assert player.balance == Decimal("20.00")

    def test_zero_prize_records_no_transaction(self, free_tournament, default_user):
        register_for_tournament(default_user, free_tournament.pk, "PLAYER-1")
        _start(free_tournament)

        submit_result(default_user, free_tournament.pk, 0, 9)

        assert not Transaction.objects.exists()
        default_user.refresh_from_db()
        assert default_user.matches_played == 1

    def test_second_submission_is_rejected(self, running_paid_tournament):
        tournament, player = running_paid_tournament
        submit_result(player, tournament.pk, 1, 4)

        with pytest.raises(ResultAlreadySubmitted):
            submit_result(player, tournament.pk, 9, 1)

        player.refresh_from_db()
        assert player.total_kills == 1

    def test_submission_requires_ongoing_tournament(self, free_tournament, default_user):
        register_for_tournament(default_user, free_tournament.pk, "PLAYER-1")
        with pytest.raises(TournamentNotOngoing):
            submit_result(default_user, free_tournament.pk, 1, 1)

    def test_submission_requires_registration(self, free_tournament, default_user):
        _start(free_tournament)
        with pytest.raises(NotFound):
            submit_result(default_user, free_tournament.pk, 1, 1)

    @pytest.mark.parametrize("kills, position", [(-1, 1), (1, 0), ("many", 1)])
    def test_submission_validates_numbers(self, running_paid_tournament, kills, position):
        tournament, player = running_paid_tournament
        with pytest.raises(InvalidInput):
            submit_result(player, tournament.pk, kills, position)


@pytest.mark.django_db
class TestCorrectResult:
    def test_correction_credits_only_the_increase(self, running_paid_tournament):
        tournament, player = running_paid_tournament
        submit_result(player, tournament.pk, 5, 2)

        registration = correct_result(tournament.pk, player.pk, 5, 1)

        player.refresh_from_db()
        assert registration.money_earned == Decimal("550.00")
        assert player.balance == Decimal("550.00")
        assert player.total_kills == 5
        assert player.wins == 1
        assert player.matches_played == 1
        amounts = sorted(
            Transaction.objects.filter(
                user=player, type=Transaction.TransactionType.WINNING
            ).values_list("amount", flat=True)
        )
        assert amounts == [Decimal("200.00"), Decimal("350.00")]

    def test_downward_correction_is_not_clawed_back(self, running_paid_tournament):
        tournament, player = running_paid_tournament
        submit_result(player, tournament.pk, 5, 2)

        registration = correct_result(tournament.pk, player.pk, 0, 10)

        player.refresh_from_db()
        assert registration.money_earned == Decimal("350.00")
        assert player.balance == Decimal("350.00")
        assert player.total_kills == 0
        assert player.wins == 0

    def test_first_correction_counts_the_match(self, running_paid_tournament):
        tournament, player = running_paid_tournament

        correct_result(tournament.pk, player.pk, 3, 3)

        player.refresh_from_db()
        assert player.matches_played == 1
        assert player.wins == 1
        assert player.total_kills == 3
        assert player.balance == Decimal("230.00")

    def test_correction_allowed_after_completion(self, running_paid_tournament):
        tournament, player = running_paid_tournament
        Tournament.objects.filter(pk=tournament.pk).update(status=Tournament.Status.COMPLETED)

        registration = correct_result(tournament.pk, player.pk, 1, 5)
        assert registration.kills == 1

    @pytest.mark.parametrize(
        "registration_status", [Registration.Status.REJECTED, Registration.Status.CANCELLED]
    )
    def test_withdrawn_registration_is_not_paid(
        self, paid_tournament, user_factory, registration_status
    ):
        """
        GIVEN a paid registration that was rejected or cancelled
        WHEN the tournament starts and the operator records a winning result for it
        THEN NotRegistered is raised and no prize is credited.
        """
        player = user_factory(balance=100)
        registration = register_for_tournament(player, paid_tournament.pk, "PLAYER-1")
        if registration_status == Registration.Status.REJECTED:
            set_registration_status(registration.pk, registration_status)
        else:
            Registration.objects.filter(pk=registration.pk).update(status=registration_status)
        _start(paid_tournament)

        with pytest.raises(NotRegistered):
            correct_result(paid_tournament.pk, player.pk, 5, 1)

        assert not Transaction.objects.filter(
            user=player, type=Transaction.TransactionType.WINNING
        ).exists()
        assert not TournamentResult.objects.exists()

    def test_correction_rejected_before_start(self, paid_tournament, default_user):
        with pytest.raises(TournamentNotOngoing):
            correct_result(paid_tournament.pk, default_user.pk, 1, 1)


@pytest.mark.django_db
class TestBulkImportResults:
    def test_rows_fail_independently(self, running_paid_tournament, user_factory):
        """
        GIVEN a batch with one good row and three broken ones
        WHEN the batch is imported
        THEN the good row is applied and every broken row is reported.
        """
        tournament, player = running_paid_tournament
        outsider = user_factory(email="outsider@example.com")
        rows = [
            {"email": "player@example.com", "kills": "4", "position": "1", "screenshotProof": ""},
            {"email": "ghost@example.com", "kills": "1", "position": "2"},
            {"email": outsider.email, "kills": "1", "position": "3"},
            {"email": "player@example.com", "kills": "many", "position": "1"},
        ]

        summary = bulk_import_results(tournament.pk, rows)

        assert summary["updated_count"] == 1
        assert summary["errors"] == [
            "User not found: ghost@example.com",
            "Registration not found for: outsider@example.com",
            "Error processing player@example.com: Kills must be a whole number.",
        ]
        player.refresh_from_db()
        assert player.total_kills == 4
        assert TournamentResult.objects.get(user=player).is_winner

    def test_bulk_import_requires_started_tournament(self, paid_tournament):
        with pytest.raises(TournamentNotOngoing):
            bulk_import_results(paid_tournament.pk, [])

    def test_rejected_registration_row_is_reported(self, paid_tournament, user_factory):
        player = user_factory(balance=100, email="rejected@example.com")
        registration = register_for_tournament(player, paid_tournament.pk, "PLAYER-1")
        set_registration_status(registration.pk, Registration.Status.REJECTED)
        _start(paid_tournament)

        summary = bulk_import_results(
            paid_tournament.pk, [{"email": "rejected@example.com", "kills": 5, "position": 1}]
        )

        assert summary == {
            "updated_count": 0,
            "errors": ["Error processing rejected@example.com: Registration is rejected."],
        }
        player.refresh_from_db()
        assert player.balance == Decimal("100.00")

    def test_blank_email_is_reported(self, running_paid_tournament):
        tournament, _ = running_paid_tournament

        summary = bulk_import_results(tournament.pk, [{"email": "", "kills": 1, "position": 1}])

        assert summary == {"updated_count": 0, "errors": ["User not found: "]}
