import logging
import time
from decimal import Decimal

import shortuuid
from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone
from rest_framework import status

from common.exceptions import (
    AlreadyRegistered,
    ApplicationError,
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
from notifications.services import queue_notification
from notifications.tasks import send_registration_confirmed_email
from users.models import User
from wallet.models import Transaction
from wallet.services import Ledger

from .models import Game, Registration, Tournament, TournamentResult

logger = logging.getLogger(__name__)

_id_alphabet = shortuuid.ShortUUID(alphabet="0123456789abcdefghijklmnopqrstuvwxyz")

EDITABLE_FIELDS = (
    "title",
    "game",
    "image",
    "map",
    "mode",
    "type",
    "entry_fee",
    "per_kill",
    "winning_prize",
    "total_slots",
    "date_time",
    "room_id",
    "room_password",
    "description",
    "rules",
    "is_active",
)


def generate_tournament_id() -> str:
    return f"T_{int(time.time() * 1000)}_{_id_alphabet.random(length=6)}"


def get_tournament(tournament_pk) -> Tournament:
    try:
        return Tournament.objects.get(pk=tournament_pk)
    except (Tournament.DoesNotExist, ValueError, TypeError):
        raise NotFound("Tournament not found.")


def _parse_non_negative_int(value, field, minimum=0):
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"{field} must be a whole number.")
    if isinstance(value, float) and value != number:
        raise InvalidInput(f"{field} must be a whole number.")
    if number < minimum:
        raise InvalidInput(f"{field} must be at least {minimum}.")
    return number


def _validate_tournament_fields(data):
    if "mode" in data and data["mode"] not in Tournament.Mode.values:
        raise InvalidInput(f"Invalid mode: {data['mode']!r}.")
    if "type" in data and data["type"] not in Tournament.Type.values:
        raise InvalidInput(f"Invalid type: {data['type']!r}.")
    if "total_slots" in data:
        data["total_slots"] = _parse_non_negative_int(
            data["total_slots"], "Total slots", minimum=1
        )
    for field in ("entry_fee", "per_kill", "winning_prize"):
        if field in data and data[field] is not None:
            data[field] = Decimal(str(data[field]))
            if data[field] < 0:
                raise InvalidInput(f"{field.replace('_', ' ').capitalize()} cannot be negative.")
    if "game" in data and not isinstance(data["game"], Game):
        try:
            data["game"] = Game.objects.get(pk=data["game"])
        except (Game.DoesNotExist, ValueError, TypeError):
            raise NotFound("Game not found.")
    return data


# --- Tournament registry ---


def create_tournament(created_by=None, **data) -> Tournament:
    """
    Creates an upcoming tournament with no consumed slots.

    When ``winning_prize`` is omitted the pool defaults to
    ``entry_fee * total_slots * TOURNAMENT_DEFAULT_PRIZE_RATIO``.
    """
    unknown = set(data) - set(EDITABLE_FIELDS)
    if unknown:
        raise InvalidInput(f"Unexpected fields: {', '.join(sorted(unknown))}.")
    for field in ("title", "game", "map", "mode", "total_slots", "date_time"):
        if data.get(field) in (None, ""):
            raise InvalidInput(f"{field} is required.")

    data = _validate_tournament_fields(dict(data))
    game = data["game"]
    if not game.is_active:
        raise InvalidInput("Game is not active.")

    data.setdefault("type", Tournament.Type.FREE)
    entry_fee = data.get("entry_fee") or Decimal("0.00")
    if data["type"] == Tournament.Type.FREE and entry_fee > 0:
        raise InvalidInput("Free tournaments cannot charge an entry fee.")
    if data.get("winning_prize") is None:
        ratio = Decimal(str(settings.TOURNAMENT_DEFAULT_PRIZE_RATIO))
        data["winning_prize"] = (entry_fee * data["total_slots"] * ratio).quantize(
            Decimal("0.01")
        )

    with transaction.atomic():
        tournament = Tournament.objects.create(
            tournament_id=generate_tournament_id(),
            game_name=game.name,
            status=Tournament.Status.UPCOMING,
            registered_slots=0,
            created_by=created_by,
            **data,
        )
        Game.objects.filter(pk=game.pk).update(
            total_tournaments=F("total_tournaments") + 1
        )

    logger.info(
        f"Tournament {tournament.tournament_id} created.",
        extra={"tournament_id": tournament.pk, "created_by": getattr(created_by, "pk", None)},
    )
    return tournament


def update_tournament(tournament_pk, **changes) -> Tournament:
    if "status" in changes:
        raise InvalidInput("Status cannot be edited directly.")
    unknown = set(changes) - set(EDITABLE_FIELDS)
    if unknown:
        raise InvalidInput(f"Unexpected fields: {', '.join(sorted(unknown))}.")

    tournament = get_tournament(tournament_pk)
    changes = _validate_tournament_fields(dict(changes))
    if "game" in changes:
        changes["game_name"] = changes["game"].name

    queryset = Tournament.objects.filter(pk=tournament.pk)
    if "total_slots" in changes:
        queryset = queryset.filter(registered_slots__lte=changes["total_slots"])
    if not queryset.update(updated_at=timezone.now(), **changes):
        raise InvalidInput("Total slots cannot be less than registered slots.")

    tournament.refresh_from_db()
    logger.info(
        f"Tournament {tournament.tournament_id} updated: {', '.join(sorted(changes))}."
    )
    return tournament


def cancel_tournament(tournament_pk, cancelled_by=None):
    """
    Cancels an upcoming tournament and refunds every paid registration.
    """
    tournament = get_tournament(tournament_pk)
    refunded = 0

    with transaction.atomic():
        updated = Tournament.objects.filter(
            pk=tournament.pk, status=Tournament.Status.UPCOMING
        ).update(status=Tournament.Status.CANCELLED, updated_at=timezone.now())
        if not updated:
            raise TournamentNotUpcoming("Only upcoming tournaments can be cancelled.")

        registrations = tournament.registrations.filter(
            status__in=(Registration.Status.PENDING, Registration.Status.CONFIRMED)
        ).select_related("user")
        for registration in registrations:
            if _is_refundable(registration):
                Ledger.credit(
                    registration.user_id,
                    registration.entry_fee,
                    Transaction.TransactionType.REFUND,
                    tournament=tournament,
                    description=f"Refund for cancelled tournament {tournament.title}",
                )
                registration.payment_status = Registration.PaymentStatus.REFUNDED
                refunded += 1
            registration.status = Registration.Status.CANCELLED
            registration.save(update_fields=["status", "payment_status", "updated_at"])
            registration.user.registered_tournaments.remove(tournament)

    tournament.refresh_from_db()
    logger.info(
        f"Tournament {tournament.tournament_id} cancelled, {refunded} entry fees refunded.",
        extra={"cancelled_by": getattr(cancelled_by, "pk", None)},
    )
    return tournament, refunded


def admit_slot(tournament_pk) -> Tournament:
    """
    Consumes one slot. The full/closed check and the increment are a single
    conditional UPDATE.
    """
    updated = Tournament.objects.filter(
        pk=tournament_pk,
        status=Tournament.Status.UPCOMING,
        is_active=True,
        registered_slots__lt=F("total_slots"),
    ).update(registered_slots=F("registered_slots") + 1, updated_at=timezone.now())

    tournament = get_tournament(tournament_pk)
    if not updated:
        if tournament.status != Tournament.Status.UPCOMING or not tournament.is_active:
            raise RegistrationClosed()
        raise TournamentFull()
    return tournament


def release_slot(tournament_pk) -> Tournament:
    updated = Tournament.objects.filter(
        pk=tournament_pk,
        status=Tournament.Status.UPCOMING,
        registered_slots__gt=0,
    ).update(registered_slots=F("registered_slots") - 1, updated_at=timezone.now())

    tournament = get_tournament(tournament_pk)
    if not updated and tournament.status != Tournament.Status.UPCOMING:
        raise TournamentNotUpcoming(
            "Registrations cannot be cancelled once a tournament has started."
        )
    return tournament


def advance_status(now=None) -> dict:
    """
    Time-driven sweep. Moves upcoming tournaments whose start time has passed
    to ongoing, then ongoing ones past the match window to completed.
    Writes nothing but ``status``.
    """
    now = now or timezone.now()
    started = Tournament.objects.due_to_start(now).update(
        status=Tournament.Status.ONGOING
    )
    completed = Tournament.objects.due_to_complete(
        now, settings.TOURNAMENT_MATCH_DURATION_HOURS
    ).update(status=Tournament.Status.COMPLETED)
    return {"started": started, "completed": completed}


def record_result(tournament_pk, user_id, kills, position, prize, is_winner=False):
    result, _ = TournamentResult.objects.update_or_create(
        tournament_id=tournament_pk,
        user_id=user_id,
        defaults={
            "kills": kills,
            "position": position,
            "prize": prize,
            "is_winner": is_winner,
        },
    )
    return result


def rank_results(tournament_pk):
    """
    Orders results by kills (desc), then position (asc), then user id, and
    flags the first three as winners. Re-running on unchanged results gives
    the same winner set.
    """
    tournament = get_tournament(tournament_pk)
    ordered = list(
        TournamentResult.objects.filter(tournament=tournament)
        .select_related("user")
        .order_by("-kills", "position", "user_id")
    )
    winners = ordered[:3]
    winner_ids = [result.pk for result in winners]

    with transaction.atomic():
        TournamentResult.objects.filter(tournament=tournament).exclude(
            pk__in=winner_ids
        ).update(is_winner=False)
        TournamentResult.objects.filter(pk__in=winner_ids).update(is_winner=True)

    for result in winners:
        result.is_winner = True
    return winners


# --- Registration ---


def _registration_exists(tournament, user) -> bool:
    return Registration.objects.filter(tournament=tournament, user=user).exists()


def _is_refundable(registration) -> bool:
    return (
        registration.entry_fee > 0
        and registration.payment_method == Registration.PaymentMethod.WALLET
        and registration.payment_status == Registration.PaymentStatus.COMPLETED
    )


def register_for_tournament(user, tournament_pk, game_id) -> Registration:
    """
    Registers ``user`` for a tournament, charging the entry fee when the
    tournament is paid.

    Debit, slot admission, the registration insert and the user's tournament
    set are written in one atomic block, so a failure at any step (including
    losing the race for the last slot) leaves the balance untouched.
    """
    game_id = (game_id or "").strip()
    if len(game_id) < 3:
        raise InvalidInput("Game ID must be at least 3 characters.")

    tournament = get_tournament(tournament_pk)
    if tournament.status != Tournament.Status.UPCOMING or not tournament.is_active:
        raise RegistrationClosed()
    if tournament.is_full:
        raise TournamentFull()
    if _registration_exists(tournament, user):
        raise AlreadyRegistered()

    paid = tournament.is_paid
    entry_fee = tournament.entry_fee if paid else Decimal("0.00")
    per_kill = Decimal("0.00")
    if paid:
        per_kill = (entry_fee * Decimal(str(settings.TOURNAMENT_PER_KILL_RATIO))).quantize(
            Decimal("0.01")
        )

    try:
        with transaction.atomic():
            txn = None
            if paid:
                txn = Ledger.debit(
                    user.pk,
                    entry_fee,
                    Transaction.TransactionType.ENTRY_FEE,
                    tournament=tournament,
                    description=f"Entry fee for {tournament.title}",
                )

            tournament = admit_slot(tournament.pk)

            try:
                with transaction.atomic():
                    registration = Registration.objects.create(
                        tournament=tournament,
                        user=user,
                        user_name=user.display_name,
                        game_id=game_id,
                        entry_fee=entry_fee,
                        winning_prize=tournament.winning_prize,
                        per_kill=per_kill,
                        mode=tournament.mode,
                        start_time=tournament.date_time,
                        status=Registration.Status.PENDING,
                        payment_status=Registration.PaymentStatus.COMPLETED,
                        payment_method=(
                            Registration.PaymentMethod.WALLET
                            if paid
                            else Registration.PaymentMethod.FREE
                        ),
                        transaction_reference=txn.reference if txn else "",
                    )
            except IntegrityError:
                raise AlreadyRegistered()

            user.registered_tournaments.add(tournament)
    except (TournamentFull, RegistrationClosed, AlreadyRegistered) as exc:
        if paid:
            logger.warning(
                f"Registration of user {user.pk} for tournament {tournament.pk} failed "
                f"after the entry fee debit; debit rolled back. Reason: {exc.message}"
            )
        raise

    logger.info(
        f"User {user.pk} registered for tournament {tournament.tournament_id}.",
        extra={"tournament_id": tournament.pk, "paid": paid},
    )
    return registration


def unregister_from_tournament(user, tournament_pk):
    tournament = get_tournament(tournament_pk)
    registration = Registration.objects.filter(tournament=tournament, user=user).first()
    if registration is None:
        raise NotRegistered()
    if tournament.status != Tournament.Status.UPCOMING:
        raise TournamentStarted()

    holds_slot = registration.status in (
        Registration.Status.PENDING,
        Registration.Status.CONFIRMED,
    )
    refund = settings.TOURNAMENT_REFUND_ON_UNREGISTER and _is_refundable(registration)

    # The user row is locked before the tournament row, as in registration.
    with transaction.atomic():
        if refund:
            Ledger.credit(
                user.pk,
                registration.entry_fee,
                Transaction.TransactionType.REFUND,
                tournament=tournament,
                description=f"Refund for leaving {tournament.title}",
            )
        deleted, _ = Registration.objects.filter(pk=registration.pk).delete()
        if not deleted:
            raise NotRegistered()
        if holds_slot:
            try:
                release_slot(tournament.pk)
            except TournamentNotUpcoming:
                raise TournamentStarted()
        user.registered_tournaments.remove(tournament)

    logger.info(
        f"User {user.pk} unregistered from tournament {tournament.tournament_id}.",
        extra={"tournament_id": tournament.pk, "refunded": refund},
    )


def set_registration_status(registration_pk, new_status, admin_note="") -> Registration:
    """
    Operator review of a pending registration. Rejection gives the slot back
    while the tournament is upcoming and refunds a paid entry fee.
    """
    if new_status not in (Registration.Status.CONFIRMED, Registration.Status.REJECTED):
        raise InvalidInput(f"Invalid registration status: {new_status!r}.")

    try:
        registration = Registration.objects.select_related("tournament", "user").get(
            pk=registration_pk
        )
    except (Registration.DoesNotExist, ValueError, TypeError):
        raise NotFound("Registration not found.")

    with transaction.atomic():
        updated = Registration.objects.filter(
            pk=registration.pk, status=Registration.Status.PENDING
        ).update(status=new_status, admin_note=admin_note, updated_at=timezone.now())
        if not updated:
            raise ApplicationError(
                f"Registration is already {registration.status}.",
                status_code=status.HTTP_409_CONFLICT,
            )

        if new_status == Registration.Status.REJECTED:
            tournament = registration.tournament
            if tournament.status == Tournament.Status.UPCOMING:
                release_slot(tournament.pk)
            if _is_refundable(registration):
                Ledger.credit(
                    registration.user_id,
                    registration.entry_fee,
                    Transaction.TransactionType.REFUND,
                    tournament=tournament,
                    description=f"Refund for rejected registration in {tournament.title}",
                )
                Registration.objects.filter(pk=registration.pk).update(
                    payment_status=Registration.PaymentStatus.REFUNDED
                )
            registration.user.registered_tournaments.remove(tournament)
        else:
            transaction.on_commit(
                lambda: queue_notification(
                    send_registration_confirmed_email, registration.pk
                )
            )

    registration.refresh_from_db()
    logger.info(f"Registration {registration.pk} marked {new_status}.")
    return registration


# --- Results ---


def compute_prize(tournament, registration, kills, position) -> Decimal:
    """
    Base allocation from the prize split for finishing positions plus the
    per-kill bonus frozen on the registration.
    """
    split = settings.TOURNAMENT_PRIZE_SPLIT
    base = Decimal("0")
    if 1 <= position <= len(split):
        base = tournament.winning_prize * Decimal(split[position - 1]) / Decimal(100)
    prize = base + registration.per_kill * kills
    return prize.quantize(Decimal("0.01"))


def _credit_winnings(tournament, registration, amount):
    if amount > 0:
        Ledger.credit(
            registration.user_id,
            amount,
            Transaction.TransactionType.WINNING,
            tournament=tournament,
            description=f"Winnings from {tournament.title}",
        )


def submit_result(user, tournament_pk, kills, position, proof="") -> Registration:
    kills = _parse_non_negative_int(kills, "Kills")
    position = _parse_non_negative_int(position, "Position", minimum=1)

    tournament = get_tournament(tournament_pk)
    registration = Registration.objects.filter(tournament=tournament, user=user).first()
    if registration is None:
        raise NotFound("Registration not found.")
    if tournament.status != Tournament.Status.ONGOING:
        raise TournamentNotOngoing()
    if registration.status in (Registration.Status.REJECTED, Registration.Status.CANCELLED):
        raise NotRegistered(f"Registration is {registration.status}.")
    if registration.has_result:
        raise ResultAlreadySubmitted()

    prize = compute_prize(tournament, registration, kills, position)
    is_winner = position <= len(settings.TOURNAMENT_PRIZE_SPLIT)

    with transaction.atomic():
        updated = Registration.objects.filter(
            pk=registration.pk, result_submitted_at__isnull=True
        ).update(
            kills=kills,
            position=position,
            result_proof=proof or "",
            money_earned=prize,
            result_submitted_at=timezone.now(),
            updated_at=timezone.now(),
        )
        if not updated:
            raise ResultAlreadySubmitted()

        record_result(tournament.pk, user.pk, kills, position, prize, is_winner)
        _credit_winnings(tournament, registration, prize)
        User.objects.filter(pk=user.pk).update(
            total_kills=F("total_kills") + kills,
            wins=F("wins") + (1 if position <= 3 else 0),
            matches_played=F("matches_played") + 1,
        )

    registration.refresh_from_db()
    logger.info(
        f"Result submitted for user {user.pk} in tournament {tournament.tournament_id}: "
        f"{kills} kills, position {position}, prize {prize}.",
    )
    return registration


def correct_result(tournament_pk, user_id, kills, position, proof=None) -> Registration:
    """
    Operator correction of a single result, also used by the bulk import.

    Only the positive difference between the recomputed prize and what the
    player already earned is credited; a lower prize is never clawed back.
    """
    kills = _parse_non_negative_int(kills, "Kills")
    position = _parse_non_negative_int(position, "Position", minimum=1)

    tournament = get_tournament(tournament_pk)
    if tournament.status not in (Tournament.Status.ONGOING, Tournament.Status.COMPLETED):
        raise TournamentNotOngoing("Results can only be recorded once the tournament has started.")

    with transaction.atomic():
        registration = (
            Registration.objects.select_for_update()
            .filter(tournament=tournament, user_id=user_id)
            .first()
        )
        if registration is None:
            raise NotFound("Registration not found.")
        if registration.status in (Registration.Status.REJECTED, Registration.Status.CANCELLED):
            raise NotRegistered(f"Registration is {registration.status}.")

        prize = compute_prize(tournament, registration, kills, position)
        delta = prize - registration.money_earned
        first_result = not registration.has_result

        if first_result:
            stats = {
                "total_kills": F("total_kills") + kills,
                "wins": F("wins") + (1 if position <= 3 else 0),
                "matches_played": F("matches_played") + 1,
            }
        else:
            was_win = registration.position is not None and registration.position <= 3
            stats = {
                "total_kills": F("total_kills") + (kills - registration.kills),
                "wins": F("wins") + (int(position <= 3) - int(was_win)),
            }
        User.objects.filter(pk=user_id).update(**stats)

        registration.kills = kills
        registration.position = position
        if proof is not None:
            registration.result_proof = proof
        if delta > 0:
            registration.money_earned = prize
        registration.result_submitted_at = registration.result_submitted_at or timezone.now()
        registration.save(
            update_fields=[
                "kills",
                "position",
                "result_proof",
                "money_earned",
                "result_submitted_at",
                "updated_at",
            ]
        )

        record_result(
            tournament.pk,
            user_id,
            kills,
            position,
            registration.money_earned,
            position <= len(settings.TOURNAMENT_PRIZE_SPLIT),
        )
        if delta > 0:
            _credit_winnings(tournament, registration, delta)
        elif delta < 0:
            logger.warning(
                f"Corrected prize for user {user_id} in tournament {tournament.tournament_id} "
                f"is {-delta} below what was already paid; keeping the paid amount."
            )

    logger.info(
        f"Result corrected for user {user_id} in tournament {tournament.tournament_id}: "
        f"{kills} kills, position {position}.",
    )
    return registration


def bulk_import_results(tournament_pk, rows) -> dict:
    """
    Applies ``{email, kills, position, screenshotProof}`` rows one by one.
    A failing row is reported in ``errors`` and does not abort the batch.
    """
    tournament = get_tournament(tournament_pk)
    if tournament.status not in (Tournament.Status.ONGOING, Tournament.Status.COMPLETED):
        raise TournamentNotOngoing("Results can only be recorded once the tournament has started.")

    updated_count = 0
    errors = []
    for row in rows:
        email = (row.get("email") or "").strip()
        user = User.objects.filter(email__iexact=email).first() if email else None
        if user is None:
            errors.append(f"User not found: {email}")
            continue
        if not _registration_exists(tournament, user):
            errors.append(f"Registration not found for: {email}")
            continue

        try:
            with transaction.atomic():
                correct_result(
                    tournament.pk,
                    user.pk,
                    row.get("kills"),
                    row.get("position"),
                    row.get("screenshotProof") or None,
                )
        except ApplicationError as exc:
            errors.append(f"Error processing {email}: {exc.message}")
            continue
        updated_count += 1

    if updated_count:
        rank_results(tournament.pk)

    logger.info(
        f"Bulk import for tournament {tournament.tournament_id}: "
        f"{updated_count} updated, {len(errors)} errors."
    )
    return {"updated_count": updated_count, "errors": errors}
