import logging
import time
from decimal import Decimal, InvalidOperation

import shortuuid
from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone
from rest_framework import status

from common.exceptions import (
    ApplicationError,
    InsufficientFunds,
    InvalidInput,
    NotFound,
    TransactionFinalized,
    UserNotFound,
)
from notifications.services import queue_notification
from notifications.tasks import send_withdrawal_processed_email
from users.models import User

from .models import Transaction, WithdrawalRequest

logger = logging.getLogger(__name__)

_reference_alphabet = shortuuid.ShortUUID(alphabet="0123456789abcdefghijklmnopqrstuvwxyz")


def to_amount(value) -> Decimal:
    """Coerce ``value`` into a positive two-place Decimal or raise InvalidInput."""
    try:
        amount = Decimal(str(value)).quantize(Decimal("0.01"))
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidInput(f"Invalid amount: {value!r}.")
    if amount <= 0:
        raise InvalidInput("Amount must be positive.")
    return amount


class Ledger:
    """
    All balance movement goes through here. A balance change and its
    Transaction row are always written inside one atomic block.
    """

    DEBIT_TYPES = (
        Transaction.TransactionType.ENTRY_FEE,
        Transaction.TransactionType.WITHDRAWAL,
    )
    CREDIT_TYPES = (
        Transaction.TransactionType.DEPOSIT,
        Transaction.TransactionType.WINNING,
        Transaction.TransactionType.REFUND,
        Transaction.TransactionType.BONUS,
    )

    @staticmethod
    def generate_reference() -> str:
        timestamp = int(time.time() * 1000)
        return f"TXN_{timestamp}_{_reference_alphabet.random(length=6)}".upper()

    @staticmethod
    def debit(
        user_id,
        amount,
        reason,
        tournament=None,
        description="",
        status=Transaction.Status.COMPLETED,
        payment_method=Transaction.PaymentMethod.SYSTEM,
    ) -> Transaction:
        if reason not in Ledger.DEBIT_TYPES:
            raise InvalidInput(f"'{reason}' is not a debit transaction type.")
        amount = to_amount(amount)

        with transaction.atomic():
            updated = User.objects.filter(pk=user_id, balance__gte=amount).update(
                balance=F("balance") - amount
            )
            if not updated:
                if not User.objects.filter(pk=user_id).exists():
                    raise UserNotFound()
                raise InsufficientFunds(
                    f"Insufficient balance. Required: {amount}."
                )
            txn = Ledger._append(
                user_id,
                amount,
                reason,
                status=status,
                tournament=tournament,
                description=description,
                payment_method=payment_method,
            )

        logger.info(
            f"Debited {amount} from user {user_id} ({reason}).",
            extra={"reference": txn.reference, "tournament_id": getattr(tournament, "pk", None)},
        )
        return txn

    @staticmethod
    def credit(
        user_id,
        amount,
        reason,
        tournament=None,
        description="",
        payment_method=Transaction.PaymentMethod.SYSTEM,
        external_reference=None,
        gateway_response=None,
    ) -> Transaction:
        if reason not in Ledger.CREDIT_TYPES:
            raise InvalidInput(f"'{reason}' is not a credit transaction type.")
        amount = to_amount(amount)

        changes = {"balance": F("balance") + amount}
        if reason == Transaction.TransactionType.WINNING:
            changes["money_won"] = F("money_won") + amount
        elif reason == Transaction.TransactionType.DEPOSIT:
            changes["deposited_amount"] = F("deposited_amount") + amount

        with transaction.atomic():
            if not User.objects.filter(pk=user_id).update(**changes):
                raise UserNotFound()
            txn = Ledger._append(
                user_id,
                amount,
                reason,
                status=Transaction.Status.COMPLETED,
                tournament=tournament,
                description=description,
                payment_method=payment_method,
                external_reference=external_reference,
                gateway_response=gateway_response,
            )

        logger.info(
            f"Credited {amount} to user {user_id} ({reason}).",
            extra={"reference": txn.reference, "tournament_id": getattr(tournament, "pk", None)},
        )
        return txn

    @staticmethod
    def _append(user_id, amount, txn_type, status, tournament=None, description="", **fields):
        user_name = (
            User.objects.filter(pk=user_id).values_list("username", flat=True).first() or ""
        )
        attempts = settings.LEDGER_REFERENCE_ATTEMPTS
        for attempt in range(1, attempts + 1):
            reference = Ledger.generate_reference()
            try:
                with transaction.atomic():
                    return Transaction.objects.create(
                        user_id=user_id,
                        user_name=user_name,
                        type=txn_type,
                        amount=amount,
                        status=status,
                        tournament=tournament,
                        description=description or Transaction.TransactionType(txn_type).label,
                        reference=reference,
                        processed_at=timezone.now() if status in Transaction.TERMINAL_STATUSES else None,
                        **fields,
                    )
            except IntegrityError:
                if Transaction.objects.filter(reference=reference).exists() and attempt < attempts:
                    logger.warning(f"Ledger reference {reference} collided, retrying.")
                    continue
                raise

    @staticmethod
    def set_status(txn: Transaction, new_status, processed_by=None, reason="", external_reference=None):
        """
        Moves a pending transaction to a terminal status. Terminal statuses
        never revert.

        A pending debit has already left the balance, so failing or
        cancelling one credits the amount back as a refund in the same
        atomic block.
        """
        if new_status not in Transaction.TERMINAL_STATUSES:
            raise InvalidInput(f"Invalid status: {new_status!r}.")

        changes = {
            "status": new_status,
            "processed_at": timezone.now(),
            "updated_at": timezone.now(),
        }
        if new_status == Transaction.Status.COMPLETED:
            changes["processed_by"] = processed_by
        else:
            changes["failure_reason"] = reason or f"Transaction {new_status}"
        if reason:
            changes["admin_notes"] = reason
        if external_reference:
            changes["external_reference"] = external_reference

        with transaction.atomic():
            updated = Transaction.objects.filter(
                pk=txn.pk, status=Transaction.Status.PENDING
            ).update(**changes)
            if not updated:
                txn.refresh_from_db()
                raise TransactionFinalized(
                    f"Transaction {txn.reference} is already {txn.status}."
                )
            txn.refresh_from_db()
            if new_status != Transaction.Status.COMPLETED and txn.type in Ledger.DEBIT_TYPES:
                Ledger.credit(
                    txn.user_id,
                    txn.amount,
                    Transaction.TransactionType.REFUND,
                    tournament=txn.tournament,
                    description=f"Reversal of {txn.reference}",
                )
        logger.info(f"Transaction {txn.reference} marked {new_status}.")
        return txn

    @staticmethod
    def record_gateway_deposit(user_id, amount, external_reference, gateway_response=None):
        """
        Payment-gateway callback. Idempotent on ``external_reference``: a
        repeated callback returns the transaction it already produced.
        """
        if not external_reference:
            raise InvalidInput("External reference is required.")

        existing = Transaction.objects.filter(external_reference=external_reference).first()
        if existing:
            logger.warning(
                f"Duplicate gateway callback for {external_reference}, ignored."
            )
            return existing, False

        try:
            txn = Ledger.credit(
                user_id,
                amount,
                Transaction.TransactionType.DEPOSIT,
                description="Wallet deposit",
                payment_method=Transaction.PaymentMethod.RAZORPAY,
                external_reference=external_reference,
                gateway_response=gateway_response,
            )
        except IntegrityError:
            # A concurrent callback with the same reference won the insert.
            return Transaction.objects.get(external_reference=external_reference), False
        return txn, True


class WithdrawalService:
    """
    Back-office withdrawal flow. The amount is held (debited as a pending
    withdrawal) when the request is made, released by a refund on
    rejection, and the pending transaction completes when processed.
    """

    @staticmethod
    def get_request(withdrawal_id) -> WithdrawalRequest:
        try:
            return WithdrawalRequest.objects.select_related("transaction").get(pk=withdrawal_id)
        except WithdrawalRequest.DoesNotExist:
            raise NotFound("Withdrawal request not found.")

    @staticmethod
    def create_withdrawal_request(
        user,
        amount,
        account_number="",
        ifsc_code="",
        account_holder_name="",
        bank_name="",
        upi_id="",
    ) -> WithdrawalRequest:
        amount = to_amount(amount)
        if amount < settings.MINIMUM_WITHDRAWAL_AMOUNT:
            raise InvalidInput(
                f"Minimum withdrawal amount is {settings.MINIMUM_WITHDRAWAL_AMOUNT}."
            )
        if not account_number and not upi_id:
            raise InvalidInput("Either bank details or UPI ID is required.")

        with transaction.atomic():
            txn = Ledger.debit(
                user.pk,
                amount,
                Transaction.TransactionType.WITHDRAWAL,
                description="Withdrawal request",
                status=Transaction.Status.PENDING,
                payment_method=Transaction.PaymentMethod.MANUAL,
            )
            return WithdrawalRequest.objects.create(
                user=user,
                user_name=user.display_name,
                amount=amount,
                account_number=account_number,
                ifsc_code=ifsc_code,
                account_holder_name=account_holder_name,
                bank_name=bank_name,
                upi_id=upi_id,
                transaction=txn,
            )

    @staticmethod
    def _transition(withdrawal, expected, **changes) -> WithdrawalRequest:
        updated = WithdrawalRequest.objects.filter(
            pk=withdrawal.pk, status=expected
        ).update(updated_at=timezone.now(), **changes)
        if not updated:
            withdrawal.refresh_from_db()
            raise ApplicationError(
                f"Withdrawal request is {withdrawal.status}, expected {expected}.",
                status_code=status.HTTP_409_CONFLICT,
            )
        withdrawal.refresh_from_db()
        return withdrawal

    @staticmethod
    def approve(withdrawal, admin_user, notes="") -> WithdrawalRequest:
        withdrawal = WithdrawalService._transition(
            withdrawal,
            WithdrawalRequest.Status.PENDING,
            status=WithdrawalRequest.Status.APPROVED,
            processed_by=admin_user,
            processed_at=timezone.now(),
            admin_notes=notes,
        )
        logger.info(f"Withdrawal {withdrawal.pk} approved by {admin_user.pk}.")
        return withdrawal

    @staticmethod
    def reject(withdrawal, admin_user, reason, notes="") -> WithdrawalRequest:
        if not reason:
            raise InvalidInput("A rejection reason is required.")
        with transaction.atomic():
            withdrawal = WithdrawalService._transition(
                withdrawal,
                WithdrawalRequest.Status.PENDING,
                status=WithdrawalRequest.Status.REJECTED,
                processed_by=admin_user,
                processed_at=timezone.now(),
                rejection_reason=reason,
                admin_notes=notes,
            )
            if withdrawal.transaction:
                # Cancelling the hold refunds it.
                Ledger.set_status(
                    withdrawal.transaction,
                    Transaction.Status.CANCELLED,
                    processed_by=admin_user,
                    reason=reason,
                )
            else:
                Ledger.credit(
                    withdrawal.user_id,
                    withdrawal.amount,
                    Transaction.TransactionType.REFUND,
                    description=f"Withdrawal request {withdrawal.pk} rejected",
                )
        logger.info(f"Withdrawal {withdrawal.pk} rejected by {admin_user.pk}: {reason}")
        return withdrawal

    @staticmethod
    def process(withdrawal, admin_user, payment_reference, notes="") -> WithdrawalRequest:
        if not payment_reference:
            raise InvalidInput("A payment reference is required.")
        with transaction.atomic():
            withdrawal = WithdrawalService._transition(
                withdrawal,
                WithdrawalRequest.Status.APPROVED,
                status=WithdrawalRequest.Status.PROCESSED,
                processed_by=admin_user,
                processed_at=timezone.now(),
                payment_reference=payment_reference,
                admin_notes=notes or withdrawal.admin_notes,
            )
            if withdrawal.transaction:
                Ledger.set_status(
                    withdrawal.transaction,
                    Transaction.Status.COMPLETED,
                    processed_by=admin_user,
                    external_reference=payment_reference,
                )
            transaction.on_commit(
                lambda: queue_notification(send_withdrawal_processed_email, withdrawal.pk)
            )
        logger.info(f"Withdrawal {withdrawal.pk} processed ({payment_reference}).")
        return withdrawal
