import logging

from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
    retry_kwargs={"max_retries": 4},
    ignore_result=True,
)
def send_email_notification(self, subject, message, recipient_list):
    """
    Sends a plain-text email notification.
    """
    if not isinstance(recipient_list, list):
        recipient_list = [recipient_list]

    logger.info(
        f"Attempting to send email to {recipient_list} with subject '{subject}'"
    )
    try:
        send_mail(
            subject,
            message,
            settings.EMAIL_HOST_USER,
            recipient_list,
            fail_silently=False,
        )
        logger.info(f"Successfully sent email to {recipient_list}")
    except Exception as e:
        logger.error(
            f"Failed to send email to {recipient_list} with subject '{subject}'. Error: {e}",
            exc_info=True,
        )
        # Re-raise the exception to allow Celery to handle retries
        raise


@shared_task(ignore_result=True)
def send_registration_confirmed_email(registration_id):
    """
    Tells a player their registration was confirmed, with the room credentials
    when the operator has already published them.
    """
    from tournaments.models import Registration

    registration = (
        Registration.objects.select_related("tournament", "user")
        .filter(pk=registration_id)
        .first()
    )
    if registration is None or not registration.user.email:
        return

    tournament = registration.tournament
    lines = [
        f"Your registration for {tournament.title} is confirmed.",
        f"Start time: {tournament.date_time:%Y-%m-%d %H:%M} UTC",
    ]
    if tournament.room_id:
        lines.append(f"Room ID: {tournament.room_id}")
    if tournament.room_password:
        lines.append(f"Password: {tournament.room_password}")

    send_email_notification.delay(
        subject="Registration confirmed",
        message="\n".join(lines),
        recipient_list=[registration.user.email],
    )


@shared_task(ignore_result=True)
def send_withdrawal_processed_email(withdrawal_id):
    from wallet.models import WithdrawalRequest

    withdrawal = (
        WithdrawalRequest.objects.select_related("user").filter(pk=withdrawal_id).first()
    )
    if withdrawal is None or not withdrawal.user.email:
        return

    send_email_notification.delay(
        subject="Withdrawal processed",
        message=(
            f"Your withdrawal of {withdrawal.amount} has been paid out.\n"
            f"Payment reference: {withdrawal.payment_reference}"
        ),
        recipient_list=[withdrawal.user.email],
    )
