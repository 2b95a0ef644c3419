import logging

from celery import shared_task
from django.utils import timezone

from .services import advance_status

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_kwargs={"max_retries": 3},
    retry_backoff=True,
    retry_jitter=True,
    ignore_result=True,
)
def advance_tournament_statuses_task(self):
    """
    Periodic sweep moving tournaments along upcoming -> ongoing -> completed.
    """
    counts = advance_status(timezone.now())
    if counts["started"] or counts["completed"]:
        logger.info(
            f"Status sweep: {counts['started']} started, {counts['completed']} completed."
        )
    return counts
