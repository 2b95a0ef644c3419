import logging

logger = logging.getLogger(__name__)


def queue_notification(task, *args, **kwargs):
    """
    Queues a notification task. Notifications are best effort: a broker
    failure is logged and never propagates into the operation that
    triggered it.
    """
    try:
        task.delay(*args, **kwargs)
    except Exception:
        logger.error(
            f"Failed to queue notification {getattr(task, 'name', task)!s}.",
            exc_info=True,
            extra={"task_args": args},
        )
