from celery.signals import before_task_publish, task_postrun, task_prerun

from .middleware import get_current_request_id, set_current_request_id


@before_task_publish.connect
def propagate_request_id(sender=None, headers=None, **kwargs):
    """
    Copies the publishing request's id into the task headers (producer side).
    """
    request_id = get_current_request_id()
    if request_id and headers is not None:
        headers["request_id"] = request_id


@task_prerun.connect
def load_request_id(sender=None, task_id=None, task=None, **kwargs):
    """
    Restores the request_id on the worker so task logs share it.
    Beat-triggered tasks carry no request, so they fall back to the task id.
    """
    request_id = task.request.get("request_id") if task else None
    set_current_request_id(request_id or task_id)


@task_postrun.connect
def clear_request_id(**kwargs):
    set_current_request_id(None)


def setup_celery_signals():
    """
    Importing this module registers the receivers above; the function gives
    the Celery app an explicit call site.
    """
    return (propagate_request_id, load_request_id, clear_request_id)
