import uuid
from threading import local

_thread_locals = local()

REQUEST_ID_HEADER = "HTTP_X_REQUEST_ID"


def get_current_request_id():
    """Returns the request_id for the current request or task."""
    return getattr(_thread_locals, "request_id", None)


def set_current_request_id(request_id):
    _thread_locals.request_id = request_id


class RequestIDMiddleware:
    """
    Tags each request with a request_id, reusing the caller's X-Request-ID
    when a proxy already assigned one. The id lives in thread-local storage so
    loggers and Celery publishers can pick it up.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        request_id = request.META.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        set_current_request_id(request_id)
        try:
            response = self.get_response(request)
        finally:
            set_current_request_id(None)
        response["X-Request-ID"] = request_id
        return response
