import logging

from .middleware import get_current_request_id


class RequestIDFilter(logging.Filter):
    """
    Injects the current request_id into log records ("-" outside a request).
    """

    def filter(self, record):
        record.request_id = get_current_request_id() or "-"
        return True
