import logging

from celery import current_app
from django.db import connection
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def healthz(request):
    """
    Health check endpoint: the store and the Celery broker.
    """
    checks = {
        'database': False,
        'broker': False,
    }
    status_code = 503

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            row = cursor.fetchone()
            if row and row[0] == 1:
                checks['database'] = True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")

    try:
        with current_app.connection_for_write() as conn:
            conn.ensure_connection(max_retries=1)
            checks['broker'] = True
    except Exception as e:
        logger.error(f"Broker health check failed: {e}")

    if all(checks.values()):
        status_code = 200

    return JsonResponse(checks, status=status_code)
