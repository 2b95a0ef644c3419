import os

from celery import Celery

# Set the default Django settings module for the 'celery' program.
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "tournament_project.settings")

app = Celery("tournament_project")

# namespace='CELERY' means all celery-related configuration keys
# should have a `CELERY_` prefix, including the beat schedule that
# drives the tournament status sweep.
app.config_from_object("django.conf:settings", namespace="CELERY")

# Load task modules from all registered Django app configs.
app.autodiscover_tasks()

# --- Setup request_id propagation for Celery ---
from common.celery import setup_celery_signals  # noqa: E402

setup_celery_signals()
