import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "villas.settings.base")
app = Celery("villas")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
