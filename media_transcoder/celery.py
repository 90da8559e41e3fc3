import os
from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "media_transcoder.settings")

celery_app = Celery("media_transcoder")
celery_app.config_from_object("django.conf:settings", namespace="CELERY")
celery_app.autodiscover_tasks()
