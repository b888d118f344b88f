# ==================== PARKING_BACKEND/CELERY.PY ====================
import os

from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'parking_backend.settings')

app = Celery('parking_backend')

# CELERY_* settings from Django settings
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()
