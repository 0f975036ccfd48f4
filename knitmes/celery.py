# knitmes/celery.py
import os
from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'knitmes.settings')

app = Celery('knitmes')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.autodiscover_tasks()

app.conf.beat_schedule = {
    'escalate-open-manual-action-alerts': {
        'task': 'fabricflow.tasks.escalate_open_alerts',
        'schedule': 30 * 60.0,
    },
}
