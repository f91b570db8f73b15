# config/celery.py
import os
import logging
from celery import Celery
from celery.schedules import crontab
from celery.signals import before_task_publish, task_prerun, task_failure
from kombu import Queue

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

app = Celery('errand')
app.config_from_object('django.conf:settings', namespace='CELERY')

# OTP texts must not wait behind housekeeping sweeps
QUEUES = ('high_priority', 'default', 'low_priority')

app.conf.update(
    task_queues=tuple(Queue(name, routing_key=name) for name in QUEUES),
    task_default_queue='default',
    task_default_exchange='default',
    task_default_routing_key='default',
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    broker_connection_retry_on_startup=True,
    task_routes={
        'apps.notifications.tasks.send_otp_sms': {'queue': 'high_priority'},
        'apps.notifications.tasks.dispatch_notification': {'queue': 'default'},
        'apps.notifications.tasks.purge_*': {'queue': 'low_priority'},
        'apps.delivery.tasks.*': {'queue': 'low_priority'},
        'apps.core.tasks.*': {'queue': 'default'},
    },
    beat_schedule={
        'purge-expired-verification-codes': {
            'task': 'apps.notifications.tasks.purge_expired_codes',
            'schedule': crontab(minute='*/15'),
        },
        'purge-expired-notifications': {
            'task': 'apps.notifications.tasks.purge_expired_notifications',
            'schedule': crontab(hour=2, minute=0),
        },
        'monitor-stuck-deliveries': {
            'task': 'apps.delivery.tasks.monitor_stuck_deliveries',
            'schedule': crontab(minute='*/30'),
        },
        'beat-heartbeat': {
            'task': 'apps.core.tasks.beat_heartbeat',
            'schedule': crontab(minute='*'),
        },
    },
)

app.autodiscover_tasks()

from apps.core.middleware import get_correlation_id, _correlation_id  # noqa: E402

REQUEST_ID_HEADER = 'X-Request-ID'
logger = logging.getLogger('celery.dlq')


@before_task_publish.connect
def attach_request_id(headers=None, **kwargs):
    """Carry the web request id into the task headers."""
    request_id = get_correlation_id()
    if headers is not None and request_id:
        headers[REQUEST_ID_HEADER] = request_id


@task_prerun.connect
def prepare_worker_context(task=None, **kwargs):
    if task is None:
        return
    headers = getattr(task.request, 'headers', None) or {}
    if headers.get(REQUEST_ID_HEADER):
        _correlation_id.set(headers[REQUEST_ID_HEADER])

    # Eager runs share the caller's connection and transaction
    if not getattr(task.request, 'is_eager', False):
        from django.db import close_old_connections
        close_old_connections()


@task_failure.connect
def log_failed_task(sender=None, task_id=None, exception=None, args=None, kwargs=None, **opts):
    task_name = getattr(sender, 'name', 'unknown_task')
    logger.critical(
        f"[DLQ] {task_name} failed permanently (id={task_id})",
        extra={'metadata': {
            'task_name': task_name,
            'task_id': task_id,
            'args': args,
            'kwargs': kwargs,
            'exception': repr(exception),
        }},
    )
