from __future__ import annotations

import json
from datetime import datetime

from celery import Celery
from celery.signals import task_failure

from spaceshare.utils.env import env_int, env_str


_SIGNALS_BOUND = False


def _broker_url() -> str:
    return env_str("CELERY_BROKER_URL") or env_str("REDIS_URL") or "redis://localhost:6379/0"


def _result_backend(broker_url: str) -> str:
    return env_str("CELERY_RESULT_BACKEND") or env_str("REDIS_URL") or broker_url


def _bind_task_observers(flask_app) -> None:
    global _SIGNALS_BOUND
    if _SIGNALS_BOUND:
        return

    @task_failure.connect(weak=False)
    def _on_task_failure(sender=None, task_id=None, exception=None, kwargs=None, **extra):
        payload = {
            "event": "celery_task_failure",
            "task_name": getattr(sender, "name", "") if sender is not None else "",
            "task_id": str(task_id or ""),
            "trace_id": str((kwargs or {}).get("trace_id") or ""),
            "exception": str(exception or ""),
            "timestamp": datetime.utcnow().isoformat(),
        }
        flask_app.logger.error(json.dumps(payload))

    _SIGNALS_BOUND = True


def create_celery_app(flask_app) -> Celery:
    broker = _broker_url()
    celery = Celery(flask_app.import_name, broker=broker, backend=_result_backend(broker))
    celery.conf.update(
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        task_acks_late=True,
        worker_prefetch_multiplier=1,
        broker_connection_retry_on_startup=True,
        timezone="UTC",
        enable_utc=True,
        beat_schedule={
            "reconcile-pending-topups": {
                "task": "spaceshare.tasks.topup_tasks.reconcile_pending_topups",
                "schedule": float(env_int("TOPUP_RECONCILE_INTERVAL_SECONDS", 300, minimum=30)),
            },
        },
    )

    class FlaskContextTask(celery.Task):
        def __call__(self, *args, **kwargs):
            with flask_app.app_context():
                return self.run(*args, **kwargs)

    celery.Task = FlaskContextTask
    celery.autodiscover_tasks(["spaceshare.tasks"], related_name="topup_tasks")
    _bind_task_observers(flask_app)
    return celery
