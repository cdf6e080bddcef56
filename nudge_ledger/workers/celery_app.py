from celery import Celery
from celery.signals import setup_logging

from nudge_ledger.core.config import get_settings
from nudge_ledger.core.logging import configure_logging

settings = get_settings()

celery_app = Celery(
    "nudge_ledger",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "nudge_ledger.workers.tasks.reservations",
    ],
)

celery_app.conf.update(
    task_default_queue="q_normal",
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
)


@setup_logging.connect
def _configure_worker_logging(**_: object) -> None:
    # Connecting here stops Celery from installing its own root handlers.
    configure_logging(settings.log_level)

