from celery import Celery
from celery.signals import worker_init

from .config import get_settings
from .logging import configure_logging

settings = get_settings()
configure_logging()

celery_app = Celery(
    "intel_brief",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
)

celery_app.conf.update(
    task_routes={"intel_brief.services.orchestrator.run_brief_job": {"queue": "research"}},
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    imports=("intel_brief.services.orchestrator",),
)


@worker_init.connect
def _create_tables(**_kwargs) -> None:
    from .db import init_db

    init_db()
