from __future__ import annotations

from uuid import UUID
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..core.celery_app import celery_app
from ..core.config import Settings, get_settings
from ..core.db import SessionLocal
from ..core.errors import BriefPipelineError
from ..models.research_job import ResearchJob, JobStatus
from .pipeline import run_research_pipeline
from .store import BriefStore

logger = logging.getLogger(__name__)

# Shown to end users; the machine-readable cause lives in error_code and the
# raw provider detail only in logs.
GENERIC_FAILURE_MESSAGE = "Failed to generate report."
INTERNAL_ERROR_CODE = "internal_error"


def _mark_failed(db: Session, job_id: str, error_code: str) -> None:
    db.rollback()
    job = db.query(ResearchJob).filter(ResearchJob.id == UUID(job_id)).first()
    if not job:
        return
    job.status = JobStatus.FAILED
    job.error_code = error_code
    job.error_message = GENERIC_FAILURE_MESSAGE
    job.completed_at = datetime.utcnow()
    db.commit()


def execute_brief_job(
    job_id: str,
    *,
    settings: Optional[Settings] = None,
    session_factory=SessionLocal,
    **collaborators: Any,
) -> Optional[str]:
    """
    Run the pipeline for one queued job and store the brief.

    Returns the share slug on success, None when the job failed with a
    pipeline error (recorded on the job row). Unexpected exceptions are
    recorded as `internal_error` and re-raised.
    """
    settings = settings or get_settings()
    db: Session = session_factory()
    try:
        job = db.query(ResearchJob).filter(ResearchJob.id == UUID(job_id)).first()
        if not job:
            return None

        target_input: Dict[str, Any] = dict(job.target_input or {})
        logger.info("Starting brief job", extra={"job_id": job_id, "stage": "start"})

        job.status = JobStatus.PROCESSING
        db.commit()

        result = run_research_pipeline(
            {"name": target_input.get("name"), "website": target_input.get("website")},
            settings,
            run_id=job_id[:12],
            **collaborators,
        )

        store = BriefStore(settings, session_factory)
        slug = store.save(result.brief, job_id=job.id)

        job.status = JobStatus.COMPLETED
        job.share_slug = slug
        job.completed_at = datetime.utcnow()
        db.commit()

        logger.info("Brief job completed", extra={"job_id": job_id, "stage": "completed"})
        return slug
    except BriefPipelineError as e:
        logger.warning(
            "Brief job failed: %s",
            e,
            extra={"job_id": job_id, "stage": "failed", "error_code": e.code},
        )
        _mark_failed(db, job_id, e.code)
        return None
    except Exception:
        logger.exception(
            "Brief job crashed",
            extra={"job_id": job_id, "stage": "failed", "error_code": INTERNAL_ERROR_CODE},
        )
        _mark_failed(db, job_id, INTERNAL_ERROR_CODE)
        raise
    finally:
        db.close()


@celery_app.task(name="intel_brief.services.orchestrator.run_brief_job", bind=True, queue="research")
def run_brief_job(self, job_id: str):
    return execute_brief_job(job_id)
