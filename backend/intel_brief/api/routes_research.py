from uuid import UUID
import logging

from fastapi import APIRouter, Depends, HTTPException, Security
from fastapi.security.api_key import APIKeyHeader
from sqlalchemy.orm import Session

from ..core.db import SessionLocal, get_db
from ..schemas.research import ResearchRequest, ResearchJobOut, ResearchJobStatusOut
from ..models.research_job import ResearchJob, JobStatus
from ..services.store import BriefStore
from ..core.celery_app import celery_app
from ..core.config import get_settings

router = APIRouter(tags=["research"])

settings = get_settings()
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)
logger = logging.getLogger(__name__)


def verify_api_key(api_key: str | None = Security(api_key_header)) -> None:
    """
    Simple header-based API key authentication.

    - In dev, if API_AUTH_KEY is not set, auth is skipped.
    - Otherwise, require X-API-Key == API_AUTH_KEY.
    """
    expected = settings.API_AUTH_KEY

    # In dev with no configured key, skip auth for convenience
    if settings.ENV == "dev" and not expected:
        return

    if not expected:
        # In non-dev environments, missing config is treated as misconfiguration
        raise HTTPException(status_code=401, detail="API key not configured")

    if api_key != expected:
        raise HTTPException(status_code=401, detail="Invalid API key")


def get_brief_store() -> BriefStore:
    return BriefStore(settings, SessionLocal)


@router.post("/research", response_model=ResearchJobOut, status_code=202)
def create_research_job(
    payload: ResearchRequest,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    job = ResearchJob(
        target_input=payload.model_dump(),
        status=JobStatus.PENDING,
    )
    db.add(job)
    db.commit()
    db.refresh(job)

    logger.info(
        "Research job created",
        extra={"job_id": str(job.id), "stage": "job_created"},
    )

    celery_app.send_task(
        "intel_brief.services.orchestrator.run_brief_job",
        args=[str(job.id)],
        queue="research",
    )

    return job


@router.get("/research/{job_id}", response_model=ResearchJobStatusOut)
def get_research_job(
    job_id: UUID,
    db: Session = Depends(get_db),
    store: BriefStore = Depends(get_brief_store),
    _: None = Depends(verify_api_key),
):
    job = db.query(ResearchJob).filter(ResearchJob.id == job_id).first()
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")

    brief_content = None
    if job.status == JobStatus.COMPLETED and job.share_slug:
        brief = store.get_by_slug(job.share_slug)
        brief_content = brief.model_dump(mode="json") if brief else None

    return ResearchJobStatusOut(
        job=ResearchJobOut.model_validate(job),
        brief=brief_content,
    )
