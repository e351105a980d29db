from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..core.db import get_db
from ..models.research_job import ResearchJob
from ..models.brief import BriefRecord
from ..services.store import BriefStore
from .routes_research import get_brief_store, verify_api_key

router = APIRouter(tags=["archive"])


@router.get("/archive")
def list_briefs(
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    """
    Protected listing endpoint for recent research jobs.

    - Requires the same API key protection as /api/research.
    - Supports basic pagination via limit/offset.
    """
    # Hard cap to avoid unbounded scans
    safe_limit = max(1, min(limit, 100))

    jobs = (
        db.query(ResearchJob)
        .order_by(ResearchJob.created_at.desc())
        .offset(max(0, offset))
        .limit(safe_limit)
        .all()
    )

    return [
        {
            "job": {
                "id": str(j.id),
                "status": j.status.value,
                "created_at": j.created_at,
                "completed_at": j.completed_at,
                "target_input": j.target_input,
                "error_code": j.error_code,
            },
            "share_slug": j.share_slug,
        }
        for j in jobs
    ]


@router.get("/briefs/{slug}")
def get_brief(
    slug: str,
    fresh: bool = False,
    db: Session = Depends(get_db),
    store: BriefStore = Depends(get_brief_store),
    _: None = Depends(verify_api_key),
):
    """Brief JSON by share slug. `fresh=true` bypasses the cache."""
    brief = store.get_by_slug(slug, bypass_cache=fresh)
    if brief is None:
        raise HTTPException(status_code=404, detail="Brief not found")
    record = db.query(BriefRecord).filter(BriefRecord.share_slug == slug).first()
    return {
        "share_slug": slug,
        "created_at": record.created_at if record else None,
        "brief": brief.model_dump(mode="json"),
    }
