# backend/intel_brief/schemas/research.py
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator

from ..models.research_job import JobStatus
from ..services.urls import normalize_website

MAX_COMPANY_NAME_LEN = 200
MAX_WEBSITE_LEN = 2048


class ResearchRequest(BaseModel):
    name: str
    website: str

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be empty")
        if len(v) > MAX_COMPANY_NAME_LEN:
            raise ValueError(f"name must be at most {MAX_COMPANY_NAME_LEN} characters")
        return v

    @field_validator("website")
    @classmethod
    def validate_website(cls, v: str) -> str:
        if len(v) > MAX_WEBSITE_LEN:
            raise ValueError(f"website must be at most {MAX_WEBSITE_LEN} characters")
        normalized = normalize_website(v)
        if not normalized:
            raise ValueError("website must be a host name or http(s) URL")
        return normalized


class ResearchJobOut(BaseModel):
    id: UUID
    status: JobStatus
    created_at: datetime
    completed_at: Optional[datetime] = None
    share_slug: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ResearchJobStatusOut(BaseModel):
    job: ResearchJobOut
    brief: Optional[Dict[str, Any]] = None
