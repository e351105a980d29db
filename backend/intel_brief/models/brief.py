from sqlalchemy import Column, ForeignKey, JSON, String, DateTime, Uuid
from datetime import datetime
import uuid
from ..core.db import Base

class BriefRecord(Base):
    __tablename__ = "briefs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    share_slug = Column(String(16), nullable=False, unique=True, index=True)
    job_id = Column(Uuid(as_uuid=True), ForeignKey("research_jobs.id"), nullable=True)
    company_name = Column(String, nullable=False)
    content_json = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
