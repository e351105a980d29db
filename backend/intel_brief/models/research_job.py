from sqlalchemy import Column, String, JSON, Enum, DateTime, Uuid
from datetime import datetime
import uuid
import enum
from ..core.db import Base

class JobStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

class ResearchJob(Base):
    __tablename__ = "research_jobs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    target_input = Column(JSON, nullable=False)  # {name, website}
    status = Column(Enum(JobStatus), nullable=False, default=JobStatus.PENDING)
    created_at = Column(DateTime, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)
    # Machine-readable failure code (BriefPipelineError.code); message is generic
    error_code = Column(String(64), nullable=True)
    error_message = Column(String, nullable=True)
    share_slug = Column(String(16), nullable=True, index=True)
