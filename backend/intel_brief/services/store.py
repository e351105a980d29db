"""
Brief persistence keyed by a random share slug.

The Brief is stored as an opaque JSON document. Reads go through a Redis
read-through cache unless the caller asks to bypass it (e.g. right after a
write, or from an admin view that must see the database state).
"""
from __future__ import annotations

import logging
import secrets
import string
from typing import Callable, Optional
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .caching import cache_read, cache_write
from ..core.config import Settings
from ..models.brief import BriefRecord
from ..schemas.brief import Brief

logger = logging.getLogger(__name__)

SLUG_ALPHABET = string.ascii_lowercase + string.digits
SLUG_LENGTH = 8
MAX_SLUG_ATTEMPTS = 5


def generate_slug(length: int = SLUG_LENGTH) -> str:
    return "".join(secrets.choice(SLUG_ALPHABET) for _ in range(length))


def _cache_key(slug: str) -> str:
    return f"brief:slug|{slug}"


class BriefStore:
    def __init__(
        self,
        settings: Settings,
        session_factory: Callable[[], Session],
        slug_factory: Callable[[], str] = generate_slug,
    ) -> None:
        self.settings = settings
        self.session_factory = session_factory
        self.slug_factory = slug_factory

    def save(self, brief: Brief, *, job_id: Optional[UUID] = None) -> str:
        """
        Persist a brief under a fresh slug and return the slug. A slug
        collision (unique constraint) is retried with a new slug; at most one
        write ever succeeds per slug.
        """
        content = brief.model_dump(mode="json")
        for attempt in range(1, MAX_SLUG_ATTEMPTS + 1):
            slug = self.slug_factory()
            db = self.session_factory()
            try:
                db.add(
                    BriefRecord(
                        share_slug=slug,
                        job_id=job_id,
                        company_name=brief.company.name,
                        content_json=content,
                    )
                )
                db.commit()
            except IntegrityError:
                db.rollback()
                logger.warning(
                    "Share slug collision on attempt %d; retrying",
                    attempt,
                    extra={"stage": "store", "job_id": str(job_id) if job_id else None},
                )
                continue
            finally:
                db.close()

            cache_write(self.settings, _cache_key(slug), content, ttl=self.settings.BRIEF_CACHE_TTL_SECONDS)
            return slug

        raise RuntimeError(f"could not allocate a unique share slug after {MAX_SLUG_ATTEMPTS} attempts")

    def get_by_slug(self, slug: str, bypass_cache: bool = False) -> Optional[Brief]:
        content = None if bypass_cache else cache_read(self.settings, _cache_key(slug))
        if content is None:
            db = self.session_factory()
            try:
                record = db.query(BriefRecord).filter(BriefRecord.share_slug == slug).first()
                content = record.content_json if record else None
            finally:
                db.close()
            if content is None:
                return None
            cache_write(self.settings, _cache_key(slug), content, ttl=self.settings.BRIEF_CACHE_TTL_SECONDS)

        try:
            return Brief.model_validate(content)
        except PydanticValidationError:
            # Stored under an older schema; treat as unavailable rather than serve it
            logger.exception("Stored brief %s no longer validates", slug, extra={"stage": "store"})
            return None
