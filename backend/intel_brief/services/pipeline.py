"""
End-to-end research pipeline:

    queries -> retrieval -> snippet selection -> structured extraction
            -> competitor discovery -> rollup / confidence -> assembled Brief

One `ResearchPipeline` per run; collaborators (search connector, LLM client)
are injected so tests can replace them with fakes. Nothing is shared across
runs except the per-event-loop LLM concurrency limit.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from .assembler import assemble_brief
from .competitors import CompetitorDiscovery
from .connectors import RetrievalRunner, get_search_connector
from .connectors.base import SearchConnector
from .extractor import StructuredExtractor
from .llm import LLMClient
from .query_builder import build_company_queries
from .selector import select_top_snippets
from .urls import normalize_website
from ..core.config import Settings, get_settings
from ..core.errors import DeadlineExceededError, InvalidInputError, NoEvidenceError
from ..schemas.brief import Brief, ResearchInput

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PipelineResult:
    brief: Brief
    citations: List[str]


class ResearchPipeline:
    def __init__(
        self,
        settings: Settings,
        *,
        search: Optional[SearchConnector] = None,
        llm: Any = None,
        run_id: Optional[str] = None,
    ) -> None:
        self.settings = settings
        self.search = search or get_search_connector(settings)
        self._owns_llm = llm is None
        self.llm = llm or LLMClient(settings)
        self.run_id = run_id or uuid.uuid4().hex[:12]

    def _log_extra(self, stage: str, **kw) -> dict:
        return {"run_id": self.run_id, "stage": stage, **kw}

    @staticmethod
    def _coerce_input(research_input: Union[ResearchInput, Dict[str, Any]]) -> ResearchInput:
        if isinstance(research_input, ResearchInput):
            return research_input
        try:
            return ResearchInput.model_validate(research_input)
        except PydanticValidationError as exc:
            raise InvalidInputError(
                "research input must have string 'name' and 'website'",
                context={"errors": exc.error_count()},
            ) from exc

    async def run(self, research_input: Union[ResearchInput, Dict[str, Any]]) -> PipelineResult:
        deadline = self.settings.PIPELINE_DEADLINE_SECONDS
        try:
            return await asyncio.wait_for(self._run(research_input), timeout=deadline)
        except asyncio.TimeoutError as exc:
            logger.error(
                "Research run exceeded %.1fs deadline",
                deadline,
                extra=self._log_extra("pipeline", error_code=DeadlineExceededError.code),
            )
            raise DeadlineExceededError(f"research run exceeded {deadline}s") from exc
        finally:
            if self._owns_llm:
                await self.llm.aclose()

    async def _run(self, research_input: Union[ResearchInput, Dict[str, Any]]) -> PipelineResult:
        inp = self._coerce_input(research_input)

        # 1) Queries (raises InvalidInputError on a bad name/website)
        queries = build_company_queries(inp.name, inp.website)
        website = normalize_website(inp.website)
        inp = ResearchInput(name=inp.name.strip(), website=website)
        logger.info(
            "Starting research run for %s",
            inp.name,
            extra=self._log_extra("start"),
        )

        # 2) Retrieval + selection
        runner = RetrievalRunner(self.search, self.settings, run_id=self.run_id)
        by_query = await runner.run(queries)
        snippets = [s for q in queries for s in by_query.get(q.text, [])]
        selection = select_top_snippets(snippets, website, self.settings.SNIPPET_CAP)
        logger.info(
            "Selected %d of %d snippets",
            len(selection.snippets),
            len(snippets),
            extra=self._log_extra("selection"),
        )
        if not selection.snippets:
            raise NoEvidenceError(
                "retrieval returned no usable snippets",
                attempted_queries=[q.text for q in queries],
            )

        # 3) Structured extraction (validate / repair)
        extractor = StructuredExtractor(self.llm, run_id=self.run_id)
        draft = await extractor.extract(inp, selection.snippets)
        # The caller's identifiers are authoritative over whatever the model echoed
        draft = draft.model_copy(
            update={"company": draft.company.model_copy(update={"name": inp.name, "website": website})}
        )

        # 4) Competitors from live search only
        discovery = CompetitorDiscovery(runner, self.settings, self.llm, run_id=self.run_id)
        competitors = await discovery.discover(draft, selection.snippets, website)

        # 5) Rollup, confidence, final validation
        brief = assemble_brief(draft, competitors, selection.citations, run_id=self.run_id)
        logger.info(
            "Research run completed with %d competitors and %d citations",
            len(brief.competitors),
            len(brief.citations),
            extra=self._log_extra("completed"),
        )
        return PipelineResult(brief=brief, citations=list(brief.citations))


def run_research_pipeline(
    research_input: Union[ResearchInput, Dict[str, Any]],
    settings: Optional[Settings] = None,
    **collaborators: Any,
) -> PipelineResult:
    """
    Blocking entry point for synchronous callers (Celery workers, scripts).
    Must not be called from inside a running event loop.
    """
    pipeline = ResearchPipeline(settings or get_settings(), **collaborators)
    return asyncio.run(pipeline.run(research_input))
