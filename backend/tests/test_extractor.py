"""
Tests for extractor.py

Covers output normalisation, validation results, repair prompts and the
two-attempt validate/repair loop (including use-case padding on the final
attempt only).
"""
import asyncio
import json

import pytest

from intel_brief.core.errors import ProviderHttpError, SchemaValidationError
from intel_brief.schemas.brief import ResearchInput
from intel_brief.services.extractor import (
    MAX_ATTEMPTS,
    StructuredExtractor,
    build_extraction_prompts,
    build_repair_prompt,
    normalize_draft,
    validate_draft,
)
from tests.fixtures.brief_fixtures import (
    COMPANY_SNIPPETS,
    TARGET_NAME,
    TARGET_WEBSITE,
    FakeLLM,
    draft_payload,
    use_case,
)

COMPANY = ResearchInput(name=TARGET_NAME, website=TARGET_WEBSITE)


def _extract(llm):
    return asyncio.run(StructuredExtractor(llm, run_id="test").extract(COMPANY, COMPANY_SNIPPETS))


class TestNormalizeDraft:
    """Tests for normalize_draft."""

    def test_numeric_coercion(self):
        """Missing, negative, non-finite and non-numeric values become 0."""
        raw = draft_payload()
        raw["use_cases"][0].update(
            est_annual_benefit="12,500",
            est_one_time_cost=-10,
            est_ongoing_cost=float("inf"),
            payback_months="soon",
        )
        del raw["use_cases"][1]["payback_months"]
        raw["use_cases"][2]["est_annual_benefit"] = True

        uc = normalize_draft(raw)["use_cases"]
        assert uc[0]["est_annual_benefit"] == 12500.0
        assert uc[0]["est_one_time_cost"] == 0.0
        assert uc[0]["est_ongoing_cost"] == 0.0
        assert uc[0]["payback_months"] == 0.0
        assert uc[1]["payback_months"] == 0.0
        assert uc[2]["est_annual_benefit"] == 0.0

    def test_text_fields_default_to_tbd(self):
        """Null or blank text fields become 'TBD'."""
        raw = draft_payload()
        raw["use_cases"][0].update(data_requirements=None, risks="  ")
        del raw["use_cases"][0]["next_steps"]
        uc = normalize_draft(raw)["use_cases"][0]
        assert (uc["data_requirements"], uc["risks"], uc["next_steps"]) == ("TBD", "TBD", "TBD")

    def test_competitors_always_emptied(self):
        """Model-supplied competitors are discarded."""
        raw = draft_payload(competitors=[{"name": "Rival"}])
        assert normalize_draft(raw)["competitors"] == []

    def test_long_industry_summary_truncated(self):
        """Industry summaries over 300 characters are cut to 300 ending in '...'."""
        raw = draft_payload()
        raw["industry"]["summary"] = "x" * 450
        summary = normalize_draft(raw)["industry"]["summary"]
        assert len(summary) == 300
        assert summary.endswith("...")

    def test_strategic_moves_date_alias_and_cap(self):
        """'dateISO' is accepted and at most five moves are kept."""
        moves = [{"title": f"Move {i}", "dateISO": "2024-01-01", "citations": []} for i in range(7)]
        data = normalize_draft(draft_payload(strategic_moves=moves))
        assert len(data["strategic_moves"]) == 5
        assert data["strategic_moves"][0]["date_iso"] == "2024-01-01"

    def test_non_string_citations_dropped(self):
        """Citation lists keep only non-empty strings."""
        data = normalize_draft(draft_payload(citations=["https://a.example/x", None, 3, ""]))
        assert data["citations"] == ["https://a.example/x"]

    def test_model_cannot_mark_synthetic(self):
        """A 'synthetic' flag in model output is reset."""
        raw = draft_payload()
        raw["use_cases"][0]["synthetic"] = True
        assert normalize_draft(raw)["use_cases"][0]["synthetic"] is False

    def test_padding_only_when_requested(self):
        """Short use-case lists are padded only with pad_use_cases=True."""
        raw = draft_payload(n_use_cases=2)
        assert len(normalize_draft(raw)["use_cases"]) == 2
        padded = normalize_draft(raw, pad_use_cases=True)["use_cases"]
        assert len(padded) == 5
        assert [uc["synthetic"] for uc in padded] == [False, False, True, True, True]

    def test_identity_fills_missing_company_fields(self):
        """A missing or blank company name/website is taken from the research input."""
        raw = draft_payload()
        del raw["company"]["website"]
        raw["company"]["name"] = "  "
        company = normalize_draft(raw, identity=COMPANY)["company"]
        assert company["name"] == TARGET_NAME
        assert company["website"] == TARGET_WEBSITE

    def test_identity_keeps_model_values(self):
        """Identifiers the model did return are left for the caller to override."""
        raw = draft_payload()
        raw["company"]["name"] = "ACME"
        assert normalize_draft(raw, identity=COMPANY)["company"]["name"] == "ACME"

    def test_non_object_input(self):
        """Non-dict input normalises to an object that fails validation."""
        assert not validate_draft(normalize_draft(["not", "an", "object"])).ok


class TestValidateDraft:
    """Tests for validate_draft."""

    def test_valid_payload(self):
        """The fixture payload validates."""
        result = validate_draft(normalize_draft(draft_payload()))
        assert result.ok
        assert result.draft.company.name == TARGET_NAME
        assert result.errors == []

    def test_errors_are_reported_with_locations(self):
        """Invalid fields are reported with their location."""
        raw = draft_payload()
        raw["use_cases"][0]["value_driver"] = "growth"
        result = validate_draft(normalize_draft(raw))
        assert not result.ok
        assert any(e["loc"][:3] == ["use_cases", "0", "value_driver"] for e in result.errors)

    def test_short_company_summary(self):
        """A company summary under 100 characters is invalid."""
        raw = draft_payload()
        raw["company"]["summary"] = "Too short."
        assert not validate_draft(normalize_draft(raw)).ok

    def test_non_dict(self):
        """None is reported, never raised."""
        result = validate_draft(None)
        assert not result.ok
        assert result.errors[0]["msg"] == "expected a JSON object"


class TestPrompts:
    """Tests for the extraction and repair prompts."""

    def test_extraction_prompt_carries_snippets_and_rules(self):
        """The user prompt is JSON with input, snippets and schema rules."""
        system, user = build_extraction_prompts(COMPANY, COMPANY_SNIPPETS)
        payload = json.loads(user)
        assert "STRICT JSON" in system
        assert payload["input"] == {"name": TARGET_NAME, "website": TARGET_WEBSITE}
        assert len(payload["snippets"]) == len(COMPANY_SNIPPETS)
        assert payload["schema_rules"]

    def test_repair_prompt_includes_errors_and_prior_output(self):
        """The repair prompt echoes the failed output and its concrete errors."""
        errors = [{"loc": ["use_cases"], "msg": "too short", "type": "too_short"}]
        prior = {"use_cases": []}
        payload = json.loads(build_repair_prompt(COMPANY, COMPANY_SNIPPETS, prior, errors))
        assert payload["previous_output"] == prior
        assert payload["fix"]["validation_errors"] == errors


class TestStructuredExtractor:
    """Tests for the validate/repair loop."""

    def test_valid_first_attempt(self):
        """A valid first response needs exactly one call."""
        llm = FakeLLM([draft_payload()])
        draft = _extract(llm)
        assert len(llm.calls) == 1
        assert len(draft.use_cases) == 5

    def test_seven_use_cases_truncated_to_first_five(self):
        """Extra use cases are dropped; the first five are kept unmodified."""
        raw = draft_payload(n_use_cases=7)
        llm = FakeLLM([raw])
        draft = _extract(llm)
        assert len(llm.calls) == 1
        assert [uc.title for uc in draft.use_cases] == [uc["title"] for uc in raw["use_cases"][:5]]
        assert [uc.est_annual_benefit for uc in draft.use_cases] == [
            uc["est_annual_benefit"] for uc in raw["use_cases"][:5]
        ]
        assert not any(uc.synthetic for uc in draft.use_cases)

    def test_three_use_cases_repaired_then_padded(self):
        """A short list fails attempt 1, is repaired, and padded on attempt 2."""
        raw = draft_payload(n_use_cases=3)
        llm = FakeLLM([raw, raw])
        draft = _extract(llm)

        assert len(llm.calls) == 2
        repair = json.loads(llm.calls[1][1])
        assert any(e["loc"] == ["use_cases"] for e in repair["fix"]["validation_errors"])

        assert [uc.synthetic for uc in draft.use_cases] == [False, False, False, True, True]
        for uc in draft.use_cases[3:]:
            assert uc.title.startswith("Placeholder")
            assert uc.est_annual_benefit == 0
            assert uc.est_one_time_cost == 0
            assert uc.payback_months == 0

    def test_repair_succeeds(self):
        """An invalid first response followed by a valid one succeeds."""
        bad = draft_payload(use_cases=[use_case(i, value_driver="growth") for i in range(1, 6)])
        llm = FakeLLM([bad, draft_payload()])
        draft = _extract(llm)
        assert len(llm.calls) == 2
        assert draft.use_cases[0].value_driver == "cost"

    def test_gives_up_after_two_attempts(self):
        """Two invalid responses raise SchemaValidationError; no third call."""
        bad = draft_payload(use_cases=[use_case(i, value_driver="growth") for i in range(1, 6)])
        llm = FakeLLM([bad, bad, draft_payload()])
        with pytest.raises(SchemaValidationError) as exc_info:
            _extract(llm)
        assert len(llm.calls) == MAX_ATTEMPTS
        assert exc_info.value.errors
        assert exc_info.value.code == "schema_validation"

    def test_provider_error_counts_as_attempt(self):
        """A failed LLM call uses up an attempt but the loop continues."""
        llm = FakeLLM([ProviderHttpError("boom", provider="openai", status_code=500), draft_payload()])
        draft = _extract(llm)
        assert len(llm.calls) == 2
        assert draft.company.name == TARGET_NAME

    def test_provider_errors_on_both_attempts(self):
        """Two failed calls end in SchemaValidationError."""
        err = ProviderHttpError("boom", provider="openai", status_code=500)
        llm = FakeLLM([err, err])
        with pytest.raises(SchemaValidationError):
            _extract(llm)
        assert len(llm.calls) == 2

    def test_missing_website_needs_no_repair(self):
        """A draft without company.website validates on the first call."""
        raw = draft_payload()
        del raw["company"]["website"]
        llm = FakeLLM([raw])
        draft = _extract(llm)
        assert len(llm.calls) == 1
        assert draft.company.website == TARGET_WEBSITE
