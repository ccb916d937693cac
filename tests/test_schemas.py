"""
Tests — structured output contracts.

Covers:
    - parse_structured: code fences, non-JSON, strict typing, unknown enums
    - camelCase wire names (dump) and explicit aliases (with, suggestedSLA)
    - ProposalDraft target / value validation
    - field_adapter lookup
"""

import json

import pytest
from pydantic import ValidationError as PydanticValidationError

from roleclarity.ai.schemas import (
    ComparisonNarrative,
    Conversation,
    ExpectedRoleExtraction,
    ProposalDraft,
    ProposalMetadata,
    StructuredOutputError,
    field_adapter,
    parse_structured,
    strip_code_fences,
)
from tests.fakes import PRICING_EXTRACTION


def _metadata(**overrides):
    data = {"effort": "trivial", "confidence": "high", "sequence_group": 1}
    data.update(overrides)
    return ProposalMetadata(**data)


class TestParseStructured:

    def test_valid_extraction(self):
        result = parse_structured(json.dumps(PRICING_EXTRACTION), ExpectedRoleExtraction)
        assert result.title == "Account Manager"
        assert result.ownership_domains[0].decision_rights == "full"
        assert result.responsibilities[0].raci_type == "accountable"

    def test_strips_code_fence(self):
        content = "```json\n" + json.dumps({"summary": "s", "doNothingRisk": "r"}) + "\n```"
        assert strip_code_fences(content).startswith("{")
        assert parse_structured(content, ComparisonNarrative).do_nothing_risk == "r"

    def test_empty_response(self):
        with pytest.raises(StructuredOutputError):
            parse_structured("   ", ComparisonNarrative)

    def test_not_json(self):
        with pytest.raises(StructuredOutputError, match="not JSON"):
            parse_structured("Sure! Here is the summary.", ComparisonNarrative)

    def test_strict_types_are_not_coerced(self):
        data = dict(PRICING_EXTRACTION)
        data["responsibilities"] = [dict(PRICING_EXTRACTION["responsibilities"][0], isCore="yes")]
        with pytest.raises(StructuredOutputError) as exc_info:
            parse_structured(json.dumps(data), ExpectedRoleExtraction)
        assert exc_info.value.errors

    def test_unknown_enum_rejected(self):
        data = dict(PRICING_EXTRACTION)
        data["responsibilities"] = [dict(PRICING_EXTRACTION["responsibilities"][0], raciType="owner")]
        with pytest.raises(StructuredOutputError):
            parse_structured(json.dumps(data), ExpectedRoleExtraction)

    def test_missing_required_key(self):
        with pytest.raises(StructuredOutputError):
            parse_structured(json.dumps({"summary": "only"}), ComparisonNarrative)


class TestWireNames:

    def test_dump_uses_camel_case(self):
        dumped = ExpectedRoleExtraction.model_validate(PRICING_EXTRACTION).dump()
        assert "doesNotOwn" in dumped
        assert "ownershipDomains" in dumped
        assert dumped["ownershipDomains"][0]["decisionRights"] == "full"

    def test_conversation_with_alias(self):
        c = Conversation(**{"with": "Sales Director", "about": "Pricing", "why": "dual accountability"})
        assert c.dump()["with"] == "Sales Director"


class TestProposalDraft:

    def test_requires_exactly_one_target(self):
        with pytest.raises(PydanticValidationError):
            ProposalDraft(type="edit_role", field="core_purpose", proposed_value="x",
                          title="t", explanation="e", metadata=_metadata())
        with pytest.raises(PydanticValidationError):
            ProposalDraft(type="edit_role", target_role_id=1, target_handoff_id=2, field="sla",
                          proposed_value="1 day", title="t", explanation="e", metadata=_metadata())

    def test_proposed_value_checked_against_field_type(self):
        with pytest.raises(PydanticValidationError):
            ProposalDraft(type="edit_role", target_role_id=1, field="budget_level",
                          proposed_value="unlimited", title="t", explanation="e", metadata=_metadata())

    def test_handoff_target(self):
        draft = ProposalDraft(type="add_handoff_sla", target_handoff_id=3, field="sla",
                              proposed_value="1 business day", title="t", explanation="e",
                              metadata=_metadata(sequence_group=3))
        assert draft.entity_type == "handoff"

    def test_sequence_group_bounds(self):
        with pytest.raises(PydanticValidationError):
            _metadata(sequence_group=6)


class TestFieldAdapter:

    def test_known_field(self):
        adapter = field_adapter("role", "owns")
        value = adapter.validate_python([{"title": "Sales", "items": ["Pricing"]}])
        assert adapter.dump_python(value, mode="json") == [{"title": "Sales", "items": ["Pricing"]}]

    def test_unknown_field(self):
        with pytest.raises(ValueError):
            field_adapter("role", "salary")
