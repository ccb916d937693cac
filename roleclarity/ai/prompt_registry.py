"""
Prompt templates for the four generative clarity operations.

Each template is a system/user pair with ``{{placeholder}}`` slots. The
system half always ends with ``Output contract: <SchemaName>``: the backend
validates the answer against that pydantic model and the local stub
provider keys its canned answer off it.

Built-in templates can be replaced per deployment by dropping
``<name>.yaml`` files (keys: name, version, system, user, description) into
PROMPTS_DIR.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")


def _fill(text: str, values: dict) -> str:
    # unknown placeholders stay verbatim
    return _PLACEHOLDER.sub(lambda m: str(values[m.group(1)]) if m.group(1) in values else m.group(0), text)


@dataclass(frozen=True)
class PromptTemplate:
    name: str
    version: str
    system: str
    user: str
    description: str = ""
    metadata: dict = field(default_factory=dict)

    def render(self, **values) -> list[dict]:
        turns = (("system", _fill(self.system, values)), ("user", _fill(self.user, values)))
        return [{"role": role, "content": text} for role, text in turns if text.strip()]

    @classmethod
    def from_yaml(cls, path: Path) -> "PromptTemplate | None":
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            return None
        return cls(
            name=data.get("name", path.stem),
            version=str(data.get("version", "v1")),
            system=data.get("system", ""),
            user=data.get("user", ""),
            description=data.get("description", ""),
            metadata=data.get("metadata") or {},
        )


class PromptRegistry:
    """Built-in templates, overlaid by YAML files of the same name and version."""

    def __init__(self, prompts_dir: str | None = None):
        self._by_key: dict[tuple[str, str], PromptTemplate] = {
            (tpl.name, tpl.version): tpl for tpl in _DEFAULT_TEMPLATES
        }
        if prompts_dir:
            self._overlay(Path(prompts_dir))

    def _overlay(self, directory: Path):
        if not directory.is_dir():
            logger.info("No prompt overrides at %s", directory)
            return
        for path in sorted(directory.glob("*.yaml")):
            tpl = PromptTemplate.from_yaml(path)
            if tpl is None:
                logger.warning("Ignoring %s: expected a YAML mapping", path.name)
                continue
            self._by_key[(tpl.name, tpl.version)] = tpl
            logger.info("Prompt %s/%s overridden from %s", tpl.name, tpl.version, path.name)

    def get(self, name: str, version: str = "v1") -> PromptTemplate | None:
        return self._by_key.get((name, version))

    def render(self, name: str, version: str = "v1", **values) -> list[dict]:
        """Chat messages for ``name``; ``KeyError`` when no such template exists."""
        tpl = self.get(name, version)
        if tpl is None:
            raise KeyError(f"Prompt template not found: {name} {version}")
        return tpl.render(**values)

    def list_templates(self) -> list[dict]:
        return [
            {"name": tpl.name, "version": tpl.version, "description": tpl.description}
            for tpl in self._by_key.values()
        ]


# ── Built-in Default Templates ────────────────────────────────────────────────

_BASE = (
    "You are an organizational design analyst who helps managers make role "
    "definitions precise: who owns what, what each role delivers, and where "
    "one role's responsibility ends and another's begins.\n"
    "Answer with a single JSON object and nothing else. Use camelCase keys "
    "exactly as listed. Do not invent enum values.\n"
)

_DEFAULT_TEMPLATES = [
    PromptTemplate(
        name="role_extraction",
        version="v1",
        description="Turn free-text role expectations into a structured role record",
        system=(
            _BASE
            + "Extract the expected role from the text.\n"
            "Rules:\n"
            "- Every responsibility gets exactly one raciType "
            "(accountable|responsible|consulted|informed) and one frequency "
            "(daily|weekly|periodic|ad-hoc|unclear).\n"
            "- 'Supports X' or 'helps with X' means contributesTo X, never ownership of X.\n"
            "- List what the role explicitly does not own in doesNotOwn.\n"
            "- ownershipDomains[].decisionRights is one of full|shared|advisory|unclear.\n"
            "- skills[].category is one of technical|leadership|interpersonal|domain|strategic.\n"
            "- suggestedTier is one of entry|mid|senior|lead|head|director or null.\n"
            "- autonomyLevel is low|moderate|high|full; spanOfInfluence is "
            "individual|team|cross-team|department|organization.\n"
            "- Record vague statements in ambiguities[{area, quote, risk, suggestedClarification}] "
            "and structural problems in redFlags[].\n"
            "Output contract: ExpectedRoleExtraction"
        ),
        user="Role expectations ({{source}}):\n---\n{{content}}",
    ),
    PromptTemplate(
        name="role_comparison",
        version="v1",
        description="Write the narrative for a finished role comparison",
        system=(
            _BASE
            + "You receive a role comparison that has already been scored. Do not "
            "change any number. Write:\n"
            "- summary: two or three sentences a manager can read in ten seconds.\n"
            "- doNothingRisk: what concretely goes wrong in the next 3-6 months if nothing changes.\n"
            "- topPriority (optional): the single most important fix, in one sentence.\n"
            "Output contract: ComparisonNarrative"
        ),
        user=(
            "Role: {{role_title}}\nExpected role: {{expected_title}}\n"
            "Clarity score: {{overall}} ({{interpretation}})\n"
            "Findings:\n{{findings}}"
        ),
    ),
    PromptTemplate(
        name="workspace_overlaps",
        version="v1",
        description="Write the narrative for a workspace overlap analysis",
        system=(
            _BASE
            + "You receive the deterministic overlap and gap analysis of a whole team. "
            "Do not change counts or scores. Write:\n"
            "- topRiskStatement: one sentence naming the biggest ownership risk.\n"
            "- recommendations: an object mapping overlap item → one-sentence recommendation "
            "(only for items you can improve on).\n"
            "Output contract: OverlapNarrative"
        ),
        user="Health score: {{score}}\nOverlaps:\n{{overlaps}}\nGaps:\n{{gaps}}",
    ),
    PromptTemplate(
        name="handoff_sla",
        version="v1",
        description="Write rationale text for proposed handoff SLAs",
        system=(
            _BASE
            + "You receive proposed SLAs for handoffs between pipeline stages. Do not "
            "change the SLA values or owners. For each handoff you can explain better, "
            "return {fromStage, toStage, slaRationale?, ownerRationale?, explanation?} "
            "inside suggestions[].\n"
            "Output contract: HandoffNarrative"
        ),
        user="Stages: {{stages}}\nProposed handoff SLAs:\n{{suggestions}}",
    ),
]
