"""Fixed, ordered stage definitions for the lead processing pipeline."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class StageKey(str, Enum):
    VALIDATE = "validate"
    CHECK_SALESFORCE = "check_salesforce"
    ENRICH = "enrich"
    SYNC = "sync"

    @classmethod
    def normalize(cls, raw: str | StageKey) -> StageKey:
        """Map a stored stage string (including legacy aliases) to a key."""
        if isinstance(raw, StageKey):
            return raw
        value = str(raw).strip().lower()
        value = _STAGE_ALIASES.get(value, value)
        return cls(value)


# Older job rows and panels used shorter names for these stages
_STAGE_ALIASES = {
    "salesforce": "check_salesforce",
    "enrichment": "enrich",
    "validation": "validate",
}


class StageDefinition(BaseModel):
    """Static description of one stage."""

    model_config = ConfigDict(frozen=True)

    key: StageKey
    title: str
    description: str
    predecessor: StageKey | None = None
    function_name: str
    action_phrase: str
    stats_verb: str = "processed"
    banner_label: str
    icon: str = "circle"

    @property
    def started_message(self) -> str:
        return f"{self.action_phrase[0].upper()}{self.action_phrase[1:]} started successfully"

    @property
    def failed_message(self) -> str:
        return f"Failed to start {self.action_phrase}"


STAGES: tuple[StageDefinition, ...] = (
    StageDefinition(
        key=StageKey.VALIDATE,
        title="Validate Emails",
        description="Check email deliverability",
        function_name="leads-validate",
        action_phrase="email validation",
        stats_verb="validated",
        banner_label="Email Validation",
        icon="users",
    ),
    StageDefinition(
        key=StageKey.CHECK_SALESFORCE,
        title="Check Salesforce",
        description="Verify existing accounts and contacts",
        predecessor=StageKey.VALIDATE,
        function_name="leads-check-salesforce",
        action_phrase="Salesforce check",
        banner_label="Salesforce Check",
        icon="building",
    ),
    StageDefinition(
        key=StageKey.ENRICH,
        title="Enrich Data",
        description="Add additional contact information from ZoomInfo",
        predecessor=StageKey.CHECK_SALESFORCE,
        function_name="leads-enrich",
        action_phrase="lead enrichment",
        stats_verb="enriched",
        banner_label="Data Enrichment",
        icon="user-plus",
    ),
    StageDefinition(
        key=StageKey.SYNC,
        title="Sync to Salesforce",
        description="Push qualified leads to Salesforce CRM",
        predecessor=StageKey.ENRICH,
        function_name="leads-sync-salesforce",
        action_phrase="Salesforce sync",
        stats_verb="synced",
        banner_label="Salesforce Sync",
        icon="database",
    ),
)

STAGE_ORDER: tuple[StageKey, ...] = tuple(stage.key for stage in STAGES)
_BY_KEY = {stage.key: stage for stage in STAGES}


def get_stage(key: StageKey | str) -> StageDefinition:
    """Return the definition for a stage key."""
    return _BY_KEY[StageKey.normalize(key)]


def validate_stage_order(stages: tuple[StageDefinition, ...]) -> None:
    """Check that every predecessor appears earlier in the sequence."""
    seen: set[StageKey] = set()
    for stage in stages:
        if stage.key in seen:
            raise ValueError(f"Duplicate stage: {stage.key.value}")
        if stage.predecessor is not None and stage.predecessor not in seen:
            raise ValueError(
                f"Stage {stage.key.value} requires {stage.predecessor.value}, "
                "which must come before it"
            )
        seen.add(stage.key)


validate_stage_order(STAGES)
