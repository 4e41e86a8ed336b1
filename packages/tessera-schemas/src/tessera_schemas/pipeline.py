"""Read-only pipeline snapshot schema."""

from __future__ import annotations

from pydantic import Field

from tessera_schemas.base import BaseSchema
from tessera_schemas.primitives import StageName
from tessera_schemas.progress import StageState
from tessera_schemas.results import (
    GlossaryTerm,
    InconsistentTerm,
    TextPair,
    TranslationResult,
)


class PipelineSnapshot(BaseSchema):
    """Point-in-time copy of every stage and store."""

    active_stage: StageName | None = Field(None, description="Stage currently running")
    stages: dict[StageName, StageState] = Field(..., description="State per stage")
    results: list[TranslationResult] = Field(
        default_factory=list, description="Results with overlay text applied"
    )
    overlays: dict[str, str] = Field(
        default_factory=dict, description="User overlays keyed by result id"
    )
    glossary_terms: list[GlossaryTerm] = Field(
        default_factory=list, description="Extracted glossary terms"
    )
    inconsistent_terms: list[InconsistentTerm] = Field(
        default_factory=list, description="Inconsistent-translation clusters"
    )
    selections: dict[str, str] = Field(
        default_factory=dict, description="Effective standardization per source word"
    )
    standalone_pairs: list[TextPair] = Field(
        default_factory=list, description="Pairs from standalone glossary extraction"
    )
