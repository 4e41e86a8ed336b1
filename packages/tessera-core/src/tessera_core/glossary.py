"""Glossary and inconsistency stores derived from stage results."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

from tessera_core.ports.orchestrator import (
    OrchestrationError,
    OrchestrationErrorCode,
    OrchestrationErrorDetails,
    OrchestrationErrorInfo,
)
from tessera_schemas.primitives import GlossaryMergePolicy
from tessera_schemas.results import (
    GlossaryTerm,
    InconsistentTerm,
    InconsistentTermPayload,
    StandardizationPair,
)

logger = logging.getLogger(__name__)


class GlossaryStore:
    """Extracted terminology in arrival order.

    With the default ``concatenate`` policy, duplicate source terms from
    different batches are kept side by side.
    """

    def __init__(
        self, policy: GlossaryMergePolicy = GlossaryMergePolicy.CONCATENATE
    ) -> None:
        """Initialize the store.

        Args:
            policy: How terms from successive batches combine.
        """
        self._policy = policy
        self._terms: list[GlossaryTerm] = []

    def __len__(self) -> int:
        return len(self._terms)

    @property
    def policy(self) -> GlossaryMergePolicy:
        """Active merge policy."""
        return self._policy

    @property
    def terms(self) -> list[GlossaryTerm]:
        """Stored terms (copies)."""
        return [term.model_copy() for term in self._terms]

    def add_terms(self, terms: Iterable[GlossaryTerm]) -> int:
        """Add terms from one batch according to the merge policy.

        Terms missing either side are dropped.

        Returns:
            int: Number of entries appended to the store.
        """
        added = 0
        for term in terms:
            if term.is_blank:
                logger.debug("Dropping blank glossary term %r", term)
                continue
            if self._policy == GlossaryMergePolicy.MERGE_BY_SOURCE_TERM:
                existing = self._find(term.source_term)
                if existing is not None:
                    _merge_into(existing, term)
                    continue
            self._terms.append(term.model_copy())
            added += 1
        return added

    def replace_terms(self, terms: Iterable[GlossaryTerm]) -> None:
        """Replace the stored terms with a final aggregate."""
        self._terms.clear()
        self.add_terms(terms)

    def clear(self) -> None:
        """Drop all terms."""
        self._terms.clear()

    def _find(self, source_term: str) -> GlossaryTerm | None:
        key = source_term.strip()
        for term in self._terms:
            if term.source_term.strip() == key:
                return term
        return None


class InconsistencyStore:
    """Inconsistent-translation clusters and the user's chosen resolutions."""

    def __init__(self) -> None:
        """Initialize an empty store."""
        self._terms: dict[str, InconsistentTerm] = {}
        self._selections: dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._terms)

    @property
    def terms(self) -> list[InconsistentTerm]:
        """Clusters in the order the service reported them (copies)."""
        return [term.model_copy(deep=True) for term in self._terms.values()]

    @property
    def selections(self) -> dict[str, str]:
        """Effective resolution per source word, defaults included."""
        return {word: self.selection_for(word) for word in self._terms}

    def replace(self, payload: Mapping[str, InconsistentTermPayload]) -> None:
        """Replace all clusters with an analysis result.

        Clusters without suggestions cannot be resolved and are dropped.
        Previous selections are discarded.
        """
        self._terms.clear()
        self._selections.clear()
        for word, entry in payload.items():
            suggestions = [value for value in entry.suggestions if value.strip()]
            if not word.strip() or not suggestions:
                logger.warning(
                    "Dropping inconsistent term %r without suggestions", word
                )
                continue
            self._terms[word] = InconsistentTerm(
                source_word=word,
                suggestions=suggestions,
                locations=list(entry.locations),
            )

    def select(self, source_word: str, translation: str) -> None:
        """Record the user's resolution for a source word.

        Raises:
            OrchestrationError: If the word is unknown or the choice is blank.
        """
        if source_word not in self._terms:
            raise OrchestrationError(
                OrchestrationErrorInfo(
                    code=OrchestrationErrorCode.INVALID_REQUEST,
                    message=f"'{source_word}' is not an inconsistent term",
                    details=OrchestrationErrorDetails(reason=source_word),
                )
            )
        if not translation.strip():
            raise OrchestrationError(
                OrchestrationErrorInfo(
                    code=OrchestrationErrorCode.INVALID_REQUEST,
                    message="Standardized translation must not be blank",
                    details=OrchestrationErrorDetails(reason=source_word),
                )
            )
        self._selections[source_word] = translation

    def selection_for(self, source_word: str) -> str:
        """Return the chosen resolution, defaulting to the first suggestion."""
        chosen = self._selections.get(source_word)
        if chosen:
            return chosen
        return self._terms[source_word].suggestions[0]

    def pairs(self) -> list[StandardizationPair]:
        """Return one standardization pair per inconsistent source word."""
        return [
            StandardizationPair(
                source_word=word, standardized_translation=self.selection_for(word)
            )
            for word in self._terms
        ]

    def clear(self) -> None:
        """Drop clusters and selections."""
        self._terms.clear()
        self._selections.clear()


def _merge_into(existing: GlossaryTerm, incoming: GlossaryTerm) -> None:
    if existing.frequency is not None or incoming.frequency is not None:
        existing.frequency = (existing.frequency or 1) + (incoming.frequency or 1)
    if existing.context is None and incoming.context is not None:
        existing.context = incoming.context
