"""Secret redaction for structured logs."""

from __future__ import annotations

import re
from collections.abc import Mapping

from tessera_schemas.primitives import JsonValue

REDACTED = "[REDACTED]"
BEARER_TOKEN_PATTERN = re.compile(r"Bearer\s+[A-Za-z0-9_\-\.=]{8,}")


class Redactor:
    """Redacts secrets from strings and JSON-like payloads."""

    def __init__(
        self,
        literal_values: list[str],
        patterns: list[re.Pattern[str]] | None = None,
    ) -> None:
        """Initialize with literal secret values and regex patterns.

        Args:
            literal_values: Exact values to redact (e.g. the service token).
            patterns: Regex patterns to redact; defaults to bearer tokens.
        """
        # Longest first so overlapping secrets are fully masked
        self.literal_values = sorted(
            (value for value in literal_values if value), key=len, reverse=True
        )
        self.patterns = patterns if patterns is not None else [BEARER_TOKEN_PATTERN]

    def redact(self, value: str) -> str:
        """Redact secrets from a string.

        Args:
            value: String that may contain secrets.

        Returns:
            str: String with secrets replaced by ``[REDACTED]``.
        """
        result = value
        for literal in self.literal_values:
            result = result.replace(literal, REDACTED)
        for pattern in self.patterns:
            result = pattern.sub(REDACTED, result)
        return result

    def redact_value(self, value: JsonValue) -> JsonValue:
        """Redact every string nested inside a JSON-like value.

        Returns:
            JsonValue: Copy of the value with secrets redacted.
        """
        if isinstance(value, str):
            return self.redact(value)
        if isinstance(value, Mapping):
            return self.redact_dict(value)
        if isinstance(value, list):
            return [self.redact_value(item) for item in value]
        return value

    def redact_dict(self, data: Mapping[str, JsonValue]) -> dict[str, JsonValue]:
        """Deep-walk a dict and redact all string values.

        Returns:
            dict[str, JsonValue]: New dictionary with secrets redacted.
        """
        return {key: self.redact_value(value) for key, value in data.items()}
