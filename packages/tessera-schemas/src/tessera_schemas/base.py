"""Base schema configuration for tessera Pydantic models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """Base schema with strict validation defaults.

    Note: extra="ignore" lets the translation service add fields to its
    payloads without failing validation. Whitespace is never stripped because
    document text must round-trip byte for byte.
    """

    model_config = ConfigDict(
        extra="ignore",
        validate_assignment=True,
        validate_default=True,
        use_enum_values=True,
        strict=True,
    )


class WireSchema(BaseSchema):
    """Base schema for payloads decoded from the translation service.

    Wire payloads are produced by another process, so numeric and string
    coercion is allowed (e.g. ``"3"`` for a batch number).
    """

    model_config = ConfigDict(strict=False)
