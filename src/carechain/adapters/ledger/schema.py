"""Pydantic models describing the Ledger HTTP API envelopes."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _blank_to_none(value: object) -> object:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


class LedgerBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class CapabilitiesResponse(LedgerBaseModel):
    operations: list[str] = Field(default_factory=list)


class CollectionResponse(LedgerBaseModel):
    # element shapes vary; the normalizer validates them one by one
    items: list[Any] = Field(default_factory=list)


class WriteSubmission(LedgerBaseModel):
    contract: str
    action: str
    args: dict[str, Any]
    sender: str = Field(alias="from")
    signature: str


class WriteAccepted(LedgerBaseModel):
    handle: str


class WriteStatus(LedgerBaseModel):
    status: Literal["pending", "confirmed", "reverted"]
    block: int | None = None
    reason: str | None = None
    events: dict[str, Any] = Field(default_factory=dict)

    _normalize_reason = field_validator("reason", mode="before")(_blank_to_none)


class AccessResponse(LedgerBaseModel):
    has_access: bool = Field(alias="hasAccess")


class ErrorResponse(LedgerBaseModel):
    error: str = "Ledger request failed"
    reason: str | None = None

    _normalize_reason = field_validator("reason", mode="before")(_blank_to_none)

    @property
    def message(self) -> str:
        return self.reason or self.error
