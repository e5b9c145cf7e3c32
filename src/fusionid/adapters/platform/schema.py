"""Pydantic models describing the identity platform API payloads."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class PlatformBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, alias_generator=to_camel)


class ConnectorAttributes(PlatformBaseModel):
    fusion_state: dict[str, int] = Field(default_factory=dict)
    reset: bool = False


class SourceResponse(PlatformBaseModel):
    id: str
    name: str | None = None
    connector_attributes: ConnectorAttributes = Field(default_factory=ConnectorAttributes)


class PatchOperation(PlatformBaseModel):
    op: str
    path: str
    value: object = None


class ReviewScore(PlatformBaseModel):
    attribute: str
    algorithm: str | None = None
    score: float
    fusion_score: float | None = None
    is_match: bool


class ReviewCandidate(PlatformBaseModel):
    identity_id: str | None
    identity_name: str | None = None
    scores: list[ReviewScore] = Field(default_factory=list)


class ReviewAccount(PlatformBaseModel):
    id: str | None
    name: str | None = None
    source_name: str | None = None
    attributes: dict[str, object] = Field(default_factory=dict)


class ReviewRequest(PlatformBaseModel):
    reviewer_id: str | None
    reviewer_email: str | None = None
    account: ReviewAccount
    candidates: list[ReviewCandidate]


class ReviewCreatedResponse(PlatformBaseModel):
    id: str
    url: str | None = None

    @property
    def reference(self) -> str:
        return self.url or self.id


class ErrorMessage(PlatformBaseModel):
    text: str


class ErrorResponse(PlatformBaseModel):
    detail_code: str | None = None
    messages: list[ErrorMessage] = Field(default_factory=list)

    @property
    def message(self) -> str:
        return "; ".join(message.text for message in self.messages) or (
            self.detail_code or "Unknown platform error"
        )
