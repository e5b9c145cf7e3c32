"""HTTP client for the identity platform: state patches, reviews and correlation."""

from __future__ import annotations

from contextlib import suppress
from logging import getLogger
from typing import TYPE_CHECKING

from pydantic import ValidationError

from fusionid.adapters.http_resilience import ResilientClient

from .schema import (
    ErrorResponse,
    PatchOperation,
    ReviewAccount,
    ReviewCandidate,
    ReviewCreatedResponse,
    ReviewRequest,
    ReviewScore,
    SourceResponse,
)

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import TracebackType

    import httpx

    from fusionid.config.platform import PlatformConfig
    from fusionid.domain.model.fusion_record import FusionRecord
    from fusionid.domain.model.matching import FusionMatch
    from fusionid.domain.ports.persistence import StateStore
    from fusionid.domain.ports.reviews import DirectoryCorrelator, ReviewRequester

log = getLogger(__name__)

JSON_PATCH_CONTENT_TYPE = "application/json-patch+json"


class PlatformAPIError(RuntimeError):
    """Raised when the platform API answers with an error status or an unexpected payload."""

    def __init__(self, message: str, *, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class PlatformClient:
    """Implements the state, review and correlation ports over one resilient HTTP client."""

    def __init__(self, config: PlatformConfig, *, http: ResilientClient | None = None) -> None:
        self.config = config
        self._http = http or ResilientClient(config.resilience)

    async def __aenter__(self) -> PlatformClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    @property
    def _source_path(self) -> str:
        return f"/sources/{self.config.source_id}"

    # StateStore

    async def load_counters(self) -> dict[str, int]:
        response = await self._http.get(self._source_path)
        payload = self._json(response)
        try:
            source = SourceResponse.model_validate(payload)
        except ValidationError as exc:
            raise PlatformAPIError(f"Unexpected source payload: {exc}") from exc
        return dict(source.connector_attributes.fusion_state)

    async def patch_config(self, path: str, value: object, *, op: str = "add") -> None:
        operation = PatchOperation(op=op, path=path, value=value)
        response = await self._http.patch(
            self._source_path,
            json=[operation.model_dump(by_alias=True)],
            headers={"Content-Type": JSON_PATCH_CONTENT_TYPE},
        )
        self._json(response)
        log.debug("Patched source %s at %s", self.config.source_id, path)

    # ReviewRequester

    async def create_review(
        self,
        *,
        record: FusionRecord,
        reviewer: FusionRecord,
        candidates: Sequence[FusionMatch],
    ) -> str | None:
        request = ReviewRequest(
            reviewer_id=reviewer.identity_key,
            reviewer_email=reviewer.email,
            account=ReviewAccount(
                id=record.managed_account_id or record.native_key,
                name=record.name,
                source_name=record.source_name,
                attributes=dict(record.attributes),
            ),
            candidates=[
                ReviewCandidate(
                    identity_id=match.identity_id,
                    identity_name=match.identity_name,
                    scores=[
                        ReviewScore(
                            attribute=score.attribute,
                            algorithm=score.algorithm,
                            score=score.score,
                            fusion_score=score.fusion_score,
                            is_match=score.is_match,
                        )
                        for score in match.scores
                    ],
                )
                for match in candidates
            ],
        )
        response = await self._http.post("/reviews", json=request.model_dump(by_alias=True))
        payload = self._json(response)
        try:
            created = ReviewCreatedResponse.model_validate(payload)
        except ValidationError as exc:
            raise PlatformAPIError(f"Unexpected review payload: {exc}") from exc
        log.info("Created review %s for %s (reviewer %s)", created.id, record, reviewer)
        return created.reference

    # DirectoryCorrelator

    async def correlate(self, *, identity_id: str, account_id: str) -> None:
        operation = PatchOperation(op="replace", path="/identityId", value=identity_id)
        response = await self._http.patch(
            f"/accounts/{account_id}",
            json=[operation.model_dump(by_alias=True)],
            headers={"Content-Type": JSON_PATCH_CONTENT_TYPE},
        )
        self._json(response)
        log.debug("Correlated account %s to identity %s", account_id, identity_id)

    def _json(self, response: httpx.Response) -> object:
        if response.is_error:
            message = response.reason_phrase or "Platform request failed"
            with suppress(ValueError):
                message = ErrorResponse.model_validate(response.json()).message
            log.error("Platform API error %s: %s", response.status_code, message)
            raise PlatformAPIError(message, code=response.status_code)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise PlatformAPIError("Platform returned a non-JSON payload") from exc


if TYPE_CHECKING:

    def _port_checks(
        client: PlatformClient,
    ) -> tuple[StateStore, ReviewRequester, DirectoryCorrelator]:
        return client, client, client
