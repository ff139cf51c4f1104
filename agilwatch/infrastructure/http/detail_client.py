"""Client for the per-item detail ("ficha") endpoint.

Both access modes share :func:`validate_detail_body`. Public mode is only
trusted when the response actually carries line items; an empty list there
means the source is not really serving detail without credentials.
"""

from __future__ import annotations

from typing import Any, Mapping

from agilwatch.domain.models import AccessCredential, DetailRecord, DetailSource
from agilwatch.errors import AuthRequired, DetailUnavailable, InvalidShape
from agilwatch.infrastructure.observability import record_detail_fetch

from .fetcher import JsonFetcher, JsonResult

AUTH_REJECTED_STATUSES = frozenset({401, 403})
SUCCESS_FLAG = "OK"


def classify_result(code: str, result: JsonResult) -> Any:
    """Return the decoded body or raise the matching detail error."""
    if result.status in AUTH_REJECTED_STATUSES:
        raise AuthRequired(code, f"rejected with HTTP {result.status}", status=result.status)
    if result.ok:
        return result.payload
    if result.status is not None and 200 <= result.status < 300:
        raise InvalidShape(code, result.error or "unreadable body", status=result.status)
    raise DetailUnavailable(code, result.error or f"HTTP {result.status}", status=result.status)


def validate_detail_body(
    code: str, body: Any, *, require_line_items: bool, status: int | None = None
) -> Mapping[str, Any]:
    """Check the response shape and return the detail payload.

    Raises:
        InvalidShape: If the success flag or payload is missing, or when
            ``require_line_items`` is set and no line items are present.
    """
    if not isinstance(body, Mapping) or body.get("success") != SUCCESS_FLAG:
        raise InvalidShape(code, "missing success flag", status=status)
    payload = body.get("payload")
    if not isinstance(payload, Mapping):
        if require_line_items and isinstance(body.get("productos_solicitados"), list):
            payload = body
        else:
            raise InvalidShape(code, "missing payload", status=status)
    if require_line_items:
        products = payload.get("productos_solicitados")
        if not isinstance(products, list) or not products:
            raise InvalidShape(code, "no line items in public detail", status=status)
    return payload


def _outcome(exc: Exception) -> str:
    if isinstance(exc, AuthRequired):
        return "auth_required"
    if isinstance(exc, InvalidShape):
        return "invalid_shape"
    return "unavailable"


class DetailClient:
    """Fetch one item's detail record in public or authenticated mode."""

    def __init__(
        self,
        fetcher: JsonFetcher,
        *,
        api_url: str,
        timeout_seconds: float = 30.0,
        api_key: str | None = None,
    ) -> None:
        self._fetcher = fetcher
        self.api_url = api_url
        self.timeout_seconds = timeout_seconds
        self.api_key = api_key

    async def fetch_public(self, code: str) -> DetailRecord:
        return await self._fetch(code, DetailSource.PUBLIC, headers=None)

    async def fetch_authenticated(self, code: str, credential: AccessCredential) -> DetailRecord:
        headers = {"Authorization": credential.authorization_header}
        api_key = credential.api_key or self.api_key
        if api_key:
            headers["x-api-key"] = api_key
        return await self._fetch(code, DetailSource.AUTHENTICATED, headers=headers)

    async def _fetch(
        self, code: str, mode: DetailSource, *, headers: dict[str, str] | None
    ) -> DetailRecord:
        result = await self._fetcher.get_json(
            self.api_url,
            params={"action": "ficha", "code": code},
            headers=headers,
            timeout_seconds=self.timeout_seconds,
        )
        try:
            body = classify_result(code, result)
            payload = validate_detail_body(
                code,
                body,
                require_line_items=mode is DetailSource.PUBLIC,
                status=result.status,
            )
        except (AuthRequired, InvalidShape, DetailUnavailable) as exc:
            record_detail_fetch(mode.value, _outcome(exc))
            raise
        record_detail_fetch(mode.value, "success")
        return DetailRecord.from_payload(payload)


__all__ = [
    "AUTH_REJECTED_STATUSES",
    "DetailClient",
    "classify_result",
    "validate_detail_body",
]
