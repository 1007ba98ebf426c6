"""Typed failures produced at the workflow gateway boundary."""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

import httpx


class ErrorKind(str, Enum):
    """Closed set of failure categories controllers react to."""
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    UPSTREAM_FAILURE = "upstream_failure"
    NETWORK = "network"
    UNKNOWN = "unknown"


_STATUS_KINDS: Dict[int, ErrorKind] = {
    400: ErrorKind.VALIDATION,
    409: ErrorKind.VALIDATION,
    422: ErrorKind.VALIDATION,
    404: ErrorKind.NOT_FOUND,
    502: ErrorKind.UPSTREAM_FAILURE,
    503: ErrorKind.UPSTREAM_FAILURE,
}


class GatewayError(Exception):
    """A failed workflow call, or a local precondition that stopped one."""

    def __init__(
        self,
        kind: ErrorKind,
        detail: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        self.kind = kind
        self.detail = detail
        self.status_code = status_code
        super().__init__(detail or kind.value)

    @property
    def is_local(self) -> bool:
        """True when no request was sent."""
        return self.status_code is None and self.kind == ErrorKind.VALIDATION

    def __repr__(self) -> str:
        return f"GatewayError(kind={self.kind.value!r}, status_code={self.status_code!r}, detail={self.detail!r})"


def validation_error(detail: str) -> GatewayError:
    """Local precondition failure; nothing was sent."""
    return GatewayError(ErrorKind.VALIDATION, detail=detail)


def kind_for_status(status_code: int) -> ErrorKind:
    return _STATUS_KINDS.get(status_code, ErrorKind.UNKNOWN)


def _extract_detail(response: httpx.Response) -> Optional[str]:
    try:
        data: Any = response.json()
    except ValueError:
        text = response.text.strip()
        return text or None

    if isinstance(data, dict):
        detail = data.get("detail")
        if isinstance(detail, list):
            parts = []
            for item in detail:
                if isinstance(item, dict) and "msg" in item:
                    parts.append(str(item["msg"]))
                else:
                    parts.append(str(item))
            return "; ".join(parts) or None
        if detail is not None:
            return str(detail)
        if "message" in data:
            return str(data["message"])
    if data in (None, "", {}, []):
        return None
    return str(data)


def from_response(response: httpx.Response) -> GatewayError:
    """Classify a non-2xx response."""
    return GatewayError(
        kind_for_status(response.status_code),
        detail=_extract_detail(response),
        status_code=response.status_code,
    )


def from_request_error(exc: httpx.RequestError) -> GatewayError:
    """Classify a request that produced no usable response.

    Connection failures and timeouts are NETWORK; decoding failures and
    redirect loops are UNKNOWN.
    """
    kind = ErrorKind.NETWORK if isinstance(exc, httpx.TransportError) else ErrorKind.UNKNOWN
    return GatewayError(kind, detail=str(exc) or exc.__class__.__name__)


def describe(
    error: GatewayError,
    messages: Optional[Dict[ErrorKind, str]] = None,
    default: Optional[str] = None,
) -> str:
    """Pick the operator-facing message for an error.

    Local validation failures always show their own detail.
    """
    if error.is_local and error.detail:
        return error.detail
    if messages and error.kind in messages:
        return messages[error.kind]
    if default:
        return default
    return error.detail or "Request failed."
