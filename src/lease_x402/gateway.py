"""Action gateway: relays console actions to the upstream resource server."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional
from urllib.parse import quote

import httpx

from .constants import (
    ANONYMOUS_OPERATOR,
    CHALLENGE_HEADER,
    DEFAULT_ACTION,
    TRANSPORT_FAILURE_STATUS,
    UPSTREAM_UNREACHABLE_MESSAGE,
    get_upstream_url,
)

logger = logging.getLogger(__name__)

# Characters left unescaped by encodeURIComponent.
_URI_COMPONENT_SAFE = "-_.!~*'()"


class RelayKind(str, enum.Enum):
    SUCCESS = "success"
    PAYMENT_REQUIRED = "payment_required"
    UPSTREAM_ERROR = "upstream_error"
    TRANSPORT_ERROR = "transport_error"


@dataclass
class ActionRequest:
    action: str
    operator: str = ANONYMOUS_OPERATOR

    @classmethod
    def from_payload(
        cls,
        payload: Any,
        query: Optional[Mapping[str, str]] = None,
    ) -> "ActionRequest":
        body = payload if isinstance(payload, dict) else {}
        query = query or {}

        def pick(keys):
            for key in keys:
                value = body.get(key)
                if value is not None and str(value):
                    return str(value)
            return None

        action = pick(["action"]) or str(query.get("action") or "") or DEFAULT_ACTION
        operator = pick(["operator", "walletAddress"]) or ANONYMOUS_OPERATOR
        return cls(action=action, operator=operator)


@dataclass
class GatewayResponse:
    http_status: int
    message: str
    kind: RelayKind
    body: str = ""
    challenge_header: Optional[str] = None

    @property
    def is_transport_error(self) -> bool:
        return self.kind is RelayKind.TRANSPORT_ERROR

    def to_payload(self) -> Dict[str, Any]:
        return {"message": self.message, "body": self.body, "kind": self.kind.value}

    def headers(self) -> Dict[str, str]:
        if self.challenge_header:
            return {CHALLENGE_HEADER: self.challenge_header}
        return {}


@dataclass
class GatewayConfig:
    upstream_url: Optional[str] = None
    http_client: Any = field(default=None, repr=False)


def build_upstream_url(base_url: str, action: str) -> str:
    """Append ``action`` as a query parameter, keeping any existing query."""
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}action={quote(action, safe=_URI_COMPONENT_SAFE)}"


def _raw_header(response: httpx.Response, name: str) -> Optional[str]:
    # Latin-1 maps bytes 1:1, so Starlette and Werkzeug write the same bytes back.
    target = name.lower().encode("ascii")
    values = [value.decode("latin-1") for key, value in response.headers.raw if key.lower() == target]
    return ", ".join(values) if values else None


def _interpret_upstream(
    response: httpx.Response, action: str, operator: str
) -> GatewayResponse:
    text = response.text
    status = response.status_code

    if status == 402:
        # Forwarded verbatim; the caller owns challenge parsing.
        challenge_header = _raw_header(response, CHALLENGE_HEADER) or None
        logger.info(
            "upstream requested payment action=%s operator=%s has_challenge=%s",
            action,
            operator,
            challenge_header is not None,
        )
        return GatewayResponse(
            http_status=402,
            message=f"HTTP 402 Payment Required for {action} ({operator})",
            kind=RelayKind.PAYMENT_REQUIRED,
            body=text,
            challenge_header=challenge_header,
        )

    if not response.is_success:
        logger.warning("upstream error status=%s action=%s", status, action)
        return GatewayResponse(
            http_status=status,
            message=f"Upstream error {status}",
            kind=RelayKind.UPSTREAM_ERROR,
            body=text,
        )

    logger.info("action=%s executed for operator=%s", action, operator)
    return GatewayResponse(
        http_status=200,
        message=f"Action {action} executed for {operator}.",
        kind=RelayKind.SUCCESS,
        body=text,
    )


def _transport_failure(url: str, exc: Exception) -> GatewayResponse:
    logger.warning("premium relay failed url=%s: %s", url, exc, exc_info=exc)
    return GatewayResponse(
        http_status=TRANSPORT_FAILURE_STATUS,
        message=UPSTREAM_UNREACHABLE_MESSAGE,
        kind=RelayKind.TRANSPORT_ERROR,
    )


def _resolve_config(config: GatewayConfig | Dict[str, Any] | None) -> GatewayConfig:
    if isinstance(config, dict):
        config = GatewayConfig(**config)
    config = config or GatewayConfig()
    if config.upstream_url is None:
        config.upstream_url = get_upstream_url()
    return config


class ActionGateway:
    """Async gateway relaying one action per call to the upstream server."""

    def __init__(self, config: GatewayConfig | Dict[str, Any] | None = None) -> None:
        config = _resolve_config(config)
        self._upstream_url: str = config.upstream_url
        self._owns_client = config.http_client is None
        self._client: httpx.AsyncClient = config.http_client or httpx.AsyncClient()

    @property
    def upstream_url(self) -> str:
        return self._upstream_url

    async def relay(self, action: str, operator: str = ANONYMOUS_OPERATOR) -> GatewayResponse:
        url = build_upstream_url(self._upstream_url, action)
        try:
            response = await self._client.get(url)
        except (httpx.RequestError, httpx.InvalidURL) as exc:
            return _transport_failure(url, exc)
        return _interpret_upstream(response, action, operator)

    async def relay_request(self, request: ActionRequest) -> GatewayResponse:
        return await self.relay(request.action, request.operator)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "ActionGateway":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


class ActionGatewaySync:
    """Blocking gateway relaying one action per call to the upstream server."""

    def __init__(self, config: GatewayConfig | Dict[str, Any] | None = None) -> None:
        config = _resolve_config(config)
        self._upstream_url: str = config.upstream_url
        self._owns_client = config.http_client is None
        self._client: httpx.Client = config.http_client or httpx.Client()

    @property
    def upstream_url(self) -> str:
        return self._upstream_url

    def relay(self, action: str, operator: str = ANONYMOUS_OPERATOR) -> GatewayResponse:
        url = build_upstream_url(self._upstream_url, action)
        try:
            response = self._client.get(url)
        except (httpx.RequestError, httpx.InvalidURL) as exc:
            return _transport_failure(url, exc)
        return _interpret_upstream(response, action, operator)

    def relay_request(self, request: ActionRequest) -> GatewayResponse:
        return self.relay(request.action, request.operator)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "ActionGatewaySync":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
