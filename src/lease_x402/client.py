"""Caller-side action client for the x402 action gateway."""

from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import httpx

from .challenge import Challenge, parse_challenge_header
from .constants import (
    ANONYMOUS_OPERATOR,
    BACKEND_UNREACHABLE_MESSAGE,
    CHALLENGE_HEADER,
    PAYMENT_REQUIRED_MESSAGE,
    SUCCESS_MESSAGE,
    MissingGatewayURLError,
    get_gateway_url,
)
from .gateway import RelayKind

logger = logging.getLogger(__name__)


class ClientState(str, enum.Enum):
    IDLE = "idle"
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    CHALLENGED = "challenged"
    FAILED = "failed"


class OutcomeStatus(str, enum.Enum):
    SUCCEEDED = "succeeded"
    CHALLENGED = "challenged"
    FAILED = "failed"


class FailureKind(str, enum.Enum):
    # The gateway could not be reached at all.
    TRANSPORT = "transport"
    # The gateway answered but could not reach the upstream server.
    UPSTREAM_UNREACHABLE = "upstream_unreachable"
    # The upstream server answered with a non-2xx, non-402 status.
    UPSTREAM_ERROR = "upstream_error"


_STATE_FOR_STATUS = {
    OutcomeStatus.SUCCEEDED: ClientState.SUCCEEDED,
    OutcomeStatus.CHALLENGED: ClientState.CHALLENGED,
    OutcomeStatus.FAILED: ClientState.FAILED,
}


@dataclass(frozen=True)
class ActionOutcome:
    status: OutcomeStatus
    message: str
    http_status: Optional[int] = None
    challenge: Optional[Challenge] = None
    failure: Optional[FailureKind] = None
    body: str = ""

    @property
    def upstream_message(self) -> Optional[str]:
        """``message`` field of the relayed upstream body, if it has one."""
        try:
            payload = json.loads(self.body)
        except ValueError:
            return None
        if isinstance(payload, dict) and payload.get("message") is not None:
            return str(payload["message"])
        return None


@dataclass
class ActionClientConfig:
    url: Optional[str] = None
    operator: str = ANONYMOUS_OPERATOR
    http_client: Any = field(default=None, repr=False)


def _resolve_config(config: ActionClientConfig | Dict[str, Any] | None) -> ActionClientConfig:
    if isinstance(config, dict):
        config = ActionClientConfig(**config)
    config = config or ActionClientConfig()
    if config.url is None:
        config.url = get_gateway_url()
    if not config.url:
        raise MissingGatewayURLError("Action client requires a gateway URL")
    return config


def _json_body(response: httpx.Response) -> Dict[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


def interpret_response(response: httpx.Response) -> ActionOutcome:
    """Map a gateway response onto an :class:`ActionOutcome`."""
    status = response.status_code
    payload = _json_body(response)
    message = payload.get("message")
    body = payload.get("body")
    body = body if isinstance(body, str) else ""

    if response.is_success:
        return ActionOutcome(
            status=OutcomeStatus.SUCCEEDED,
            message=str(message or SUCCESS_MESSAGE),
            http_status=status,
            body=body,
        )

    if status == 402:
        raw_header = response.headers.get(CHALLENGE_HEADER) or ""
        challenge = parse_challenge_header(raw_header)
        if challenge is None:
            logger.info("402 without a parsable challenge header: %r", raw_header)
            challenge = Challenge.empty(raw_header)
        return ActionOutcome(
            status=OutcomeStatus.CHALLENGED,
            message=str(message or PAYMENT_REQUIRED_MESSAGE),
            http_status=status,
            challenge=challenge,
            body=body,
        )

    if payload.get("kind") == RelayKind.TRANSPORT_ERROR.value:
        failure = FailureKind.UPSTREAM_UNREACHABLE
    else:
        failure = FailureKind.UPSTREAM_ERROR
    return ActionOutcome(
        status=OutcomeStatus.FAILED,
        message=str(message or f"Backend returned error status {status}"),
        http_status=status,
        failure=failure,
        body=body,
    )


def _unreachable() -> ActionOutcome:
    return ActionOutcome(
        status=OutcomeStatus.FAILED,
        message=BACKEND_UNREACHABLE_MESSAGE,
        failure=FailureKind.TRANSPORT,
    )


class _ClientStateMixin:
    """State snapshot shared by the async and sync clients.

    State and outcome are stored as one tuple so readers never observe a
    terminal state without its payload.
    """

    _snapshot: Tuple[ClientState, Optional[ActionOutcome]]

    @property
    def state(self) -> ClientState:
        return self._snapshot[0]

    @property
    def outcome(self) -> Optional[ActionOutcome]:
        return self._snapshot[1]

    @property
    def challenge(self) -> Optional[Challenge]:
        outcome = self._snapshot[1]
        return outcome.challenge if outcome is not None else None

    @property
    def status_code(self) -> Optional[int]:
        outcome = self._snapshot[1]
        return outcome.http_status if outcome is not None else None

    @property
    def is_pending(self) -> bool:
        return self._snapshot[0] is ClientState.PENDING

    def reset(self) -> None:
        self._snapshot = (ClientState.IDLE, None)

    def _begin(self) -> None:
        self._snapshot = (ClientState.PENDING, None)

    def _finish(self, outcome: ActionOutcome) -> ActionOutcome:
        self._snapshot = (_STATE_FOR_STATUS[outcome.status], outcome)
        return outcome


class ActionClient(_ClientStateMixin):
    """Async client dispatching actions through the gateway."""

    def __init__(self, config: ActionClientConfig | Dict[str, Any] | None = None) -> None:
        config = _resolve_config(config)
        self._url: str = config.url
        self._operator = config.operator
        self._owns_client = config.http_client is None
        self._client: httpx.AsyncClient = config.http_client or httpx.AsyncClient()
        self._snapshot = (ClientState.IDLE, None)

    @property
    def operator(self) -> str:
        return self._operator

    async def dispatch(self, action: str, operator: Optional[str] = None) -> ActionOutcome:
        self._begin()
        payload = {"action": action, "operator": operator or self._operator}
        try:
            response = await self._client.post(self._url, json=payload)
        except Exception:
            logger.exception("action dispatch failed action=%s url=%s", action, self._url)
            return self._finish(_unreachable())
        return self._finish(interpret_response(response))

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "ActionClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


class ActionClientSync(_ClientStateMixin):
    """Blocking client dispatching actions through the gateway."""

    def __init__(self, config: ActionClientConfig | Dict[str, Any] | None = None) -> None:
        config = _resolve_config(config)
        self._url: str = config.url
        self._operator = config.operator
        self._owns_client = config.http_client is None
        self._client: httpx.Client = config.http_client or httpx.Client()
        self._snapshot = (ClientState.IDLE, None)

    @property
    def operator(self) -> str:
        return self._operator

    def dispatch(self, action: str, operator: Optional[str] = None) -> ActionOutcome:
        self._begin()
        payload = {"action": action, "operator": operator or self._operator}
        try:
            response = self._client.post(self._url, json=payload)
        except Exception:
            logger.exception("action dispatch failed action=%s url=%s", action, self._url)
            return self._finish(_unreachable())
        return self._finish(interpret_response(response))

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "ActionClientSync":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
