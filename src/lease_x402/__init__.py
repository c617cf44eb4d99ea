"""x402 payment-challenge handling for the compute lease console (Python)."""

from __future__ import annotations

from .challenge import Challenge, ChallengeEncodingError, parse_challenge_header
from .client import (
    ActionClient,
    ActionClientConfig,
    ActionClientSync,
    ActionOutcome,
    ClientState,
    FailureKind,
    OutcomeStatus,
)
from .constants import (
    CHALLENGE_HEADER,
    DEFAULT_UPSTREAM_URL,
    MissingGatewayURLError,
    get_gateway_url,
    get_upstream_url,
)
from .gateway import (
    ActionGateway,
    ActionGatewaySync,
    ActionRequest,
    GatewayConfig,
    GatewayResponse,
    RelayKind,
    build_upstream_url,
)

__all__ = [
    "CHALLENGE_HEADER",
    "DEFAULT_UPSTREAM_URL",
    "MissingGatewayURLError",
    "get_gateway_url",
    "get_upstream_url",
    "Challenge",
    "ChallengeEncodingError",
    "parse_challenge_header",
    "ActionGateway",
    "ActionGatewaySync",
    "ActionRequest",
    "GatewayConfig",
    "GatewayResponse",
    "RelayKind",
    "build_upstream_url",
    "ActionClient",
    "ActionClientConfig",
    "ActionClientSync",
    "ActionOutcome",
    "ClientState",
    "FailureKind",
    "OutcomeStatus",
]

try:  # Optional: HTTP wrappers depend on fastapi (and flask for the sync routes)
    from .http import create_fastapi_app, flask_action_routes

    __all__.extend(["create_fastapi_app", "flask_action_routes"])
except ImportError:
    create_fastapi_app = None  # type: ignore[assignment]
    flask_action_routes = None  # type: ignore[assignment]
