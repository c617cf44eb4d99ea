"""Shared constants for the x402 action relay."""

from __future__ import annotations

import os

CHALLENGE_HEADER = "WWW-Authenticate"
PAYMENT_HEADER = "X-PAYMENT"

DEFAULT_SCHEME = "x402"
DEFAULT_ACTION = "inspect-lease"
ANONYMOUS_OPERATOR = "anonymous"

ENV_UPSTREAM_URL = "X402_BACKEND_URL"
ENV_GATEWAY_URL = "X402_GATEWAY_URL"

DEFAULT_UPSTREAM_URL = "http://localhost:4021/premium/content"
DEFAULT_GATEWAY_URL = "http://localhost:3000/api/premium"
DEFAULT_ACTION_PATH = "/api/premium"

TRANSPORT_FAILURE_STATUS = 502

UPSTREAM_UNREACHABLE_MESSAGE = (
    "Unable to reach x402 backend. Start the upstream resource server on :4021."
)
BACKEND_UNREACHABLE_MESSAGE = (
    "Backend unreachable. Ensure the x402 action gateway is running and retry."
)
PAYMENT_REQUIRED_MESSAGE = (
    "This lease or compute action needs payment. "
    "Use the x402 challenge terms to construct a payment and replay the action."
)
SUCCESS_MESSAGE = "Action executed successfully."


class MissingGatewayURLError(ValueError):
    """Raised when an action client is built without a gateway URL."""


def get_upstream_url() -> str:
    return os.getenv(ENV_UPSTREAM_URL) or DEFAULT_UPSTREAM_URL


def get_gateway_url() -> str:
    return os.getenv(ENV_GATEWAY_URL) or DEFAULT_GATEWAY_URL
