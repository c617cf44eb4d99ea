"""Inbound action API wrappers for FastAPI and Flask."""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .constants import DEFAULT_ACTION_PATH
from .gateway import ActionGateway, ActionGatewaySync, ActionRequest, GatewayResponse

logger = logging.getLogger(__name__)

SERVICE_NAME = "lease-x402-gateway"


def _decode_json(raw: bytes) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return None


# =========================================================================
# FastAPI wrappers (async)
# =========================================================================


def fastapi_response(result: GatewayResponse) -> JSONResponse:
    return JSONResponse(
        content=result.to_payload(),
        status_code=result.http_status,
        headers=result.headers(),
    )


def create_fastapi_app(
    gateway: Optional[ActionGateway] = None,
    path: str = DEFAULT_ACTION_PATH,
) -> FastAPI:
    gateway = gateway or ActionGateway()

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        await gateway.aclose()

    app = FastAPI(title="x402 action gateway", lifespan=lifespan)
    app.state.gateway = gateway

    @app.api_route(path, methods=["GET", "POST"])
    async def relay_action(request: Request) -> JSONResponse:
        payload = _decode_json(await request.body()) if request.method == "POST" else None
        action_request = ActionRequest.from_payload(payload, request.query_params)
        logger.info(
            "received %s %s action=%s", request.method, path, action_request.action
        )
        result = await gateway.relay_request(action_request)
        return fastapi_response(result)

    @app.get("/health")
    async def health() -> dict:
        return {
            "status": "ok",
            "service": SERVICE_NAME,
            "upstream": gateway.upstream_url,
        }

    return app


# =========================================================================
# Flask wrappers (sync)
# =========================================================================


def flask_action_routes(
    app,
    gateway: Optional[ActionGatewaySync] = None,
    path: str = DEFAULT_ACTION_PATH,
):
    from flask import jsonify, request

    gateway = gateway or ActionGatewaySync()

    def relay_action_handler():
        payload = request.get_json(silent=True) if request.method == "POST" else None
        action_request = ActionRequest.from_payload(payload, request.args)
        logger.info(
            "received %s %s action=%s", request.method, path, action_request.action
        )
        result = gateway.relay_request(action_request)
        return jsonify(result.to_payload()), result.http_status, result.headers()

    def health_handler():
        return jsonify(
            {"status": "ok", "service": SERVICE_NAME, "upstream": gateway.upstream_url}
        )

    app.add_url_rule(path, "x402_relay_action", relay_action_handler, methods=["GET", "POST"])
    app.add_url_rule("/health", "x402_health", health_handler, methods=["GET"])

    return gateway
