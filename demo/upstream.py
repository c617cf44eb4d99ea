#!/usr/bin/env python3
"""
Mock resource server that answers x402 challenges for paid lease actions.

  • Actions in PAID_ACTIONS without an X-PAYMENT header get HTTP 402 and a
    `WWW-Authenticate: x402 ...` challenge describing the price.
  • Any X-PAYMENT header is accepted as-is; this server does not verify
    receipts.
  • Every other action succeeds.

Run with:

    uvicorn upstream:app --port 4021
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Header, Query, status
from fastapi.responses import JSONResponse

from lease_x402.challenge import Challenge
from lease_x402.constants import CHALLENGE_HEADER, PAYMENT_HEADER

load_dotenv()

logger = logging.getLogger("mock_upstream")
if not logger.handlers:
    logging.basicConfig(level=logging.INFO, format="mock_upstream %(levelname)s: %(message)s")

JsonDict = Dict[str, Any]

PAID_ACTIONS: Dict[str, str] = {
    "renew-lease": "10",
    "scale-gpu": "25",
}
DEFAULT_ASSET = "USDC"
DEFAULT_NETWORK = "base-sepolia"


def _challenge_for(action: str) -> Challenge:
    return Challenge(
        scheme="x402",
        params={
            "amount": PAID_ACTIONS[action],
            "asset": os.getenv("X402_ASSET", DEFAULT_ASSET),
            "network": os.getenv("X402_NETWORK", DEFAULT_NETWORK),
            "payto": os.getenv("PAY_TO_ADDRESS", "0x0000000000000000000000000000000000000000"),
            "resource": action,
        },
    )


def create_app() -> FastAPI:
    app = FastAPI(title="Mock x402 resource server")

    @app.get("/premium/content")
    async def premium_content(
        action: str = Query(default="inspect-lease"),
        x_payment: Optional[str] = Header(default=None, alias=PAYMENT_HEADER),
    ) -> JSONResponse:
        logger.info("received action=%s (has_x_payment=%s)", action, bool(x_payment))
        if action in PAID_ACTIONS and not x_payment:
            body: JsonDict = {
                "error": "payment required",
                "hint": f"Replay with an {PAYMENT_HEADER} header to run {action}.",
            }
            return JSONResponse(
                body,
                status_code=status.HTTP_402_PAYMENT_REQUIRED,
                headers={CHALLENGE_HEADER: _challenge_for(action).to_header()},
            )
        return JSONResponse({"message": "ok", "action": action})

    @app.get("/health")
    async def health() -> JsonDict:
        return {"status": "ok"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    port = int(os.environ.get("UPSTREAM_PORT", "4021"))
    uvicorn.run(app, host="0.0.0.0", port=port)
