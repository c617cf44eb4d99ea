import logging
import os

from dotenv import load_dotenv

from lease_x402.gateway import ActionGateway, GatewayConfig
from lease_x402.http import create_fastapi_app

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="lease_x402 %(levelname)s: %(message)s",
)

PORT = int(os.getenv("PORT", "3000"))

# Upstream URL comes from X402_BACKEND_URL, see lease_x402.constants.
gateway = ActionGateway(GatewayConfig())
app = create_fastapi_app(gateway)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=PORT)
