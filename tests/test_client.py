import asyncio

import pytest

httpx = pytest.importorskip("httpx")

from lease_x402.challenge import Challenge
from lease_x402.client import (
    ActionClient,
    ActionClientConfig,
    ActionClientSync,
    ActionOutcome,
    ClientState,
    FailureKind,
    OutcomeStatus,
)
from lease_x402.constants import (
    BACKEND_UNREACHABLE_MESSAGE,
    ENV_GATEWAY_URL,
    PAYMENT_REQUIRED_MESSAGE,
    MissingGatewayURLError,
)

GATEWAY = "http://gateway.test/api/premium"


def make_async_client(handler, operator="0xabc"):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ActionClient(ActionClientConfig(url=GATEWAY, operator=operator, http_client=http)), http


def make_sync_client(handler, operator="0xabc"):
    http = httpx.Client(transport=httpx.MockTransport(handler))
    return ActionClientSync(ActionClientConfig(url=GATEWAY, operator=operator, http_client=http)), http


@pytest.mark.asyncio
async def test_dispatch_posts_action_and_operator():
    seen = {}

    def handler(request):
        seen["method"] = request.method
        seen["url"] = str(request.url)
        seen["body"] = request.content
        return httpx.Response(200, json={"message": "done", "body": "", "kind": "success"})

    client, http = make_async_client(handler)
    try:
        await client.dispatch("renew-lease")
        await client.dispatch("scale-gpu", operator="0xdef")
    finally:
        await http.aclose()

    assert seen["method"] == "POST"
    assert seen["url"] == GATEWAY
    assert b'"action":"scale-gpu"' in seen["body"].replace(b" ", b"")
    assert b'"operator":"0xdef"' in seen["body"].replace(b" ", b"")


@pytest.mark.asyncio
async def test_dispatch_success():
    def handler(request):
        return httpx.Response(
            200,
            json={"message": "Action renew-lease executed for 0xabc.", "body": '{"message": "ok"}'},
        )

    client, http = make_async_client(handler)
    assert client.state is ClientState.IDLE
    try:
        outcome = await client.dispatch("renew-lease")
    finally:
        await http.aclose()

    assert outcome.status is OutcomeStatus.SUCCEEDED
    assert outcome.message == "Action renew-lease executed for 0xabc."
    assert outcome.upstream_message == "ok"
    assert outcome.challenge is None
    assert outcome.failure is None
    assert client.state is ClientState.SUCCEEDED
    assert client.outcome is outcome
    assert client.status_code == 200


@pytest.mark.asyncio
async def test_dispatch_challenge_is_decoded():
    def handler(request):
        return httpx.Response(
            402,
            headers={"WWW-Authenticate": 'x402 amount="10", asset="USDC"'},
            json={"message": "HTTP 402 Payment Required for renew-lease (0xabc)", "body": "{}"},
        )

    client, http = make_async_client(handler)
    try:
        outcome = await client.dispatch("renew-lease")
    finally:
        await http.aclose()

    assert outcome.status is OutcomeStatus.CHALLENGED
    assert outcome.http_status == 402
    assert outcome.challenge.scheme == "x402"
    assert outcome.challenge.params == {"amount": "10", "asset": "USDC"}
    assert outcome.challenge.raw_header == 'x402 amount="10", asset="USDC"'
    assert client.state is ClientState.CHALLENGED
    assert client.challenge == outcome.challenge


@pytest.mark.asyncio
@pytest.mark.parametrize("headers", [{}, {"WWW-Authenticate": "  "}])
async def test_dispatch_402_without_usable_header_is_still_challenged(headers):
    client, http = make_async_client(lambda request: httpx.Response(402, headers=headers, text="nope"))
    try:
        outcome = await client.dispatch("renew-lease")
    finally:
        await http.aclose()

    assert outcome.status is OutcomeStatus.CHALLENGED
    assert outcome.challenge == Challenge.empty()
    assert outcome.message == PAYMENT_REQUIRED_MESSAGE


@pytest.mark.asyncio
async def test_dispatch_upstream_error():
    def handler(request):
        return httpx.Response(
            500, json={"message": "Upstream error 500", "body": "boom", "kind": "upstream_error"}
        )

    client, http = make_async_client(handler)
    try:
        outcome = await client.dispatch("scale-gpu")
    finally:
        await http.aclose()

    assert outcome.status is OutcomeStatus.FAILED
    assert outcome.failure is FailureKind.UPSTREAM_ERROR
    assert outcome.http_status == 500
    assert outcome.message == "Upstream error 500"
    assert outcome.body == "boom"
    assert client.state is ClientState.FAILED


@pytest.mark.asyncio
async def test_dispatch_error_without_json_body_reports_status():
    client, http = make_async_client(lambda request: httpx.Response(503, text="<html>down</html>"))
    try:
        outcome = await client.dispatch("scale-gpu")
    finally:
        await http.aclose()

    assert outcome.failure is FailureKind.UPSTREAM_ERROR
    assert outcome.message == "Backend returned error status 503"


@pytest.mark.asyncio
async def test_dispatch_gateway_could_not_reach_upstream():
    def handler(request):
        return httpx.Response(
            502, json={"message": "Unable to reach x402 backend.", "body": "", "kind": "transport_error"}
        )

    client, http = make_async_client(handler)
    try:
        outcome = await client.dispatch("renew-lease")
    finally:
        await http.aclose()

    assert outcome.failure is FailureKind.UPSTREAM_UNREACHABLE
    assert outcome.message == "Unable to reach x402 backend."


@pytest.mark.asyncio
async def test_dispatch_gateway_unreachable():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    client, http = make_async_client(handler)
    try:
        outcome = await client.dispatch("renew-lease")
    finally:
        await http.aclose()

    assert outcome.status is OutcomeStatus.FAILED
    assert outcome.failure is FailureKind.TRANSPORT
    assert outcome.http_status is None
    assert outcome.message == BACKEND_UNREACHABLE_MESSAGE
    assert client.state is ClientState.FAILED


@pytest.mark.asyncio
async def test_state_is_pending_while_in_flight():
    release = asyncio.Event()
    observed = []

    async def handler(request):
        await release.wait()
        return httpx.Response(200, json={"message": "ok"})

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client = ActionClient(ActionClientConfig(url=GATEWAY, http_client=http))
    try:
        task = asyncio.create_task(client.dispatch("renew-lease"))
        await asyncio.sleep(0)
        observed.append((client.state, client.outcome))
        release.set()
        await task
    finally:
        await http.aclose()

    assert observed == [(ClientState.PENDING, None)]
    assert client.state is ClientState.SUCCEEDED
    assert client.is_pending is False


@pytest.mark.asyncio
async def test_new_dispatch_clears_previous_outcome_then_reset_returns_to_idle():
    responses = iter(
        [
            httpx.Response(402, headers={"WWW-Authenticate": "x402 amount=1"}),
            httpx.Response(200, json={"message": "ok"}),
        ]
    )
    client, http = make_async_client(lambda request: next(responses))
    try:
        await client.dispatch("renew-lease")
        assert client.challenge is not None
        await client.dispatch("renew-lease")
    finally:
        await http.aclose()

    assert client.state is ClientState.SUCCEEDED
    assert client.challenge is None
    client.reset()
    assert client.state is ClientState.IDLE
    assert client.outcome is None


def test_sync_dispatch_challenge():
    def handler(request):
        return httpx.Response(402, headers={"WWW-Authenticate": "X402 Resource=\"abc\""}, json={})

    client, http = make_sync_client(handler)
    outcome = client.dispatch("renew-lease")
    http.close()

    assert outcome.status is OutcomeStatus.CHALLENGED
    assert outcome.challenge.params == {"resource": "abc"}
    assert client.state is ClientState.CHALLENGED


def test_sync_dispatch_gateway_unreachable():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    client, http = make_sync_client(handler)
    outcome = client.dispatch("renew-lease")
    http.close()

    assert outcome.failure is FailureKind.TRANSPORT
    assert client.state is ClientState.FAILED


def test_upstream_message_is_lenient():
    assert ActionOutcome(OutcomeStatus.SUCCEEDED, "m", body="not json").upstream_message is None
    assert ActionOutcome(OutcomeStatus.SUCCEEDED, "m", body="[1, 2]").upstream_message is None
    assert ActionOutcome(OutcomeStatus.SUCCEEDED, "m").upstream_message is None


def test_client_reads_gateway_url_from_environment(monkeypatch):
    monkeypatch.setenv(ENV_GATEWAY_URL, "http://env.test/api/premium")
    seen = []

    def handler(request):
        seen.append(str(request.url))
        return httpx.Response(200, json={"message": "ok"})

    http = httpx.Client(transport=httpx.MockTransport(handler))
    client = ActionClientSync({"operator": "0xabc", "http_client": http})
    client.dispatch("renew-lease")
    http.close()

    assert client.operator == "0xabc"
    assert seen == ["http://env.test/api/premium"]


def test_client_requires_gateway_url():
    with pytest.raises(MissingGatewayURLError):
        ActionClientSync(ActionClientConfig(url=""))
