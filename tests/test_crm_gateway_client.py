"""
CRM Gateway Client Tests
========================

Runs the client against a local aiohttp test server.
"""

from contextlib import asynccontextmanager

import pytest
from aiohttp import web
from aiohttp import test_utils

from chat_labs.config import CrmConfig
from chat_labs.services.crm_gateway_client import CrmGatewayClient


@asynccontextmanager
async def gateway(handler):
    app = web.Application()
    app.router.add_get("/query", handler)
    server = test_utils.TestServer(app)
    await server.start_server()
    client = CrmGatewayClient(CrmConfig(gateway_url=str(server.make_url("/query")), timeout=5))
    try:
        yield client
    finally:
        await client.close()
        await server.close()


@pytest.mark.asyncio
async def test_query_passes_message_and_identity():
    seen = {}

    async def handler(request):
        seen["query"] = dict(request.query)
        seen["email"] = request.headers.get("X-User-Email")
        return web.json_response({"records": [{"name": "Acme"}]})

    async with gateway(handler) as client:
        response = await client.query("今月の商談", "taro@example.com")

    assert response.success is True
    assert response.data == {"records": [{"name": "Acme"}]}
    assert seen["query"] == {"q": "今月の商談", "engine": "nl2query", "mode": "records"}
    assert seen["email"] == "taro@example.com"


@pytest.mark.asyncio
async def test_http_error_carries_status():
    async def handler(request):
        return web.Response(status=500, text="boom")

    async with gateway(handler) as client:
        response = await client.query("deals")

    assert response.success is False
    assert response.status == 500
    assert response.error == "HTTP 500"


@pytest.mark.asyncio
async def test_invalid_json_is_a_failure():
    async def handler(request):
        return web.Response(status=200, text="<html>")

    async with gateway(handler) as client:
        response = await client.query("deals")

    assert response.success is False
    assert response.error == "invalid JSON response"


@pytest.mark.asyncio
async def test_undecodable_body_is_a_failure():
    async def handler(request):
        return web.Response(
            status=200, body=b'{"records": ["\x80\xff"]}', content_type="application/json", charset="utf-8"
        )

    async with gateway(handler) as client:
        response = await client.query("deals")

    assert response.success is False
    assert response.status == 200
    assert response.error == "invalid JSON response"


@pytest.mark.asyncio
async def test_undecodable_error_body_keeps_status():
    async def handler(request):
        return web.Response(status=502, body=b"\xff\xfe\x80 bad gateway")

    async with gateway(handler) as client:
        response = await client.query("deals")

    assert response.success is False
    assert response.error == "HTTP 502"


@pytest.mark.asyncio
async def test_unconfigured_gateway():
    response = await CrmGatewayClient(CrmConfig()).query("deals")
    assert response.success is False
    assert "not configured" in response.error
