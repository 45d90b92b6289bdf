"""
Tests for the webhook worker client.
"""

import json

import httpx
import pytest

from tunnelgate.config.provider import WebhookConfig
from tunnelgate.exceptions import CollaboratorError
from tunnelgate.modules.webhook import WebhookClient


def make_client(handler, base_url="http://worker.internal", secret="s3cret"):
    return WebhookClient(
        WebhookConfig(base_url=base_url),
        internal_secret=secret,
        transport=httpx.MockTransport(handler),
    )


class TestUpdateRepo:
    @pytest.mark.asyncio
    async def test_patch_with_encoded_url(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"success": True})

        await make_client(handler).update_repo("https://github.com/acme/app", "grpc://c1:443")

        request = seen[0]
        assert request.method == "PATCH"
        assert request.url.raw_path == b"/repo/https%3A%2F%2Fgithub.com%2Facme%2Fapp"
        assert json.loads(request.content) == {"grpcEndpoint": "grpc://c1:443"}
        assert request.headers["X-Service-Binding"] == "true"
        assert request.headers["X-Internal-Token"] == "s3cret"

    @pytest.mark.asyncio
    async def test_no_internal_header_without_secret(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200)

        await make_client(handler, secret=None).update_repo("r", "e")

        assert "X-Internal-Token" not in seen[0].headers

    @pytest.mark.asyncio
    async def test_error_status(self):
        client = make_client(lambda request: httpx.Response(500, text="boom"))

        with pytest.raises(CollaboratorError):
            await client.update_repo("r", "e")

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(CollaboratorError):
            await make_client(handler).update_repo("r", "e")

    @pytest.mark.asyncio
    async def test_not_configured(self):
        client = make_client(lambda request: httpx.Response(200), base_url=None)

        assert not client.is_configured
        with pytest.raises(CollaboratorError):
            await client.update_repo("r", "e")


class TestListRepos:
    @pytest.mark.asyncio
    async def test_parses_repo_urls(self):
        def handler(request):
            assert request.method == "GET"
            assert request.url.path == "/repos"
            return httpx.Response(200, json={
                "success": True,
                "data": [{"repo": "https://a"}, {"repo": "https://b"}],
            })

        assert await make_client(handler).list_repos() == ["https://a", "https://b"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response", [
        httpx.Response(503),
        httpx.Response(200, json={"success": False}),
        httpx.Response(200, json={"success": True, "data": [{"name": "x"}]}),
        httpx.Response(200, text="not json"),
    ])
    async def test_failures(self, response):
        with pytest.raises(CollaboratorError):
            await make_client(lambda request: response).list_repos()
