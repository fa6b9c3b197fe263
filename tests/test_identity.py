"""Tests for the identity provider client."""

import httpx
import pytest

from listgenius.errors import IdentityServiceError, Unauthenticated
from listgenius.services.identity import IdentityClient, plan_from_metadata


def _client(handler) -> IdentityClient:
    return IdentityClient(
        base_url="https://identity.test",
        secret_key="sk_test",
        transport=httpx.MockTransport(handler),
    )


class TestPlanFromMetadata:
    def test_reads_public_metadata(self):
        assert plan_from_metadata({"public_metadata": {"plan": "Business"}}) == "business"

    def test_unknown_or_missing_plan_is_free(self):
        assert plan_from_metadata({"public_metadata": {"plan": "platinum"}}) == "free"
        assert plan_from_metadata({}) == "free"


class TestIdentityClient:
    async def test_authenticate_resolves_user_and_plan(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((request.method, request.url.path, request.headers["Authorization"]))
            if request.url.path == "/v1/tokens/verify":
                return httpx.Response(200, json={"user_id": "user_123"})
            return httpx.Response(200, json={"id": "user_123", "public_metadata": {"plan": "pro"}})

        user = await _client(handler).authenticate("session-token")

        assert user.id == "user_123"
        assert user.plan == "pro"
        assert seen[0] == ("POST", "/v1/tokens/verify", "Bearer sk_test")
        assert seen[1][1] == "/v1/users/user_123"

    async def test_empty_token(self):
        with pytest.raises(Unauthenticated):
            await _client(lambda request: httpx.Response(200, json={})).authenticate("")

    async def test_rejected_token(self):
        with pytest.raises(Unauthenticated):
            await _client(lambda request: httpx.Response(401, json={})).authenticate("bad")

    async def test_missing_user(self):
        with pytest.raises(Unauthenticated):
            await _client(lambda request: httpx.Response(404, json={})).get_user("ghost")

    async def test_server_error(self):
        with pytest.raises(IdentityServiceError):
            await _client(lambda request: httpx.Response(503, json={})).get_user("user_123")

    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(IdentityServiceError):
            await _client(handler).get_user("user_123")
