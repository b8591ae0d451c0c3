"""
Unit Tests for ProxyApiClient.

Test Aspects Covered:
    ✅ Business Logic: Request paths and payloads, response parsing
    ✅ Error Handling: Non-2xx bodies, transport errors, self-test failure
"""

from __future__ import annotations

import json
from typing import List

import httpx
import pytest

from enrichment_funnel.adapters.http_client import ProxyApiClient
from enrichment_funnel.config.models import ProxyConfig
from enrichment_funnel.resilience.errors import ProviderError


def make_client(handler, requests: List[httpx.Request]) -> ProxyApiClient:
    def recording(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    return ProxyApiClient(
        ProxyConfig(base_url="http://proxy.test"),
        apollo_api_key="key-123",
        transport=httpx.MockTransport(recording),
    )


class TestProxyApiClient:
    """Test the proxy client against a mock transport."""

    @pytest.mark.asyncio
    async def test_match_person(self) -> None:
        """
        SCENARIO: Person lookup returns a person payload
        EXPECTED: Payload returned, API key and URL posted
        """
        # Arrange
        requests: List[httpx.Request] = []
        payload = {"person": {"id": "p1", "organization": {"id": "org-1"}}}
        client = make_client(lambda request: httpx.Response(200, json=payload), requests)

        # Act
        async with client:
            result = await client.match_person("https://linkedin.com/in/jane")

        # Assert
        assert result == payload
        assert requests[0].url.path == "/api/apollo/people/match"
        assert json.loads(requests[0].content) == {
            "api_key": "key-123",
            "linkedin_url": "https://linkedin.com/in/jane",
        }

    @pytest.mark.asyncio
    async def test_match_person_without_person_is_none(self) -> None:
        client = make_client(lambda request: httpx.Response(200, json={"person": None}), [])

        async with client:
            assert await client.match_person("https://li/x") is None

    @pytest.mark.asyncio
    async def test_count_contacts(self) -> None:
        requests: List[httpx.Request] = []
        client = make_client(
            lambda request: httpx.Response(200, json={"pagination": {"total_entries": 37}}),
            requests,
        )

        async with client:
            count = await client.count_contacts("org-1", "india")

        assert count == 37
        assert requests[0].url.path == "/api/apollo/organizations/contacts/india"

    @pytest.mark.asyncio
    async def test_classify(self) -> None:
        requests: List[httpx.Request] = []
        body = {
            "choices": [{"message": {"content": " Founder \n"}}],
            "usage": {"total_tokens": 42},
        }
        client = make_client(lambda request: httpx.Response(200, json=body), requests)

        async with client:
            result = await client.classify("Classify 'CEO'")

        assert result.text == "Founder"
        assert result.tokens == 42
        sent = json.loads(requests[0].content)
        assert sent["model"] == "gpt-4o-mini"
        assert sent["messages"] == [{"role": "user", "content": "Classify 'CEO'"}]

    @pytest.mark.asyncio
    async def test_classify_without_choices_raises(self) -> None:
        client = make_client(lambda request: httpx.Response(200, json={"choices": []}), [])

        async with client:
            with pytest.raises(ProviderError, match="no choices"):
                await client.classify("x")

    @pytest.mark.asyncio
    async def test_error_body_message_surfaced(self) -> None:
        """
        SCENARIO: Provider answers 429 with {"error": {"message": ...}}
        EXPECTED: ProviderError carrying status and message
        """
        client = make_client(
            lambda request: httpx.Response(429, json={"error": {"message": "Rate limit exceeded"}}),
            [],
        )

        async with client:
            with pytest.raises(ProviderError) as exc_info:
                await client.count_contacts("org-1", "india")

        assert exc_info.value.status_code == 429
        assert "Rate limit exceeded" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_connection_test(self) -> None:
        ok = make_client(lambda request: httpx.Response(200, json={"success": True}), [])
        down = make_client(lambda request: httpx.Response(502, text="Bad Gateway"), [])

        async with ok, down:
            assert await ok.test_connection() is True
            assert await down.test_connection() is False

    @pytest.mark.asyncio
    async def test_transport_error_wrapped(self) -> None:
        def fail(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(fail, [])

        async with client:
            with pytest.raises(ProviderError, match="connection refused"):
                await client.match_person("https://li/x")
