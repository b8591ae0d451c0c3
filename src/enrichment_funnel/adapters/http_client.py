"""
Proxy API Client.

Async client for the proxy server that fronts the paid providers:

    GET  /api/test                                    connectivity self-test
    POST /api/apollo/people/match                     person lookup
    POST /api/apollo/organizations/contacts/<region>  regional contact count
    POST /api/openai/chat/completions                 text classification

One instance implements every provider protocol the stages consume.
Non-2xx responses raise ProviderError with the most specific message
found in the body.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from enrichment_funnel.config.models import ProxyConfig
from enrichment_funnel.interfaces.providers import Classification
from enrichment_funnel.resilience.errors import ProviderError

logger = logging.getLogger(__name__)


def _error_message(response: httpx.Response) -> str:
    """Extract error.message, error or message from a JSON error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if error:
            return str(error)
        if body.get("message"):
            return str(body["message"])
    return response.reason_phrase


class ProxyApiClient:
    """Client for the provider proxy server.

    Usage:
        async with ProxyApiClient(config.proxy, apollo_api_key=key) as client:
            ok = await client.test_connection()
            payload = await client.match_person("https://linkedin.com/in/jane")
    """

    def __init__(
        self,
        config: Optional[ProxyConfig] = None,
        *,
        apollo_api_key: str = "",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize client.

        Args:
            config: Proxy connection settings
            apollo_api_key: Key forwarded to the person/organization endpoints
            transport: Optional transport (tests use httpx.MockTransport)
        """
        self.config = config or ProxyConfig()
        self.apollo_api_key = apollo_api_key
        self._client = httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=self.config.timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> ProxyApiClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        try:
            response = await self._client.request(method, path, json=payload)
        except httpx.HTTPError as e:
            raise ProviderError(f"{method} {path} failed: {e}") from e

        if response.is_error:
            message = _error_message(response)
            logger.warning(f"{method} {path} returned {response.status_code}: {message}")
            raise ProviderError(
                f"{method} {path} returned {response.status_code}: {message}",
                status_code=response.status_code,
            )
        return response.json()

    async def test_connection(self) -> bool:
        """Return True when the proxy answers the self-test."""
        try:
            data = await self._request("GET", "/api/test")
        except ProviderError as e:
            logger.error(f"Proxy connection test failed: {e}")
            return False
        return bool(data.get("success", True))

    async def match_person(self, linkedin_url: str) -> Optional[Dict[str, Any]]:
        """Look up a person; None when the provider has no match."""
        data = await self._request(
            "POST",
            "/api/apollo/people/match",
            {"api_key": self.apollo_api_key, "linkedin_url": linkedin_url},
        )
        if not data.get("person"):
            return None
        return data

    async def count_contacts(self, organization_id: str, region: str) -> int:
        """Total contacts of an organization located in region."""
        data = await self._request(
            "POST",
            f"/api/apollo/organizations/contacts/{region}",
            {"api_key": self.apollo_api_key, "organization_id": organization_id},
        )
        pagination = data.get("pagination") or {}
        return int(pagination.get("total_entries") or 0)

    async def classify(self, prompt: str) -> Classification:
        """Single-turn chat completion."""
        data = await self._request(
            "POST",
            "/api/openai/chat/completions",
            {
                "model": self.config.classifier_model,
                "messages": [{"role": "user", "content": prompt}],
                "temperature": 0,
            },
        )
        choices = data.get("choices") or []
        if not choices:
            raise ProviderError("Classifier returned no choices")
        text = (choices[0].get("message") or {}).get("content") or ""
        tokens = int((data.get("usage") or {}).get("total_tokens") or 0)
        return Classification(text=text.strip(), tokens=tokens)
