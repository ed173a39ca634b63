from typing import Any, Dict, List, Optional

import httpx

from .errors import ConfigurationError, UpstreamSearchError
from .schemas import SearchResult


# Hard cap accepted by the provider for a single query.
SERPER_MAX_RESULTS = 10


def _as_text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    return value if isinstance(value, str) else str(value)


class SerperClient:
    def __init__(self, api_key: Optional[str], base_url: Optional[str], timeout_s: float = 20.0):
        if not api_key:
            raise ConfigurationError("SERPER_API_KEY is not configured.")
        if not base_url:
            raise ConfigurationError("SERPER_BASE_URL is not configured.")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.client = httpx.AsyncClient(
            timeout=timeout_s,
            limits=httpx.Limits(max_connections=16, max_keepalive_connections=8),
        )

    async def search(self, query: str, max_results: int) -> List[SearchResult]:
        limit = min(max(int(max_results), 1), SERPER_MAX_RESULTS)
        payload = {"q": query, "num": limit}
        data = await self._post(f"{self.base_url}/search", payload)
        organic = data.get("organic") if isinstance(data, dict) else None
        if not isinstance(organic, list):
            return []
        results: List[SearchResult] = []
        for item in organic[:limit]:
            if not isinstance(item, dict):
                continue
            results.append(
                SearchResult(
                    title=_as_text(item.get("title")),
                    url=_as_text(item.get("link") or item.get("url")),
                    snippet=_as_text(item.get("snippet") or item.get("description")),
                )
            )
        return results

    async def _post(self, url: str, payload: Dict[str, Any]) -> Any:
        headers = {"X-API-KEY": self.api_key, "Content-Type": "application/json"}
        try:
            resp = await self.client.post(url, json=payload, headers=headers, timeout=self.timeout_s)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise UpstreamSearchError(e.response.reason_phrase or "", status_code=e.response.status_code) from e
        except httpx.TimeoutException as e:
            raise UpstreamSearchError(f"timed out after {self.timeout_s}s") from e
        except httpx.RequestError as e:
            raise UpstreamSearchError(str(e) or type(e).__name__) from e
        try:
            return resp.json()
        except ValueError as e:
            raise UpstreamSearchError("invalid JSON body") from e

    async def close(self) -> None:
        # Safe to call multiple times
        if not self.client.is_closed:
            await self.client.aclose()
