"""Remote collaborators behind the ad-research tools.

Each concern is a ``Protocol`` so the executor can be driven by in-memory fakes
in tests. The production implementations talk to:

- the ad-scrape and video-download edge functions (plain JSON POSTs under
  ``functions_base_url``)
- the LLM gateway, for vision analysis
- the Firecrawl MCP endpoint (JSON-RPC ``tools/call``), for web search
- the ``ad_audit_reports`` table, for synthesized reports

Implementations raise ``CollaboratorError`` on failure; turning that into a
tool failure envelope is the executor's job.
"""

from __future__ import annotations

import json
import time
from typing import Any, Protocol, runtime_checkable

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from charis.agent.llm.gateway import LLMGatewayClient
from charis.agent.llm.parsing import parse_json_object
from charis.core.exceptions import CollaboratorError
from charis.db.models.audit_report import AuditReport

logger = structlog.get_logger(__name__)

VISION_SYSTEM_PROMPT = (
    "You are an expert ad creative analyst. Analyze the provided ad images and extract: "
    "1) Hook elements (what grabs attention in first 3 seconds), 2) Visual quality score (1-10), "
    "3) Key messaging, 4) CTA analysis, 5) Recommendations for improvement. "
    "Be specific and actionable."
)


@runtime_checkable
class AdScraper(Protocol):
    async def scrape(self, brand_name: str, max_ads: int, session_id: str, user_id: str) -> dict:  # type: ignore[type-arg]
        """Return ``{"ads": [...], "screenshotUrl": str | None}``."""
        ...


@runtime_checkable
class VideoDownloader(Protocol):
    async def download(self, video_urls: list[str], session_id: str) -> dict:  # type: ignore[type-arg]
        """Return ``{"results": [{"success": bool, "storagePath": str}, ...]}``."""
        ...


@runtime_checkable
class VisionAnalyzer(Protocol):
    async def analyze(self, image_urls: list[str], ad_copy: str | None, brand_context: str | None) -> dict:  # type: ignore[type-arg]
        """Return the analysis dict (``{"raw_analysis": text}`` when unparseable)."""
        ...


@runtime_checkable
class WebSearcher(Protocol):
    async def search(self, query: str, limit: int) -> list[dict]:  # type: ignore[type-arg]
        """Return raw hits with ``title``, ``url`` and ``description``."""
        ...


@runtime_checkable
class ReportStore(Protocol):
    async def save(self, session_id: str, user_id: str, brand_name: str, report_data: dict) -> str | None:  # type: ignore[type-arg]
        """Persist a report and return its id, or None when the write failed."""
        ...


# ---------------------------------------------------------------------------
# Edge functions
# ---------------------------------------------------------------------------


class EdgeFunctionClient:
    """POSTs JSON to ``{base_url}/{function_name}``."""

    def __init__(self, http_client: httpx.AsyncClient, base_url: str, api_key: str = "", timeout: float = 90.0) -> None:
        self._http = http_client
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout

    async def invoke(self, function_name: str, body: dict) -> dict:  # type: ignore[type-arg]
        if not self._base_url:
            raise CollaboratorError(f"{function_name} not configured")

        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        try:
            response = await self._http.post(
                f"{self._base_url}/{function_name}",
                json=body,
                headers=headers,
                timeout=self._timeout,
            )
        except httpx.TimeoutException as exc:
            raise CollaboratorError(f"{function_name} timed out") from exc
        except httpx.HTTPError as exc:
            raise CollaboratorError(f"{function_name} request failed: {exc}") from exc

        if response.status_code >= 400:
            logger.warning(
                "edge_function_failed",
                function=function_name,
                status_code=response.status_code,
                body=response.text[:300],
            )
            raise CollaboratorError(f"{function_name} returned {response.status_code}")

        data = response.json() if response.content else {}
        if isinstance(data, dict) and data.get("error"):
            raise CollaboratorError(str(data["error"]))
        return data if isinstance(data, dict) else {}


class HttpAdScraper:
    def __init__(self, functions: EdgeFunctionClient) -> None:
        self._functions = functions

    async def scrape(self, brand_name: str, max_ads: int, session_id: str, user_id: str) -> dict:  # type: ignore[type-arg]
        return await self._functions.invoke(
            "firecrawl-mcp-scraper",
            {"brandName": brand_name, "maxAds": max_ads, "sessionId": session_id, "userId": user_id},
        )


class HttpVideoDownloader:
    def __init__(self, functions: EdgeFunctionClient) -> None:
        self._functions = functions

    async def download(self, video_urls: list[str], session_id: str) -> dict:  # type: ignore[type-arg]
        return await self._functions.invoke(
            "video-download-service",
            {"videoUrls": video_urls, "sessionId": session_id},
        )


# ---------------------------------------------------------------------------
# Vision
# ---------------------------------------------------------------------------


class GatewayVisionAnalyzer:
    """Vision analysis through the chat-completions gateway's image_url parts."""

    def __init__(self, gateway: LLMGatewayClient, model: str, max_tokens: int = 2048) -> None:
        self._gateway = gateway
        self._model = model
        self._max_tokens = max_tokens

    async def analyze(self, image_urls: list[str], ad_copy: str | None, brand_context: str | None) -> dict:  # type: ignore[type-arg]
        prompt = "Analyze these ad creatives for the brand."
        if ad_copy:
            prompt += f' Ad copy: "{ad_copy}"'
        if brand_context:
            prompt += f" Brand context: {brand_context}"
        prompt += (
            "\n\nProvide detailed analysis in JSON format with: hookAnalysis, visualScore, "
            "keyMessages, ctaAnalysis, recommendations."
        )

        content: list[dict[str, Any]] = [{"type": "text", "text": prompt}]
        content.extend({"type": "image_url", "image_url": {"url": url, "detail": "high"}} for url in image_urls)

        text = await self._gateway.complete(
            [
                {"role": "system", "content": VISION_SYSTEM_PROMPT},
                {"role": "user", "content": content},
            ],
            max_tokens=self._max_tokens,
            model=self._model,
        )
        return parse_json_object(text) or {"raw_analysis": text}


# ---------------------------------------------------------------------------
# Web search
# ---------------------------------------------------------------------------


class FirecrawlSearcher:
    """``firecrawl_search`` over the Firecrawl MCP JSON-RPC endpoint."""

    def __init__(self, http_client: httpx.AsyncClient, api_key: str, url_template: str, timeout: float = 90.0) -> None:
        self._http = http_client
        self._api_key = api_key
        self._url_template = url_template
        self._timeout = timeout

    async def search(self, query: str, limit: int) -> list[dict]:  # type: ignore[type-arg]
        if not self._api_key:
            raise CollaboratorError("Web search not configured")

        payload = {
            "jsonrpc": "2.0",
            "id": int(time.time() * 1000),
            "method": "tools/call",
            "params": {"name": "firecrawl_search", "arguments": {"query": query, "limit": limit}},
        }
        try:
            response = await self._http.post(
                self._url_template.format(api_key=self._api_key),
                json=payload,
                headers={"Content-Type": "application/json", "Accept": "application/json"},
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            raise CollaboratorError("Web search temporarily unavailable") from exc

        if response.status_code >= 400:
            raise CollaboratorError("Web search temporarily unavailable")

        data = response.json()
        if data.get("error"):
            raise CollaboratorError(str(data["error"].get("message", "Web search failed")))
        return _extract_search_hits((data.get("result") or {}).get("content") or [])


def _extract_search_hits(content: list) -> list[dict]:  # type: ignore[type-arg]
    """Flatten MCP content parts into hit dicts.

    Parts are either hit objects already, or ``{"type": "text", "text": <json>}``
    where the JSON is a list of hits or an object with a ``web`` list.
    """
    hits: list[dict] = []  # type: ignore[type-arg]
    for part in content if isinstance(content, list) else []:
        if not isinstance(part, dict):
            continue
        if part.get("type") == "text" and isinstance(part.get("text"), str):
            try:
                decoded = json.loads(part["text"])
            except json.JSONDecodeError:
                continue
            if isinstance(decoded, dict):
                decoded = decoded.get("web") or decoded.get("results") or []
            hits.extend(h for h in decoded if isinstance(h, dict))
        elif "url" in part:
            hits.append(part)
    return hits


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


class SqlReportStore:
    """Writes synthesized reports to ``ad_audit_reports``. Non-fatal."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def save(self, session_id: str, user_id: str, brand_name: str, report_data: dict) -> str | None:  # type: ignore[type-arg]
        try:
            async with self._session_factory() as session:
                report = AuditReport(
                    session_id=session_id,
                    user_id=user_id,
                    brand_name=brand_name,
                    status="completed",
                    report_data=report_data,
                )
                session.add(report)
                await session.commit()
                return report.id
        except Exception as exc:
            logger.warning(
                "report_store_failed",
                session_id=session_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return None
