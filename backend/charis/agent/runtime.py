"""Process-scoped wiring of the agent's collaborators.

Built once in the app lifespan and hung off ``app.state.agent``; routes reach
the pieces through ``charis.api.deps``.
"""

from dataclasses import dataclass

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from charis.agent.llm.gateway import LLMGatewayClient
from charis.agent.orchestrator import AgentOrchestrator
from charis.agent.tools.collaborators import (
    EdgeFunctionClient,
    FirecrawlSearcher,
    GatewayVisionAnalyzer,
    HttpAdScraper,
    HttpVideoDownloader,
    SqlReportStore,
)
from charis.agent.tools.dispatcher import ToolExecutor
from charis.core.config import Settings
from charis.services.execution_log import ExecutionLogStore
from charis.services.run_registry import RunRegistry
from charis.services.session_store import AgentSessionStore
from charis.services.transcript import ChatTranscriptStore


@dataclass
class AgentRuntime:
    orchestrator: AgentOrchestrator
    registry: RunRegistry
    sessions: AgentSessionStore
    logs: ExecutionLogStore
    transcripts: ChatTranscriptStore


def build_agent_runtime(
    settings: Settings,
    http_client: httpx.AsyncClient,
    session_factory: async_sessionmaker[AsyncSession],
    redis=None,
) -> AgentRuntime:
    gateway = LLMGatewayClient(
        http_client,
        url=settings.llm_gateway_url,
        api_key=settings.llm_api_key,
        model=settings.agent_model,
        max_tokens=settings.llm_max_tokens,
    )
    functions = EdgeFunctionClient(
        http_client,
        base_url=settings.functions_base_url,
        api_key=settings.functions_api_key,
        timeout=settings.collaborator_timeout_seconds,
    )
    sessions = AgentSessionStore(session_factory)
    logs = ExecutionLogStore(session_factory, redis=redis)
    transcripts = ChatTranscriptStore(session_factory, flush_chars=settings.transcript_flush_chars)

    executor = ToolExecutor(
        logs,
        scraper=HttpAdScraper(functions),
        downloader=HttpVideoDownloader(functions),
        vision=GatewayVisionAnalyzer(gateway, model=settings.vision_model),
        searcher=FirecrawlSearcher(
            http_client,
            api_key=settings.firecrawl_api_key,
            url_template=settings.firecrawl_mcp_url,
            timeout=settings.collaborator_timeout_seconds,
        ),
        reports=SqlReportStore(session_factory),
        max_download_videos=settings.max_download_videos,
        max_vision_images=settings.max_vision_images,
    )
    orchestrator = AgentOrchestrator(gateway, executor, sessions, logs, transcripts, settings)
    return AgentRuntime(
        orchestrator=orchestrator,
        registry=RunRegistry(),
        sessions=sessions,
        logs=logs,
        transcripts=transcripts,
    )
