"""ToolExecutor: runs one tool call end to end.

For each call the executor:
1. writes a ``started`` log row and emits ``step_start``
2. validates the arguments against the tool's pydantic model
3. invokes the collaborator, turning any exception into a failure envelope
4. writes exactly one terminal row and emits ``step_end`` or ``step_error``,
   followed by a ``tool_result`` custom event carrying full input and output

``execute`` never raises for tool problems. Only task cancellation propagates,
and even then the terminal row is written first.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import structlog
from pydantic import BaseModel, ValidationError

from charis.agent.error.classifier import ErrorCategory, classify_error, classify_exception
from charis.agent.events import EventType
from charis.agent.llm.accumulator import ToolCall
from charis.agent.stream import EventStream
from charis.agent.tools.arguments import (
    ARGS_MODELS,
    AnalyzeVisualsArgs,
    DownloadVideosArgs,
    FinishArgs,
    Plan,
    ScrapeAdsArgs,
    SearchWebArgs,
    SynthesizeReportArgs,
)
from charis.agent.tools.collaborators import AdScraper, ReportStore, VideoDownloader, VisionAnalyzer, WebSearcher
from charis.agent.tools.definitions import tool_action_message, tool_icon
from charis.agent.tools.results import (
    AdPreview,
    AnalyzeVisualsResult,
    DownloadVideosResult,
    FinishResult,
    PlanResult,
    ScrapeAdsResult,
    SearchHit,
    SearchWebResult,
    SynthesizeReportResult,
    ToolResult,
    failure_result,
)
from charis.core.exceptions import ToolArgumentError
from charis.services.execution_log import ExecutionLogStore

logger = structlog.get_logger(__name__)


@dataclass
class ToolContext:
    session_id: str
    user_id: str
    stream: EventStream
    progress: int = 0


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "arguments"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)


class ToolExecutor:
    def __init__(
        self,
        logs: ExecutionLogStore,
        scraper: AdScraper,
        downloader: VideoDownloader,
        vision: VisionAnalyzer,
        searcher: WebSearcher,
        reports: ReportStore,
        max_download_videos: int = 5,
        max_vision_images: int = 5,
    ) -> None:
        self._logs = logs
        self._scraper = scraper
        self._downloader = downloader
        self._vision = vision
        self._searcher = searcher
        self._reports = reports
        self._max_download_videos = max_download_videos
        self._max_vision_images = max_vision_images
        self._handlers: dict[str, Callable[[Any, ToolContext], Awaitable[ToolResult]]] = {
            "think_and_plan": self._think_and_plan,
            "scrape_competitor_ads": self._scrape_competitor_ads,
            "download_videos": self._download_videos,
            "analyze_visuals": self._analyze_visuals,
            "search_web": self._search_web,
            "synthesize_report": self._synthesize_report,
            "finish": self._finish,
        }

    async def execute(self, call: ToolCall, ctx: ToolContext) -> ToolResult:
        name = call.name
        args = call.arguments
        icon = tool_icon(name)
        message = tool_action_message(name, args)
        step_label = f"Executing: {name}"
        bound = logger.bind(session_id=ctx.session_id, tool_name=name, tool_call_id=call.id)

        step = await self._logs.begin_step(
            ctx.session_id,
            f"Execute: {name}",
            tool_name=name,
            input_data=args,
            tool_icon=icon,
            progress=ctx.progress,
            sub_step=message,
        )
        await ctx.stream.send(
            EventType.STEP_START,
            {
                "step": step_label,
                "toolIcon": icon,
                "toolName": name,
                "toolArgs": args,
                "message": message,
                "progress": ctx.progress,
                "stepId": step.step_id,
            },
            node=name,
            step=step_label,
        )

        try:
            result = await self._run(name, args, ctx)
        except asyncio.CancelledError:
            await step.fail("Cancelled", progress=ctx.progress)
            raise
        except Exception as exc:
            bound.warning("tool_execution_failed", error=str(exc), error_type=type(exc).__name__)
            result = failure_result(name, str(exc) or type(exc).__name__, classify_exception(exc))

        if not result.success and result.error_category is None:
            result.error_category = classify_error("ToolError", result.error or "")

        observation = result.to_observation()
        if result.success:
            await step.complete(output=observation, progress=ctx.progress)
            await ctx.stream.send(
                EventType.STEP_END,
                {
                    "step": step_label,
                    "toolIcon": icon,
                    "toolName": name,
                    "success": True,
                    "result": result.summary(),
                    "durationMs": step.elapsed_ms(),
                    "stepId": step.step_id,
                },
                node=name,
                step=step_label,
            )
            bound.info("tool_completed", duration_ms=step.elapsed_ms())
        else:
            await step.fail(result.error or "Tool execution failed", output=observation, progress=ctx.progress)
            await ctx.stream.send(
                EventType.STEP_ERROR,
                {
                    "step": step_label,
                    "toolIcon": icon,
                    "toolName": name,
                    "error": result.error,
                    "errorCategory": result.error_category,
                    "durationMs": step.elapsed_ms(),
                    "stepId": step.step_id,
                },
                node=name,
                step=step_label,
            )
            bound.info("tool_failed", error=result.error, error_category=result.error_category)

        await ctx.stream.send(
            EventType.TOOL_RESULT,
            {"toolName": name, "stepId": step.step_id, "input": args, "output": observation},
            node=name,
        )
        return result

    async def _run(self, name: str, args: dict[str, Any], ctx: ToolContext) -> ToolResult:
        handler = self._handlers.get(name)
        model = ARGS_MODELS.get(name)
        if handler is None or model is None:
            return failure_result(name, f"Unknown tool: {name}", ErrorCategory.NEVER_RETRY)

        try:
            parsed: BaseModel = model.model_validate(args)
        except ValidationError as exc:
            raise ToolArgumentError(name, _format_validation_error(exc)) from exc

        return await handler(parsed, ctx)

    async def _progress(self, ctx: ToolContext, tool_name: str, message: str, progress: int) -> None:
        await ctx.stream.send(
            EventType.TOOL_PROGRESS,
            {"toolName": tool_name, "message": message, "progress": progress},
            node=tool_name,
        )

    # ------------------------------------------------------------------
    # Tool implementations
    # ------------------------------------------------------------------

    async def _think_and_plan(self, plan: Plan, ctx: ToolContext) -> ToolResult:
        return PlanResult(plan=plan)

    async def _scrape_competitor_ads(self, args: ScrapeAdsArgs, ctx: ToolContext) -> ToolResult:
        await self._progress(ctx, "scrape_competitor_ads", f'Searching Meta Ads Library for "{args.brand_name}"...', 10)
        data = await self._scraper.scrape(args.brand_name, args.max_ads, ctx.session_id, ctx.user_id)

        ads = [ad for ad in data.get("ads") or [] if isinstance(ad, dict)]
        return ScrapeAdsResult(
            ads_found=len(ads),
            video_urls=[ad["videoUrl"] for ad in ads if ad.get("videoUrl")],
            thumbnails=[ad["thumbnailUrl"] for ad in ads if ad.get("thumbnailUrl")],
            ads=[
                AdPreview(
                    advertiser=ad.get("advertiser"),
                    ad_copy=(ad.get("adCopy") or "")[:200] or None,
                    has_video=bool(ad.get("videoUrl")),
                    has_thumbnail=bool(ad.get("thumbnailUrl")),
                )
                for ad in ads[:5]
            ],
            screenshot_url=data.get("screenshotUrl"),
        )

    async def _download_videos(self, args: DownloadVideosArgs, ctx: ToolContext) -> ToolResult:
        if not args.video_urls:
            return DownloadVideosResult(downloaded=0, message="No video URLs provided")

        urls = args.video_urls[: self._max_download_videos]
        await self._progress(ctx, "download_videos", f"Downloading {len(urls)} videos...", 20)
        data = await self._downloader.download(urls, ctx.session_id)

        ok = [r for r in data.get("results") or [] if isinstance(r, dict) and r.get("success")]
        return DownloadVideosResult(
            downloaded=len(ok),
            storage_paths=[r["storagePath"] for r in ok if r.get("storagePath")],
        )

    async def _analyze_visuals(self, args: AnalyzeVisualsArgs, ctx: ToolContext) -> ToolResult:
        if not args.image_urls:
            return failure_result("analyze_visuals", "No images provided for analysis", ErrorCategory.INVALID_INPUT)

        urls = args.image_urls[: self._max_vision_images]
        await self._progress(ctx, "analyze_visuals", f"Analyzing {len(urls)} ad creatives with AI vision...", 40)
        analysis = await self._vision.analyze(urls, args.ad_copy, args.brand_context)
        return AnalyzeVisualsResult(images_analyzed=len(urls), analysis=analysis)

    async def _search_web(self, args: SearchWebArgs, ctx: ToolContext) -> ToolResult:
        await self._progress(ctx, "search_web", f'Searching: "{args.query}"...', 30)
        hits = await self._searcher.search(args.query, args.num_results)

        results = [
            SearchHit(
                title=hit.get("title"),
                url=hit.get("url"),
                snippet=(hit.get("description") or hit.get("snippet") or "")[:200] or None,
            )
            for hit in hits[: args.num_results]
        ]
        return SearchWebResult(results_found=len(results), results=results)

    async def _synthesize_report(self, args: SynthesizeReportArgs, ctx: ToolContext) -> ToolResult:
        await self._progress(ctx, "synthesize_report", "Synthesizing comprehensive report...", 80)

        report_data = {
            "brand_name": args.brand_name,
            "ads_analyzed": args.ads_analyzed,
            "key_findings": args.key_findings,
            "hook_patterns": args.hook_patterns,
            "script_insights": args.script_insights,
            "recommendations": [r.model_dump(exclude_none=True) for r in args.recommendations],
            "generated_at": datetime.now(UTC).isoformat(),
        }
        report_id = await self._reports.save(ctx.session_id, ctx.user_id, args.brand_name, report_data)

        return SynthesizeReportResult(
            report_generated=True,
            report_id=report_id,
            summary_text=(
                f"Analysis complete for {args.brand_name}. Found {len(args.key_findings)} key insights "
                f"and {len(args.recommendations)} recommendations."
            ),
            report=report_data,
        )

    async def _finish(self, args: FinishArgs, ctx: ToolContext) -> ToolResult:
        return FinishResult(
            completed=True,
            summary_text=args.summary,
            results_delivered=args.results_delivered,
            next_steps=args.next_steps,
        )
