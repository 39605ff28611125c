"""Typed tool results.

Every result shares ``tool``, ``success``, ``error`` and ``error_category``.
``to_observation()`` is what the model sees as the ``tool`` message content;
``summary()`` is the compact dict shown on ``step_end`` events. Observation
keys keep the camelCase names the UI reads (``adsFound``, ``videoUrls``...).
"""

from typing import Any, ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field

from charis.agent.tools.arguments import Plan


class ToolResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tool: str
    success: bool = True
    error: str | None = None
    error_category: str | None = Field(default=None, serialization_alias="errorCategory")

    # Observation keys copied into summary() when present
    summary_keys: ClassVar[tuple[str, ...]] = ()

    def to_observation(self) -> dict[str, Any]:
        data = self.model_dump(by_alias=True, exclude_none=True)
        data.pop("tool", None)
        return data

    def summary(self) -> dict[str, Any]:
        observation = self.to_observation()
        out: dict[str, Any] = {"success": self.success}
        for key in self.summary_keys:
            if key in observation:
                out[key] = observation[key]
        if self.error:
            out["error"] = self.error
        return out


class PlanResult(ToolResult):
    tool: Literal["think_and_plan"] = "think_and_plan"
    message: str = "Plan created successfully. Now executing..."
    plan: Plan | None = None


class AdPreview(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    advertiser: str | None = None
    ad_copy: str | None = Field(default=None, serialization_alias="adCopy")
    has_video: bool = Field(default=False, serialization_alias="hasVideo")
    has_thumbnail: bool = Field(default=False, serialization_alias="hasThumbnail")


class ScrapeAdsResult(ToolResult):
    tool: Literal["scrape_competitor_ads"] = "scrape_competitor_ads"
    ads_found: int = Field(default=0, serialization_alias="adsFound")
    video_urls: list[str] = Field(default_factory=list, serialization_alias="videoUrls")
    thumbnails: list[str] = Field(default_factory=list)
    ads: list[AdPreview] = Field(default_factory=list)
    screenshot_url: str | None = Field(default=None, serialization_alias="screenshotUrl")

    summary_keys: ClassVar[tuple[str, ...]] = ("adsFound",)


class DownloadVideosResult(ToolResult):
    tool: Literal["download_videos"] = "download_videos"
    downloaded: int = 0
    storage_paths: list[str] = Field(default_factory=list, serialization_alias="storagePaths")
    message: str | None = None

    summary_keys: ClassVar[tuple[str, ...]] = ("downloaded",)


class AnalyzeVisualsResult(ToolResult):
    tool: Literal["analyze_visuals"] = "analyze_visuals"
    images_analyzed: int = Field(default=0, serialization_alias="imagesAnalyzed")
    analysis: dict[str, Any] | None = None

    summary_keys: ClassVar[tuple[str, ...]] = ("imagesAnalyzed",)


class SearchHit(BaseModel):
    title: str | None = None
    url: str | None = None
    snippet: str | None = None


class SearchWebResult(ToolResult):
    tool: Literal["search_web"] = "search_web"
    results_found: int = Field(default=0, serialization_alias="resultsFound")
    results: list[SearchHit] = Field(default_factory=list)

    summary_keys: ClassVar[tuple[str, ...]] = ("resultsFound",)


class SynthesizeReportResult(ToolResult):
    tool: Literal["synthesize_report"] = "synthesize_report"
    report_generated: bool = Field(default=False, serialization_alias="reportGenerated")
    report_id: str | None = Field(default=None, serialization_alias="reportId")
    summary_text: str | None = Field(default=None, serialization_alias="summary")
    report: dict[str, Any] | None = None

    summary_keys: ClassVar[tuple[str, ...]] = ("reportGenerated",)


class FinishResult(ToolResult):
    tool: Literal["finish"] = "finish"
    completed: bool = False
    summary_text: str | None = Field(default=None, serialization_alias="summary")
    results_delivered: bool = False
    next_steps: list[str] = Field(default_factory=list)


class GenericToolResult(ToolResult):
    """Result for tools with no dedicated model (unknown names, skipped calls)."""

    data: dict[str, Any] = Field(default_factory=dict)


RESULT_MODELS: dict[str, type[ToolResult]] = {
    "think_and_plan": PlanResult,
    "scrape_competitor_ads": ScrapeAdsResult,
    "download_videos": DownloadVideosResult,
    "analyze_visuals": AnalyzeVisualsResult,
    "search_web": SearchWebResult,
    "synthesize_report": SynthesizeReportResult,
    "finish": FinishResult,
}


def failure_result(tool_name: str, error: str, error_category: str | None = None) -> ToolResult:
    """Build the ``{success: false, error, error_category}`` envelope for *tool_name*."""
    model = RESULT_MODELS.get(tool_name)
    if model is None:
        return GenericToolResult(tool=tool_name, success=False, error=error, error_category=error_category)
    return model(success=False, error=error, error_category=error_category)
