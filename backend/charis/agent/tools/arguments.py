"""Pydantic argument models, one per tool.

Models ignore unknown keys; the LLM occasionally adds commentary fields and
those should not fail a call. Numbers arrive as JSON numbers (often floats),
so integer fields rely on pydantic's lax int coercion.
"""

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _Args(BaseModel):
    model_config = ConfigDict(extra="ignore")


def _as_text(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    return json.dumps(value) if isinstance(value, dict | list) else str(value)


class PlanStep(_Args):
    step: int | float | str | None = None
    action: str | None = None
    tool: str | None = None
    expected_output: str | None = None

    @field_validator("action", "tool", "expected_output", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Any:
        return _as_text(value)

    @field_validator("step", mode="before")
    @classmethod
    def _step_label(cls, value: Any) -> Any:
        if value is None or isinstance(value, int | float | str):
            return value
        return _as_text(value)


class Plan(_Args):
    """Planning is bookkeeping only: every field is optional and loosely typed, so a plan never fails validation."""

    task_understanding: str | None = None
    reasoning: str | None = None
    execution_plan: list[PlanStep] = Field(default_factory=list)
    success_criteria: str | None = None

    @field_validator("task_understanding", "reasoning", "success_criteria", mode="before")
    @classmethod
    def _text(cls, value: Any) -> Any:
        return _as_text(value)

    @field_validator("execution_plan", mode="before")
    @classmethod
    def _keep_step_objects(cls, value: Any) -> list[dict]:
        if not isinstance(value, list):
            return []
        return [step for step in value if isinstance(step, dict)]


class ScrapeAdsArgs(_Args):
    brand_name: str = Field(min_length=1)
    max_ads: int = Field(default=10, ge=1)


class DownloadVideosArgs(_Args):
    video_urls: list[str] = Field(default_factory=list)


class AnalyzeVisualsArgs(_Args):
    image_urls: list[str] = Field(default_factory=list)
    ad_copy: str | None = None
    brand_context: str | None = None


class SearchWebArgs(_Args):
    query: str = Field(min_length=1)
    num_results: int = Field(default=5, ge=1)


class Recommendation(_Args):
    title: str | None = None
    description: str | None = None
    impact: str | None = None
    priority: str | None = None


class SynthesizeReportArgs(_Args):
    brand_name: str = Field(min_length=1)
    ads_analyzed: int = 0
    key_findings: list[str] = Field(default_factory=list)
    hook_patterns: list[str] = Field(default_factory=list)
    script_insights: list[str] = Field(default_factory=list)
    recommendations: list[Recommendation] = Field(default_factory=list)


class FinishArgs(_Args):
    summary: str
    results_delivered: bool
    next_steps: list[str] = Field(default_factory=list)


ARGS_MODELS: dict[str, type[BaseModel]] = {
    "think_and_plan": Plan,
    "scrape_competitor_ads": ScrapeAdsArgs,
    "download_videos": DownloadVideosArgs,
    "analyze_visuals": AnalyzeVisualsArgs,
    "search_web": SearchWebArgs,
    "synthesize_report": SynthesizeReportArgs,
    "finish": FinishArgs,
}
