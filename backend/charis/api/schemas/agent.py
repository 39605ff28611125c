"""Request/response schemas for the agent endpoints."""

from pydantic import BaseModel, ConfigDict, Field, model_validator


class AttachedUrl(BaseModel):
    url: str
    title: str | None = None


class AgentStreamRequest(BaseModel):
    """Body of ``POST /api/agent/stream``. Field names follow the web client (camelCase)."""

    model_config = ConfigDict(populate_by_name=True)

    session_id: str | None = Field(default=None, alias="sessionId")
    user_id: str = Field(alias="userId", min_length=1)
    prompt: str | None = None
    brand_name: str | None = Field(default=None, alias="brandName")
    attached_urls: list[AttachedUrl] = Field(default_factory=list, alias="attachedUrls")

    @model_validator(mode="after")
    def _prompt_or_brand(self) -> "AgentStreamRequest":
        if not (self.prompt and self.prompt.strip()) and not (self.brand_name and self.brand_name.strip()):
            raise ValueError("Either prompt or brandName is required")
        return self


class CancelResponse(BaseModel):
    session_id: str = Field(serialization_alias="sessionId")
    status: str
    message: str
