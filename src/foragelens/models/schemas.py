from datetime import datetime
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from foragelens.models.domain import MessageRole, SessionStatus


class ImageURL(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str


class ContentPart(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["text", "image_url"]
    text: Optional[str] = None
    image_url: Optional[ImageURL] = None


class LLMMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["system", "user", "assistant"]
    content: Union[str, List[ContentPart]]

    def has_image(self) -> bool:
        if isinstance(self.content, str):
            return False
        return any(part.type == "image_url" for part in self.content)

    def text(self) -> str:
        if isinstance(self.content, str):
            return self.content
        return "\n".join(part.text for part in self.content if part.type == "text" and part.text)


class ResponseFormat(BaseModel):
    type: Literal["json_object"] = "json_object"


class LLMRequest(BaseModel):
    model: str
    messages: List[LLMMessage]
    max_tokens: int
    temperature: float
    response_format: Optional[ResponseFormat] = None
    stream: Optional[bool] = None

    def has_image(self) -> bool:
        return any(message.has_image() for message in self.messages)


class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


class ResponseMessage(BaseModel):
    role: str = "assistant"
    content: Optional[str] = None
    reasoning_content: Optional[str] = None


class Choice(BaseModel):
    message: ResponseMessage
    finish_reason: Optional[str] = None


class LLMResponse(BaseModel):
    id: str = ""
    choices: List[Choice] = Field(default_factory=list)
    usage: TokenUsage = Field(default_factory=TokenUsage)

    @field_validator("usage", mode="before")
    @classmethod
    def _usage_or_zero(cls, value):
        return value if value is not None else TokenUsage()

    @property
    def content(self) -> str:
        if not self.choices:
            return ""
        return self.choices[0].message.content or ""


class Stage1Candidate(BaseModel):
    name: str
    scientific_name: str
    confidence: str = "medium"
    key_reasons: str = ""

    @field_validator("confidence", mode="before")
    @classmethod
    def _normalize_confidence(cls, value):
        lowered = str(value or "").strip().lower()
        return lowered if lowered in {"high", "medium", "low"} else "medium"

    @field_validator("key_reasons", mode="before")
    @classmethod
    def _reasons_as_text(cls, value):
        if value is None:
            return ""
        if isinstance(value, list):
            return "; ".join(str(v) for v in value)
        return str(value)


class Stage1Output(BaseModel):
    candidates: List[Stage1Candidate] = Field(default_factory=list)
    reasoning: str = ""
    needs_more_info: bool = True
    follow_up_question: Optional[str] = None

    @field_validator("reasoning", mode="before")
    @classmethod
    def _reasoning_as_text(cls, value):
        return "" if value is None else str(value)

    @field_validator("needs_more_info", mode="before")
    @classmethod
    def _default_needs_more_info(cls, value):
        return True if value is None else value

    @field_validator("follow_up_question", mode="before")
    @classmethod
    def _question_as_text(cls, value):
        if value is None or isinstance(value, str):
            return value or None
        return str(value)


class SessionMessageResponse(BaseModel):
    id: str
    role: MessageRole
    content: str
    photos: Optional[List[str]] = None
    timestamp: datetime

    model_config = {"from_attributes": True}


class SessionResponse(BaseModel):
    id: str
    status: SessionStatus
    created_at: datetime
    updated_at: datetime
    messages: List[SessionMessageResponse] = Field(default_factory=list)

    model_config = {"from_attributes": True}


MAX_MESSAGE_CHARS = 8000


class SendMessageRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=MAX_MESSAGE_CHARS)
    photos: Optional[List[str]] = None


class SendMessageResponse(BaseModel):
    ok: bool
    response: Optional[str] = None
    cached: bool = False
    error: Optional[str] = None
    message: Optional[str] = None
    session: Optional[SessionResponse] = None


class UsageSummaryResponse(BaseModel):
    spend_usd: float
    prompt_tokens: int
    completion_tokens: int
    requests: int
    cache_hits: int
    budget_limit_usd: float
    within_budget: bool


class CacheSweepRequest(BaseModel):
    ttl_days: Optional[int] = Field(default=None, ge=0)


class CacheSweepResponse(BaseModel):
    removed: int
