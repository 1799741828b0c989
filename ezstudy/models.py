from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


# --- CONVERSATION MODELS ---

class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ChatTurn(BaseModel):
    """One role-tagged message; immutable once created."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str


class Mode(str, Enum):
    TUTOR = "tutor"
    SUMMARIZER = "summarizer"
    EXAMINER = "examiner"


class Tone(str, Enum):
    CREATIVE = "creative"
    BALANCED = "balanced"
    PRECISE = "precise"


TONE_TEMPERATURE = {
    Tone.CREATIVE: 0.9,
    Tone.BALANCED: 0.7,
    Tone.PRECISE: 0.3,
}


def _coerce_member(enum_cls, value, default):
    """Map a member or a case-insensitive value onto enum_cls, else default."""
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, Enum):
        value = value.value
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        return default


class ProviderConfig(BaseModel):
    """Assistant persona settings sent by the frontend.

    Unknown or missing values fall back to the defaults instead of failing
    the request.
    """

    personality: str = "friendly"
    mode: Mode = Mode.TUTOR
    tone: Tone = Tone.BALANCED

    @field_validator("personality", mode="before")
    @classmethod
    def _default_personality(cls, value):
        if not isinstance(value, str) or not value.strip():
            return "friendly"
        return value.strip()[:40]

    @field_validator("mode", mode="before")
    @classmethod
    def _default_mode(cls, value):
        return _coerce_member(Mode, value, Mode.TUTOR)

    @field_validator("tone", mode="before")
    @classmethod
    def _default_tone(cls, value):
        return _coerce_member(Tone, value, Tone.BALANCED)

    @property
    def temperature(self) -> float:
        return TONE_TEMPERATURE[self.tone]


class ProviderUsed(str, Enum):
    PRIMARY = "primary"
    FALLBACK = "fallback"


class ProviderResult(BaseModel):
    text: str
    provider_used: ProviderUsed
    provider: str


# --- REQUEST ADAPTER MODELS ---

class FileKind(str, Enum):
    IMAGE = "image"
    PDF = "pdf"
    TEXT = "text"
    OTHER = "other"


class FileExcerpt(BaseModel):
    filename: str
    content_type: str
    kind: FileKind
    text: Optional[str] = None
    note: Optional[str] = None


class ModerationResult(BaseModel):
    allowed: bool
    reason: Optional[str] = None


class RequestContext(BaseModel):
    now: datetime
    location: Optional[str] = None
    weather: Optional[str] = None


# --- API SCHEMA MODELS ---

class QuizRequest(BaseModel):
    topic: Optional[str] = None
    difficulty: Optional[str] = "medium"


class QuizQuestion(BaseModel):
    question: str
    options: List[str] = Field(min_length=4, max_length=4)
    correct: int = Field(ge=0, le=3)
    explanation: str = ""


class SummarizeRequest(BaseModel):
    text: Optional[str] = None
    style: Optional[str] = "bullet point"


class ContactRequest(BaseModel):
    name: str
    email: EmailStr
    message: str
    subject: Optional[str] = None
