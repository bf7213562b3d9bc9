import datetime as dt
from pydantic import BaseModel, ConfigDict, Field
from uuid import UUID
from typing import Optional, List, Dict, Any


def to_camel(name: str) -> str:
    """snake_case -> camelCase, leaving digits alone (pb5k stays pb5k)."""
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


class CamelModel(BaseModel):
    """Wire models use camelCase; Python attributes stay snake_case."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ---------------------------------------------------------------------------
# Streaming chat
# ---------------------------------------------------------------------------

class ChatMessage(BaseModel):
    """One OpenAI-style message. Unknown keys (tool_calls, tool_call_id, name) pass through."""
    role: str
    content: Optional[Any] = None  # str, or a list of multimodal parts

    model_config = ConfigDict(extra="allow")


class ChatRequest(CamelModel):
    messages: List[ChatMessage]
    model: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    reasoning: bool = False

    def wire_messages(self) -> List[Dict[str, Any]]:
        return [m.model_dump(exclude_unset=True) for m in self.messages]


# ---------------------------------------------------------------------------
# Runner profile
# ---------------------------------------------------------------------------

class RunnerProfileUpdate(CamelModel):
    """Profile form body. Only keys present in the request are applied."""
    name: Optional[str] = None
    age: Optional[int] = None
    weight: Optional[float] = None
    height: Optional[float] = None
    years_running: Optional[int] = None
    weekly_km: Optional[float] = None
    pb5k: Optional[str] = None
    pb10k: Optional[str] = None
    pb_half_marathon: Optional[str] = None
    pb_marathon: Optional[str] = None
    current_goal: Optional[str] = None
    target_race: Optional[str] = None
    target_date: Optional[str] = None
    target_time: Optional[str] = None
    injuries: Optional[str] = None
    health_notes: Optional[str] = None
    preferred_terrain: Optional[str] = None
    available_days: Optional[str] = None
    max_time_per_session: Optional[int] = None
    coach_notes: Optional[str] = None
    additional_info: Optional[Dict[str, Any]] = None


class RunnerProfileResponse(RunnerProfileUpdate):
    id: UUID
    created_at: dt.datetime
    updated_at: dt.datetime


class CoachNotesAppend(CamelModel):
    coach_notes: str


# ---------------------------------------------------------------------------
# Running events
# ---------------------------------------------------------------------------

class RunningEventCreate(CamelModel):
    date: dt.date
    type: str
    category: Optional[str] = None  # defaults to 'running'
    title: Optional[str] = None
    time: Optional[str] = None
    distance: Optional[float] = None
    duration: Optional[str] = None
    pace: Optional[str] = None
    notes: Optional[str] = None
    heart_rate: Optional[int] = None
    feeling: Optional[str] = None
    completed: Optional[int] = Field(default=None, ge=0, le=1)


class RunningEventUpdate(RunningEventCreate):
    id: UUID


class RunningEventResponse(CamelModel):
    id: UUID
    date: dt.date
    category: str
    type: str
    title: Optional[str] = None
    time: Optional[str] = None
    distance: Optional[float] = None
    duration: Optional[str] = None
    pace: Optional[str] = None
    notes: Optional[str] = None
    heart_rate: Optional[int] = None
    feeling: Optional[str] = None
    completed: int = 0
    created_at: dt.datetime
    updated_at: dt.datetime


# ---------------------------------------------------------------------------
# Conversations
# ---------------------------------------------------------------------------

class ConversationCreate(CamelModel):
    title: Optional[str] = None
    model: str


class ConversationUpdate(CamelModel):
    title: str


class MessageCreate(CamelModel):
    role: str
    content: str


class MessageResponse(CamelModel):
    id: UUID
    conversation_id: UUID
    role: str
    content: str
    created_at: dt.datetime


class ConversationResponse(CamelModel):
    id: UUID
    title: str
    model: str
    created_at: dt.datetime
    updated_at: dt.datetime


class ConversationDetail(ConversationResponse):
    messages: List[MessageResponse] = []


# ---------------------------------------------------------------------------
# Vision & image generation
# ---------------------------------------------------------------------------

class VisionRequest(CamelModel):
    image_url: Optional[str] = None
    image_base64: Optional[str] = None
    prompt: Optional[str] = None
    model: Optional[str] = None


class VisionAnalysisCreate(CamelModel):
    image_url: str
    prompt: Optional[str] = None
    model: str
    response: str


class VisionAnalysisResponse(VisionAnalysisCreate):
    id: UUID
    created_at: dt.datetime


class ImageGenerationRequest(CamelModel):
    prompt: str
    model: Optional[str] = None
    # Data URL or remote URL of an image to edit.
    source_image: Optional[str] = None


class GeneratedImageCreate(CamelModel):
    prompt: str
    model: str
    image_url: str


class GeneratedImageResponse(GeneratedImageCreate):
    id: UUID
    created_at: dt.datetime
