"""Core domain models.

All pipeline stages and storage functions operate on these types.
Pydantic is used for validation and serialisation at every data boundary.
"""

from __future__ import annotations

import time
import uuid
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

MessageType = Literal[
    "text",
    "voice",
    "red_packet",
    "transfer",
    "sticker",
    "image",
    "simulated_image",
    "video_call_log",
    "voice_call_log",
    "system",
]

PAYMENT_TYPES: frozenset[str] = frozenset({"red_packet", "transfer"})

ClaimStatus = Literal["unclaimed", "claimed", "rejected"]


def new_id() -> str:
    return uuid.uuid4().hex


def now_ms() -> int:
    return int(time.time() * 1000)


class Message(BaseModel):
    """A single bubble in a contact's conversation log."""

    id: str = Field(default_factory=new_id)
    type: MessageType = "text"
    text: str = ""
    is_self: bool
    timestamp: int = Field(default_factory=now_ms)

    # kind-specific
    status: ClaimStatus | None = None  # payment-like kinds only
    voice_duration: int | None = None
    red_packet_title: str | None = None
    red_packet_amount: str | None = None
    transfer_amount: str | None = None
    transfer_remark: str | None = None
    image_url: str | None = None
    sticker_url: str | None = None
    sticker_name: str | None = None
    simulated_text: str | None = None  # caption for a disguised photo

    @property
    def is_payment(self) -> bool:
        return self.type in PAYMENT_TYPES


class Contact(BaseModel):
    """A chat partner and the persona the model plays."""

    id: str = Field(default_factory=new_id)
    name: str
    remark: str = ""
    avatar: str = ""
    persona: str = ""
    max_words: int = 50
    style_id: str = "normal"

    @property
    def display_name(self) -> str:
        return self.remark or self.name


class UserProfile(BaseModel):
    """The account the user chats as."""

    name: str = "Me"
    avatar: str = ""
    persona: str = ""
    signature: str = ""


class LoreEntry(BaseModel):
    """A world book entry, shared by every contact or owned by one character."""

    id: str = Field(default_factory=new_id)
    name: str
    content: str
    tags: list[str] = Field(default_factory=list)
    scope: Literal["global", "local"] = "global"
    character_name: str | None = None
    created_at: int = Field(default_factory=now_ms)


class RestrictedTerm(BaseModel):
    id: str = Field(default_factory=new_id)
    word: str
    category: str = ""


class ApiPreset(BaseModel):
    """A user-configured chat completion endpoint."""

    id: str = Field(default_factory=new_id)
    name: str = ""
    base_url: str
    api_key: str = ""
    model: str = ""
    completions_path: str | None = None  # overrides the /v1 path heuristic


# ---------------------------------------------------------------------------
# Generation (transient, never persisted)
# ---------------------------------------------------------------------------

Role = Literal["system", "user", "assistant"]


class ChatTurn(BaseModel):
    role: Role
    content: str


class GenerationRequest(BaseModel):
    """A composed chat completion request: system instruction plus history."""

    system: str
    history: list[ChatTurn] = Field(default_factory=list)

    def to_messages(self) -> list[dict[str, str]]:
        return [{"role": "system", "content": self.system}] + [
            t.model_dump() for t in self.history
        ]


class SegmentedReply(BaseModel):
    mood: str | None = None
    fragments: list[str] = Field(default_factory=list)


class TurnState(str, Enum):
    IDLE = "idle"
    COMPOSING = "composing"
    AWAITING_MODEL = "awaiting_model"
    SEGMENTING = "segmenting"
    DELIVERING = "delivering"
    FAILED = "failed"


class GenerationTurn(BaseModel):
    """Working state for one reply cycle."""

    contact_id: str
    state: TurnState = TurnState.IDLE
    transitions: list[TurnState] = Field(default_factory=list)
    window: list[Message] = Field(default_factory=list)
    request: GenerationRequest | None = None
    raw_reply: str | None = None
    mood: str | None = None
    fragments: list[str] = Field(default_factory=list)
    delivered: list[Message] = Field(default_factory=list)
    cancelled: bool = False
    error: str | None = None

    def advance(self, state: TurnState) -> None:
        self.state = state
        self.transitions.append(state)
