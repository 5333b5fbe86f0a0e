"""Pydantic request/response models for API endpoints."""

from typing import Literal

from pydantic import BaseModel

from pocketphone.models import MessageType


class CreateContact(BaseModel):
    name: str
    remark: str = ""
    avatar: str = ""
    persona: str = ""
    max_words: int = 50
    style_id: str = "normal"


class UpdateContact(BaseModel):
    name: str | None = None
    remark: str | None = None
    avatar: str | None = None
    persona: str | None = None
    max_words: int | None = None
    style_id: str | None = None


class CreateLoreEntry(BaseModel):
    name: str
    content: str
    tags: list[str] = []
    scope: Literal["global", "local"] = "global"
    character_name: str | None = None


class RestrictedTermBody(BaseModel):
    word: str
    category: str = ""


class SendMessage(BaseModel):
    text: str = ""
    type: MessageType = "text"
    reply: bool = True
    voice_duration: int | None = None
    red_packet_title: str | None = None
    red_packet_amount: str | None = None
    transfer_amount: str | None = None
    transfer_remark: str | None = None
    image_url: str | None = None
    sticker_url: str | None = None
    sticker_name: str | None = None
    simulated_text: str | None = None


class DeleteMessages(BaseModel):
    ids: list[str]


class EditMessage(BaseModel):
    text: str


class CheckConnectionBody(BaseModel):
    base_url: str
    api_key: str = ""
    completions_path: str | None = None
