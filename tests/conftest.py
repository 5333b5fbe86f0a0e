"""Shared test doubles for the reply pipeline.

ScriptedGateway replays canned replies (or raises canned errors) and records
every request. MemoryContext is an in-memory ContextSource. Sleeps are faked
so drip delivery runs without waiting.
"""

import asyncio
import random
from collections.abc import Callable

import pytest

from pocketphone.models import (
    Contact,
    GenerationRequest,
    LoreEntry,
    RestrictedTerm,
    UserProfile,
)
from pocketphone.pipeline import ChatSession, DeliveryScheduler
from pocketphone.storage import ConversationStore

FIVE_PART_REPLY = "[STATUS: 开心] [MSG_SPLIT] a [MSG_SPLIT] b [MSG_SPLIT] c [MSG_SPLIT] d [MSG_SPLIT] e"


class ScriptedGateway:
    def __init__(self, *replies: str | BaseException) -> None:
        self.replies = list(replies)
        self.requests: list[GenerationRequest] = []

    async def __call__(self, request: GenerationRequest) -> str:
        self.requests.append(request)
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply


class MemoryContext:
    def __init__(self) -> None:
        self.contacts: dict[str, Contact] = {
            "lin": Contact(id="lin", name="Lin", persona="A sleepy art student."),
        }
        self.user = UserProfile(name="Chuan")
        self.lore: list[LoreEntry] = []
        self.restricted: list[RestrictedTerm] = []

    def get_contact(self, contact_id: str) -> Contact | None:
        return self.contacts.get(contact_id)

    def get_user(self) -> UserProfile:
        return self.user

    def get_lore_entries(self) -> list[LoreEntry]:
        return list(self.lore)

    def get_restricted_terms(self) -> list[RestrictedTerm]:
        return list(self.restricted)


class FakeSleep:
    """Records requested delays; blocks forever after `hold_after` calls if set."""

    def __init__(self) -> None:
        self.delays: list[float] = []
        self.hold_after: int | None = None
        self._never = asyncio.Event()

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        if self.hold_after is not None and len(self.delays) > self.hold_after:
            await self._never.wait()
        await asyncio.sleep(0)


@pytest.fixture
def scripted() -> type[ScriptedGateway]:
    return ScriptedGateway


@pytest.fixture
def store() -> ConversationStore:
    return ConversationStore()


@pytest.fixture
def context() -> MemoryContext:
    return MemoryContext()


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def scheduler(store, fake_sleep) -> DeliveryScheduler:
    return DeliveryScheduler(store, rng=random.Random(7), sleep=fake_sleep)


@pytest.fixture
def make_session(store, context, scheduler, fake_sleep) -> Callable[..., tuple[ChatSession, ScriptedGateway]]:
    def _make(*replies: str | BaseException) -> tuple[ChatSession, ScriptedGateway]:
        gateway = ScriptedGateway(*replies)
        session = ChatSession(
            store, context, gateway,
            scheduler=scheduler, rng=random.Random(7), sleep=fake_sleep,
        )
        return session, gateway
    return _make


@pytest.fixture
def wait_until():
    async def _wait(predicate: Callable[[], bool], rounds: int = 500) -> None:
        for _ in range(rounds):
            if predicate():
                return
            await asyncio.sleep(0)
        raise AssertionError("condition not reached")
    return _wait
