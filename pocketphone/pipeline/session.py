"""Per-contact chat control: user turns, regeneration, claim timers.

A ChatSession runs at most one reply turn per contact. Starting a new user
turn or a regeneration cancels the turn in flight first, so bubbles from a
superseded reply never interleave with the new one.

Payment-like messages sent by the user are flipped to "claimed" after a short
random delay by an independent task. That task and the delivery task both
write the same log through composing updates, so neither loses the other's
changes.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Callable
from typing import Protocol

from pocketphone import storage
from pocketphone.errors import GatewayUnavailable, PipelineError
from pocketphone.llm import COMPLETIONS, ChatCompletionsGateway, ExplicitPaths, Gateway, versioned_url
from pocketphone.models import (
    ApiPreset,
    Contact,
    GenerationRequest,
    GenerationTurn,
    LoreEntry,
    Message,
    RestrictedTerm,
    TurnState,
    UserProfile,
)
from pocketphone.storage.messages import ConversationStore

from .core import run_turn
from .delivery import CancelToken, DeliveryScheduler, Sleep

logger = logging.getLogger(__name__)

DEFAULT_MOOD = "手机在线"
DEFAULT_CLAIM_DELAY_MS = (2000, 3500)


# ---------------------------------------------------------------------------
# Context sources, read fresh at the start of every turn
# ---------------------------------------------------------------------------

class ContextSource(Protocol):
    def get_contact(self, contact_id: str) -> Contact | None: ...
    def get_user(self) -> UserProfile: ...
    def get_lore_entries(self) -> list[LoreEntry]: ...
    def get_restricted_terms(self) -> list[RestrictedTerm]: ...


class StorageContext:
    """ContextSource backed by the JSON storage helpers."""

    def get_contact(self, contact_id: str) -> Contact | None:
        return storage.get_contact(contact_id)

    def get_user(self) -> UserProfile:
        return storage.get_user_profile()

    def get_lore_entries(self) -> list[LoreEntry]:
        return storage.get_lorebook()

    def get_restricted_terms(self) -> list[RestrictedTerm]:
        return storage.get_restricted_terms()


def gateway_for(preset: ApiPreset, timeout: float) -> ChatCompletionsGateway:
    """Build a gateway for a preset, honouring its explicit path override."""
    if preset.completions_path:
        resolver = ExplicitPaths({COMPLETIONS: preset.completions_path})
    else:
        resolver = versioned_url
    return ChatCompletionsGateway(preset, timeout=timeout, resolve_url=resolver)


class ActivePresetGateway:
    """Gateway that resolves the active API preset and timeout on every call.

    Settings that cannot be read surface as GatewayUnavailable, like any
    other endpoint failure.
    """

    def __init__(
        self,
        resolve_preset: Callable[[], ApiPreset | None] = storage.get_active_preset,
        resolve_timeout: Callable[[], float] = storage.get_gateway_timeout,
    ) -> None:
        self._resolve_preset = resolve_preset
        self._resolve_timeout = resolve_timeout

    async def __call__(self, request: GenerationRequest) -> str:
        try:
            preset = self._resolve_preset()
            timeout = self._resolve_timeout()
        except (ValueError, TypeError, OSError) as e:
            raise GatewayUnavailable(f"Cannot read API settings: {e}") from e
        if preset is None:
            raise GatewayUnavailable("No API preset is active. Configure one in Settings")
        return await gateway_for(preset, timeout)(request)


# ---------------------------------------------------------------------------
# ChatSession
# ---------------------------------------------------------------------------

class ChatSession:
    """Entry point for the UI layer.

    Args:
        store:          Shared conversation store.
        source:         Where contacts, profile, lore and restricted terms come from.
        gateway:        Model gateway used for every turn.
        scheduler:      Delivery scheduler. Defaults to one writing into `store`.
        claim_delay_ms: (low, high) bounds for the simulated claim of payments.
        rng, sleep:     Injectable randomness and sleep for the claim timer.
        resolve_claim_delay_ms: Returns the current claim bounds, read when
                        each claim is scheduled. Overrides `claim_delay_ms`.
    """

    def __init__(
        self,
        store: ConversationStore,
        source: ContextSource,
        gateway: Gateway,
        scheduler: DeliveryScheduler | None = None,
        claim_delay_ms: tuple[int, int] = DEFAULT_CLAIM_DELAY_MS,
        rng: random.Random | None = None,
        sleep: Sleep = asyncio.sleep,
        resolve_claim_delay_ms: Callable[[], tuple[int, int]] | None = None,
    ) -> None:
        self.store = store
        self._source = source
        self._gateway = gateway
        self._scheduler = scheduler or DeliveryScheduler(store)
        self._resolve_claim_delay_ms = resolve_claim_delay_ms or (lambda: claim_delay_ms)
        self._rng = rng or random.Random()
        self._sleep = sleep

        self._turns: dict[str, tuple[asyncio.Task[GenerationTurn], CancelToken]] = {}
        self._claims: dict[str, set[asyncio.Task[None]]] = {}
        self._moods: dict[str, str] = {}
        self._errors: dict[str, str] = {}
        self._typing: set[str] = set()

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    def mood(self, contact_id: str) -> str:
        return self._moods.get(contact_id, DEFAULT_MOOD)

    def is_typing(self, contact_id: str) -> bool:
        return contact_id in self._typing

    def last_error(self, contact_id: str) -> str | None:
        return self._errors.get(contact_id)

    def active_turn(self, contact_id: str) -> asyncio.Task[GenerationTurn] | None:
        entry = self._turns.get(contact_id)
        return entry[0] if entry else None

    # ------------------------------------------------------------------
    # UI operations
    # ------------------------------------------------------------------

    async def submit_user_turn(self, contact_id: str, text: str) -> asyncio.Task[GenerationTurn]:
        """Append a user text message and start a reply turn for it."""
        await self.cancel_turn(contact_id)
        self._append(contact_id, Message(type="text", text=text, is_self=True))
        return self._start_turn(contact_id)

    async def send_message(
        self, contact_id: str, message: Message, reply: bool = False
    ) -> asyncio.Task[GenerationTurn] | None:
        """Append a message. With `reply`, cancel any turn in flight and start a new one."""
        if reply:
            await self.cancel_turn(contact_id)
        self._append(contact_id, message)
        return self._start_turn(contact_id) if reply else None

    async def regenerate(self, contact_id: str) -> asyncio.Task[GenerationTurn] | None:
        """Drop the last model reply and generate a new one.

        Returns None without touching the log or the model when the log has
        no user message to answer.
        """
        await self.cancel_turn(contact_id)
        if not any(m.is_self for m in self.store.get(contact_id)):
            logger.info("Nothing to regenerate for %s: no user message", contact_id)
            return None
        removed = self.store.truncate_trailing_model_turn(contact_id)
        logger.info("Regenerating reply for %s, dropped %d messages", contact_id, len(removed))
        return self._start_turn(contact_id)

    async def cancel_turn(self, contact_id: str) -> None:
        """Stop the turn in flight for a contact, if any. Delivered bubbles stay."""
        entry = self._turns.pop(contact_id, None)
        if entry is None:
            return
        task, token = entry
        token.cancel()
        if not task.done():
            task.cancel()
            await asyncio.wait({task})
        self._typing.discard(contact_id)

    async def close(self, contact_id: str) -> None:
        """Conversation closed: cancel its reply turn and pending claim timers."""
        await self.cancel_turn(contact_id)
        claims = self._claims.pop(contact_id, set())
        for task in claims:
            task.cancel()
        if claims:
            await asyncio.wait(claims)

    async def aclose(self) -> None:
        for contact_id in set(self._turns) | set(self._claims):
            await self.close(contact_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _append(self, contact_id: str, message: Message) -> None:
        self.store.append(contact_id, message)
        if message.is_self and message.is_payment and message.status != "claimed":
            self._schedule_claim(contact_id, message.id)

    def _start_turn(self, contact_id: str) -> asyncio.Task[GenerationTurn]:
        token = CancelToken()
        task = asyncio.create_task(self._run(contact_id, token))
        self._turns[contact_id] = (task, token)
        return task

    async def _run(self, contact_id: str, token: CancelToken) -> GenerationTurn:
        turn = GenerationTurn(contact_id=contact_id)

        def _set_mood(mood: str) -> None:
            self._moods[contact_id] = mood

        self._typing.add(contact_id)
        self._errors.pop(contact_id, None)
        logger.info("Reply turn started for %s", contact_id)
        try:
            await run_turn(
                turn,
                contact=self._source.get_contact(contact_id),
                user=self._source.get_user(),
                history=self.store.get(contact_id),
                lore_entries=self._source.get_lore_entries(),
                restricted_terms=self._source.get_restricted_terms(),
                gateway=self._gateway,
                scheduler=self._scheduler,
                token=token,
                on_mood=_set_mood,
            )
        except PipelineError as e:
            self._errors[contact_id] = str(e)
            logger.warning("Reply turn for %s failed: %s", contact_id, e)
            turn.advance(TurnState.IDLE)
        except Exception as e:
            self._errors[contact_id] = str(e)
            logger.exception("Reply turn for %s aborted", contact_id)
            turn.advance(TurnState.IDLE)
        finally:
            self._typing.discard(contact_id)
            entry = self._turns.get(contact_id)
            if entry is not None and entry[1] is token:
                del self._turns[contact_id]
        return turn

    def _schedule_claim(self, contact_id: str, message_id: str) -> None:
        low, high = self._resolve_claim_delay_ms()
        ms = low + self._rng.random() * (high - low)
        task = asyncio.create_task(self._claim_later(contact_id, message_id, ms / 1000))
        tasks = self._claims.setdefault(contact_id, set())
        tasks.add(task)
        task.add_done_callback(tasks.discard)

    async def _claim_later(self, contact_id: str, message_id: str, delay: float) -> None:
        await self._sleep(delay)
        if self.store.set_status(contact_id, message_id, "claimed"):
            logger.debug("Payment %s claimed by %s", message_id, contact_id)
