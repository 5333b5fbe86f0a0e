"""Drip delivery of reply fragments into a conversation log.

Each fragment waits a random delay before it is appended, so the chat shows
"typing..., bubble, typing..., bubble" instead of one bulk insert. Delivery
is cancelled cooperatively: the token is checked before every wait and again
before every append. Bubbles already appended stay in the log.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable

from pocketphone.models import Message
from pocketphone.storage.messages import ConversationStore

logger = logging.getLogger(__name__)

DEFAULT_DELAY_MS = (800, 2000)

Sleep = Callable[[float], Awaitable[object]]


class CancelToken:
    """Cooperative cancellation flag for one turn."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class DeliveryScheduler:
    """Appends fragments one at a time with a delay in [low, high) ms.

    Args:
        store:            Conversation store that receives the appends.
        delay_ms:         (low, high) bounds for the per-fragment delay.
        rng:              Random source, injectable for deterministic tests.
        sleep:            Awaitable sleep, injectable so tests need not wait.
        resolve_delay_ms: Returns the current bounds. Called before every
                          fragment and overrides `delay_ms` when given.
    """

    def __init__(
        self,
        store: ConversationStore,
        delay_ms: tuple[int, int] = DEFAULT_DELAY_MS,
        rng: random.Random | None = None,
        sleep: Sleep = asyncio.sleep,
        resolve_delay_ms: Callable[[], tuple[int, int]] | None = None,
    ) -> None:
        self._store = store
        self._resolve_delay_ms = resolve_delay_ms or (lambda: delay_ms)
        self._rng = rng or random.Random()
        self._sleep = sleep

    def next_delay(self) -> float:
        """Delay in seconds, uniform over the current [low, high) ms."""
        low, high = self._resolve_delay_ms()
        ms = low + self._rng.random() * (high - low)
        return ms / 1000

    async def deliver(
        self, contact_id: str, fragments: list[str], token: CancelToken
    ) -> list[Message]:
        """Append each fragment in order. Returns the messages actually appended."""
        delivered: list[Message] = []
        for i, fragment in enumerate(fragments):
            if token.cancelled:
                break
            await self._sleep(self.next_delay())
            if token.cancelled:
                break
            message = Message(type="text", text=fragment, is_self=False)
            self._store.append(contact_id, message)
            delivered.append(message)
            logger.debug("delivered fragment %d/%d to %s", i + 1, len(fragments), contact_id)

        if len(delivered) < len(fragments):
            logger.warning(
                "Delivery to %s cancelled after %d of %d fragments",
                contact_id, len(delivered), len(fragments),
            )
        return delivered
