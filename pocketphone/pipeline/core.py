"""One reply cycle: compose, call the model, segment, drip-deliver.

Turn states:

    idle → composing → awaiting_model → segmenting → delivering → idle
              │              │                           │
              └──────────────┴──────── failed ───────────┘

Composition and the gateway call both happen before the first write to the
conversation log, so a failed turn leaves the log untouched. The only partial
outcome is a cancelled delivery, which keeps the bubbles already appended.
"""

import logging
from collections.abc import Callable

from pocketphone.llm import Gateway
from pocketphone.lorebook import select_entries
from pocketphone.models import (
    Contact,
    GenerationTurn,
    LoreEntry,
    Message,
    RestrictedTerm,
    TurnState,
    UserProfile,
)
from pocketphone.prompts import compose, history_window

from .delivery import CancelToken, DeliveryScheduler
from .segments import segment

logger = logging.getLogger(__name__)


async def run_turn(
    turn: GenerationTurn,
    *,
    contact: Contact | None,
    user: UserProfile,
    history: list[Message],
    lore_entries: list[LoreEntry],
    restricted_terms: list[RestrictedTerm],
    gateway: Gateway,
    scheduler: DeliveryScheduler,
    token: CancelToken,
    on_mood: Callable[[str], None] | None = None,
) -> GenerationTurn:
    """Run one reply cycle for `turn.contact_id`, recording progress on `turn`.

    Errors move the turn to FAILED and propagate. The caller surfaces them and
    returns the turn to IDLE.
    """
    try:
        turn.advance(TurnState.COMPOSING)
        turn.window = history_window(history)
        visible_lore = select_entries(lore_entries, contact) if contact is not None else []
        turn.request = compose(contact, user, history, visible_lore, restricted_terms)

        turn.advance(TurnState.AWAITING_MODEL)
        turn.raw_reply = await gateway(turn.request)

        turn.advance(TurnState.SEGMENTING)
        reply = segment(turn.raw_reply)
        turn.mood = reply.mood
        turn.fragments = reply.fragments
        if reply.mood and on_mood is not None:
            on_mood(reply.mood)

        turn.advance(TurnState.DELIVERING)
        turn.delivered = await scheduler.deliver(turn.contact_id, turn.fragments, token)
        turn.cancelled = len(turn.delivered) < len(turn.fragments)
    except Exception as e:
        turn.error = str(e)
        turn.advance(TurnState.FAILED)
        raise

    turn.advance(TurnState.IDLE)
    logger.info(
        "turn for %s delivered %d/%d fragments",
        turn.contact_id, len(turn.delivered), len(turn.fragments),
    )
    return turn
