"""Conversation logs, one ordered message list per contact.

Every write is a transform over the log as it is at the moment the write is
applied, never a replacement built from an earlier read:

    store.update(contact_id, lambda log: [*log, message])

The delivery scheduler, the user send path and the delayed claim flip all
write to the same log without coordinating, so a write that replaced the
log from a stale copy would drop the others' messages. Transforms run under
a lock and must not block.

The whole map is persisted to one JSON file after each write when a path is
given:

    {contact_id: [Message, ...], ...}
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

from pocketphone.models import ClaimStatus, Message

logger = logging.getLogger(__name__)

LogTransform = Callable[[list[Message]], list[Message]]
Listener = Callable[[str, list[Message]], None]


class ConversationStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._lock = threading.RLock()
        self._listeners: list[Listener] = []
        self._logs: dict[str, list[Message]] = self._load()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> dict[str, list[Message]]:
        if self._path is None or not self._path.is_file():
            return {}
        data: dict[str, Any] = json.loads(self._path.read_text())
        return {
            contact_id: [Message.model_validate(m) for m in msgs]
            for contact_id, msgs in data.items()
        }

    def _save(self) -> None:
        if self._path is None:
            return
        data = {
            contact_id: [m.model_dump(exclude_none=True) for m in msgs]
            for contact_id, msgs in self._logs.items()
        }
        self._path.write_text(json.dumps(data, indent=2, ensure_ascii=False))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, contact_id: str) -> list[Message]:
        """Snapshot of a contact's log. Returns [] for unknown contacts."""
        with self._lock:
            return list(self._logs.get(contact_id, []))

    def contact_ids(self) -> list[str]:
        with self._lock:
            return list(self._logs)

    # ------------------------------------------------------------------
    # Composing writes
    # ------------------------------------------------------------------

    def update(self, contact_id: str, fn: LogTransform) -> list[Message]:
        """Apply `fn` to the current log and store its result. Returns the new log."""
        with self._lock:
            current = list(self._logs.get(contact_id, []))
            updated = list(fn(current))
            self._logs[contact_id] = updated
            self._save()
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(contact_id, list(updated))
            except Exception:
                logger.exception("Conversation listener failed for contact %s", contact_id)
        return list(updated)

    def append(self, contact_id: str, message: Message) -> Message:
        self.update(contact_id, lambda log: [*log, message])
        return message

    def delete(self, contact_id: str, message_ids: Iterable[str]) -> list[Message]:
        """Remove messages by id (single or multi-select). Returns the removed messages."""
        ids = set(message_ids)
        removed: list[Message] = []

        def _delete(log: list[Message]) -> list[Message]:
            removed.extend(m for m in log if m.id in ids)
            return [m for m in log if m.id not in ids]

        self.update(contact_id, _delete)
        return removed

    def edit_text(self, contact_id: str, message_id: str, text: str) -> Message | None:
        """Replace a message's text. Returns the edited message, or None if absent."""
        edited: list[Message] = []

        def _edit(log: list[Message]) -> list[Message]:
            out = []
            for m in log:
                if m.id == message_id:
                    m = m.model_copy(update={"text": text})
                    edited.append(m)
                out.append(m)
            return out

        self.update(contact_id, _edit)
        return edited[0] if edited else None

    def set_status(self, contact_id: str, message_id: str, status: ClaimStatus) -> bool:
        """Set the claim status of a payment-like message. Returns False if absent."""
        found: list[bool] = []

        def _flip(log: list[Message]) -> list[Message]:
            out = []
            for m in log:
                if m.id == message_id:
                    m = m.model_copy(update={"status": status})
                    found.append(True)
                out.append(m)
            return out

        self.update(contact_id, _flip)
        return bool(found)

    def truncate_trailing_model_turn(self, contact_id: str) -> list[Message]:
        """Drop the trailing run of model-authored messages. Returns what was removed.

        Stops at the most recent user-authored message. A log with no user
        message is cleared entirely.
        """
        removed: list[Message] = []

        def _truncate(log: list[Message]) -> list[Message]:
            end = len(log)
            while end > 0 and not log[end - 1].is_self:
                end -= 1
            removed.extend(log[end:])
            return log[:end]

        self.update(contact_id, _truncate)
        return removed

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call `listener(contact_id, log)` after every write. Returns an unsubscribe function."""
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe
