"""Conversation endpoints: send, regenerate, edit/delete, status, live events.

Sends and regenerations answer immediately. The reply bubbles land in the
log over the next seconds, and clients follow them through
/contacts/{id}/events or by polling /contacts/{id}/messages.
"""

import asyncio
import json

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse

from pocketphone import storage
from pocketphone.models import Message
from pocketphone.pipeline import ChatSession

from .models import DeleteMessages, EditMessage, SendMessage

router = APIRouter()

KEEPALIVE_SECONDS = 15


def _session(request: Request) -> ChatSession:
    return request.app.state.chat


def _require_contact(contact_id: str) -> None:
    if not storage.get_contact(contact_id):
        raise HTTPException(404, "Contact not found")


def _status(session: ChatSession, contact_id: str) -> dict:
    return {
        "mood": session.mood(contact_id),
        "typing": session.is_typing(contact_id),
        "last_error": session.last_error(contact_id),
    }


@router.get("/contacts/{contact_id}/messages")
async def get_messages(contact_id: str, request: Request):
    """Get the conversation log for a contact."""
    _require_contact(contact_id)
    return _session(request).store.get(contact_id)


@router.post("/contacts/{contact_id}/messages", status_code=202)
async def send_message(contact_id: str, body: SendMessage, request: Request):
    """Send a user message. With reply=true the contact starts answering."""
    _require_contact(contact_id)
    fields = body.model_dump(exclude={"reply"}, exclude_none=True)
    message = Message(is_self=True, **fields)
    if message.is_payment:
        message.status = "unclaimed"
    await _session(request).send_message(contact_id, message, reply=body.reply)
    return {"message": message}


@router.post("/contacts/{contact_id}/regenerate")
async def regenerate(contact_id: str, request: Request):
    """Replace the contact's last reply with a new one."""
    _require_contact(contact_id)
    task = await _session(request).regenerate(contact_id)
    if task is None:
        return JSONResponse({"regenerated": False}, status_code=200)
    return JSONResponse({"regenerated": True}, status_code=202)


@router.delete("/contacts/{contact_id}/messages/{message_id}")
async def delete_message(contact_id: str, message_id: str, request: Request):
    """Delete a single message."""
    _require_contact(contact_id)
    removed = _session(request).store.delete(contact_id, [message_id])
    if not removed:
        raise HTTPException(404, "Message not found")
    return {"ok": True}


@router.post("/contacts/{contact_id}/messages/delete")
async def delete_messages(contact_id: str, body: DeleteMessages, request: Request):
    """Delete every selected message (multi-select)."""
    _require_contact(contact_id)
    removed = _session(request).store.delete(contact_id, body.ids)
    return {"deleted": len(removed)}


@router.patch("/contacts/{contact_id}/messages/{message_id}")
async def edit_message(contact_id: str, message_id: str, body: EditMessage, request: Request):
    """Edit a message's text."""
    _require_contact(contact_id)
    edited = _session(request).store.edit_text(contact_id, message_id, body.text)
    if edited is None:
        raise HTTPException(404, "Message not found")
    return edited


@router.post("/contacts/{contact_id}/close")
async def close_conversation(contact_id: str, request: Request):
    """Conversation left: stop the reply in progress and pending timers."""
    await _session(request).close(contact_id)
    return {"ok": True}


@router.get("/contacts/{contact_id}/status")
async def get_status(contact_id: str, request: Request):
    """Mood tag, typing indicator and last reply error for a contact."""
    _require_contact(contact_id)
    return _status(_session(request), contact_id)


@router.get("/contacts/{contact_id}/events")
async def contact_events(contact_id: str, request: Request):
    """Server-sent events: one log snapshot per write to this contact's log."""
    _require_contact(contact_id)
    session = _session(request)
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[list[Message]] = asyncio.Queue()

    def _on_change(changed_id: str, log: list[Message]) -> None:
        if changed_id == contact_id:
            loop.call_soon_threadsafe(queue.put_nowait, log)

    def _event(log: list[Message]) -> str:
        payload = {
            "messages": [m.model_dump(exclude_none=True) for m in log],
            **_status(session, contact_id),
        }
        return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"

    async def _stream():
        unsubscribe = session.store.subscribe(_on_change)
        try:
            yield _event(session.store.get(contact_id))
            while not await request.is_disconnected():
                try:
                    log = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
                except asyncio.TimeoutError:
                    yield ": keep-alive\n\n"
                    continue
                yield _event(log)
        finally:
            unsubscribe()

    return StreamingResponse(_stream(), media_type="text/event-stream")
