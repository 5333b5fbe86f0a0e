"""Contact registry and user profile endpoints."""

from fastapi import APIRouter, HTTPException, Request

from pocketphone import storage
from pocketphone.models import Contact, UserProfile

from .models import CreateContact, UpdateContact

router = APIRouter()


@router.get("/contacts")
async def list_contacts():
    """List all contacts."""
    return storage.get_contacts()


@router.post("/contacts", status_code=201)
async def create_contact(body: CreateContact):
    """Create a contact with a persona."""
    if not body.name.strip():
        raise HTTPException(400, "Contact name is required")
    if not body.persona.strip():
        raise HTTPException(400, "Contact persona is required")
    return storage.create_contact(Contact(**body.model_dump()))


@router.get("/contacts/{contact_id}")
async def get_contact(contact_id: str):
    """Get a single contact by id."""
    contact = storage.get_contact(contact_id)
    if not contact:
        raise HTTPException(404, "Contact not found")
    return contact


@router.patch("/contacts/{contact_id}")
async def update_contact(contact_id: str, body: UpdateContact):
    """Update contact fields. Persona edits apply from the next reply."""
    if body.name is not None and not body.name.strip():
        raise HTTPException(400, "Contact name is required")
    if body.persona is not None and not body.persona.strip():
        raise HTTPException(400, "Contact persona is required")
    updated = storage.update_contact(contact_id, body.model_dump(exclude_none=True))
    if not updated:
        raise HTTPException(404, "Contact not found")
    return updated


@router.delete("/contacts/{contact_id}")
async def delete_contact(contact_id: str, request: Request):
    """Delete a contact and stop any reply in progress for it."""
    if not storage.delete_contact(contact_id):
        raise HTTPException(404, "Contact not found")
    await request.app.state.chat.close(contact_id)
    return {"ok": True}


@router.get("/profile")
async def get_profile():
    """Get the user's chat identity."""
    return storage.get_user_profile()


@router.put("/profile")
async def save_profile(body: UserProfile):
    """Replace the user's chat identity."""
    storage.save_user_profile(body)
    return body
