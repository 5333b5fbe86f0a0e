"""World book and restricted-term endpoints."""

from fastapi import APIRouter, HTTPException

from pocketphone import storage
from pocketphone.lorebook import select_entries
from pocketphone.models import LoreEntry, RestrictedTerm

from .models import CreateLoreEntry, RestrictedTermBody

router = APIRouter()


@router.get("/lorebook")
async def get_lorebook():
    """Get all world book entries."""
    return storage.get_lorebook()


@router.post("/lorebook", status_code=201)
async def add_lore_entry(body: CreateLoreEntry):
    """Add a world book entry. Local entries must name their character."""
    if body.scope == "local" and not body.character_name:
        raise HTTPException(400, "Local entries need a character_name")
    return storage.add_lore_entry(LoreEntry(**body.model_dump()))


@router.delete("/lorebook/{entry_id}")
async def delete_lore_entry(entry_id: str):
    """Delete a world book entry."""
    if not storage.delete_lore_entry(entry_id):
        raise HTTPException(404, "Lorebook entry not found")
    return {"ok": True}


@router.get("/contacts/{contact_id}/lorebook")
async def get_contact_lorebook(contact_id: str):
    """World book entries a contact's replies are composed with."""
    contact = storage.get_contact(contact_id)
    if not contact:
        raise HTTPException(404, "Contact not found")
    return select_entries(storage.get_lorebook(), contact)


@router.get("/restricted-terms")
async def get_restricted_terms():
    """Get the restricted-term list."""
    return storage.get_restricted_terms()


@router.put("/restricted-terms")
async def save_restricted_terms(body: list[RestrictedTermBody]):
    """Replace the restricted-term list."""
    terms = [RestrictedTerm(**t.model_dump()) for t in body]
    storage.save_restricted_terms(terms)
    return terms
