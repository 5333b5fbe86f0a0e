"""Contact registry and user profile storage."""

from typing import Any

from pocketphone.models import Contact, UserProfile

from .core import read_json, write_json

_CONTACTS = "contacts.json"
_PROFILE = "user_profile.json"


def get_contacts() -> list[Contact]:
    """Load all contacts. Returns [] if none exist."""
    return [Contact.model_validate(c) for c in read_json(_CONTACTS, [])]


def save_contacts(contacts: list[Contact]) -> None:
    write_json(_CONTACTS, [c.model_dump() for c in contacts])


def get_contact(contact_id: str) -> Contact | None:
    for contact in get_contacts():
        if contact.id == contact_id:
            return contact
    return None


def create_contact(contact: Contact) -> Contact:
    contacts = get_contacts()
    contacts.append(contact)
    save_contacts(contacts)
    return contact


def update_contact(contact_id: str, fields: dict[str, Any]) -> Contact | None:
    """Update mutable contact fields. Returns the updated contact, or None if absent."""
    contacts = get_contacts()
    for i, contact in enumerate(contacts):
        if contact.id == contact_id:
            fields = {k: v for k, v in fields.items() if k != "id"}
            contacts[i] = Contact.model_validate({**contact.model_dump(), **fields})
            save_contacts(contacts)
            return contacts[i]
    return None


def delete_contact(contact_id: str) -> bool:
    contacts = get_contacts()
    remaining = [c for c in contacts if c.id != contact_id]
    if len(remaining) == len(contacts):
        return False
    save_contacts(remaining)
    return True


def get_user_profile() -> UserProfile:
    """Read the user profile, or the default profile if none is saved."""
    return UserProfile.model_validate(read_json(_PROFILE, {}))


def save_user_profile(profile: UserProfile) -> None:
    write_json(_PROFILE, profile.model_dump())
