"""World book selection.

A contact sees every global entry plus the local entries written for a
character with the contact's name. Store order is preserved.
"""

from pocketphone.models import Contact, LoreEntry


def select_entries(entries: list[LoreEntry], contact: Contact) -> list[LoreEntry]:
    """Return the entries visible to `contact`, in store order."""
    return [
        e for e in entries
        if e.scope == "global"
        or (e.scope == "local" and e.character_name == contact.name)
    ]


def format_lore(entries: list[LoreEntry]) -> str:
    """Render entries as `[name]: content` lines for the system prompt."""
    return "\n".join(f"[{e.name}]: {e.content}" for e in entries)
