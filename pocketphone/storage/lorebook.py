"""World book and restricted-term storage."""

from pocketphone.models import LoreEntry, RestrictedTerm

from .core import read_json, write_json

_LOREBOOK = "lorebook.json"
_RESTRICTED = "restricted_terms.json"


def get_lorebook() -> list[LoreEntry]:
    """Load world book entries in insertion order. Returns [] if missing."""
    return [LoreEntry.model_validate(e) for e in read_json(_LOREBOOK, [])]


def save_lorebook(entries: list[LoreEntry]) -> None:
    write_json(_LOREBOOK, [e.model_dump() for e in entries])


def add_lore_entry(entry: LoreEntry) -> LoreEntry:
    entries = get_lorebook()
    entries.append(entry)
    save_lorebook(entries)
    return entry


def delete_lore_entry(entry_id: str) -> bool:
    entries = get_lorebook()
    remaining = [e for e in entries if e.id != entry_id]
    if len(remaining) == len(entries):
        return False
    save_lorebook(remaining)
    return True


def get_restricted_terms() -> list[RestrictedTerm]:
    return [RestrictedTerm.model_validate(t) for t in read_json(_RESTRICTED, [])]


def save_restricted_terms(terms: list[RestrictedTerm]) -> None:
    write_json(_RESTRICTED, [t.model_dump() for t in terms])
