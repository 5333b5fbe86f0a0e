"""Create demo data for development/testing."""

from pocketphone import storage
from pocketphone.models import Contact, LoreEntry, RestrictedTerm, UserProfile

DEMO_CONTACT = Contact(
    id="demo-lin",
    name="林小雨",
    remark="小雨",
    persona="A cheerful art student who loves cats, bubble tea and rainy afternoons. "
    "Teases the user a lot but is secretly shy.",
    max_words=40,
)

DEMO_LORE = [
    LoreEntry(
        name="City",
        content="The story takes place in a coastal city where it rains almost every afternoon.",
        tags=["setting"],
    ),
    LoreEntry(
        name="Cat",
        content="小雨 has an orange cat called 橘子 who knocks things off her desk.",
        tags=["pet"],
        scope="local",
        character_name="林小雨",
    ),
]

DEMO_RESTRICTED = [
    RestrictedTerm(word="AI", category="immersion"),
    RestrictedTerm(word="language model", category="immersion"),
]


def create_demo_data() -> None:
    """Overwrite contacts, profile, world book and restricted terms with demo data.

    Existing chat history and API presets are left alone.
    """
    storage.save_contacts([DEMO_CONTACT])
    storage.save_user_profile(UserProfile(name="阿川", signature="今天也要加油"))
    storage.save_lorebook(DEMO_LORE)
    storage.save_restricted_terms(DEMO_RESTRICTED)
