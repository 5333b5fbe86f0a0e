"""File-based JSON storage.

Data layout:
  data/
    contacts.json          Contact registry (name, persona, max_words, style_id)
    user_profile.json      The user's chat identity
    lorebook.json          World book entries (global + character-local)
    restricted_terms.json  Terms the model is told never to use
    config.json            API presets, active preset, timeout, delivery pacing
    chat_history.json      Conversation logs keyed by contact id

Registry files are read fresh on every call, so edits take effect on the
next reply. Conversation logs live in a ConversationStore that keeps the map
in memory and writes chat_history.json after every composing update.
"""

# Re-export all public symbols so `from pocketphone import storage` keeps working.

from .core import (  # noqa: F401
    chat_history_path,
    data_dir,
    init_storage,
)

from .contacts import (  # noqa: F401
    create_contact,
    delete_contact,
    get_contact,
    get_contacts,
    get_user_profile,
    save_contacts,
    save_user_profile,
    update_contact,
)

from .lorebook import (  # noqa: F401
    add_lore_entry,
    delete_lore_entry,
    get_lorebook,
    get_restricted_terms,
    save_lorebook,
    save_restricted_terms,
)

from .config import (  # noqa: F401
    get_active_preset,
    get_claim_delay_ms,
    get_config,
    get_delivery_delay_ms,
    get_gateway_timeout,
    update_config,
)

from .messages import (  # noqa: F401
    ConversationStore,
)
