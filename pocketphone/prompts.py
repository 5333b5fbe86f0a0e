"""System prompt composition for contact replies.

The system instruction is a Handlebars template rendered with pybars. The
history window is the last HISTORY_WINDOW messages of the conversation, with
non-text messages reduced to bracketed placeholders so the model still sees
whose turn it was.
"""

from collections.abc import Callable
from typing import Any

import pybars

from pocketphone.errors import MissingPersonaError, PipelineError
from pocketphone.lorebook import format_lore
from pocketphone.models import (
    ChatTurn,
    Contact,
    GenerationRequest,
    LoreEntry,
    Message,
    RestrictedTerm,
    UserProfile,
)

HISTORY_WINDOW = 20
MIN_FRAGMENTS = 5
STATUS_TAG = "STATUS"
SPLIT_TOKEN = "[MSG_SPLIT]"

DEFAULT_CHAT_PROMPT = """\
You are "{{{contact.name}}}". Persona: {{{contact.persona}}}. User: "{{{user.name}}}".
ONLINE MODE: This is a real-time chat.
- DO NOT include actions, psychological descriptions, or narrative text (like *smiles* or [thinking to self]).
- Talk naturally, briefly, and casually like you are texting on your phone.
- STATUS: You must decide your mood based on the plot. Use [STATUS: mood] at the VERY START of your response \
to update your permanent status bar (e.g., [STATUS: 手机在线], [STATUS: 心动中], [STATUS: 忙碌], [STATUS: 激动]). \
Ensure it fits your persona and world setting. No OOC.
- Split your response into at least {{min_fragments}} separate messages.
- Use the delimiter {{{split_token}}} to separate each message in your output.
World: {{{lore}}}
Settings: Max Word: {{max_words}}.{{#if restricted}}
Forbidden: {{{restricted}}}{{/if}}

Example output:
[STATUS: 开心] {{{split_token}}} 你好呀！ {{{split_token}}} 刚刚在看好笑的视频 {{{split_token}}} 哎呀 \
{{{split_token}}} 真的太有趣了 {{{split_token}}} 你今天过得怎么样？"""


_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(PipelineError):
    """Raised when a Handlebars template fails to compile or render."""


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


def render_content(msg: Message) -> str:
    """Text for a history entry. Non-text kinds become `[kind]` placeholders."""
    if msg.type == "text":
        return msg.text
    if msg.type == "simulated_image":
        return f"[Photo: {msg.simulated_text or ''}]"
    return f"[{msg.type}]"


def history_window(history: list[Message]) -> list[Message]:
    return list(history[-HISTORY_WINDOW:])


def build_context(
    contact: Contact,
    user: UserProfile,
    lore_entries: list[LoreEntry],
    restricted_terms: list[RestrictedTerm],
) -> dict[str, Any]:
    """Assemble template variables for the chat prompt."""
    return {
        "contact": {"name": contact.name, "persona": contact.persona},
        "user": {"name": user.name},
        "lore": format_lore(lore_entries),
        "max_words": contact.max_words or 50,
        "restricted": ", ".join(t.word for t in restricted_terms),
        "min_fragments": MIN_FRAGMENTS,
        "split_token": SPLIT_TOKEN,
    }


def compose(
    contact: Contact | None,
    user: UserProfile,
    history: list[Message],
    lore_entries: list[LoreEntry],
    restricted_terms: list[RestrictedTerm],
    template: str = DEFAULT_CHAT_PROMPT,
) -> GenerationRequest:
    """Build the chat completion request for the contact's next reply.

    Raises MissingPersonaError when the contact is absent or has no name or
    persona text. Performs no I/O.
    """
    if contact is None:
        raise MissingPersonaError("Contact not found")
    if not contact.name.strip():
        raise MissingPersonaError(f"Contact {contact.id} has no name")
    if not contact.persona.strip():
        raise MissingPersonaError(f"Contact {contact.name!r} has no persona")

    ctx = build_context(contact, user, lore_entries, restricted_terms)
    system = render_prompt(template, ctx).strip()

    turns = [
        ChatTurn(role="user" if m.is_self else "assistant", content=render_content(m))
        for m in history_window(history)
    ]
    return GenerationRequest(system=system, history=turns)
