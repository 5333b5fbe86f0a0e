"""FastMCP server exposing the world book as MCP tools.

Tools:
  - select_lore(character_name)  — entries a character's replies are composed with
  - store_lore_entry(...)        — add a global or character-local entry

Entries are read from and written to the JSON storage, so tools and the chat
pipeline always see the same world book.

Usage:
    python -m pocketphone.mcp_server [--data-dir DIR]
"""

from mcp.server.fastmcp import FastMCP

from pocketphone import storage
from pocketphone.lorebook import select_entries
from pocketphone.models import Contact, LoreEntry

mcp = FastMCP("pocketphone-worldbook")


@mcp.tool()
def select_lore(character_name: str) -> list[dict]:
    """Return the global entries plus the entries local to `character_name`."""
    entries = select_entries(storage.get_lorebook(), Contact(name=character_name))
    return [e.model_dump() for e in entries]


@mcp.tool()
def store_lore_entry(
    name: str,
    content: str,
    scope: str = "global",
    character_name: str | None = None,
    tags: list[str] | None = None,
) -> dict:
    """Add a world book entry. Returns the stored entry."""
    if scope not in ("global", "local"):
        raise ValueError(f"scope must be 'global' or 'local', got {scope!r}")
    if scope == "local" and not character_name:
        raise ValueError("Local entries need a character_name")
    entry = LoreEntry(
        name=name,
        content=content,
        scope=scope,
        character_name=character_name,
        tags=tags or [],
    )
    return storage.add_lore_entry(entry).model_dump()


if __name__ == "__main__":
    import argparse
    import os
    from pathlib import Path

    parser = argparse.ArgumentParser(description="Pocket Phone world book MCP server")
    parser.add_argument("--data-dir", type=Path,
                        default=Path(os.getenv("DATA_DIR", Path(__file__).parent.parent / "data")))
    args = parser.parse_args()
    storage.init_storage(args.data_dir)
    mcp.run()
