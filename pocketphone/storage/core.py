"""Storage initialization and path helpers."""

import json
from pathlib import Path
from typing import Any

_data_dir: Path | None = None


def init_storage(data_dir: Path) -> None:
    global _data_dir
    _data_dir = data_dir
    _data_dir.mkdir(parents=True, exist_ok=True)


def data_dir() -> Path:
    assert _data_dir is not None, "Call init_storage() before using storage"
    return _data_dir


def chat_history_path() -> Path:
    return data_dir() / "chat_history.json"


def read_json(name: str, default: Any) -> Any:
    """Load data/<name>. Returns `default` if the file is missing."""
    path = data_dir() / name
    if not path.is_file():
        return default
    return json.loads(path.read_text())


def write_json(name: str, data: Any) -> None:
    (data_dir() / name).write_text(json.dumps(data, indent=2, ensure_ascii=False))
