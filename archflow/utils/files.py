"""File system and payload encoding helpers shared across the workflow."""

from __future__ import annotations

import base64
import hashlib
import json
import os
import re
from pathlib import Path
from typing import Any

_DATA_URL_PREFIX = re.compile(r"^data:[\w.+-]+/[\w.+-]+;base64,")


def ensure_dir(path: str | Path) -> Path:
    """Create the directory if it does not exist."""
    directory = Path(path)
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def read_binary(path: str | Path) -> bytes:
    """Read binary content from a file."""
    with open(path, "rb") as handle:
        return handle.read()


def write_text(path: str | Path, content: str) -> Path:
    """Write UTF-8 text to disk."""
    target = Path(path)
    ensure_dir(target.parent)
    target.write_text(content, encoding="utf-8")
    return target


def write_json(path: str | Path, data: Any) -> Path:
    """Serialize a Python object as JSON to disk."""
    payload = json.dumps(data, indent=2, ensure_ascii=False, default=str)
    return write_text(path, payload)


def atomic_write(path: str | Path, content: bytes) -> Path:
    """Write binary content to disk atomically."""
    target = Path(path)
    ensure_dir(target.parent)
    temp_path = target.with_suffix(target.suffix + ".tmp")
    with open(temp_path, "wb") as handle:
        handle.write(content)
    os.replace(temp_path, target)
    return target


def sha256_hex(data: bytes) -> str:
    """Return the hexadecimal SHA-256 digest for the given bytes."""
    return hashlib.sha256(data).hexdigest()


def b64encode(data: bytes) -> str:
    """Encode bytes to a base64 string without newlines."""
    return base64.b64encode(data).decode("utf-8")


def strip_data_url(payload: str) -> str:
    """Drop a ``data:<mime>;base64,`` transport prefix if present."""
    return _DATA_URL_PREFIX.sub("", payload.strip(), count=1)


def decode_payload(payload: str) -> bytes:
    """Decode a base64 string, with or without a data URL prefix."""
    return base64.b64decode(strip_data_url(payload).encode("utf-8"), validate=False)


def to_data_url(data: bytes, mime_type: str = "image/png") -> str:
    """Wrap bytes into an inline data URL."""
    return f"data:{mime_type};base64,{b64encode(data)}"
