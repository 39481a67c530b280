from __future__ import annotations

import json
import math
import os
import re
from decimal import Decimal
from pathlib import Path
from typing import Any, List, Mapping, Optional, Tuple, Union

from .errors import ConfigurationError, DecodingError, FileSystemError


PathLike = Union[str, Path]

INDEX_TEMPLATE = "${index}"
BODY_TYPE_BULK = "bulk"
BODY_TYPE_BINARY = "binary"

# key:value[,key:value]*
EXCLUDE_HEADER_PATTERN = r"[\w-]+:\w+(?:,[\w-]+:\w+)*"


def to_string(value: Any) -> str:
    """
    Permissive cast of a JSON scalar to its textual form.

    - None            → ""
    - bool            → "true" / "false"
    - int             → decimal digits
    - float           → shortest plain decimal, integral floats without a fraction (3.0 → "3")
    - bytes           → UTF-8 decoded (invalid sequences replaced)
    - mapping / list  → "" (not a scalar)
    Never raises.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            return str(value)
        if value.is_integer():
            return str(int(value))
        return format(Decimal(repr(value)), "f")
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, (Mapping, list, tuple, set)):
        return ""
    try:
        return str(value)
    except Exception:
        return ""


def substitute_index(text: str, index_token: Optional[str]) -> str:
    """Replace every ${index} in text; no-op when no token was supplied."""
    if index_token is None or not text:
        return text
    return text.replace(INDEX_TEMPLATE, index_token)


def parse_exclude_header(rule: Optional[str]) -> List[Tuple[str, str]]:
    """
    Parse an exclude-header rule string of the form "key:value,key:value".

    An empty rule yields no pairs. Anything not matching the strict grammar raises
    ConfigurationError. Each pair is split on its first colon.
    """
    if not rule:
        return []
    if re.fullmatch(EXCLUDE_HEADER_PATTERN, rule, re.ASCII) is None:
        raise ConfigurationError(f"exclude_header incorrect format parameter: {rule!r}")
    pairs: List[Tuple[str, str]] = []
    for item in rule.split(","):
        if ":" not in item:
            continue
        key, val = item.split(":", 1)
        pairs.append((key, val))
    return pairs


def check_header(name: str, value: str) -> None:
    """Raise ConfigurationError unless name/value can go on the wire as an HTTP/1.1 header."""
    if not name:
        raise ConfigurationError("header name must not be empty")
    for part in (name, value):
        if "\r" in part or "\n" in part:
            raise ConfigurationError(f"header {name!r} must not contain CR or LF")
        try:
            part.encode("latin-1")
        except UnicodeEncodeError:
            raise ConfigurationError(f"header {name!r} contains characters outside latin-1: {part!r}")


def resolve_body_path(migration_path: Optional[PathLike], relative: str) -> Path:
    base = Path(migration_path) if migration_path else Path(".")
    return base / relative


def read_bulk_lines(path: PathLike) -> List[str]:
    """Read a bulk body file, keeping non-empty lines in file order."""
    p = Path(path)
    try:
        with p.open("r", encoding="utf-8") as f:
            return [line.rstrip("\r\n") for line in f if line.rstrip("\r\n")]
    except (OSError, UnicodeDecodeError) as e:
        raise FileSystemError(f"failed to read bulk body file '{p}': {e}") from e


def read_binary_body(path: PathLike) -> bytes:
    p = Path(path)
    try:
        with p.open("rb") as f:
            return f.read()
    except OSError as e:
        raise FileSystemError(f"failed to read binary body file '{p}': {e}") from e


def read_seed_file(path: PathLike) -> Any:
    """Load a seed file and decode its JSON content."""
    p = Path(path)
    try:
        with p.open("r", encoding="utf-8") as f:
            text = f.read()
    except OSError as e:
        raise FileSystemError(f"failed to read seed file '{p}': {e}") from e
    except UnicodeDecodeError as e:
        raise DecodingError(f"seed file '{p}' is not valid UTF-8: {e}") from e
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise DecodingError(f"seed file '{p}' is not valid JSON: {e}") from e


def list_seed_files(directory: PathLike, suffix: str, reverse: bool = False) -> List[str]:
    """
    Return the names of regular files in directory ending with suffix.

    Names are in lexical order, or reversed when reverse is True. Subdirectories
    are never returned even when their name matches.
    """
    d = Path(directory)
    try:
        with os.scandir(d) as it:
            names = [entry.name for entry in it if not entry.is_dir() and entry.name.endswith(suffix)]
    except OSError as e:
        raise FileSystemError(f"failed to list seed directory '{d}': {e}") from e
    names.sort(reverse=reverse)
    return names
