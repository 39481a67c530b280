from __future__ import annotations

import io
import json
import textwrap
from pathlib import Path
from typing import Any, Optional, Union
import yaml


PathLike = Union[str, Path]


class SeedYamlDumper(yaml.SafeDumper):
    """Safe dumper that never emits anchors or aliases."""

    def ignore_aliases(self, data):
        return True


def _ensure_parent(path: PathLike) -> Path:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    return p


def yaml_to_string(data: Any) -> str:
    return yaml.dump(data, Dumper=SeedYamlDumper, sort_keys=False, allow_unicode=True)


def write_log(log_file: PathLike, message: str, newline: bool = True) -> None:
    """Append message to the run log; a trailing newline is added unless newline is False."""
    if newline and not message.endswith("\n"):
        message += "\n"
    with _ensure_parent(log_file).open('a', encoding='utf-8') as f:
        f.write(message)


def start_run_log(log_file: PathLike, ts_utc: str, direction: str, seed_dir: PathLike, base_url: str) -> None:
    write_log(log_file, f"=== Seed {direction} run started at {ts_utc} UTC ===")
    write_log(log_file, f"Seed directory: {seed_dir}")
    write_log(log_file, f"Database: {base_url}")
    write_log(log_file, "--- Files ---")


def write_yaml_file(path: PathLike, data: Any) -> None:
    """Overwrite path with data rendered as YAML, keys in insertion order."""
    _ensure_parent(path).write_text(yaml_to_string(data), encoding='utf-8')


def log_yaml(log_file: PathLike, title: str, data: Any, indent: int = 0) -> None:
    """Append title followed by data as a YAML block nested `indent` spaces under it."""
    block = yaml_to_string(data)
    if indent > 0:
        block = textwrap.indent(block, " " * indent)
    write_log(log_file, title)
    write_log(log_file, block)


def format_body(body: Union[str, bytes, None], content_type: Optional[str] = None) -> str:
    """
    Render a request/response body for debug output.

    JSON text is pretty-printed through rich; binary payloads are summarized by size.
    """
    if body is None:
        return "<empty>"
    if isinstance(body, bytes):
        if content_type and "json" not in content_type.lower() and not content_type.lower().startswith("text/"):
            return f"<{len(body)} bytes>"
        try:
            body = body.decode("utf-8")
        except UnicodeDecodeError:
            return f"<{len(body)} bytes>"
    if not body:
        return "<empty>"
    try:
        json.loads(body)
    except ValueError:
        return body
    from rich.console import Console
    from rich.json import JSON as RichJSON
    s = io.StringIO()
    console = Console(file=s, no_color=True, force_jupyter=False, force_terminal=False, color_system=None, width=120)
    console.print(RichJSON(body, indent=2))
    return s.getvalue().rstrip()
