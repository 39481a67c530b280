from __future__ import annotations

import json
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, Field, ValidationError, ConfigDict, field_validator

from . import seed_utility as sdutil
from .errors import ConfigurationError, DecodingError


# Enums for constrained values
class Direction(str, Enum):
    up = "up"
    down = "down"

    @property
    def suffix(self) -> str:
        return f".{self.value}.json"


class Backend(str, Enum):
    http = "http"
    elasticsearch = "elasticsearch"


DEFAULT_JSON_CONTENT_TYPE = "application/json; charset=utf-8"
DOCUMENT_STORE_CONTENT_TYPE = "application/json; charset=UTF-8"
BULK_CONTENT_TYPE = "application/x-ndjson"


class RequestDescriptor(BaseModel):
    """One HTTP operation replayed from a seed file."""

    model_config = ConfigDict(extra='forbid')

    method: str = ""
    path: str = ""
    url: Optional[str] = None
    header: Dict[str, List[str]] = Field(default_factory=dict)
    query_params: Dict[str, List[str]] = Field(default_factory=dict)
    # None, any JSON value, a str, or raw bytes once a binary body is loaded
    body: Any = None
    body_type: Optional[str] = None
    body_path_file: Optional[str] = None
    file_path: Optional[str] = None
    # Directory of the seed file; injected by the runner, never read from input
    migration_path: Optional[str] = None

    def is_zero(self) -> bool:
        return not self.method or not self.path

    def header_key(self, name: str) -> Optional[str]:
        lname = name.lower()
        for k in self.header:
            if k.lower() == lname:
                return k
        return None

    def add_header(self, name: str, value: str) -> None:
        key = self.header_key(name) or name
        self.header.setdefault(key, []).append(value)

    def set_default_header(self, name: str, value: str) -> None:
        if self.header_key(name) is None:
            self.header[name] = [value]


class DocumentStoreSeed(BaseModel):
    """Fixed-field item of an Elasticsearch-style seed file."""

    model_config = ConfigDict(extra='ignore')

    method: Optional[str] = None
    path: Optional[str] = None
    header: Optional[Dict[str, str]] = None
    body: Any = None
    body_type: Optional[str] = None
    body_path_file: Optional[str] = None

    def to_descriptor(self, migration_path: Optional[str] = None) -> RequestDescriptor:
        d = RequestDescriptor(
            method=self.method or "",
            path=self.path or "",
            header={k: [v] for k, v in (self.header or {}).items()},
            body=self.body,
            body_type=self.body_type,
            body_path_file=self.body_path_file,
            migration_path=migration_path,
        )
        d.set_default_header("Content-Type", DOCUMENT_STORE_CONTENT_TYPE)
        return d


class RunSettings(BaseModel):
    """Validated options for a single seed run."""

    model_config = ConfigDict(extra='forbid')

    database: str
    path: Path
    backend: Backend = Backend.http
    index: Optional[str] = None
    exclude_header: str = ""
    skip_error: bool = False
    debug: bool = False
    dry_run: bool = False
    timeout: Optional[float] = Field(None, gt=0)
    report: Optional[Path] = None
    log: Optional[Path] = None

    @field_validator('database')
    @classmethod
    def check_database(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("database URL is required and must be a non-empty string")
        if not (v.startswith("http://") or v.startswith("https://")):
            raise ValueError(f"database URL must start with http:// or https://; got: {v!r}")
        return v

    @field_validator('exclude_header')
    @classmethod
    def check_exclude_header(cls, v: Optional[str]) -> str:
        v = v or ""
        try:
            sdutil.parse_exclude_header(v)
        except ConfigurationError as e:
            raise ValueError(e.message)
        return v


def format_validation_error(err: Union[ValidationError, Exception]) -> str:
    """Return a human-friendly string for Pydantic validation errors."""
    if isinstance(err, ValidationError):
        lines: List[str] = ["Validation failed with the following errors:"]
        for e in err.errors():
            loc = ".".join(str(x) for x in e.get('loc', []))
            msg = e.get('msg', 'Invalid value')
            typ = e.get('type', '')
            lines.append(f" - {loc}: {msg} ({typ})")
        return "\n".join(lines)
    else:
        return f"Validation failed: {err}"


# ---------------------------
# Parsing
# ---------------------------

def _multi_values(field: str, raw: Any) -> Dict[str, List[str]]:
    """Normalize {name: scalar | [scalar]} into {name: [str]}."""
    out: Dict[str, List[str]] = {}
    if raw is None:
        return out
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"'{field}' must be an object mapping names to a value or list of values")
    for key, vals in raw.items():
        name = sdutil.to_string(key)
        bucket = out.setdefault(name, [])
        if isinstance(vals, (list, tuple)):
            bucket.extend(sdutil.to_string(v) for v in vals)
        else:
            bucket.append(sdutil.to_string(vals))
    return out


def parse_descriptor(params: Mapping[str, Any], migration_path: Optional[str] = None) -> RequestDescriptor:
    """
    Build a RequestDescriptor from one item of a generic REST seed file.

    Recognized keys: method, url, path, query_params, header, file_path, body_type, body.
    Unknown keys are ignored and scalar values are cast to strings permissively.
    Validity (method/path present) is checked later by validate_descriptor.
    """
    if not isinstance(params, Mapping):
        raise ConfigurationError(f"seed item must be a JSON object; got {type(params).__name__}")
    d = RequestDescriptor(migration_path=migration_path)
    for key, val in params.items():
        if key == "method":
            d.method = sdutil.to_string(val)
        elif key == "url":
            if val is not None:
                d.url = sdutil.to_string(val)
        elif key == "path":
            d.path = sdutil.to_string(val)
        elif key == "query_params":
            d.query_params = _multi_values("query_params", val)
        elif key == "header":
            d.header = _multi_values("header", val)
        elif key == "file_path":
            if val is not None:
                d.file_path = sdutil.to_string(val)
        elif key == "body_type":
            if val is not None:
                d.body_type = sdutil.to_string(val)
        elif key == "body":
            if val is not None:
                d.body = val
    return d


def parse_document_store_descriptor(item: Any, migration_path: Optional[str] = None) -> RequestDescriptor:
    if not isinstance(item, Mapping):
        raise ConfigurationError(f"seed item must be a JSON object; got {type(item).__name__}")
    try:
        seed = DocumentStoreSeed.model_validate(item)
    except ValidationError as e:
        raise ConfigurationError(format_validation_error(e)) from e
    return seed.to_descriptor(migration_path)


def parse_seed_document(data: Any, backend: Backend, migration_path: Optional[str] = None) -> List[RequestDescriptor]:
    """Parse a decoded seed file (a JSON array) into descriptors, in array order."""
    if not isinstance(data, list):
        raise DecodingError(f"seed file must contain a JSON array of request objects; got {type(data).__name__}")
    parse = parse_document_store_descriptor if Backend(backend) is Backend.elasticsearch else parse_descriptor
    out: List[RequestDescriptor] = []
    for i, item in enumerate(data, start=1):
        try:
            out.append(parse(item, migration_path))
        except ConfigurationError as e:
            raise e.with_context(operation_index=i)
    return out


def validate_descriptor(descriptor: RequestDescriptor) -> None:
    if descriptor.is_zero():
        raise ConfigurationError("method and path are required")


def check_headers(descriptor: RequestDescriptor) -> None:
    for name, values in descriptor.header.items():
        for v in values:
            sdutil.check_header(name, v)


# ---------------------------
# Resolution helpers
# ---------------------------

def _resolve_body(d: RequestDescriptor, index_token: Optional[str], migration_dir: Optional[str]) -> None:
    if d.body_type == sdutil.BODY_TYPE_BULK:
        ref = d.body_path_file or d.file_path
        if not ref:
            raise ConfigurationError("body_type 'bulk' requires body_path_file")
        lines = sdutil.read_bulk_lines(sdutil.resolve_body_path(migration_dir, ref))
        # Newline-delimited payload; the bulk API requires the trailing newline
        d.body = "".join(sdutil.substitute_index(line, index_token) + "\n" for line in lines)
        d.set_default_header("Content-Type", BULK_CONTENT_TYPE)
        return

    if d.body_type == sdutil.BODY_TYPE_BINARY:
        ref = d.file_path or d.body_path_file
        if not ref:
            raise ConfigurationError("body_type 'binary' requires file_path")
        d.body = sdutil.read_binary_body(sdutil.resolve_body_path(migration_dir, ref))
        return

    if d.body is None:
        return
    if isinstance(d.body, str):
        d.body = sdutil.substitute_index(d.body, index_token)
        return
    try:
        text = json.dumps(d.body, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"body is not JSON serializable: {e}") from e
    d.body = sdutil.substitute_index(text, index_token)
    d.set_default_header("Content-Type", DEFAULT_JSON_CONTENT_TYPE)


def resolve_descriptor(descriptor: RequestDescriptor, index_token: Optional[str], migration_dir: Optional[str] = None) -> RequestDescriptor:
    """
    Return a copy of descriptor with ${index} substituted and its body materialized.

    - path and every header value get the index token
    - bulk: body built from the referenced file, one substituted line per record
    - binary: body is the referenced file's raw bytes, untouched
    - otherwise: body serialized to JSON text (strings kept verbatim) then substituted
    The input descriptor is not modified.
    """
    d = descriptor.model_copy(deep=True)
    migration_dir = migration_dir if migration_dir is not None else d.migration_path
    d.path = sdutil.substitute_index(d.path, index_token)
    d.header = {k: [sdutil.substitute_index(v, index_token) for v in vals] for k, vals in d.header.items()}
    _resolve_body(d, index_token, migration_dir)
    return d


def apply_exclusions(descriptor: RequestDescriptor, rule: Optional[str]) -> RequestDescriptor:
    """Merge "key:value,key:value" pairs into a copy of the descriptor's headers (values appended)."""
    pairs = sdutil.parse_exclude_header(rule)
    if not pairs:
        return descriptor
    d = descriptor.model_copy(deep=True)
    for key, val in pairs:
        d.add_header(key, val)
    return d
