import json
from pathlib import Path

import pytest

from seed_runner.errors import TransportError


class FakeClient:
    """Records every request; responses are served by status per call, default 200."""

    def __init__(self, statuses=None, fail_on=None):
        self.calls = []
        self.statuses = list(statuses or [])
        self.fail_on = fail_on

    def send(self, method, url, headers=None, query_params=None, body=None, timeout_s=None):
        self.calls.append({
            "method": method,
            "url": url,
            "headers": {k: list(v) for k, v in (headers or {}).items()},
            "query_params": {k: list(v) for k, v in (query_params or {}).items()},
            "body": body,
            "timeout_s": timeout_s,
        })
        if self.fail_on is not None and len(self.calls) == self.fail_on:
            raise TransportError(f"{method} {url} failed: NewConnectionError: connection refused")
        status = self.statuses.pop(0) if self.statuses else 200
        payload = b'{"acknowledged":true}' if status < 400 else b'{"error":"boom"}'
        return status, payload

    def clear(self):
        pass


class EchoRecorder:
    def __init__(self):
        self.lines = []

    def __call__(self, message="", err=False, **kwargs):
        self.lines.append((message, err))

    @property
    def text(self):
        return "\n".join(str(m) for m, _ in self.lines)


@pytest.fixture
def client():
    return FakeClient()


@pytest.fixture
def echo():
    return EchoRecorder()


@pytest.fixture
def seed_dir(tmp_path):
    d = tmp_path / "seeds"
    d.mkdir()
    return d


def write_seed(directory: Path, name: str, items) -> Path:
    p = directory / name
    p.write_text(json.dumps(items), encoding="utf-8")
    return p
