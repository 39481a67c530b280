"""
request_manager.py

Blocking HTTP transport used by the seed runner.

Design:
- Use urllib3 PoolManager for connection pooling, with its automatic retry/redirect handling disabled:
  a seed operation is sent exactly once.
- Network-level failures are wrapped into TransportError; HTTP error statuses are returned to the
  caller, which decides whether they are skippable.

This module exposes a RequestManager class with a `send` method returning (status_code, body_bytes).
"""
from __future__ import annotations

from typing import Dict, List, Mapping, Optional, Tuple, Union
from urllib import parse as urlparse

import urllib3
from urllib3 import exceptions as u3exc

from .errors import TransportError


Body = Union[str, bytes, None]


def build_query_url(url: str, query_params: Optional[Mapping[str, List[str]]]) -> str:
    if not query_params:
        return url
    qparts = urlparse.urlencode({k: list(v) for k, v in query_params.items()}, doseq=True, safe="/:?")
    if not qparts:
        return url
    sep = '&' if ('?' in url) else '?'
    return f"{url}{sep}{qparts}"


class RequestManager:
    def __init__(
        self,
        timeout_s: Optional[float] = None,
        pool_maxsize: int = 4,
        num_pools: int = 4,
    ) -> None:
        self.timeout_s = timeout_s
        self._pool = urllib3.PoolManager(
            retries=False,
            num_pools=num_pools,
            maxsize=pool_maxsize,
        )

    @staticmethod
    def _headers(headers: Optional[Mapping[str, List[str]]]) -> urllib3.HTTPHeaderDict:
        out = urllib3.HTTPHeaderDict()
        for name, values in (headers or {}).items():
            for v in values:
                out.add(name, v)
        return out

    def send(
        self,
        method: str,
        url: str,
        headers: Optional[Mapping[str, List[str]]] = None,
        query_params: Optional[Mapping[str, List[str]]] = None,
        body: Body = None,
        timeout_s: Optional[float] = None,
    ) -> Tuple[int, bytes]:
        """
        Send one request and wait for the full response.

        Returns (status_code, body_bytes). Raises TransportError for connection errors,
        timeouts and malformed URLs.
        """
        if timeout_s is None:
            timeout_s = self.timeout_s
        timeout = None
        if isinstance(timeout_s, (int, float)) and timeout_s > 0:
            timeout = urllib3.Timeout(total=float(timeout_s))
        data = body.encode("utf-8") if isinstance(body, str) else body
        full_url = build_query_url(url, query_params)
        try:
            resp = self._pool.request(
                method=method.upper(),
                url=full_url,
                body=data,
                headers=self._headers(headers),
                timeout=timeout,
                redirect=False,
                preload_content=False,  # so we can control read
            )
        except u3exc.HTTPError as e:
            raise TransportError(f"{method.upper()} {full_url} failed: {type(e).__name__}: {e}") from e
        except (ValueError, UnicodeError) as e:
            # http.client rejects header values it cannot put on the wire
            raise TransportError(f"{method.upper()} {full_url} could not be encoded: {type(e).__name__}: {e}") from e
        try:
            status = int(resp.status)
            payload = resp.read() or b""
            return status, payload
        except u3exc.HTTPError as e:
            raise TransportError(f"{method.upper()} {full_url} failed reading response: {type(e).__name__}: {e}") from e
        finally:
            resp.release_conn()

    def clear(self) -> None:
        self._pool.clear()
