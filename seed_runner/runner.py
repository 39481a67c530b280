"""
runner.py

Seed runner: scans a seed directory for up/down files and replays the JSON-described
requests of each file, in order, against a live server.

Per file:
1) read and decode the JSON array
2) parse, validate and resolve every descriptor (nothing is sent if any of them fails)
3) send the requests one at a time, waiting for each response

An HTTP status >= 400 is skipped when skip_on_error is set; every other error aborts the run.
"""
from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, List, Mapping, Optional, Protocol, Tuple, Union

import click

from . import seed_utility as sdutil
from .errors import ConfigurationError, RequestFailure, SeedError
from .report import ExecutionReport, FileReport, OperationOutcome, OperationResult, RunOutcome
from .request_manager import RequestManager, build_query_url
from .seed_schema import (
    Backend,
    Direction,
    RequestDescriptor,
    apply_exclusions,
    check_headers,
    parse_seed_document,
    resolve_descriptor,
    validate_descriptor,
)
from .utility import format_body, log_yaml, start_run_log, write_log


class HttpClient(Protocol):
    def send(
        self,
        method: str,
        url: str,
        headers: Optional[Mapping[str, List[str]]] = None,
        query_params: Optional[Mapping[str, List[str]]] = None,
        body: Union[str, bytes, None] = None,
        timeout_s: Optional[float] = None,
    ) -> Tuple[int, bytes]:
        ...


def build_url(base_url: str, descriptor: RequestDescriptor) -> str:
    """Join the run's base URL with the descriptor path; a seed's own `url` key is not used."""
    return f"{base_url.rstrip('/')}/{descriptor.path.strip('/')}"


class SeedRunner:
    def __init__(
        self,
        client: Optional[HttpClient] = None,
        *,
        backend: Union[Backend, str] = Backend.http,
        timeout_s: Optional[float] = None,
        dry_run: bool = False,
        log_path: Optional[Path] = None,
        echo: Callable[..., None] = click.echo,
    ) -> None:
        try:
            self.backend = Backend(backend)
        except ValueError:
            raise ConfigurationError(f"unknown backend: {backend!r}")
        self.client = client
        self._owns_client = False
        self.timeout_s = timeout_s
        self.dry_run = dry_run
        self.log_path = log_path
        self._echo = echo

    def _log(self, message: str, err: bool = False) -> None:
        self._echo(message, err=err)
        if self.log_path is not None:
            write_log(self.log_path, message)

    def _client(self) -> HttpClient:
        if self.client is None:
            self.client = RequestManager(timeout_s=self.timeout_s)
            self._owns_client = True
        return self.client

    def _release_client(self) -> None:
        if self._owns_client and self.client is not None:
            self.client.clear()
            self.client = None
            self._owns_client = False

    def run(
        self,
        direction: Union[Direction, str],
        seed_directory: Union[str, Path],
        base_url: str,
        index_token: Optional[str] = None,
        exclude_header: Optional[str] = "",
        skip_on_error: bool = False,
        debug: bool = False,
    ) -> ExecutionReport:
        """
        Replay every seed file of the given direction found in seed_directory.

        Returns an ExecutionReport whose outcome is `no_change` when no file matched.
        Raises a SeedError subclass on any fatal failure; the partial report is
        attached to it as `report`.
        """
        try:
            direction = Direction(direction)
        except ValueError:
            raise ConfigurationError(f"unknown direction: {direction!r}; expected 'up' or 'down'")
        seed_dir = Path(seed_directory)
        report = ExecutionReport(direction=direction.value, backend=self.backend.value)

        if self.log_path is not None:
            ts = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
            start_run_log(self.log_path, ts, direction.value, seed_dir, base_url)

        try:
            # Malformed rules fail before any file is read
            sdutil.parse_exclude_header(exclude_header)
            names = sdutil.list_seed_files(seed_dir, direction.suffix, reverse=direction is Direction.down)
            if not names:
                report.outcome = RunOutcome.no_change
                self._log("no change")
                return report

            for name in names:
                file_report = FileReport(name=name)
                report.files.append(file_report)
                try:
                    self._run_file(seed_dir, name, file_report, base_url, index_token, exclude_header, skip_on_error, debug)
                except SeedError as e:
                    raise e.with_context(file_name=name)
                self._log(f"migrate file: {name} success")
        except SeedError as e:
            e.report = report
            self._log(f"ERROR: {e}", err=True)
            raise
        finally:
            self._release_client()

        if self.log_path is not None:
            write_log(self.log_path, f"=== Seed {direction.value} run finished ===")
        return report

    def prepare_file(
        self,
        seed_dir: Path,
        name: str,
        index_token: Optional[str] = None,
        exclude_header: Optional[str] = "",
    ) -> List[RequestDescriptor]:
        """Read one seed file and return its fully resolved descriptors, in file order."""
        data = sdutil.read_seed_file(seed_dir / name)
        descriptors = parse_seed_document(data, self.backend, migration_path=str(seed_dir))
        for i, d in enumerate(descriptors, start=1):
            try:
                validate_descriptor(d)
            except SeedError as e:
                raise e.with_context(operation_index=i)
        resolved: List[RequestDescriptor] = []
        for i, d in enumerate(descriptors, start=1):
            try:
                d = resolve_descriptor(d, index_token, str(seed_dir))
                d = apply_exclusions(d, exclude_header)
                check_headers(d)
                resolved.append(d)
            except SeedError as e:
                raise e.with_context(operation_index=i)
        return resolved

    def _run_file(
        self,
        seed_dir: Path,
        name: str,
        file_report: FileReport,
        base_url: str,
        index_token: Optional[str],
        exclude_header: Optional[str],
        skip_on_error: bool,
        debug: bool,
    ) -> None:
        descriptors = self.prepare_file(seed_dir, name, index_token, exclude_header)
        total = len(descriptors)
        for idx, d in enumerate(descriptors, start=1):
            url = build_url(base_url, d)
            if self.log_path is not None:
                log_yaml(self.log_path, f"  Request {idx}/{total}: {d.method} {url}", _loggable(d), indent=4)
            if debug:
                self._debug_request(idx, total, d, url)

            if self.dry_run:
                self._log(f"  DRY-RUN: would send {d.method.upper()} {build_query_url(url, d.query_params)}")
                file_report.operations.append(
                    OperationResult(index=idx, method=d.method.upper(), url=url, outcome=OperationOutcome.dry_run)
                )
                continue

            try:
                status, payload = self._client().send(
                    d.method,
                    url,
                    headers=d.header,
                    query_params=d.query_params,
                    body=d.body,
                    timeout_s=self.timeout_s,
                )
            except SeedError as e:
                raise e.with_context(operation_index=idx)

            if debug:
                self._echo(f"  Response: HTTP {status}")
                self._echo(format_body(payload))

            if status >= 400:
                text = payload.decode("utf-8", errors="replace")
                message = text or f"HTTP {status}"
                if not skip_on_error:
                    file_report.operations.append(
                        OperationResult(index=idx, method=d.method.upper(), url=url, status_code=status,
                                        outcome=OperationOutcome.failed, message=message)
                    )
                    raise RequestFailure(
                        f"HTTP {status} from {d.method.upper()} {url}: {message}",
                        status_code=status,
                        body=text,
                        operation_index=idx,
                    )
                self._log(message)
                file_report.operations.append(
                    OperationResult(index=idx, method=d.method.upper(), url=url, status_code=status,
                                    outcome=OperationOutcome.skipped, message=message)
                )
                continue

            file_report.operations.append(
                OperationResult(index=idx, method=d.method.upper(), url=url, status_code=status,
                                outcome=OperationOutcome.success)
            )

    def _debug_request(self, idx: int, total: int, d: RequestDescriptor, url: str) -> None:
        self._echo(f"Request {idx}/{total}: {d.method.upper()} {build_query_url(url, d.query_params)}")
        for k, vals in d.header.items():
            for v in vals:
                self._echo(f"  {k}: {v}")
        ct_key = d.header_key("Content-Type")
        ct = d.header[ct_key][0] if ct_key and d.header[ct_key] else None
        self._echo(format_body(d.body, ct))


def _loggable(d: RequestDescriptor) -> dict:
    body: Any = d.body
    if isinstance(body, bytes):
        body = f"<{len(body)} bytes>"
    return {
        "Method": d.method.upper(),
        "Path": d.path,
        "Headers": d.header or None,
        "Query": d.query_params or None,
        "Body": body,
    }
