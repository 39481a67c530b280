"""CLI tests through click's CliRunner."""

import pytest
import yaml
from click.testing import CliRunner

from seed_runner import runner as runner_module
from seed_runner.main import main
from tests.conftest import FakeClient, write_seed


@pytest.fixture
def fake_client(monkeypatch):
    client = FakeClient()
    monkeypatch.setattr(runner_module, "RequestManager", lambda timeout_s=None: client)
    return client


def invoke(*args):
    return CliRunner().invoke(main, list(args))


def test_up_command_sends_requests(seed_dir, fake_client):
    write_seed(seed_dir, "0001_init.up.json", [{"method": "PUT", "path": "${index}", "body": {"settings": {}}}])

    result = invoke("up", "--database", "http://es:9200", "--path", str(seed_dir), "--backend", "elasticsearch", "--index", "products")

    assert result.exit_code == 0, result.output
    assert fake_client.calls[0]["url"] == "http://es:9200/products"
    assert "migrate file: 0001_init.up.json success" in result.output


def test_down_command_no_change(seed_dir, fake_client):
    write_seed(seed_dir, "0001.up.json", [{"method": "PUT", "path": "/x"}])

    result = invoke("down", "--database", "http://api", "--path", str(seed_dir))

    assert result.exit_code == 0
    assert "no change" in result.output
    assert fake_client.calls == []


def test_request_failure_exit_code_and_report(seed_dir, fake_client, tmp_path):
    fake_client.statuses = [500]
    write_seed(seed_dir, "0001.up.json", [{"method": "PUT", "path": "/a"}, {"method": "PUT", "path": "/b"}])
    report_path = tmp_path / "report.yml"

    result = invoke("up", "--database", "http://api", "--path", str(seed_dir), "--report", str(report_path))

    assert result.exit_code == 1
    assert len(fake_client.calls) == 1
    data = yaml.safe_load(report_path.read_text(encoding="utf-8"))
    assert data["direction"] == "up"
    assert data["files"][0]["operations"][0]["outcome"] == "failed"
    assert data["files"][0]["operations"][0]["status_code"] == 500


def test_skip_error_flag(seed_dir, fake_client):
    fake_client.statuses = [500]
    write_seed(seed_dir, "0001.up.json", [{"method": "PUT", "path": "/a"}, {"method": "PUT", "path": "/b"}])

    result = invoke("up", "--database", "http://api", "--path", str(seed_dir), "--skip-error")

    assert result.exit_code == 0
    assert len(fake_client.calls) == 2
    assert "Completed with 1 skipped request(s)" in result.output


def test_malformed_exclude_header_exit_code(seed_dir, fake_client):
    write_seed(seed_dir, "0001.up.json", [{"method": "PUT", "path": "/a"}])

    result = invoke("up", "--database", "http://api", "--path", str(seed_dir), "--exclude-header", "nonsense")

    assert result.exit_code == 9
    assert "exclude_header incorrect format parameter" in result.output
    assert fake_client.calls == []


def test_invalid_database_url(seed_dir, fake_client):
    result = invoke("up", "--database", "es:9200", "--path", str(seed_dir))

    assert result.exit_code == 9
    assert "database" in result.output


def test_environment_variables(seed_dir, fake_client, monkeypatch):
    write_seed(seed_dir, "0001.up.json", [{"method": "GET", "path": "/${index}"}])
    monkeypatch.setenv("SEED_DATABASE", "http://api")
    monkeypatch.setenv("SEED_PATH", str(seed_dir))
    monkeypatch.setenv("SEED_INDEX", "orders")

    result = invoke("up")

    assert result.exit_code == 0, result.output
    assert fake_client.calls[0]["url"] == "http://api/orders"
