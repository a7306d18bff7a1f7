"""CLI のテスト（CliRunner）。"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
from typer.testing import CliRunner

from ccswitch import cli
from ccswitch.cli import app
from ccswitch.config import PathsConfig
from ccswitch.webdav import WebDAVClient, WebDAVConfig

runner = CliRunner()


@pytest.fixture(autouse=True)
def _home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CCSWITCH_HOME", str(tmp_path))


def test_init_creates_example(paths: PathsConfig) -> None:
    r = runner.invoke(app, ["init"])
    assert r.exit_code == 0, r.output
    assert "example" in json.loads(paths.api_configs.read_text(encoding="utf-8"))["sites"]

    r = runner.invoke(app, ["init"])
    assert r.exit_code == 0
    assert "既にあります" in r.output


def test_list(store_file: Path) -> None:
    r = runner.invoke(app, ["list"])
    assert r.exit_code == 0, r.output
    assert "relay" in r.output
    assert "solo" in r.output


def test_claude_switch_with_options(paths: PathsConfig, store_file: Path) -> None:
    r = runner.invoke(app, ["claude", "switch", "--site", "relay", "--token", "予備"])
    assert r.exit_code == 0, r.output
    settings = json.loads(paths.claude_settings.read_text(encoding="utf-8"))
    assert settings["env"]["ANTHROPIC_AUTH_TOKEN"] == "sk-ant-spare-0002"


def test_claude_switch_prompts_for_token(paths: PathsConfig, store_file: Path) -> None:
    r = runner.invoke(app, ["claude", "switch", "--site", "relay"], input="1\n")
    assert r.exit_code == 0, r.output
    settings = json.loads(paths.claude_settings.read_text(encoding="utf-8"))
    assert settings["env"]["ANTHROPIC_AUTH_TOKEN"] == "sk-ant-main-0001"


def test_codex_switch_auto_selects_single_choices(paths: PathsConfig, store_file: Path) -> None:
    r = runner.invoke(app, ["codex", "switch"])
    assert r.exit_code == 0, r.output
    assert 'model_provider = "relay"' in paths.codex_config.read_text(encoding="utf-8")

    r = runner.invoke(app, ["status"])
    assert r.exit_code == 0, r.output
    assert "relay" in r.output
    assert "sk-codex-0001" not in r.output

    r = runner.invoke(app, ["history"])
    assert "codex" in r.output


def test_iflow_switch(paths: PathsConfig, store_file: Path) -> None:
    r = runner.invoke(app, ["iflow", "switch"])
    assert r.exit_code == 0, r.output
    assert json.loads(paths.iflow_config.read_text(encoding="utf-8"))["apiKey"] == "sk-iflow-0004"


def test_error_is_reported_with_exit_code(store_file: Path) -> None:
    r = runner.invoke(app, ["claude", "switch", "--site", "missing"])
    assert r.exit_code == 1
    assert "❌" in r.output


def test_add_and_delete_site(paths: PathsConfig, store_file: Path) -> None:
    r = runner.invoke(
        app,
        ["codex", "add", "newsite", "--base-url", "https://n/v1", "--api-key", "sk-n", "--model", "gpt-5-codex"],
    )
    assert r.exit_code == 0, r.output
    r = runner.invoke(app, ["iflow", "add", "newsite", "--base-url", "https://i", "--api-key", "sk-i"])
    assert r.exit_code == 0, r.output

    sites = json.loads(paths.api_configs.read_text(encoding="utf-8"))["sites"]
    assert sites["newsite"]["codex"]["model_providers"]["newsite"]["base_url"] == "https://n/v1"
    assert sites["newsite"]["iflow"]["apiKey"] == "sk-i"
    # 変更前のストアはバックアップされている
    assert list(paths.backups_dir.glob("api_configs_*.json"))

    r = runner.invoke(app, ["codex", "delete", "newsite", "--yes"])
    assert r.exit_code == 0, r.output
    r = runner.invoke(app, ["iflow", "delete", "newsite", "--yes"])
    assert r.exit_code == 0, r.output
    assert "newsite" not in json.loads(paths.api_configs.read_text(encoding="utf-8"))["sites"]


def test_claude_add_token_to_existing_site(paths: PathsConfig, store_file: Path) -> None:
    r = runner.invoke(
        app, ["claude", "add", "solo", "--base-url", "https://solo.example.com", "--token", "sk-2", "--name", "予備"]
    )
    assert r.exit_code == 0, r.output
    env = json.loads(paths.api_configs.read_text(encoding="utf-8"))["sites"]["solo"]["claude"]["env"]
    assert env["ANTHROPIC_AUTH_TOKEN"] == {"默认Token": "sk-ant-solo-0003", "予備": "sk-2"}

    r = runner.invoke(app, ["claude", "delete", "solo", "--token", "予備"], input="y\n")
    assert r.exit_code == 0, r.output
    env = json.loads(paths.api_configs.read_text(encoding="utf-8"))["sites"]["solo"]["claude"]["env"]
    assert env["ANTHROPIC_AUTH_TOKEN"] == {"默认Token": "sk-ant-solo-0003"}


def test_delete_aborted(paths: PathsConfig, store_file: Path) -> None:
    before = paths.api_configs.read_text(encoding="utf-8")
    r = runner.invoke(app, ["iflow", "delete", "solo"], input="n\n")
    assert r.exit_code == 0
    assert paths.api_configs.read_text(encoding="utf-8") == before


def test_codex_auto(paths: PathsConfig) -> None:
    r = runner.invoke(app, ["codex", "auto"])
    assert r.exit_code == 0, r.output
    assert "ON" in r.output
    r = runner.invoke(app, ["codex", "auto"])
    assert "OFF" in r.output


def test_backup_create_list_restore(paths: PathsConfig, store_file: Path) -> None:
    r = runner.invoke(app, ["backup", "create"])
    assert r.exit_code == 0, r.output
    name = next(paths.backups_dir.glob("api_configs_*.json")).name

    r = runner.invoke(app, ["backup", "list"])
    assert name in r.output

    store_file.write_text('{"sites": {}}', encoding="utf-8")
    r = runner.invoke(app, ["backup", "restore", name, "--yes"])
    assert r.exit_code == 0, r.output
    assert "relay" in json.loads(store_file.read_text(encoding="utf-8"))["sites"]


def test_backup_create_full(paths: PathsConfig, store_file: Path) -> None:
    r = runner.invoke(app, ["backup", "create", "--full", "--no-claude"])
    assert r.exit_code == 0, r.output
    assert "cc-cli: api_configs.json" in r.output


class _FakeResponse:
    def __init__(self, status_code: int, text: str = "") -> None:
        self.status_code = status_code
        self.text = text
        self.encoding: str | None = None


class _FakeSession:
    def __init__(self) -> None:
        self.auth: Any = None
        self.put: dict[str, bytes] = {}

    def request(self, method: str, url: str, **kwargs: Any) -> _FakeResponse:
        if method == "PUT":
            self.put[url] = kwargs["data"]
        return _FakeResponse(201)


def test_webdav_upload(paths: PathsConfig, store_file: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    r = runner.invoke(app, ["backup", "webdav-upload"])
    assert r.exit_code == 1
    assert "webdav-setup" in r.output

    session = _FakeSession()
    monkeypatch.setattr(
        cli,
        "_webdav_client",
        lambda cfg: WebDAVClient(WebDAVConfig(url="https://dav", username="u", password="p"), session=session),  # type: ignore[arg-type]
    )
    r = runner.invoke(app, ["backup", "webdav-upload"])
    assert r.exit_code == 0, r.output
    [(url, data)] = session.put.items()
    assert url.startswith("https://dav/cc-cli-backups/api_configs_")
    assert json.loads(data.decode("utf-8"))["sites"]["relay"]
