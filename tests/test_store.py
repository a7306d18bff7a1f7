"""プロファイルストアのテスト。"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from ccswitch.config import PathsConfig
from ccswitch.errors import NotFoundError, ParseError
from ccswitch.store import ActiveSelection, ConfigStore, ProfileStore, load_history, record_history


def test_load_missing_raises(paths: PathsConfig) -> None:
    with pytest.raises(NotFoundError):
        ConfigStore(paths).load()


def test_load_malformed_raises(paths: PathsConfig) -> None:
    paths.cc_cli_dir.mkdir(parents=True)
    paths.api_configs.write_text("{not json", encoding="utf-8")
    with pytest.raises(ParseError):
        ConfigStore(paths).load()


def test_load_without_sites_raises(paths: PathsConfig) -> None:
    paths.cc_cli_dir.mkdir(parents=True)
    paths.api_configs.write_text('{"sites": []}', encoding="utf-8")
    with pytest.raises(ParseError):
        ConfigStore(paths).load()


def test_save_load_keeps_unknown_keys(paths: PathsConfig, store_file: Path) -> None:
    raw = json.loads(store_file.read_text(encoding="utf-8"))
    raw["customField"] = {"x": 1}
    store_file.write_text(json.dumps(raw), encoding="utf-8")

    cs = ConfigStore(paths)
    profiles = cs.load()
    profiles.set_current("codex", ActiveSelection(site="relay", api_key="k", updated_at="t"))
    cs.save(profiles)

    saved = json.loads(store_file.read_text(encoding="utf-8"))
    assert saved["customField"] == {"x": 1}
    assert saved["currentCodexConfig"] == {"site": "relay", "siteName": "", "apiKey": "k", "updatedAt": "t"}
    assert saved["currentConfig"] is None
    assert list(saved["sites"]) == ["relay", "solo"]
    # 一時ファイルが残っていない
    assert [p.name for p in paths.cc_cli_dir.iterdir()] == ["api_configs.json"]


def test_selection_from_legacy_dict() -> None:
    sel = ActiveSelection.from_dict({"site": "a", "ANTHROPIC_BASE_URL": "https://a", "token": "t"})
    assert sel is not None
    assert sel.base_url == "https://a"
    assert sel.site_name == "a"
    assert ActiveSelection.from_dict({"token": "t"}) is None


def test_non_object_site_raises(paths: PathsConfig) -> None:
    paths.cc_cli_dir.mkdir(parents=True)
    text = json.dumps({"sites": {"a": {"iflow": {}}, "b": "legacy"}})
    paths.api_configs.write_text(text, encoding="utf-8")
    with pytest.raises(ParseError):
        ConfigStore(paths).load()
    assert paths.api_configs.read_text(encoding="utf-8") == text


def test_selection_keeps_unknown_keys(paths: PathsConfig, store_file: Path) -> None:
    raw = json.loads(store_file.read_text(encoding="utf-8"))
    raw["currentConfig"] = {"site": "relay", "urlName": "主站", "token": "t", "updatedAt": "u"}
    store_file.write_text(json.dumps(raw), encoding="utf-8")

    cs = ConfigStore(paths)
    cs.save(cs.load())

    saved = json.loads(store_file.read_text(encoding="utf-8"))
    assert saved["currentConfig"]["urlName"] == "主站"
    assert saved["currentConfig"]["token"] == "t"


def test_history_skips_unknown_selection_keys(paths: PathsConfig) -> None:
    sel = ActiveSelection(site="a", token="t", updated_at="u", extra={"ANTHROPIC_AUTH_TOKEN": "leak"})
    record_history(paths, "claude", sel)
    assert load_history(paths) == [{"tool": "claude", "site": "a", "siteName": "", "updatedAt": "u"}]


def test_sites_for(store_file: Path, paths: PathsConfig) -> None:
    profiles = ConfigStore(paths).load()
    assert list(profiles.sites_for("claude")) == ["relay", "solo"]
    assert list(profiles.sites_for("codex")) == ["relay"]
    assert list(profiles.sites_for("iflow")) == ["solo"]


def test_is_first_use(paths: PathsConfig) -> None:
    cs = ConfigStore(paths)
    assert cs.is_first_use()
    cs.save(ProfileStore(sites={"a": {"iflow": {}}}))
    assert not cs.is_first_use()


def test_initialize_imports_existing_settings(paths: PathsConfig) -> None:
    paths.claude_dir.mkdir(parents=True)
    paths.claude_settings.write_text(
        json.dumps({"env": {"ANTHROPIC_BASE_URL": "https://c", "ANTHROPIC_API_KEY": "sk-c"}}),
        encoding="utf-8",
    )
    paths.codex_dir.mkdir(parents=True)
    paths.codex_config.write_text(
        'model = "gpt-5"\nmodel_provider = "p"\n\n[model_providers.p]\nbase_url = "https://p"\n',
        encoding="utf-8",
    )
    paths.codex_auth.write_text('{"OPENAI_API_KEY": "sk-p"}', encoding="utf-8")

    profiles = ConfigStore(paths).initialize()
    assert profiles.sites["claude-auto"]["claude"]["env"] == {
        "ANTHROPIC_BASE_URL": "https://c",
        "ANTHROPIC_AUTH_TOKEN": "sk-c",
    }
    codex = profiles.sites["codex-auto"]["codex"]
    assert codex["OPENAI_API_KEY"] == "sk-p"
    assert codex["model_providers"]["p"]["base_url"] == "https://p"
    assert paths.api_configs.exists()


def test_initialize_without_anything_writes_example(paths: PathsConfig) -> None:
    profiles = ConfigStore(paths).initialize()
    assert list(profiles.sites) == ["example"]


def test_history_keeps_latest_ten_without_secrets(paths: PathsConfig) -> None:
    for i in range(12):
        record_history(paths, "claude", ActiveSelection(site=f"s{i}", token="secret", token_name="t"))
    history = load_history(paths)
    assert len(history) == 10
    assert history[0]["site"] == "s11"
    assert all("token" not in h for h in history)
    assert history[0]["tool"] == "claude"


def test_load_history_broken_file(paths: PathsConfig) -> None:
    paths.cc_cli_dir.mkdir(parents=True)
    paths.history_file.write_text("[", encoding="utf-8")
    assert load_history(paths) == []
