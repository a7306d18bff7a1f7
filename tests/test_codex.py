"""Codex config.toml マージのテスト。"""

from __future__ import annotations

import pytest

from ccswitch.codex import (
    CodexTomlMerger,
    build_codex_auth,
    codex_auto_mode_enabled,
    disable_codex_auto_mode,
    enable_codex_auto_mode,
    format_toml_key,
    format_toml_value,
    merge_codex_config,
    read_codex_state,
    validate_codex_block,
)
from ccswitch.errors import ValidationError

try:
    import tomllib
except ModuleNotFoundError:  # Python < 3.11
    import tomli as tomllib  # type: ignore[no-redef]

EXISTING = (
    'model = "old"\n'
    'foo = "bar"\n'
    "\n"
    "[model_providers.x]\n"
    'name="X"\n'
    'base_url="http://x"\n'
    "\n"
    "[other]\n"
    'key="v"\n'
)

BLOCK = {
    "model": "gpt-5",
    "OPENAI_API_KEY": "sk-test",
    "model_providers": {
        "y": {"name": "Y till", "base_url": "http://y"},
        "z": {"base_url": "http://z", "wire_api": "chat"},
    },
}


def _headers(text: str) -> list[str]:
    return [line for line in text.splitlines() if line.startswith("[model_providers")]


def test_round_trip_scenario() -> None:
    out = CodexTomlMerger(EXISTING).generate({"model": "gpt-5"}, "y", {"name": "Y till", "base_url": "http://y"})
    lines = out.splitlines()

    assert lines[0] == 'model = "gpt-5"'
    assert lines[1] == 'model_provider = "y"'
    assert 'foo = "bar"' in lines
    assert _headers(out) == ["[model_providers.y]"]
    assert 'name = "Y till"' in lines
    assert 'base_url = "http://y"' in lines
    assert '[other]\nkey="v"\n' in out
    assert "[model_providers.x]" not in out
    assert 'model = "old"' not in out


def test_merge_is_idempotent() -> None:
    once = merge_codex_config(EXISTING, BLOCK, "y")
    twice = merge_codex_config(once, BLOCK, "y")
    assert twice == once


def test_idempotent_with_user_lines_and_sections() -> None:
    existing = (
        "# my codex\n"
        'approval_policy = "on-request"\n'
        "\n\n"
        "[mcp_servers.fs]\n"
        'command = "npx"\n'
        "\n"
        "[model_providers.old]\n"
        'base_url = "http://old"\n'
        "\n"
        "[profiles.fast]\n"
        'model = "o4-mini"\n'
        "\n\n"
    )
    once = merge_codex_config(existing, BLOCK, "z")
    assert merge_codex_config(once, BLOCK, "z") == once
    assert "# my codex" in once
    assert once.index("[mcp_servers.fs]") < once.index("[profiles.fast]")
    # [profiles.fast] 内の model はセクション内なので残る
    assert 'model = "o4-mini"' in once


def test_single_provider_table_even_with_many_existing() -> None:
    existing = "\n".join(
        [
            'model = "a"',
            "[model_providers.a]",
            'base_url = "http://a"',
            "[model_providers.b]",
            'base_url = "http://b"',
            '[model_providers."c.d"]',
            'base_url = "http://c"',
        ]
    )
    out = merge_codex_config(existing, BLOCK, "z")
    assert _headers(out) == ["[model_providers.z]"]
    assert 'wire_api = "chat"' in out
    assert 'name = "z"' in out


def test_required_defaults_exactly_once() -> None:
    existing = 'model_reasoning_effort = "low"\ndisable_response_storage = false\n'
    out = merge_codex_config(existing, BLOCK, "y")
    assert out.count("model_reasoning_effort") == 1
    assert out.count("disable_response_storage") == 1
    assert 'model_reasoning_effort = "high"' in out
    assert "disable_response_storage = true" in out


def test_required_default_from_block_is_not_duplicated() -> None:
    block = {**BLOCK, "model_reasoning_effort": "medium"}
    out = merge_codex_config("", block, "y")
    assert out.count("model_reasoning_effort") == 1
    assert 'model_reasoning_effort = "medium"' in out


def test_block_keys_replace_existing_lines() -> None:
    block = {**BLOCK, "approval_policy": "never", "model_verbosity": "low"}
    existing = 'approval_policy = "untrusted"\nOPENAI_API_KEY = "sk-leak"\n'
    out = merge_codex_config(existing, block, "y")
    assert 'approval_policy = "never"' in out
    assert "untrusted" not in out
    assert "OPENAI_API_KEY" not in out
    assert 'model_verbosity = "low"' in out


def test_output_is_valid_toml() -> None:
    block = {
        **BLOCK,
        "model_providers": {
            "y": {
                "base_url": "http://y",
                "requires_openai_auth": False,
                "query_params": {"api-version": "2025-04-01"},
                "retries": [1, 2.5, "x"],
            }
        },
    }
    out = merge_codex_config(EXISTING, block, "y")
    data = tomllib.loads(out)
    provider = data["model_providers"]["y"]
    assert provider["requires_openai_auth"] is False
    assert provider["query_params"] == {"api-version": "2025-04-01"}
    assert provider["retries"] == [1, 2.5, "x"]
    assert data["other"] == {"key": "v"}
    assert data["foo"] == "bar"


def test_missing_provider_raises() -> None:
    with pytest.raises(ValidationError):
        merge_codex_config("", BLOCK, "nope")


def test_provider_without_base_url_raises() -> None:
    with pytest.raises(ValidationError):
        CodexTomlMerger("").generate({"model": "gpt-5"}, "p", {"name": "P"})


def test_malformed_existing_is_tolerated() -> None:
    existing = "this is not toml\n[broken\nfoo = 1\n"
    out = merge_codex_config(existing, BLOCK, "y")
    assert out.startswith('model = "gpt-5"\n')
    assert "this is not toml" in out


def test_format_toml_value() -> None:
    assert format_toml_value(True) == "true"
    assert format_toml_value(3) == "3"
    assert format_toml_value(1.5) == "1.5"
    assert format_toml_value('a"b\\c') == '"a\\"b\\\\c"'
    assert tomllib.loads(f"v = {format_toml_value([1, 'a'])}") == {"v": [1, "a"]}
    assert tomllib.loads(f"v = {format_toml_value({'k': {'n': [1]}})}") == {"v": {"k": {"n": [1]}}}
    assert format_toml_value(None) is None


def test_format_toml_key() -> None:
    assert format_toml_key("wire_api") == "wire_api"
    assert tomllib.loads(f"{format_toml_key('a.b c')} = 1") == {"a.b c": 1}


def test_control_characters_are_escaped() -> None:
    block = {
        **BLOCK,
        "model_providers": {
            "y": {
                "name": "tab\there",
                "base_url": "http://y",
                "http_headers": {"X-Tag": "a\x01b\x7f"},
            }
        },
    }
    data = tomllib.loads(merge_codex_config(EXISTING, block, "y"))
    provider = data["model_providers"]["y"]
    assert provider["http_headers"] == {"X-Tag": "a\x01b\x7f"}
    assert provider["name"] == "tab\there"


def test_build_codex_auth() -> None:
    assert build_codex_auth("sk-1") == {"OPENAI_API_KEY": "sk-1"}


def test_validate_codex_block() -> None:
    validate_codex_block(BLOCK)
    with pytest.raises(ValidationError):
        validate_codex_block({"OPENAI_API_KEY": "k", "model_providers": {"a": {"base_url": "u"}}})
    with pytest.raises(ValidationError):
        validate_codex_block({"model": "m", "OPENAI_API_KEY": "k", "model_providers": {"a": {}}})


def test_read_codex_state() -> None:
    out = merge_codex_config(EXISTING, BLOCK, "y")
    st = read_codex_state(out, {"OPENAI_API_KEY": "sk-test"})
    assert st.model == "gpt-5"
    assert st.model_provider == "y"
    assert st.base_url == "http://y"
    assert st.api_key == "sk-test"


def test_read_codex_state_falls_back_on_broken_toml() -> None:
    st = read_codex_state('model = "m"\nmodel_provider = "p"\n[broken\nbase_url = "http://b"\n')
    assert st.model == "m"
    assert st.model_provider == "p"
    assert st.base_url == "http://b"


def test_auto_mode_toggle() -> None:
    text = merge_codex_config(EXISTING, BLOCK, "y")
    assert not codex_auto_mode_enabled(text)

    on = enable_codex_auto_mode(text)
    assert codex_auto_mode_enabled(on)
    assert on.startswith('approval_policy = "never"\nsandbox_mode = "danger-full-access"\n')
    tomllib.loads(on)

    off = disable_codex_auto_mode(on)
    assert not codex_auto_mode_enabled(off)
    assert "approval_policy" not in off
    assert "[model_providers.y]" in off


def test_enable_auto_mode_replaces_existing_policy() -> None:
    on = enable_codex_auto_mode('approval_policy = "on-request"\nmodel = "m"\n')
    assert on.count("approval_policy") == 1
    assert 'model = "m"' in on
