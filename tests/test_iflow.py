"""iFlow settings.json 生成のテスト。"""

from __future__ import annotations

import pytest

from ccswitch.errors import ValidationError
from ccswitch.iflow import (
    build_iflow_config,
    iflow_auto_mode_enabled,
    set_iflow_auto_mode,
    validate_iflow_block,
)


def test_overlay_keeps_other_keys() -> None:
    existing = {"theme": "dark", "apiKey": "old", "autoMode": True}
    out = build_iflow_config(existing, {"baseUrl": "https://i", "apiKey": "new", "modelName": "qwen"})
    assert out == {
        "theme": "dark",
        "autoMode": True,
        "baseUrl": "https://i",
        "apiKey": "new",
        "model": "qwen",
        "modelName": "qwen",
    }


def test_default_model() -> None:
    out = build_iflow_config({}, {"baseUrl": "https://i", "apiKey": "k"})
    assert out["model"] == "gpt-4-turbo"


def test_validate_iflow_block() -> None:
    validate_iflow_block({"baseUrl": "u", "apiKey": "k"})
    with pytest.raises(ValidationError):
        validate_iflow_block({"baseUrl": "u"})


def test_auto_mode() -> None:
    on = set_iflow_auto_mode({"theme": "dark"}, True)
    assert iflow_auto_mode_enabled(on)
    off = set_iflow_auto_mode(on, False)
    assert off == {"theme": "dark"}
    assert not iflow_auto_mode_enabled(off)


def test_build_rejects_incomplete_block() -> None:
    with pytest.raises(ValidationError):
        build_iflow_config({"baseUrl": "https://old"}, {"apiKey": "k"})
    with pytest.raises(ValidationError):
        build_iflow_config({}, {"baseUrl": "https://i", "apiKey": "  "})
