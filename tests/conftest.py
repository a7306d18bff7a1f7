from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from ccswitch.config import PathsConfig


def sample_sites() -> dict[str, Any]:
    return {
        "relay": {
            "description": "中継サイト",
            "claude": {
                "env": {
                    "ANTHROPIC_BASE_URL": "https://relay.example.com",
                    "ANTHROPIC_AUTH_TOKEN": {"主力": "sk-ant-main-0001", "予備": "sk-ant-spare-0002"},
                }
            },
            "codex": {
                "model": "gpt-5",
                "OPENAI_API_KEY": "sk-codex-0001",
                "model_providers": {
                    "relay": {"name": "Relay", "base_url": "https://relay.example.com/v1"},
                },
            },
        },
        "solo": {
            "claude": {
                "env": {
                    "ANTHROPIC_BASE_URL": "https://solo.example.com",
                    "ANTHROPIC_AUTH_TOKEN": "sk-ant-solo-0003",
                }
            },
            "iflow": {
                "baseUrl": "https://iflow.example.com/v1",
                "apiKey": "sk-iflow-0004",
                "modelName": "qwen3-coder",
            },
        },
    }


@pytest.fixture()
def paths(tmp_path: Path) -> PathsConfig:
    """tmp_path をホームとみなしたパス一式。"""
    return PathsConfig.from_home(tmp_path)


@pytest.fixture()
def store_file(paths: PathsConfig) -> Path:
    """サンプルのサイトを入れた api_configs.json を置く。"""
    paths.cc_cli_dir.mkdir(parents=True)
    paths.api_configs.write_text(
        json.dumps({"sites": sample_sites()}, ensure_ascii=False, indent=2),
        encoding="utf-8",
    )
    return paths.api_configs


@pytest.fixture()
def sites() -> dict[str, Any]:
    return sample_sites()
