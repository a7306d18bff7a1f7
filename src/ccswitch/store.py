"""統合プロファイルストア（`~/.cc-cli/api_configs.json`）。

```json
{
  "sites": {
    "my-relay": {
      "description": "中継サイト",
      "claude": {"env": {"ANTHROPIC_BASE_URL": "...", "ANTHROPIC_AUTH_TOKEN": {"主力": "sk-..."}}},
      "codex": {"model": "gpt-5", "OPENAI_API_KEY": "sk-...", "model_providers": {"relay": {"base_url": "..."}}},
      "iflow": {"baseUrl": "...", "apiKey": "...", "modelName": "..."}
    }
  },
  "currentConfig": {...},
  "currentCodexConfig": {...},
  "currentIflowConfig": {...}
}
```

- このファイルが唯一の正。各ツールの設定ファイルは切替のたびに再生成される派生物
- ロックはしない（単一ユーザー・単一プロセス前提、後勝ち）
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ccswitch.codex import read_codex_state
from ccswitch.config import PathsConfig
from ccswitch.errors import NotFoundError, ParseError
from ccswitch.files import atomic_write_json, read_json_object, read_text_or_empty

log = logging.getLogger(__name__)

TOOLS = ("claude", "codex", "iflow")
HISTORY_LIMIT = 10

# ActiveSelection の属性名 → ファイル上のキー
_SELECTION_KEYS = {
    "site": "site",
    "site_name": "siteName",
    "token": "token",
    "token_name": "tokenName",
    "api_key": "apiKey",
    "api_key_name": "apiKeyName",
    "base_url": "baseUrl",
    "model": "model",
    "provider": "provider",
    "provider_name": "providerName",
    "updated_at": "updatedAt",
}


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class ActiveSelection:
    """最後に適用したサイト/認証情報。"""

    site: str
    site_name: str = ""
    token: str | None = None  # claude
    token_name: str | None = None
    api_key: str | None = None  # codex / iflow
    api_key_name: str | None = None
    base_url: str | None = None
    model: str | None = None
    provider: str | None = None  # codex
    provider_name: str | None = None
    updated_at: str = field(default_factory=now_iso)
    extra: dict[str, Any] = field(default_factory=dict)  # urlName など未知のキー

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for attr, key in _SELECTION_KEYS.items():
            value = getattr(self, attr)
            if value is not None:
                out[key] = value
        for key, value in self.extra.items():
            out.setdefault(key, value)
        return out

    @classmethod
    def from_dict(cls, raw: object) -> ActiveSelection | None:
        if not isinstance(raw, dict) or not raw.get("site"):
            return None
        kwargs = {attr: raw[key] for attr, key in _SELECTION_KEYS.items() if key in raw}
        # 旧形式は ANTHROPIC_BASE_URL / url で保存していた
        if "base_url" not in kwargs:
            legacy = raw.get("ANTHROPIC_BASE_URL") or raw.get("url")
            if legacy:
                kwargs["base_url"] = legacy
        kwargs.setdefault("site_name", raw["site"])
        kwargs.setdefault("updated_at", "")
        known = set(_SELECTION_KEYS.values())
        kwargs["extra"] = {k: v for k, v in raw.items() if k not in known}
        return cls(**kwargs)


def _parse_sites(raw: dict[str, Any]) -> dict[str, dict[str, Any]]:
    sites = {}
    for key, value in raw.items():
        if not isinstance(value, dict):
            raise ParseError(f"サイト {key} がオブジェクトではありません")
        sites[str(key)] = value
    return sites


@dataclass
class ProfileStore:
    sites: dict[str, dict[str, Any]] = field(default_factory=dict)
    current_config: ActiveSelection | None = None
    current_codex_config: ActiveSelection | None = None
    current_iflow_config: ActiveSelection | None = None
    extra: dict[str, Any] = field(default_factory=dict)  # 未知のトップレベルキー

    def get_site(self, key: str) -> dict[str, Any]:
        site = self.sites.get(key)
        if site is None:
            raise NotFoundError(f"サイトが見つかりません: {key}")
        return site

    def sites_for(self, tool: str) -> dict[str, dict[str, Any]]:
        return {k: v for k, v in self.sites.items() if isinstance(v.get(tool), dict)}

    def current_for(self, tool: str) -> ActiveSelection | None:
        return {
            "claude": self.current_config,
            "codex": self.current_codex_config,
            "iflow": self.current_iflow_config,
        }[tool]

    def set_current(self, tool: str, selection: ActiveSelection | None) -> None:
        if tool == "claude":
            self.current_config = selection
        elif tool == "codex":
            self.current_codex_config = selection
        elif tool == "iflow":
            self.current_iflow_config = selection
        else:
            raise ValueError(f"unknown tool: {tool}")

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"sites": self.sites}
        for key, sel in (
            ("currentConfig", self.current_config),
            ("currentCodexConfig", self.current_codex_config),
            ("currentIflowConfig", self.current_iflow_config),
        ):
            out[key] = sel.to_dict() if sel is not None else None
        out.update(self.extra)
        return out

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ProfileStore:
        sites = raw.get("sites")
        if not isinstance(sites, dict):
            raise ParseError("api_configs.json に sites オブジェクトがありません")
        known = {"sites", "currentConfig", "currentCodexConfig", "currentIflowConfig"}
        return cls(
            sites=_parse_sites(sites),
            current_config=ActiveSelection.from_dict(raw.get("currentConfig")),
            current_codex_config=ActiveSelection.from_dict(raw.get("currentCodexConfig")),
            current_iflow_config=ActiveSelection.from_dict(raw.get("currentIflowConfig")),
            extra={k: v for k, v in raw.items() if k not in known},
        )


class ConfigStore:
    def __init__(self, paths: PathsConfig) -> None:
        self.paths = paths

    @property
    def path(self) -> Path:
        return self.paths.api_configs

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> ProfileStore:
        if not self.path.exists():
            raise NotFoundError(f"API設定ファイルが存在しません: {self.path}")
        text = self.path.read_text(encoding="utf-8")
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as e:
            raise ParseError(f"API設定ファイルを解析できません: {self.path} ({e})") from e
        if not isinstance(raw, dict):
            raise ParseError(f"API設定ファイルのルートがオブジェクトではありません: {self.path}")
        return ProfileStore.from_dict(raw)

    def save(self, store: ProfileStore) -> None:
        atomic_write_json(self.path, store.to_dict())
        log.info("saved profile store: %s (%d sites)", self.path, len(store.sites))

    def is_first_use(self) -> bool:
        try:
            store = self.load()
        except (NotFoundError, ParseError):
            return True
        return not store.sites

    def initialize(self) -> ProfileStore:
        """既存の Claude / Codex 設定を取り込んで初期ストアを作る。

        何も見つからなければ example サイトを1つ入れる。
        """
        store = ProfileStore()

        settings = read_json_object(self.paths.claude_settings)
        env = settings.get("env")
        if isinstance(env, dict) and env.get("ANTHROPIC_BASE_URL"):
            claude_env = {
                "ANTHROPIC_BASE_URL": env["ANTHROPIC_BASE_URL"],
                "ANTHROPIC_AUTH_TOKEN": env.get("ANTHROPIC_AUTH_TOKEN") or env.get("ANTHROPIC_API_KEY") or "",
            }
            if env.get("ANTHROPIC_MODEL"):
                claude_env["ANTHROPIC_MODEL"] = env["ANTHROPIC_MODEL"]
            store.sites["claude-auto"] = {
                "description": "自動検出したClaude設定",
                "claude": {"env": claude_env},
            }
            log.info("imported existing claude settings")

        codex_text = read_text_or_empty(self.paths.codex_config)
        if codex_text.strip():
            state = read_codex_state(codex_text, read_json_object(self.paths.codex_auth))
            if state.base_url:
                provider = state.model_provider or "default"
                store.sites["codex-auto"] = {
                    "description": "自動検出したCodex設定",
                    "codex": {
                        "model": state.model or "gpt-5",
                        "OPENAI_API_KEY": state.api_key,
                        "model_providers": {provider: {"name": provider, "base_url": state.base_url}},
                    },
                }
                log.info("imported existing codex config")

        if not store.sites:
            store.sites["example"] = {
                "description": "サンプル設定",
                "claude": {
                    "env": {
                        "ANTHROPIC_BASE_URL": "https://api.anthropic.com",
                        "ANTHROPIC_AUTH_TOKEN": "your-token-here",
                    }
                },
            }

        self.save(store)
        return store


def record_history(paths: PathsConfig, tool: str, selection: ActiveSelection) -> None:
    """切替履歴を新しい順に最大10件保存する。失敗しても切替は止めない。"""
    try:
        history = load_history(paths)
        entry = {"tool": tool, **replace(selection, extra={}).to_dict()}
        entry.pop("token", None)
        entry.pop("apiKey", None)
        history.insert(0, entry)
        atomic_write_json(paths.history_file, history[:HISTORY_LIMIT])
    except OSError as e:
        log.warning("failed to save history: %s", e)


def load_history(paths: PathsConfig) -> list[dict[str, Any]]:
    if not paths.history_file.exists():
        return []
    try:
        raw = json.loads(paths.history_file.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        log.warning("failed to read history: %s", e)
        return []
    if not isinstance(raw, list):
        return []
    return [h for h in raw if isinstance(h, dict)]
