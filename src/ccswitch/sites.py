"""サイト定義の追加/削除（ProfileStore 上の純粋な操作）。

保存は呼び出し側（CLI）で ConfigStore.save を行う。
"""

from __future__ import annotations

from typing import Any

from ccswitch.claude import validate_claude_block
from ccswitch.codex import validate_codex_block
from ccswitch.credentials import API_KEY_LABEL, TOKEN_LABEL, normalize_credentials
from ccswitch.errors import NotFoundError, ValidationError
from ccswitch.iflow import validate_iflow_block
from ccswitch.store import TOOLS, ProfileStore

_VALIDATORS = {
    "claude": validate_claude_block,
    "codex": validate_codex_block,
    "iflow": validate_iflow_block,
}


def validate_site_entry(key: str, entry: dict[str, Any]) -> None:
    if not key.strip():
        raise ValidationError("サイト名が空です")
    present = [tool for tool in TOOLS if tool in entry]
    if not present:
        raise ValidationError(f"{key}: claude / codex / iflow のいずれかが必要です")
    for tool in present:
        _VALIDATORS[tool](entry[tool])


def add_site(store: ProfileStore, key: str, entry: dict[str, Any]) -> None:
    if key in store.sites:
        raise ValidationError(f"サイトは既に存在します: {key}")
    validate_site_entry(key, entry)
    store.sites[key] = entry


def merge_site_block(store: ProfileStore, key: str, tool: str, block: dict[str, Any]) -> None:
    """既存サイトにツールのブロックを追加/置換する。サイトがなければ作る。"""
    if tool not in _VALIDATORS:
        raise ValidationError(f"不明なツール: {tool}")
    _VALIDATORS[tool](block)
    store.sites.setdefault(key, {})[tool] = block


def delete_site(store: ProfileStore, key: str) -> None:
    store.get_site(key)
    del store.sites[key]
    for tool in TOOLS:
        current = store.current_for(tool)
        if current is not None and current.site == key:
            store.set_current(tool, None)


def _credential_slot(site: dict[str, Any], tool: str) -> tuple[dict[str, Any], str, str]:
    """(親dict, キー名, ラベル) を返す。"""
    if tool == "claude":
        block = site.get("claude")
        if not isinstance(block, dict) or not isinstance(block.get("env"), dict):
            raise NotFoundError("claude 設定がありません")
        return block["env"], "ANTHROPIC_AUTH_TOKEN", TOKEN_LABEL
    if tool == "codex":
        block = site.get("codex")
        if not isinstance(block, dict):
            raise NotFoundError("codex 設定がありません")
        return block, "OPENAI_API_KEY", API_KEY_LABEL
    raise ValidationError(f"{tool} は複数の認証情報に対応していません")


def add_credential(store: ProfileStore, key: str, tool: str, name: str, value: str) -> None:
    parent, slot, label = _credential_slot(store.get_site(key), tool)
    if not name.strip() or not value.strip():
        raise ValidationError(f"{label} の名前と値が必要です")
    raw = parent.get(slot)
    creds = normalize_credentials(raw, label) if raw else {}
    if name in creds:
        raise ValidationError(f"{label} は既に存在します: {name}")
    creds[name] = value
    parent[slot] = creds


def delete_credential(store: ProfileStore, key: str, tool: str, name: str) -> None:
    parent, slot, label = _credential_slot(store.get_site(key), tool)
    creds = normalize_credentials(parent.get(slot) or {}, label)
    if name not in creds:
        raise NotFoundError(f"{label} が見つかりません: {name}")
    if len(creds) == 1:
        raise ValidationError(f"最後の{label}は削除できません。サイトごと削除してください")
    del creds[name]
    parent[slot] = creds


def delete_provider(store: ProfileStore, key: str, provider: str) -> None:
    block = store.get_site(key).get("codex")
    if not isinstance(block, dict):
        raise NotFoundError("codex 設定がありません")
    providers = block.get("model_providers") or {}
    if provider not in providers:
        raise NotFoundError(f"サービスプロバイダが見つかりません: {provider}")
    if len(providers) == 1:
        raise ValidationError("最後のサービスプロバイダは削除できません")
    del providers[provider]


def delete_tool_block(store: ProfileStore, key: str, tool: str) -> bool:
    """サイトからツールのブロックだけを外す。他に残るブロックがなければサイトごと消す。

    サイトごと消した場合 True。
    """
    site = store.get_site(key)
    if tool not in site:
        raise NotFoundError(f"サイト {key} に {tool} 設定がありません")
    del site[tool]
    current = store.current_for(tool)
    if current is not None and current.site == key:
        store.set_current(tool, None)
    if not any(t in site for t in TOOLS):
        delete_site(store, key)
        return True
    return False
