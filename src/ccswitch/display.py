"""表示用の補助（rich）。"""

from __future__ import annotations

from typing import Any

from rich.table import Table

from ccswitch.credentials import API_KEY_LABEL, TOKEN_LABEL, mask_secret, normalize_credentials
from ccswitch.store import TOOLS, ActiveSelection, ProfileStore

TOOL_EMOJI = {"claude": "🤖", "codex": "💻", "iflow": "🌊"}
SITE_ICON = "🌐"


def site_label(key: str, site: dict[str, Any]) -> str:
    desc = site.get("description")
    suffix = f" ({desc})" if desc else ""
    return f"{SITE_ICON} {key}{suffix}"


def tool_badges(site: dict[str, Any]) -> str:
    return " ".join(f"{TOOL_EMOJI[t]} {t}" for t in TOOLS if isinstance(site.get(t), dict))


def credential_count(site: dict[str, Any]) -> int:
    n = 0
    claude = site.get("claude")
    if isinstance(claude, dict) and isinstance(claude.get("env"), dict):
        raw = claude["env"].get("ANTHROPIC_AUTH_TOKEN")
        if raw:
            n += len(normalize_credentials(raw, TOKEN_LABEL))
    codex = site.get("codex")
    if isinstance(codex, dict) and codex.get("OPENAI_API_KEY"):
        n += len(normalize_credentials(codex["OPENAI_API_KEY"], API_KEY_LABEL))
    iflow = site.get("iflow")
    if isinstance(iflow, dict) and iflow.get("apiKey"):
        n += 1
    return n


def sites_table(store: ProfileStore) -> Table:
    table = Table(title="📋 サイト一覧", show_lines=False)
    table.add_column("サイト")
    table.add_column("対応ツール")
    table.add_column("認証情報", justify="right")
    table.add_column("使用中")

    for key, site in store.sites.items():
        active = [t for t in TOOLS if (cur := store.current_for(t)) is not None and cur.site == key]
        table.add_row(
            site_label(key, site),
            tool_badges(site),
            str(credential_count(site)),
            " ".join(f"⭐ {t}" for t in active),
        )
    return table


def selection_lines(tool: str, sel: ActiveSelection | None) -> list[str]:
    if sel is None:
        return [f"{TOOL_EMOJI[tool]} {tool}: (未設定)"]
    lines = [f"{TOOL_EMOJI[tool]} {tool}: {sel.site_name or sel.site}"]
    if sel.base_url:
        lines.append(f"   URL: {sel.base_url}")
    if sel.provider:
        lines.append(f"   プロバイダ: {sel.provider_name or sel.provider}")
    if sel.model:
        lines.append(f"   モデル: {sel.model}")
    secret = sel.token or sel.api_key
    name = sel.token_name or sel.api_key_name
    if secret:
        lines.append(f"   認証: {name + ' ' if name else ''}({mask_secret(secret)})")
    if sel.updated_at:
        lines.append(f"   更新: {sel.updated_at}")
    return lines
