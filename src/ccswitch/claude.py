"""Claude Code の settings.json 生成。

切替時の流れ:
1. 既存 settings をコピー
2. `env` の認証キー3種とトップレベル `model` を削除（古い値を残さない）
3. サイトの `claude` ブロックを検証して複製し、`env.ANTHROPIC_AUTH_TOKEN` を選択した値1つに置換
4. 深いマージ（dict同士はキー単位、それ以外は丸ごと置換）

`hooks` / `permissions` など関係ない項目はそのまま残る。
"""

from __future__ import annotations

import copy
from typing import Any

from ccswitch.errors import ValidationError

RESET_ENV_KEYS = ("ANTHROPIC_AUTH_TOKEN", "ANTHROPIC_AUTH_KEY", "ANTHROPIC_API_KEY")


def deep_merge(target: dict[str, Any], source: dict[str, Any]) -> dict[str, Any]:
    """source を target に再帰的にマージした新しい dict を返す。入力は変更しない。"""
    result = dict(target)
    for key, value in source.items():
        if isinstance(value, dict):
            base = result.get(key)
            result[key] = deep_merge(base if isinstance(base, dict) else {}, value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def build_claude_settings(
    current: dict[str, Any],
    claude_block: dict[str, Any],
    token: str,
) -> dict[str, Any]:
    validate_claude_block(claude_block)
    if not token:
        raise ValidationError("選択した ANTHROPIC_AUTH_TOKEN が空です")

    settings = dict(current)

    env = settings.get("env")
    if isinstance(env, dict):
        env = dict(env)
        for key in RESET_ENV_KEYS:
            env.pop(key, None)
        settings["env"] = env
    settings.pop("model", None)

    to_merge = copy.deepcopy(claude_block)
    to_merge["env"]["ANTHROPIC_AUTH_TOKEN"] = token

    return deep_merge(settings, to_merge)


def validate_claude_block(block: object) -> None:
    if not isinstance(block, dict):
        raise ValidationError("claude 設定がオブジェクトではありません")
    env = block.get("env")
    if not isinstance(env, dict):
        raise ValidationError("claude.env がありません")
    base_url = env.get("ANTHROPIC_BASE_URL")
    if not isinstance(base_url, str) or not base_url.strip():
        raise ValidationError("claude.env.ANTHROPIC_BASE_URL がありません")
    token = env.get("ANTHROPIC_AUTH_TOKEN")
    if isinstance(token, str):
        if not token.strip():
            raise ValidationError("claude.env.ANTHROPIC_AUTH_TOKEN が空です")
    elif isinstance(token, dict):
        if not token:
            raise ValidationError("claude.env.ANTHROPIC_AUTH_TOKEN が空です")
    else:
        raise ValidationError("claude.env.ANTHROPIC_AUTH_TOKEN がありません")
