"""iFlow の settings.json 生成。

フラットなJSONなので、`baseUrl` / `apiKey` / `model` / `modelName` を上書きするだけ。
それ以外の既存キーはそのまま残す。
"""

from __future__ import annotations

from typing import Any

from ccswitch.errors import ValidationError

DEFAULT_IFLOW_MODEL = "gpt-4-turbo"
AUTO_MODE_KEYS = ("autoMode", "autoApproval")


def iflow_model(block: dict[str, Any]) -> str:
    return str(block.get("modelName") or block.get("model") or DEFAULT_IFLOW_MODEL)


def build_iflow_config(existing: dict[str, Any], iflow_block: dict[str, Any]) -> dict[str, Any]:
    validate_iflow_block(iflow_block)
    model = iflow_model(iflow_block)
    return {
        **existing,
        "baseUrl": iflow_block["baseUrl"],
        "apiKey": iflow_block["apiKey"],
        "model": model,
        "modelName": model,
    }


def validate_iflow_block(block: object) -> None:
    if not isinstance(block, dict):
        raise ValidationError("iflow 設定がオブジェクトではありません")
    for key in ("baseUrl", "apiKey"):
        value = block.get(key)
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(f"iflow.{key} がありません")


def iflow_auto_mode_enabled(settings: dict[str, Any]) -> bool:
    return settings.get("autoMode") is True or settings.get("autoApproval") is True


def set_iflow_auto_mode(settings: dict[str, Any], enabled: bool) -> dict[str, Any]:
    out = {k: v for k, v in settings.items() if k not in AUTO_MODE_KEYS}
    if enabled:
        out["autoMode"] = True
        out["autoApproval"] = True
    return out
