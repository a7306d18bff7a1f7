"""認証情報（token / API key）の正規化と選択。

サイト定義の `ANTHROPIC_AUTH_TOKEN` / `OPENAI_API_KEY` は
文字列1つ、または「名前 → 値」の dict のどちらでも書ける。
選択処理の前に必ず dict 形式へ正規化する。

```json
"ANTHROPIC_AUTH_TOKEN": "sk-xxx"
"ANTHROPIC_AUTH_TOKEN": {"主力": "sk-aaa", "予備": "sk-bbb"}
```
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from ccswitch.errors import NotFoundError, ValidationError

TOKEN_LABEL = "Token"
API_KEY_LABEL = "API Key"


def default_credential_name(label: str) -> str:
    return f"默认{label}"


@dataclass(frozen=True)
class SingleCredential:
    value: str


@dataclass(frozen=True)
class NamedCredentials:
    entries: dict[str, str]


Credential = Union[SingleCredential, NamedCredentials]


def parse_credential(raw: object) -> Credential:
    if isinstance(raw, str):
        return SingleCredential(raw)
    if isinstance(raw, dict):
        return NamedCredentials({str(k): str(v) for k, v in raw.items()})
    raise ValidationError(f"認証情報は文字列またはオブジェクトである必要があります: {type(raw).__name__}")


def normalize_credentials(raw: object, label: str = TOKEN_LABEL) -> dict[str, str]:
    """文字列なら `{"默认<label>": 値}` に変換して返す。"""
    cred = parse_credential(raw)
    if isinstance(cred, SingleCredential):
        return {default_credential_name(label): cred.value}
    return dict(cred.entries)


def credential_name(raw: object, value: str, label: str = TOKEN_LABEL) -> str:
    for name, v in normalize_credentials(raw, label).items():
        if v == value:
            return name
    return f"未知{label}"


def select_credential(raw: object, choice: str | None = None, label: str = TOKEN_LABEL) -> tuple[str, str]:
    """(名前, 値) を返す。

    choice は名前でも値そのものでもよい。
    1件しかなければ choice なしで自動選択する。
    """
    creds = normalize_credentials(raw, label)
    if not creds:
        raise ValidationError(f"{label} が1件も登録されていません")

    if choice is None:
        if len(creds) == 1:
            name, value = next(iter(creds.items()))
            return name, value
        raise ValidationError(f"{label} が複数あります。選択してください: {', '.join(creds)}")

    if choice in creds:
        return choice, creds[choice]
    for name, value in creds.items():
        if value == choice:
            return name, value
    raise NotFoundError(f"{label} が見つかりません: {choice}")


def mask_secret(value: str, keep: int = 10) -> str:
    if not value:
        return ""
    if len(value) <= keep:
        return value[: max(1, len(value) // 2)] + "..."
    return value[:keep] + "..."
