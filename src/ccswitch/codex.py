"""Codex の config.toml / auth.json 生成。

config.toml は行単位で書き換える（文書全体を TOML ライブラリで往復させない）。
ユーザーが追記した未知のトップレベル行や `[section]` をそのまま残しつつ、
自分が管理する行だけを決まった順序で出し直すため。
出し直す行のキーと値は tomlkit で文字列化する（エスケープを任せる）。

走査状態:
- TOPLEVEL: 最初の `[...]` より前。管理対象キー以外の行を残す
- IN_MODEL_PROVIDERS: `[model_providers.*]` の中。全行捨てる（毎回作り直す）
- IN_OTHER_SECTION: それ以外の `[...]` の中。行をそのまま末尾へ持ち越す

出力順:
1. model / model_provider
2. codex ブロックのその他トップレベルキー
3. model_reasoning_effort / disable_response_storage（未定義なら既定値）
4. 既存ファイルから残したトップレベル行
5. 空行 + `[model_providers.<key>]`
6. 空行 + 既存の他セクション（元の順序のまま）

auth.json には `OPENAI_API_KEY` だけを書く。config.toml には書かない。

壊れたTOMLでも例外にはしない（自分で生成するファイルの書き換えなので best-effort）。
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

import tomlkit
from tomlkit.items import Item

from ccswitch.errors import ValidationError

try:
    import tomllib
except ModuleNotFoundError:  # Python < 3.11
    import tomli as tomllib  # type: ignore[no-redef]

log = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-5"
DEFAULT_WIRE_API = "responses"
REQUIRED_DEFAULTS: dict[str, Any] = {
    "model_reasoning_effort": "high",
    "disable_response_storage": True,
}
ALWAYS_MANAGED_KEYS = ("model", "model_provider", *REQUIRED_DEFAULTS)
# codex ブロックのうちトップレベル行として出さないキー
NON_TOPLEVEL_KEYS = frozenset({"OPENAI_API_KEY", "model_providers", "model", "model_provider"})
PROVIDER_CORE_KEYS = ("name", "base_url", "wire_api", "requires_openai_auth")

AUTO_MODE_LINES = ('approval_policy = "never"', 'sandbox_mode = "danger-full-access"')
AUTO_MODE_KEYS = ("approval_policy", "sandbox_mode")

_HEADER_RE = re.compile(r"^\[\[?\s*([^\[\]]+?)\s*\]\]?\s*(#.*)?$")


class _ScanState(Enum):
    TOPLEVEL = "toplevel"
    IN_MODEL_PROVIDERS = "model_providers"
    IN_OTHER_SECTION = "other"


def _header_name(stripped: str) -> str | None:
    m = _HEADER_RE.match(stripped)
    if m is None:
        return None
    return m.group(1)


def _is_model_providers(name: str) -> bool:
    head = name.split(".", 1)[0].strip().strip('"').strip("'")
    return head == "model_providers"


def line_key(stripped: str) -> str | None:
    """`key = value` 行のキーを返す。コメントや値なし行は None。"""
    if not stripped or stripped.startswith("#") or "=" not in stripped:
        return None
    key = stripped.split("=", 1)[0].strip()
    if len(key) >= 2 and key[0] == key[-1] and key[0] in "\"'":
        key = key[1:-1]
    return key or None


def _trim_blank_edges(lines: list[str]) -> list[str]:
    start = 0
    end = len(lines)
    while start < end and lines[start].strip() == "":
        start += 1
    while end > start and lines[end - 1].strip() == "":
        end -= 1
    return lines[start:end]


def _toml_item(value: Any) -> Item | None:
    """JSON 由来の値を tomlkit の item にする。表現できないものは None。

    dict はインラインテーブル、list は配列にする（入れ子も同様）。
    """
    if value is None:
        return None
    if isinstance(value, (bool, int, float, str)):
        return tomlkit.item(value)
    if isinstance(value, (list, tuple)):
        array = tomlkit.array()
        for element in value:
            converted = _toml_item(element)
            if converted is not None:
                array.append(converted)
        return array
    if isinstance(value, dict):
        table = tomlkit.inline_table()
        for k, v in value.items():
            converted = _toml_item(v)
            if converted is not None:
                table.append(str(k), converted)
        return table
    return None


def format_toml_key(key: str) -> str:
    return tomlkit.key(key).as_string()


def format_toml_value(value: Any) -> str | None:
    """値をTOMLのリテラルへ。表現できないものは None（出力しない）。"""
    converted = _toml_item(value)
    if converted is None:
        return None
    return converted.as_string()


def _toml_string(value: Any) -> str:
    return tomlkit.item(str(value)).as_string()


def _format_toplevel_value(value: Any) -> str | None:
    # トップレベルにはテーブルを出さない（既存の [section] と衝突しうる）
    if isinstance(value, dict):
        return None
    return format_toml_value(value)


@dataclass
class ParsedCodexToml:
    toplevel: list[str]
    sections: list[str]


class CodexTomlMerger:
    """既存の config.toml を元に、新しい config.toml を組み立てる。"""

    def __init__(self, existing: str = "") -> None:
        self.existing = existing
        self.lines = existing.splitlines()

    def generate(
        self,
        codex_block: dict[str, Any],
        provider_key: str,
        provider_config: dict[str, Any] | None = None,
    ) -> str:
        if provider_config is None:
            providers = codex_block.get("model_providers") or {}
            if provider_key not in providers:
                raise ValidationError(f"model_providers に {provider_key} がありません")
            provider_config = providers[provider_key]

        other_lines = self._other_toplevel_lines(codex_block)
        managed = set(ALWAYS_MANAGED_KEYS) | {
            k for k in codex_block if k not in ("OPENAI_API_KEY", "model_providers")
        }
        parsed = self.parse_existing(managed)

        out: list[str] = []
        out.append(f"model = {_toml_string(str(codex_block.get('model') or DEFAULT_MODEL))}")
        out.append(f"model_provider = {_toml_string(provider_key)}")
        out.extend(other_lines)
        out.extend(self._required_defaults(other_lines + parsed.toplevel))
        out.extend(parsed.toplevel)
        out.append("")
        out.extend(self._provider_lines(provider_key, provider_config))

        if parsed.sections:
            out.append("")
            out.extend(parsed.sections)

        return "\n".join(out) + "\n"

    def parse_existing(self, managed_keys: set[str]) -> ParsedCodexToml:
        toplevel: list[str] = []
        sections: list[str] = []
        state = _ScanState.TOPLEVEL

        for line in self.lines:
            stripped = line.strip()

            name = _header_name(stripped)
            if name is not None:
                if _is_model_providers(name):
                    state = _ScanState.IN_MODEL_PROVIDERS
                    continue
                state = _ScanState.IN_OTHER_SECTION
                sections.append(line)
                continue

            if state is _ScanState.IN_MODEL_PROVIDERS:
                continue
            if state is _ScanState.IN_OTHER_SECTION:
                sections.append(line)
                continue

            key = line_key(stripped)
            if key == "OPENAI_API_KEY":
                continue
            if key is not None and key in managed_keys:
                continue
            toplevel.append(line)

        return ParsedCodexToml(
            toplevel=_trim_blank_edges(toplevel),
            sections=_trim_blank_edges(sections),
        )

    def _other_toplevel_lines(self, codex_block: dict[str, Any]) -> list[str]:
        lines = []
        for key, value in codex_block.items():
            if key in NON_TOPLEVEL_KEYS:
                continue
            formatted = _format_toplevel_value(value)
            if formatted is None:
                log.debug("skip non-scalar codex key: %s", key)
                continue
            lines.append(f"{format_toml_key(key)} = {formatted}")
        return lines

    def _required_defaults(self, existing_lines: list[str]) -> list[str]:
        defined = {line_key(line.strip()) for line in existing_lines}
        lines = []
        for key, default in REQUIRED_DEFAULTS.items():
            if key not in defined:
                lines.append(f"{key} = {format_toml_value(default)}")
        return lines

    def _provider_lines(self, provider_key: str, provider: dict[str, Any]) -> list[str]:
        base_url = provider.get("base_url")
        if not base_url:
            raise ValidationError(f"model_providers.{provider_key}.base_url がありません")

        requires_auth = provider.get("requires_openai_auth")
        if requires_auth is None:
            requires_auth = True

        lines = [
            f"[model_providers.{format_toml_key(provider_key)}]",
            f"name = {_toml_string(str(provider.get('name') or provider_key))}",
            f"base_url = {_toml_string(str(base_url))}",
            f"wire_api = {_toml_string(str(provider.get('wire_api') or DEFAULT_WIRE_API))}",
            f"requires_openai_auth = {format_toml_value(requires_auth)}",
        ]
        for key, value in provider.items():
            if key in PROVIDER_CORE_KEYS:
                continue
            formatted = format_toml_value(value)
            if formatted is None:
                continue
            lines.append(f"{format_toml_key(key)} = {formatted}")
        return lines


def merge_codex_config(existing: str, codex_block: dict[str, Any], provider_key: str) -> str:
    return CodexTomlMerger(existing).generate(codex_block, provider_key)


def build_codex_auth(api_key: str) -> dict[str, str]:
    return {"OPENAI_API_KEY": api_key}


def validate_codex_block(block: object) -> None:
    if not isinstance(block, dict):
        raise ValidationError("codex 設定がオブジェクトではありません")
    if not block.get("model"):
        raise ValidationError("codex.model がありません")
    api_key = block.get("OPENAI_API_KEY")
    if not api_key:
        raise ValidationError("codex.OPENAI_API_KEY がありません")
    if not isinstance(api_key, (str, dict)):
        raise ValidationError("codex.OPENAI_API_KEY は文字列またはオブジェクトである必要があります")
    providers = block.get("model_providers")
    if not isinstance(providers, dict) or not providers:
        raise ValidationError("codex.model_providers がありません")
    for key, provider in providers.items():
        if not isinstance(provider, dict) or not provider.get("base_url"):
            raise ValidationError(f"codex.model_providers.{key}.base_url がありません")


@dataclass
class CodexState:
    """現在の config.toml / auth.json から読み取った表示用の情報。"""

    model: str = ""
    model_provider: str = ""
    base_url: str = ""
    api_key: str = ""


def _scan_codex_lines(text: str) -> CodexState:
    st = CodexState()
    for line in text.splitlines():
        stripped = line.strip()
        key = line_key(stripped)
        if key is None:
            continue
        value = stripped.split("=", 1)[1].strip().strip('"')
        if key == "model" and not st.model:
            st.model = value
        elif key == "model_provider" and not st.model_provider:
            st.model_provider = value
        elif key == "base_url" and not st.base_url:
            st.base_url = value
    return st


def read_codex_state(toml_text: str, auth: dict[str, Any] | None = None) -> CodexState:
    """表示用に現在の Codex 設定を読む。TOMLとして壊れていれば行単位で拾う。"""
    try:
        raw = tomllib.loads(toml_text)
    except tomllib.TOMLDecodeError:
        log.warning("config.toml is not valid TOML; falling back to line scan")
        st = _scan_codex_lines(toml_text)
    else:
        st = CodexState(
            model=str(raw.get("model", "")),
            model_provider=str(raw.get("model_provider", "")),
        )
        providers = raw.get("model_providers", {}) or {}
        provider = providers.get(st.model_provider) or {}
        st.base_url = str(provider.get("base_url", ""))

    if auth:
        st.api_key = str(auth.get("OPENAI_API_KEY", "") or "")
    return st


def _toplevel_end(lines: list[str]) -> int:
    for i, line in enumerate(lines):
        if _header_name(line.strip()) is not None:
            return i
    return len(lines)


def codex_auto_mode_enabled(text: str) -> bool:
    lines = text.splitlines()
    found = {line.strip() for line in lines[: _toplevel_end(lines)]}
    return all(line in found for line in AUTO_MODE_LINES)


def enable_codex_auto_mode(text: str) -> str:
    """承認なし・サンドボックスなしの2行を先頭に置く。既存の同名キーは消す。"""
    lines = text.splitlines()
    end = _toplevel_end(lines)
    kept = [line for line in lines[:end] if line_key(line.strip()) not in AUTO_MODE_KEYS]
    out = [*AUTO_MODE_LINES, "", *kept, *lines[end:]]
    return "\n".join(out).strip() + "\n"


def disable_codex_auto_mode(text: str) -> str:
    lines = text.splitlines()
    end = _toplevel_end(lines)
    kept = [line for line in lines[:end] if line.strip() not in AUTO_MODE_LINES]
    out = [*kept, *lines[end:]]
    return "\n".join(out).strip() + "\n"
