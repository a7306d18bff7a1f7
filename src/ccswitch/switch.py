"""切替処理: サイト選択 → マージ → 原子的書き込み → 現在設定の記録。

1回の切替は最後まで同期的に走る。ファイル競合のロックはしない。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from ccswitch.claude import build_claude_settings, validate_claude_block
from ccswitch.codex import (
    CodexState,
    CodexTomlMerger,
    build_codex_auth,
    codex_auto_mode_enabled,
    disable_codex_auto_mode,
    enable_codex_auto_mode,
    read_codex_state,
    validate_codex_block,
)
from ccswitch.config import PathsConfig
from ccswitch.credentials import API_KEY_LABEL, TOKEN_LABEL, mask_secret, select_credential
from ccswitch.errors import NotFoundError, ValidationError
from ccswitch.files import atomic_write_json, atomic_write_text, read_json_object, read_text_or_empty
from ccswitch.iflow import (
    build_iflow_config,
    iflow_auto_mode_enabled,
    iflow_model,
    set_iflow_auto_mode,
    validate_iflow_block,
)
from ccswitch.store import ActiveSelection, ConfigStore, ProfileStore, record_history

log = logging.getLogger(__name__)


def select_provider(providers: object, choice: str | None = None) -> str:
    """プロバイダkeyを返す。1件なら自動選択。name でも指定できる。"""
    if not isinstance(providers, dict) or not providers:
        raise ValidationError("サービスプロバイダが設定されていません")
    if choice is None:
        if len(providers) == 1:
            return next(iter(providers))
        raise ValidationError(f"サービスプロバイダが複数あります。選択してください: {', '.join(providers)}")
    if choice in providers:
        return choice
    for key, provider in providers.items():
        if isinstance(provider, dict) and provider.get("name") == choice:
            return key
    raise NotFoundError(f"サービスプロバイダが見つかりません: {choice}")


@dataclass
class Status:
    claude: ActiveSelection | None
    codex: ActiveSelection | None
    iflow: ActiveSelection | None
    codex_files: CodexState


class Switcher:
    def __init__(self, paths: PathsConfig, store: ConfigStore | None = None) -> None:
        self.paths = paths
        self.store = store or ConfigStore(paths)

    def _tool_block(self, profiles: ProfileStore, site: str, tool: str) -> dict[str, Any]:
        block = profiles.get_site(site).get(tool)
        if not isinstance(block, dict):
            raise NotFoundError(f"サイト {site} は {tool} に対応していません")
        return block

    def _commit(self, profiles: ProfileStore, tool: str, selection: ActiveSelection) -> None:
        profiles.set_current(tool, selection)
        self.store.save(profiles)
        record_history(self.paths, tool, selection)

    def switch_claude(self, site: str, token: str | None = None) -> ActiveSelection:
        profiles = self.store.load()
        block = self._tool_block(profiles, site, "claude")
        validate_claude_block(block)

        env = block["env"]
        token_name, token_value = select_credential(env["ANTHROPIC_AUTH_TOKEN"], token, TOKEN_LABEL)

        current = read_json_object(self.paths.claude_settings, strict=True)
        merged = build_claude_settings(current, block, token_value)
        atomic_write_json(self.paths.claude_settings, merged)
        log.info("claude switched: site=%s token=%s (%s)", site, token_name, mask_secret(token_value))

        selection = ActiveSelection(
            site=site,
            site_name=site,
            token=token_value,
            token_name=token_name,
            base_url=env["ANTHROPIC_BASE_URL"],
            model=env.get("ANTHROPIC_MODEL"),
        )
        self._commit(profiles, "claude", selection)
        return selection

    def switch_codex(
        self,
        site: str,
        provider: str | None = None,
        api_key: str | None = None,
    ) -> ActiveSelection:
        profiles = self.store.load()
        block = self._tool_block(profiles, site, "codex")
        validate_codex_block(block)

        provider_key = select_provider(block["model_providers"], provider)
        provider_config = block["model_providers"][provider_key]
        key_name, key_value = select_credential(block["OPENAI_API_KEY"], api_key, API_KEY_LABEL)

        existing = read_text_or_empty(self.paths.codex_config)
        toml_text = CodexTomlMerger(existing).generate(block, provider_key, provider_config)
        atomic_write_text(self.paths.codex_config, toml_text)
        atomic_write_json(self.paths.codex_auth, build_codex_auth(key_value))
        log.info(
            "codex switched: site=%s provider=%s key=%s (%s)",
            site,
            provider_key,
            key_name,
            mask_secret(key_value),
        )

        selection = ActiveSelection(
            site=site,
            site_name=site,
            api_key=key_value,
            api_key_name=key_name,
            model=block.get("model") or "gpt-5",
            provider=provider_key,
            provider_name=provider_config.get("name") or provider_key,
            base_url=provider_config["base_url"],
        )
        self._commit(profiles, "codex", selection)
        return selection

    def switch_iflow(self, site: str) -> ActiveSelection:
        profiles = self.store.load()
        site_entry = profiles.get_site(site)
        block = self._tool_block(profiles, site, "iflow")
        validate_iflow_block(block)

        existing = read_json_object(self.paths.iflow_config)
        atomic_write_json(self.paths.iflow_config, build_iflow_config(existing, block))
        log.info("iflow switched: site=%s (%s)", site, mask_secret(block["apiKey"]))

        selection = ActiveSelection(
            site=site,
            site_name=str(site_entry.get("description") or site),
            api_key=block["apiKey"],
            base_url=block["baseUrl"],
            model=iflow_model(block),
        )
        self._commit(profiles, "iflow", selection)
        return selection

    def status(self) -> Status:
        profiles = self.store.load()
        codex_files = read_codex_state(
            read_text_or_empty(self.paths.codex_config),
            read_json_object(self.paths.codex_auth),
        )
        return Status(
            claude=profiles.current_config,
            codex=profiles.current_codex_config,
            iflow=profiles.current_iflow_config,
            codex_files=codex_files,
        )

    # 自動モード（承認なし実行）の切替
    def toggle_codex_auto_mode(self) -> bool:
        text = read_text_or_empty(self.paths.codex_config)
        enabled = codex_auto_mode_enabled(text)
        new_text = disable_codex_auto_mode(text) if enabled else enable_codex_auto_mode(text)
        atomic_write_text(self.paths.codex_config, new_text)
        log.info("codex auto mode: %s", "off" if enabled else "on")
        return not enabled

    def toggle_iflow_auto_mode(self) -> bool:
        settings = read_json_object(self.paths.iflow_config, strict=True)
        enabled = iflow_auto_mode_enabled(settings)
        atomic_write_json(self.paths.iflow_config, set_iflow_auto_mode(settings, not enabled))
        log.info("iflow auto mode: %s", "off" if enabled else "on")
        return not enabled
