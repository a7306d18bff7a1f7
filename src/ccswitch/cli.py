"""ccswitch CLI エントリポイント。"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import typer
from rich.console import Console

from ccswitch import __version__
from ccswitch.backup import (
    BACKUP_PREFIX,
    backup_timestamp,
    create_backup,
    create_full_backup,
    list_backups,
    list_full_backups,
    restore_backup,
    restore_full_backup,
    restore_store_text,
)
from ccswitch.config import AppConfig, load_app_config
from ccswitch.credentials import (
    API_KEY_LABEL,
    TOKEN_LABEL,
    mask_secret,
    normalize_credentials,
)
from ccswitch.display import TOOL_EMOJI, selection_lines, site_label, sites_table
from ccswitch.errors import CcSwitchError, NotFoundError, ValidationError
from ccswitch.logging_setup import setup_logging
from ccswitch.sites import (
    add_credential,
    delete_credential,
    delete_provider,
    delete_tool_block,
    merge_site_block,
)
from ccswitch.store import TOOLS, ConfigStore, ProfileStore, load_history
from ccswitch.switch import Switcher
from ccswitch.webdav import WebDAVClient, WebDAVConfig, load_webdav_config, save_webdav_config

APP_HELP = "🔀 Claude Code / Codex / iFlow の API 設定を切り替える CLI"

app = typer.Typer(add_completion=False, help=APP_HELP)
claude_app = typer.Typer(add_completion=False, help="Claude Code の設定")
codex_app = typer.Typer(add_completion=False, help="Codex の設定")
iflow_app = typer.Typer(add_completion=False, help="iFlow の設定")
backup_app = typer.Typer(add_completion=False, help="バックアップ/リストア")
app.add_typer(claude_app, name="claude")
app.add_typer(codex_app, name="codex")
app.add_typer(iflow_app, name="iflow")
app.add_typer(backup_app, name="backup")

console = Console()
log = logging.getLogger(__name__)


@contextmanager
def _guard() -> Iterator[None]:
    """ライブラリ側の例外を赤字1行 + 終了コード1 にする。"""
    try:
        yield
    except CcSwitchError as e:
        log.error("%s: %s", type(e).__name__, e)
        console.print(f"❌ {e}", style="red")
        raise typer.Exit(code=1) from e


def _cfg(ctx: typer.Context) -> AppConfig:
    return ctx.find_root().obj


def _choose(title: str, options: list[tuple[str, str]]) -> str:
    """番号で選ばせる。選択肢が1つなら聞かずに返す。

    options は (値, 表示名) のリスト。
    """
    if not options:
        raise NotFoundError(f"{title}: 選択肢がありません")
    if len(options) == 1:
        return options[0][0]

    console.print(f"\n{title}", style="bold cyan")
    for i, (_, label) in enumerate(options, start=1):
        console.print(f"  {i}. {label}")
    n = typer.prompt("番号を選択", type=int)
    if not 1 <= n <= len(options):
        raise ValidationError(f"番号が範囲外です: {n}")
    return options[n - 1][0]


def _open_store(cfg: AppConfig) -> ConfigStore:
    store = ConfigStore(cfg.paths)
    if not store.exists():
        store.initialize()
        console.print(f"📁 設定ファイルを作成しました: {store.path}", style="yellow")
    return store


def _save_with_backup(cfg: AppConfig, store: ConfigStore, profiles: ProfileStore) -> None:
    if store.exists():
        create_backup(cfg.paths, keep=cfg.backup.keep)
    store.save(profiles)


def _choose_site(profiles: ProfileStore, tool: str, site: str | None) -> str:
    if site is not None:
        return site
    candidates = profiles.sites_for(tool)
    if not candidates:
        raise NotFoundError(f"{tool} に対応したサイトがありません。`ccswitch {tool} add` で追加してください")
    return _choose("サイトを選択", [(k, site_label(k, v)) for k, v in candidates.items()])


def _choose_credential(raw: Any, label: str, choice: str | None) -> str | None:
    if choice is not None or raw is None:
        return choice
    creds = normalize_credentials(raw, label)
    return _choose(f"{label} を選択", [(name, f"{name} ({mask_secret(v)})") for name, v in creds.items()])


def _confirm(message: str, yes: bool) -> None:
    if not yes and not typer.confirm(message, default=False):
        console.print("中止しました", style="yellow")
        raise typer.Exit(code=0)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"ccswitch {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    config: Path | None = typer.Option(None, "--config", help="ccswitch.toml のパス"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="ログを stderr にも出す"),
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="バージョンを表示"
    ),
) -> None:
    with _guard():
        try:
            cfg = load_app_config(config)
        except ValueError as e:
            # tomllib.TOMLDecodeError も ValueError
            raise ValidationError(f"ccswitch.toml を読み込めません: {e}") from e
    setup_logging(log_dir=cfg.paths.log_dir, level=cfg.log_level, verbose=verbose)
    ctx.obj = cfg


@app.command()
def init(
    ctx: typer.Context,
    force: bool = typer.Option(False, "--force", help="既存の設定ファイルを作り直す"),
) -> None:
    """既存の Claude / Codex 設定を取り込んで設定ファイルを作る。"""
    cfg = _cfg(ctx)
    store = ConfigStore(cfg.paths)
    with _guard():
        if store.exists():
            if not force:
                console.print(f"設定ファイルは既にあります: {store.path}", style="yellow")
                return
            saved = create_backup(cfg.paths, keep=cfg.backup.keep)
            console.print(f"💾 バックアップ: {saved}", style="dim")
        profiles = store.initialize()
    console.print(f"✅ 作成しました: {store.path}", style="green")
    for key, site in profiles.sites.items():
        console.print(f"  {site_label(key, site)}")


@app.command("list")
def list_sites(ctx: typer.Context) -> None:
    """登録済みのサイトを表示する。"""
    cfg = _cfg(ctx)
    with _guard():
        profiles = _open_store(cfg).load()
    if not profiles.sites:
        console.print("(サイトがありません)")
        return
    console.print(sites_table(profiles))


@app.command()
def status(ctx: typer.Context) -> None:
    """各ツールで使用中の設定を表示する。"""
    cfg = _cfg(ctx)
    with _guard():
        st = Switcher(cfg.paths, _open_store(cfg)).status()

    console.print("📊 現在の設定", style="bold cyan")
    for tool in TOOLS:
        for line in selection_lines(tool, getattr(st, tool)):
            console.print(f"  {line}")

    files = st.codex_files
    if files.model or files.base_url:
        console.print(f"\n  {cfg.paths.codex_config}:", style="dim")
        console.print(f"   model={files.model} provider={files.model_provider} base_url={files.base_url}", style="dim")
        if files.api_key:
            console.print(f"   OPENAI_API_KEY={mask_secret(files.api_key)}", style="dim")


@app.command()
def history(ctx: typer.Context) -> None:
    """切替履歴（新しい順）。"""
    entries = load_history(_cfg(ctx).paths)
    if not entries:
        console.print("(履歴はありません)")
        return
    for h in entries:
        tool = str(h.get("tool", "?"))
        cred = h.get("tokenName") or h.get("apiKeyName") or ""
        extra = f" / {cred}" if cred else ""
        console.print(f"- {h.get('updatedAt', '')} {TOOL_EMOJI.get(tool, '')} {tool}: {h.get('site')}{extra}")


# ---- claude ----


@claude_app.command("switch")
def claude_switch(
    ctx: typer.Context,
    site: str | None = typer.Option(None, "--site", help="サイト名"),
    token: str | None = typer.Option(None, "--token", help="Token の名前または値"),
) -> None:
    """Claude Code の settings.json を切り替える。"""
    cfg = _cfg(ctx)
    with _guard():
        store = _open_store(cfg)
        profiles = store.load()
        site = _choose_site(profiles, "claude", site)
        block = profiles.get_site(site).get("claude") or {}
        token = _choose_credential((block.get("env") or {}).get("ANTHROPIC_AUTH_TOKEN"), TOKEN_LABEL, token)
        sel = Switcher(cfg.paths, store).switch_claude(site, token)
    console.print(f"✅ Claude Code を {sel.site} / {sel.token_name} に切り替えました", style="green")
    console.print(f"   {cfg.paths.claude_settings}", style="dim")


@claude_app.command("add")
def claude_add(
    ctx: typer.Context,
    site: str = typer.Argument(..., help="サイト名"),
    base_url: str = typer.Option(..., "--base-url", prompt=True, help="ANTHROPIC_BASE_URL"),
    token: str = typer.Option(..., "--token", prompt=True, hide_input=True, help="ANTHROPIC_AUTH_TOKEN"),
    name: str | None = typer.Option(None, "--name", help="Token の名前"),
    model: str | None = typer.Option(None, "--model", help="ANTHROPIC_MODEL"),
) -> None:
    """サイトを追加する。既存サイトなら Token を追加する。"""
    cfg = _cfg(ctx)
    with _guard():
        store = _open_store(cfg)
        profiles = store.load()
        existing = profiles.sites.get(site, {}).get("claude")
        if isinstance(existing, dict):
            tokens = normalize_credentials((existing.get("env") or {}).get("ANTHROPIC_AUTH_TOKEN") or {}, TOKEN_LABEL)
            add_credential(profiles, site, "claude", name or f"{TOKEN_LABEL}{len(tokens) + 1}", token)
            message = f"✅ {site} に Token を追加しました"
        else:
            env: dict[str, Any] = {
                "ANTHROPIC_BASE_URL": base_url,
                "ANTHROPIC_AUTH_TOKEN": {name: token} if name else token,
            }
            if model:
                env["ANTHROPIC_MODEL"] = model
            merge_site_block(profiles, site, "claude", {"env": env})
            message = f"✅ サイトを追加しました: {site}"
        _save_with_backup(cfg, store, profiles)
    console.print(message, style="green")


@claude_app.command("delete")
def claude_delete(
    ctx: typer.Context,
    site: str = typer.Argument(..., help="サイト名"),
    token: str | None = typer.Option(None, "--token", help="削除する Token の名前（省略時は claude 設定ごと）"),
    yes: bool = typer.Option(False, "--yes", "-y", help="確認しない"),
) -> None:
    """Claude 設定（または Token 1件）を削除する。"""
    _delete(ctx, site, "claude", credential=token, provider=None, yes=yes)


# ---- codex ----


@codex_app.command("switch")
def codex_switch(
    ctx: typer.Context,
    site: str | None = typer.Option(None, "--site", help="サイト名"),
    provider: str | None = typer.Option(None, "--provider", help="サービスプロバイダの key または name"),
    api_key: str | None = typer.Option(None, "--api-key", help="API Key の名前または値"),
) -> None:
    """Codex の config.toml / auth.json を切り替える。"""
    cfg = _cfg(ctx)
    with _guard():
        store = _open_store(cfg)
        profiles = store.load()
        site = _choose_site(profiles, "codex", site)
        block = profiles.get_site(site).get("codex") or {}
        if provider is None:
            providers = block.get("model_providers") or {}
            if isinstance(providers, dict) and providers:
                provider = _choose(
                    "サービスプロバイダを選択",
                    [(k, f"{(p or {}).get('name') or k} ({(p or {}).get('base_url', '')})") for k, p in providers.items()],
                )
        api_key = _choose_credential(block.get("OPENAI_API_KEY"), API_KEY_LABEL, api_key)
        sel = Switcher(cfg.paths, store).switch_codex(site, provider, api_key)
    console.print(
        f"✅ Codex を {sel.site} / {sel.provider_name} / {sel.api_key_name} に切り替えました",
        style="green",
    )
    console.print(f"   {cfg.paths.codex_config}", style="dim")


@codex_app.command("add")
def codex_add(
    ctx: typer.Context,
    site: str = typer.Argument(..., help="サイト名"),
    base_url: str = typer.Option(..., "--base-url", prompt=True, help="プロバイダの base_url"),
    api_key: str = typer.Option(..., "--api-key", prompt=True, hide_input=True, help="OPENAI_API_KEY"),
    provider: str | None = typer.Option(None, "--provider", help="プロバイダ key（省略時はサイト名）"),
    name: str | None = typer.Option(None, "--name", help="API Key の名前"),
    model: str = typer.Option("gpt-5", "--model", help="model"),
) -> None:
    """サイトを追加する。既存サイトならプロバイダ / API Key を追加する。"""
    cfg = _cfg(ctx)
    provider = provider or site
    with _guard():
        store = _open_store(cfg)
        profiles = store.load()
        existing = profiles.sites.get(site, {}).get("codex")
        if isinstance(existing, dict):
            providers = existing.setdefault("model_providers", {})
            if provider in providers:
                raise ValidationError(f"サービスプロバイダは既に存在します: {provider}")
            providers[provider] = {"name": provider, "base_url": base_url}
            keys = normalize_credentials(existing.get("OPENAI_API_KEY") or {}, API_KEY_LABEL)
            if api_key not in keys.values():
                add_credential(profiles, site, "codex", name or f"{provider} key", api_key)
            merge_site_block(profiles, site, "codex", existing)
            message = f"✅ {site} にサービスプロバイダ {provider} を追加しました"
        else:
            block = {
                "model": model,
                "OPENAI_API_KEY": {name: api_key} if name else api_key,
                "model_providers": {provider: {"name": provider, "base_url": base_url}},
            }
            merge_site_block(profiles, site, "codex", block)
            message = f"✅ サイトを追加しました: {site}"
        _save_with_backup(cfg, store, profiles)
    console.print(message, style="green")


@codex_app.command("delete")
def codex_delete(
    ctx: typer.Context,
    site: str = typer.Argument(..., help="サイト名"),
    api_key: str | None = typer.Option(None, "--api-key", help="削除する API Key の名前"),
    provider: str | None = typer.Option(None, "--provider", help="削除するプロバイダ key"),
    yes: bool = typer.Option(False, "--yes", "-y", help="確認しない"),
) -> None:
    """Codex 設定（または API Key / プロバイダ 1件）を削除する。"""
    _delete(ctx, site, "codex", credential=api_key, provider=provider, yes=yes)


@codex_app.command("auto")
def codex_auto(ctx: typer.Context) -> None:
    """承認なし実行（approval_policy=never）の ON/OFF を切り替える。"""
    cfg = _cfg(ctx)
    with _guard():
        enabled = Switcher(cfg.paths).toggle_codex_auto_mode()
    _print_auto(enabled, "Codex")


# ---- iflow ----


@iflow_app.command("switch")
def iflow_switch(
    ctx: typer.Context,
    site: str | None = typer.Option(None, "--site", help="サイト名"),
) -> None:
    """iFlow の settings.json を切り替える。"""
    cfg = _cfg(ctx)
    with _guard():
        store = _open_store(cfg)
        site = _choose_site(store.load(), "iflow", site)
        sel = Switcher(cfg.paths, store).switch_iflow(site)
    console.print(f"✅ iFlow を {sel.site_name} ({sel.model}) に切り替えました", style="green")
    console.print(f"   {cfg.paths.iflow_config}", style="dim")


@iflow_app.command("add")
def iflow_add(
    ctx: typer.Context,
    site: str = typer.Argument(..., help="サイト名"),
    base_url: str = typer.Option(..., "--base-url", prompt=True, help="baseUrl"),
    api_key: str = typer.Option(..., "--api-key", prompt=True, hide_input=True, help="apiKey"),
    model: str | None = typer.Option(None, "--model", help="modelName"),
) -> None:
    """サイトに iFlow 設定を追加/置換する。"""
    cfg = _cfg(ctx)
    block: dict[str, Any] = {"baseUrl": base_url, "apiKey": api_key}
    if model:
        block["modelName"] = model
    with _guard():
        store = _open_store(cfg)
        profiles = store.load()
        merge_site_block(profiles, site, "iflow", block)
        _save_with_backup(cfg, store, profiles)
    console.print(f"✅ {site} に iFlow 設定を保存しました", style="green")


@iflow_app.command("delete")
def iflow_delete(
    ctx: typer.Context,
    site: str = typer.Argument(..., help="サイト名"),
    yes: bool = typer.Option(False, "--yes", "-y", help="確認しない"),
) -> None:
    """iFlow 設定を削除する。"""
    _delete(ctx, site, "iflow", credential=None, provider=None, yes=yes)


@iflow_app.command("auto")
def iflow_auto(ctx: typer.Context) -> None:
    """iFlow の autoMode / autoApproval を切り替える。"""
    cfg = _cfg(ctx)
    with _guard():
        enabled = Switcher(cfg.paths).toggle_iflow_auto_mode()
    _print_auto(enabled, "iFlow")


def _print_auto(enabled: bool, name: str) -> None:
    if enabled:
        console.print(f"⚡ {name} 自動モード: ON（確認なしで実行されます）", style="yellow")
    else:
        console.print(f"🛡️  {name} 自動モード: OFF", style="green")


def _delete(
    ctx: typer.Context,
    site: str,
    tool: str,
    *,
    credential: str | None,
    provider: str | None,
    yes: bool,
) -> None:
    cfg = _cfg(ctx)
    with _guard():
        store = _open_store(cfg)
        profiles = store.load()
        profiles.get_site(site)
        if credential is not None:
            _confirm(f"{site} の {tool} 認証情報 {credential} を削除しますか?", yes)
            delete_credential(profiles, site, tool, credential)
            message = f"✅ 認証情報を削除しました: {credential}"
        elif provider is not None:
            _confirm(f"{site} のサービスプロバイダ {provider} を削除しますか?", yes)
            delete_provider(profiles, site, provider)
            message = f"✅ サービスプロバイダを削除しました: {provider}"
        else:
            _confirm(f"{site} の {tool} 設定を削除しますか?", yes)
            removed_site = delete_tool_block(profiles, site, tool)
            message = f"✅ サイトを削除しました: {site}" if removed_site else f"✅ {site} の {tool} 設定を削除しました"
        _save_with_backup(cfg, store, profiles)
    console.print(message, style="green")


# ---- backup ----


@backup_app.command("create")
def backup_create(
    ctx: typer.Context,
    full: bool = typer.Option(False, "--full", help="Claude / Codex の設定もまとめて取る"),
    cc_cli: bool = typer.Option(True, "--cc-cli/--no-cc-cli", help="api_configs.json を含める（--full）"),
    claude: bool = typer.Option(True, "--claude/--no-claude", help="~/.claude を含める（--full）"),
    codex: bool = typer.Option(True, "--codex/--no-codex", help="~/.codex を含める（--full）"),
) -> None:
    """バックアップを作成する。"""
    cfg = _cfg(ctx)
    with _guard():
        if full:
            result = create_full_backup(
                cfg.paths,
                include_cc_cli=cc_cli,
                include_claude=claude,
                include_codex=codex,
                keep=cfg.backup.keep_full,
            )
            console.print(f"💾 {result.backup_dir}", style="green")
            for f in result.files:
                console.print(f"  - {f}", style="dim")
        else:
            dest = create_backup(cfg.paths, keep=cfg.backup.keep)
            console.print(f"💾 {dest}", style="green")


@backup_app.command("list")
def backup_list(
    ctx: typer.Context,
    full: bool = typer.Option(False, "--full", help="完全バックアップを表示"),
) -> None:
    """ローカルのバックアップ一覧（新しい順）。"""
    paths = _cfg(ctx).paths
    entries = list_full_backups(paths) if full else list_backups(paths)
    if not entries:
        console.print("(バックアップはありません)")
        return
    for e in entries:
        console.print(f"- {e.name} ({e.size} bytes)")


@backup_app.command("restore")
def backup_restore(
    ctx: typer.Context,
    name: str | None = typer.Argument(None, help="バックアップ名（省略時は選択）"),
    full: bool = typer.Option(False, "--full", help="完全バックアップから戻す"),
    yes: bool = typer.Option(False, "--yes", "-y", help="確認しない"),
) -> None:
    """バックアップから戻す。"""
    cfg = _cfg(ctx)
    with _guard():
        entries = list_full_backups(cfg.paths) if full else list_backups(cfg.paths)
        if name is None:
            name = _choose("バックアップを選択", [(e.name, e.name) for e in entries])
        target = cfg.paths.backups_dir / name
        _confirm(f"{name} から戻しますか? 現在の設定は上書きされます", yes)
        if full:
            for item in restore_full_backup(cfg.paths, target):
                console.print(f"  - {item}", style="dim")
        else:
            saved = restore_backup(cfg.paths, target, keep=cfg.backup.keep)
            if saved is not None:
                console.print(f"💾 現在の設定を退避: {saved}", style="dim")
    console.print(f"✅ {name} から戻しました", style="green")


@backup_app.command("webdav-setup")
def webdav_setup(
    ctx: typer.Context,
    url: str = typer.Option(..., "--url", prompt=True, help="WebDAV URL"),
    username: str = typer.Option(..., "--username", prompt=True, help="ユーザー名"),
    password: str = typer.Option(..., "--password", prompt=True, hide_input=True, help="パスワード"),
) -> None:
    """WebDAV の接続先を保存する（接続確認つき）。"""
    cfg = _cfg(ctx)
    webdav = WebDAVConfig(url=url, username=username, password=password)
    with _guard():
        if not WebDAVClient(webdav).test_connection():
            raise ValidationError(f"WebDAV に接続できません: {url}")
        save_webdav_config(cfg.paths.webdav_config, webdav)
    console.print(f"✅ WebDAV 設定を保存しました: {cfg.paths.webdav_config}", style="green")


def _webdav_client(cfg: AppConfig) -> WebDAVClient:
    return WebDAVClient(load_webdav_config(cfg.paths.webdav_config))


@backup_app.command("webdav-upload")
def webdav_upload(ctx: typer.Context) -> None:
    """api_configs.json を WebDAV に上げる。"""
    cfg = _cfg(ctx)
    with _guard():
        if not cfg.paths.api_configs.exists():
            raise NotFoundError(f"API設定ファイルが存在しません: {cfg.paths.api_configs}")
        data = cfg.paths.api_configs.read_text(encoding="utf-8")
        remote = _webdav_client(cfg).upload(f"{BACKUP_PREFIX}{backup_timestamp()}.json", data)
    console.print(f"☁️  アップロードしました: {remote}", style="green")


@backup_app.command("webdav-list")
def webdav_list(ctx: typer.Context) -> None:
    """WebDAV 上のバックアップ一覧。"""
    with _guard():
        backups = _webdav_client(_cfg(ctx)).list_backups()
    if not backups:
        console.print("(バックアップはありません)")
        return
    for b in backups:
        console.print(f"- {b.name} ({b.size} bytes) {b.last_modified}")


@backup_app.command("webdav-restore")
def webdav_restore(
    ctx: typer.Context,
    name: str | None = typer.Argument(None, help="バックアップ名（省略時は選択）"),
    yes: bool = typer.Option(False, "--yes", "-y", help="確認しない"),
) -> None:
    """WebDAV 上のバックアップから api_configs.json を戻す。"""
    cfg = _cfg(ctx)
    with _guard():
        client = _webdav_client(cfg)
        backups = {b.name: b for b in client.list_backups()}
        if name is None:
            name = _choose("バックアップを選択", [(n, n) for n in backups])
        if name not in backups:
            raise NotFoundError(f"バックアップが見つかりません: {name}")
        _confirm(f"{name} から戻しますか? 現在の設定は上書きされます", yes)
        text = client.download(backups[name].path)
        restore_store_text(cfg.paths, text, f"webdav:{name}", keep=cfg.backup.keep)
    console.print(f"✅ {name} から戻しました", style="green")


@backup_app.command("webdav-delete")
def webdav_delete(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="バックアップ名"),
    yes: bool = typer.Option(False, "--yes", "-y", help="確認しない"),
) -> None:
    """WebDAV 上のバックアップを削除する。"""
    cfg = _cfg(ctx)
    with _guard():
        client = _webdav_client(cfg)
        backups = {b.name: b for b in client.list_backups()}
        if name not in backups:
            raise NotFoundError(f"バックアップが見つかりません: {name}")
        _confirm(f"{name} を削除しますか?", yes)
        client.delete(backups[name].path)
    console.print(f"🗑️  削除しました: {name}", style="green")
