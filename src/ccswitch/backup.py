"""ローカルバックアップ/リストア。

- `~/.cc-cli/backups/api_configs_<ts>.json`: ストア単体（新しい順に keep 件保持）
- `~/.cc-cli/backups/full_backup_<ts>/`: ccswitch / Claude / Codex の設定一式（keep_full 件保持）

```
full_backup_2026-01-01_12-00-00/
  cc-cli/api_configs.json
  claude/settings.json, CLAUDE.md, agents/, commands/
  codex/config.toml, auth.json, AGENTS.md
```
"""

from __future__ import annotations

import json
import logging
import shutil
import time
from dataclasses import dataclass, field
from pathlib import Path

from ccswitch.config import PathsConfig
from ccswitch.errors import BackupError, NotFoundError
from ccswitch.files import atomic_write_text

log = logging.getLogger(__name__)

BACKUP_PREFIX = "api_configs_"
FULL_BACKUP_PREFIX = "full_backup_"


@dataclass
class BackupEntry:
    name: str
    path: Path
    size: int
    mtime: float


@dataclass
class BackupResult:
    timestamp: str
    backup_dir: Path
    files: list[str] = field(default_factory=list)


def backup_timestamp() -> str:
    return time.strftime("%Y-%m-%d_%H-%M-%S")


def _unique(path: Path) -> Path:
    # 同じ秒に2回取った場合の衝突回避
    if not path.exists():
        return path
    i = 1
    while True:
        candidate = path.with_name(f"{path.stem}_{i}{path.suffix}")
        if not candidate.exists():
            return candidate
        i += 1


def _sorted_entries(paths: PathsConfig, *, full: bool) -> list[BackupEntry]:
    root = paths.backups_dir
    if not root.exists():
        return []
    entries = []
    for p in root.iterdir():
        if full:
            if not (p.is_dir() and p.name.startswith(FULL_BACKUP_PREFIX)):
                continue
            size = sum(f.stat().st_size for f in p.rglob("*") if f.is_file())
        else:
            if not (p.is_file() and p.name.startswith(BACKUP_PREFIX) and p.suffix == ".json"):
                continue
            size = p.stat().st_size
        entries.append(BackupEntry(name=p.name, path=p, size=size, mtime=p.stat().st_mtime))
    # 名前にタイムスタンプが入っているので名前順 = 作成順
    entries.sort(key=lambda e: e.name, reverse=True)
    return entries


def list_backups(paths: PathsConfig) -> list[BackupEntry]:
    return _sorted_entries(paths, full=False)


def list_full_backups(paths: PathsConfig) -> list[BackupEntry]:
    return _sorted_entries(paths, full=True)


def _prune(entries: list[BackupEntry], keep: int) -> None:
    for e in entries[keep:]:
        try:
            if e.path.is_dir():
                shutil.rmtree(e.path)
            else:
                e.path.unlink()
            log.info("pruned old backup: %s", e.name)
        except OSError as err:
            log.warning("failed to prune backup %s: %s", e.name, err)


def create_backup(paths: PathsConfig, *, keep: int = 5) -> Path:
    if not paths.api_configs.exists():
        raise NotFoundError("設定ファイルが存在しないためバックアップできません")
    paths.backups_dir.mkdir(parents=True, exist_ok=True)
    dest = _unique(paths.backups_dir / f"{BACKUP_PREFIX}{backup_timestamp()}.json")
    shutil.copyfile(paths.api_configs, dest)
    log.info("backup created: %s", dest)
    _prune(list_backups(paths), keep)
    return dest


def _full_backup_sources(paths: PathsConfig) -> dict[str, list[tuple[str, Path]]]:
    return {
        "cc-cli": [("api_configs.json", paths.api_configs)],
        "claude": [
            ("settings.json", paths.claude_settings),
            ("CLAUDE.md", paths.claude_dir / "CLAUDE.md"),
            ("agents", paths.claude_dir / "agents"),
            ("commands", paths.claude_dir / "commands"),
        ],
        "codex": [
            ("config.toml", paths.codex_config),
            ("auth.json", paths.codex_auth),
            ("AGENTS.md", paths.codex_dir / "AGENTS.md"),
        ],
    }


def _categories(include_cc_cli: bool, include_claude: bool, include_codex: bool) -> list[str]:
    cats = []
    if include_cc_cli:
        cats.append("cc-cli")
    if include_claude:
        cats.append("claude")
    if include_codex:
        cats.append("codex")
    return cats


def create_full_backup(
    paths: PathsConfig,
    *,
    include_cc_cli: bool = True,
    include_claude: bool = True,
    include_codex: bool = True,
    keep: int = 3,
) -> BackupResult:
    ts = backup_timestamp()
    backup_dir = _unique(paths.backups_dir / f"{FULL_BACKUP_PREFIX}{ts}")
    backup_dir.mkdir(parents=True)
    result = BackupResult(timestamp=ts, backup_dir=backup_dir)

    sources = _full_backup_sources(paths)
    for cat in _categories(include_cc_cli, include_claude, include_codex):
        for name, src in sources[cat]:
            if not src.exists():
                continue
            dest = backup_dir / cat / name
            dest.parent.mkdir(parents=True, exist_ok=True)
            if src.is_dir():
                shutil.copytree(src, dest)
                result.files.append(f"{cat}: {name}/")
            else:
                shutil.copy2(src, dest)
                result.files.append(f"{cat}: {name}")

    log.info("full backup created: %s (%d items)", backup_dir, len(result.files))
    _prune(list_full_backups(paths), keep)
    return result


def restore_backup(paths: PathsConfig, backup_path: Path, *, keep: int = 5) -> Path | None:
    """バックアップからストアを戻す。戻す前に現在のストアをバックアップする。

    戻り値は退避したバックアップのパス（現在のストアがなければ None）。
    """
    if not backup_path.exists():
        raise NotFoundError(f"バックアップが存在しません: {backup_path}")
    return restore_store_text(paths, backup_path.read_text(encoding="utf-8"), str(backup_path), keep=keep)


def restore_store_text(paths: PathsConfig, text: str, source: str, *, keep: int = 5) -> Path | None:
    """ストアの中身（JSON文字列）を検証してから書き戻す。WebDAV からの復元でも使う。"""
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        raise BackupError(f"バックアップが壊れています: {source} ({e})") from e
    if not isinstance(raw, dict) or not isinstance(raw.get("sites"), dict):
        raise BackupError(f"バックアップに sites がありません: {source}")

    saved = create_backup(paths, keep=keep) if paths.api_configs.exists() else None
    atomic_write_text(paths.api_configs, text)
    log.info("restored profile store from %s", source)
    return saved


def restore_full_backup(
    paths: PathsConfig,
    backup_dir: Path,
    *,
    include_cc_cli: bool = True,
    include_claude: bool = True,
    include_codex: bool = True,
) -> list[str]:
    if not backup_dir.is_dir():
        raise NotFoundError(f"バックアップが存在しません: {backup_dir}")

    restored: list[str] = []
    sources = _full_backup_sources(paths)
    for cat in _categories(include_cc_cli, include_claude, include_codex):
        for name, dest in sources[cat]:
            src = backup_dir / cat / name
            if not src.exists():
                continue
            dest.parent.mkdir(parents=True, exist_ok=True)
            if src.is_dir():
                shutil.copytree(src, dest, dirs_exist_ok=True)
                restored.append(f"{cat}: {name}/")
            else:
                atomic_write_text(dest, src.read_text(encoding="utf-8"))
                restored.append(f"{cat}: {name}")
    log.info("full backup restored from %s (%d items)", backup_dir, len(restored))
    return restored
