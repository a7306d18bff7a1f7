"""パスと動作設定。

各ツールの設定ファイルの場所は `PathsConfig` にまとめ、各コンポーネントへ明示的に渡す。

設定ファイル: `~/.cc-cli/ccswitch.toml`（任意）

```toml
[paths]
claude_dir = "~/.claude"
codex_dir = "~/.codex"
iflow_dir = "~/.iflow"

[logging]
level = "INFO"

[backup]
keep = 5
keep_full = 3
```

環境変数 `CCSWITCH_HOME` があればホームディレクトリとして扱う（テスト/サンドボックス用）。
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

try:
    import tomllib
except ModuleNotFoundError:  # Python < 3.11
    import tomli as tomllib  # type: ignore[no-redef]


HOME_ENV = "CCSWITCH_HOME"
APP_CONFIG_NAME = "ccswitch.toml"


@dataclass(frozen=True)
class PathsConfig:
    home: Path
    claude_dir: Path
    codex_dir: Path
    iflow_dir: Path
    cc_cli_dir: Path

    @classmethod
    def from_home(cls, home: Path) -> PathsConfig:
        return cls(
            home=home,
            claude_dir=home / ".claude",
            codex_dir=home / ".codex",
            iflow_dir=home / ".iflow",
            cc_cli_dir=home / ".cc-cli",
        )

    # Claude Code
    @property
    def claude_settings(self) -> Path:
        return self.claude_dir / "settings.json"

    # Codex
    @property
    def codex_config(self) -> Path:
        return self.codex_dir / "config.toml"

    @property
    def codex_auth(self) -> Path:
        return self.codex_dir / "auth.json"

    # iFlow
    @property
    def iflow_config(self) -> Path:
        return self.iflow_dir / "settings.json"

    # ccswitch 自身
    @property
    def api_configs(self) -> Path:
        return self.cc_cli_dir / "api_configs.json"

    @property
    def backups_dir(self) -> Path:
        return self.cc_cli_dir / "backups"

    @property
    def history_file(self) -> Path:
        return self.cc_cli_dir / "history.json"

    @property
    def webdav_config(self) -> Path:
        return self.cc_cli_dir / "webdav.json"

    @property
    def log_dir(self) -> Path:
        return self.cc_cli_dir / "logs"

    @property
    def app_config(self) -> Path:
        return self.cc_cli_dir / APP_CONFIG_NAME


@dataclass
class BackupPolicy:
    keep: int = 5  # api_configs_*.json の保持数
    keep_full: int = 3  # full_backup_* の保持数


@dataclass
class AppConfig:
    paths: PathsConfig
    log_level: str = "INFO"
    backup: BackupPolicy = field(default_factory=BackupPolicy)


def default_home() -> Path:
    env = os.environ.get(HOME_ENV, "").strip()
    if env:
        return Path(env).expanduser()
    return Path.home()


def _resolve_dir(raw: object, fallback: Path, home: Path) -> Path:
    if not raw:
        return fallback
    s = str(raw)
    if s.startswith("~"):
        s = str(home) + s[1:]
    return Path(s)


def load_app_config(path: Path | None = None, *, home: Path | None = None) -> AppConfig:
    """ccswitch.toml を読み込む。なければデフォルト。"""
    if home is None:
        home = default_home()
    base = PathsConfig.from_home(home)
    if path is None:
        path = base.app_config
    if not path.exists():
        return AppConfig(paths=base)

    raw = tomllib.loads(path.read_text(encoding="utf-8"))
    paths = raw.get("paths", {}) or {}
    logging_cfg = raw.get("logging", {}) or {}
    backup = raw.get("backup", {}) or {}

    return AppConfig(
        paths=PathsConfig(
            home=home,
            claude_dir=_resolve_dir(paths.get("claude_dir"), base.claude_dir, home),
            codex_dir=_resolve_dir(paths.get("codex_dir"), base.codex_dir, home),
            iflow_dir=_resolve_dir(paths.get("iflow_dir"), base.iflow_dir, home),
            cc_cli_dir=_resolve_dir(paths.get("cc_cli_dir"), base.cc_cli_dir, home),
        ),
        log_level=str(logging_cfg.get("level", "INFO")),
        backup=BackupPolicy(
            keep=int(backup.get("keep", 5)),
            keep_full=int(backup.get("keep_full", 3)),
        ),
    )
