"""logging の初期化。

- ファイル: `~/.cc-cli/logs/ccswitch.log`（2MB × 3 世代）
- `--verbose` のときだけ stderr にも rich で出す。通常の画面表示は cli.py の console が担当する

token / API key はログに出さない（呼び出し側で credentials.mask_secret を通す）。
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

LOG_FILE_NAME = "ccswitch.log"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_installed: list[logging.Handler] = []
_log_path: Path | None = None


def _file_handler(log_path: Path) -> logging.Handler:
    handler = RotatingFileHandler(log_path, maxBytes=2_000_000, backupCount=3, encoding="utf-8")
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def setup_logging(*, log_dir: Path, level: str = "INFO", verbose: bool = False) -> Path:
    """ルートロガーを設定してログファイルのパスを返す。

    2回目以降は何もせず、最初に設定したファイルのパスを返す。
    """
    global _log_path
    if _installed and _log_path is not None:
        return _log_path

    log_path = log_dir / LOG_FILE_NAME
    log_dir.mkdir(parents=True, exist_ok=True)
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    _installed.append(_file_handler(log_path))
    if verbose:
        _installed.append(RichHandler(console=Console(stderr=True), show_path=False))
    for handler in _installed:
        root_logger.addHandler(handler)
    _log_path = log_path

    # requests 経由の接続ログは多すぎる
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    return log_path
