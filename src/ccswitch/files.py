"""設定ファイルの読み書き補助。

書き込みは同一ディレクトリの一時ファイル → `os.replace` で行い、
途中で中断されても書きかけのファイルを残さない。
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from ccswitch.errors import ParseError

log = logging.getLogger(__name__)


def atomic_write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


def dump_json(data: Any) -> str:
    return json.dumps(data, ensure_ascii=False, indent=2) + "\n"


def atomic_write_json(path: Path, data: Any) -> None:
    atomic_write_text(path, dump_json(data))


def read_text_or_empty(path: Path) -> str:
    if not path.exists():
        return ""
    return path.read_text(encoding="utf-8")


def read_json_object(path: Path, *, strict: bool = False) -> dict[str, Any]:
    """JSONオブジェクトを読む。存在しない場合は空dict。

    壊れている場合、strict=False なら空dictで続行し、strict=True なら ParseError。
    """
    if not path.exists():
        return {}
    text = path.read_text(encoding="utf-8")
    if text.strip() == "":
        return {}
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        if strict:
            raise ParseError(f"JSONとして解釈できません: {path} ({e})") from e
        log.warning("invalid JSON, starting from empty object: %s", path)
        return {}
    if not isinstance(raw, dict):
        if strict:
            raise ParseError(f"JSONのルートがオブジェクトではありません: {path}")
        log.warning("JSON root is not an object, starting from empty object: %s", path)
        return {}
    return raw
