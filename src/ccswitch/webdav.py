"""WebDAV へのバックアップ転送（requests）。

- 接続先設定: `~/.cc-cli/webdav.json`（url / username / password）
- リモート側は `/cc-cli-backups/` 配下に `<category>_<ts>.json` として置く

注意:
- パスワードをログに出さない
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import asdict, dataclass
from pathlib import Path
from urllib.parse import unquote, urlparse

import requests

from ccswitch.errors import BackupError, NotFoundError
from ccswitch.files import atomic_write_json, read_json_object

log = logging.getLogger(__name__)

REMOTE_DIR = "cc-cli-backups"
_DAV_NS = "{DAV:}"
_PROPFIND_BODY = (
    '<?xml version="1.0" encoding="utf-8"?>'
    '<d:propfind xmlns:d="DAV:"><d:prop>'
    "<d:getcontentlength/><d:getlastmodified/><d:resourcetype/>"
    "</d:prop></d:propfind>"
)


@dataclass
class WebDAVConfig:
    url: str
    username: str
    password: str


def load_webdav_config(path: Path) -> WebDAVConfig:
    raw = read_json_object(path, strict=True)
    if not raw.get("url"):
        raise NotFoundError("WebDAV が未設定です。`ccswitch backup webdav-setup` を実行してください")
    return WebDAVConfig(
        url=str(raw["url"]),
        username=str(raw.get("username", "")),
        password=str(raw.get("password", "")),
    )


def save_webdav_config(path: Path, cfg: WebDAVConfig) -> None:
    atomic_write_json(path, asdict(cfg))
    path.chmod(0o600)


@dataclass
class RemoteBackup:
    name: str
    path: str
    size: int
    last_modified: str


class WebDAVClient:
    def __init__(
        self,
        cfg: WebDAVConfig,
        *,
        session: requests.Session | None = None,
        timeout: float = 30,
    ) -> None:
        if not cfg.url.startswith(("http://", "https://")):
            raise BackupError(f"WebDAV URL は http(s):// で始まる必要があります: {cfg.url}")
        self.cfg = cfg
        self.base = cfg.url.rstrip("/")
        self.session = session or requests.Session()
        self.session.auth = (cfg.username, cfg.password)
        self.timeout = timeout

    def _url(self, remote: str) -> str:
        return f"{self.base}/{remote.lstrip('/')}"

    def _request(self, method: str, remote: str, **kwargs) -> requests.Response:
        try:
            r = self.session.request(method, self._url(remote), timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise BackupError(f"WebDAV {method} {remote} に失敗しました: {e}") from e
        log.debug("webdav %s %s -> %s", method, remote, r.status_code)
        return r

    def _check(self, r: requests.Response, action: str) -> None:
        if r.status_code >= 400:
            raise BackupError(f"WebDAV {action} に失敗しました: HTTP {r.status_code}")

    def test_connection(self) -> bool:
        r = self._request("PROPFIND", "/", headers={"Depth": "0"}, data=_PROPFIND_BODY)
        return r.status_code < 400

    def ensure_directory(self) -> None:
        r = self._request("MKCOL", f"/{REMOTE_DIR}/")
        # 405: 既に存在する
        if r.status_code != 405:
            self._check(r, "ディレクトリ作成")

    def upload(self, name: str, data: str) -> str:
        self.ensure_directory()
        remote = f"/{REMOTE_DIR}/{name}"
        r = self._request(
            "PUT",
            remote,
            data=data.encode("utf-8"),
            headers={"Content-Type": "application/json; charset=utf-8"},
        )
        self._check(r, "アップロード")
        log.info("webdav uploaded: %s", remote)
        return remote

    def list_backups(self) -> list[RemoteBackup]:
        r = self._request("PROPFIND", f"/{REMOTE_DIR}/", headers={"Depth": "1"}, data=_PROPFIND_BODY)
        if r.status_code == 404:
            return []
        self._check(r, "一覧取得")
        return sorted(parse_propfind(r.text), key=lambda b: b.name, reverse=True)

    def download(self, remote: str) -> str:
        r = self._request("GET", remote)
        self._check(r, "ダウンロード")
        r.encoding = "utf-8"
        return r.text

    def delete(self, remote: str) -> None:
        r = self._request("DELETE", remote)
        self._check(r, "削除")
        log.info("webdav deleted: %s", remote)


def parse_propfind(xml_text: str) -> list[RemoteBackup]:
    """PROPFIND (Depth: 1) の応答から .json ファイルだけを拾う。"""
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise BackupError(f"WebDAV の応答を解析できません: {e}") from e

    out: list[RemoteBackup] = []
    for resp in root.iter(f"{_DAV_NS}response"):
        href = resp.findtext(f"{_DAV_NS}href") or ""
        path = unquote(urlparse(href).path)
        if path.endswith("/") or not path.endswith(".json"):
            continue
        if resp.find(f".//{_DAV_NS}collection") is not None:
            continue
        # サーバー側のベースパス（/dav/ など）を除いた、設定URLからの相対パスにする
        idx = path.find(f"/{REMOTE_DIR}/")
        if idx >= 0:
            path = path[idx:]
        size = resp.findtext(f".//{_DAV_NS}getcontentlength") or "0"
        out.append(
            RemoteBackup(
                name=path.rsplit("/", 1)[-1],
                path=path,
                size=int(size) if size.isdigit() else 0,
                last_modified=resp.findtext(f".//{_DAV_NS}getlastmodified") or "",
            )
        )
    return out
