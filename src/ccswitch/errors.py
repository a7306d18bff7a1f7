"""ccswitch の例外。

ライブラリ側は例外を送出するだけにし、表示と終了コードは CLI 側で決める。
"""

from __future__ import annotations


class CcSwitchError(Exception):
    """ccswitch が送出する例外の基底。"""


class NotFoundError(CcSwitchError):
    """必要なファイル/サイト/認証情報が見つからない。"""


class ParseError(CcSwitchError):
    """ファイルの内容が JSON として解釈できない。"""


class ValidationError(CcSwitchError):
    """サイト定義に必須項目が欠けている、または選択が曖昧。"""


class BackupError(CcSwitchError):
    """バックアップ/リストア（ローカル・WebDAV）の失敗。"""
