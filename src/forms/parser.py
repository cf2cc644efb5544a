"""リクエストボディ解析モジュール

application/x-www-form-urlencoded と multipart/form-data のボディを解析し、
フォーム値とアップロードファイルを取り出す。

- URLエンコード形式: 標準ライブラリ（urllib.parse）で解析
- マルチパート形式: python-multipart で解析
- 同じフィールドに複数の値・ファイルがある場合は最初のものを採用する
- クエリ文字列の値はボディの値の後に追加する

不正なボディはクライアント側の問題として警告ログを出力し、
例外は送出しない。
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from urllib.parse import parse_qsl

from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header

from ..validators import UploadFile, Validator

logger = logging.getLogger(__name__)

_URLENCODED = "application/x-www-form-urlencoded"
_MULTIPART = "multipart/form-data"


@dataclass(frozen=True)
class FormData:
    """解析済みのフォームデータ

    Attributes:
        values: フィールド名 → 最初の文字列値
        files: フィールド名 → 最初のアップロードファイル
    """

    values: Mapping[str, str] = field(default_factory=dict)
    files: Mapping[str, UploadFile] = field(default_factory=dict)


def parse_form(
    body: bytes,
    content_type: str,
    query_string: str = "",
) -> FormData:
    """リクエストボディとクエリ文字列からフォームデータを取り出す

    Args:
        body: リクエストボディ
        content_type: Content-Type ヘッダーの値
        query_string: URLのクエリ文字列（先頭の "?" は含まない）

    Returns:
        FormData: 解析結果。未対応の Content-Type ではボディを読まない。
    """
    media_type = content_type.split(";", 1)[0].strip().lower()

    values: dict[str, str] = {}
    files: dict[str, UploadFile] = {}

    if media_type == _URLENCODED:
        _merge(values, _parse_urlencoded(body.decode("utf-8", errors="replace")))
    elif media_type == _MULTIPART:
        parsed = _parse_multipart(body, content_type)
        if parsed is not None:
            _merge(values, parsed.values)
            files.update(parsed.files)
    elif body:
        logger.debug("未対応の Content-Type のためボディを無視します: %s", content_type)

    _merge(values, _parse_urlencoded(query_string))

    return FormData(values=values, files=files)


def validator_from_request(
    body: bytes,
    content_type: str,
    query_string: str = "",
) -> Validator:
    """リクエストを解析し、値とファイルを読み込んだ Validator を生成する"""
    form = parse_form(body, content_type, query_string)
    return Validator(values=form.values, files=form.files)


# ---------------------------------------------------------------------------
# プライベート関数
# ---------------------------------------------------------------------------


def _merge(target: dict[str, str], source: Mapping[str, str]) -> None:
    """既に存在するフィールドは上書きしない"""
    for key, value in source.items():
        target.setdefault(key, value)


def _parse_urlencoded(text: str) -> dict[str, str]:
    values: dict[str, str] = {}
    pairs = parse_qsl(text, keep_blank_values=True)
    for key, value in pairs:
        values.setdefault(key, value)
    return values


def _parse_multipart(body: bytes, content_type: str) -> FormData | None:
    """python-multipart でマルチパートボディを解析する

    Returns:
        FormData: 解析結果。ボディが不正な場合は None。
    """
    _, options = parse_options_header(content_type)
    boundary = options.get(b"boundary")
    if not boundary:
        logger.warning("マルチパートの boundary がありません: %s", content_type)
        return None

    values: dict[str, str] = {}
    files: dict[str, UploadFile] = {}

    # 処理中のパートの状態
    headers: dict[str, str] = {}
    header_field = bytearray()
    header_value = bytearray()
    data = bytearray()

    def on_part_begin() -> None:
        headers.clear()
        data.clear()

    def on_header_field(chunk: bytes, start: int, end: int) -> None:
        header_field.extend(chunk[start:end])

    def on_header_value(chunk: bytes, start: int, end: int) -> None:
        header_value.extend(chunk[start:end])

    def on_header_end() -> None:
        headers[header_field.decode("latin-1").lower()] = header_value.decode("latin-1")
        header_field.clear()
        header_value.clear()

    def on_part_data(chunk: bytes, start: int, end: int) -> None:
        data.extend(chunk[start:end])

    def on_part_end() -> None:
        _, params = parse_options_header(headers.get("content-disposition", ""))
        name = params.get(b"name")
        if name is None:
            return
        field_name = name.decode("utf-8", errors="replace")
        filename = params.get(b"filename", b"").decode("utf-8", errors="replace")

        if filename:
            if field_name not in files:
                files[field_name] = UploadFile.from_bytes(
                    filename,
                    bytes(data),
                    headers.get("content-type", "application/octet-stream"),
                )
        else:
            values.setdefault(field_name, data.decode("utf-8", errors="replace"))

    callbacks = {
        "on_part_begin": on_part_begin,
        "on_header_field": on_header_field,
        "on_header_value": on_header_value,
        "on_header_end": on_header_end,
        "on_part_data": on_part_data,
        "on_part_end": on_part_end,
    }

    parser = MultipartParser(boundary, callbacks)
    try:
        parser.write(body)
        parser.finalize()
    except MultipartParseError as err:
        logger.warning("マルチパートボディを解析できません: %s", err)
        return None

    return FormData(values=values, files=files)
