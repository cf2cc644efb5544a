"""ファイル検証モジュール

アップロードされたファイルをサイズ・拡張子・内容から判定した
MIMEタイプ（任意で画像解像度）の順に検証する。

検証は読み取り専用で、ファイル内容のコピーや保存は行わない。
MIMEタイプは申告されたヘッダーではなく先頭バイトから判定する。

検証順序（最初の失敗で打ち切り）:
  1. ファイルサイズ
  2. 拡張子
  3. 先頭512バイトから判定したMIMEタイプ
  4. 画像解像度（max_dimensions 指定時のみ）
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

import filetype
from PIL import Image

from .uploads import UploadHandle

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# 定数
# ---------------------------------------------------------------------------

KB = 1024
MB = 1024 * KB

# MIMEタイプ判定で読み込む先頭バイト数
SNIFF_LENGTH = 512

MIME_JPEG = "image/jpeg"
MIME_PNG = "image/png"
MIME_GIF = "image/gif"
MIME_WEBP = "image/webp"

DEFAULT_IMAGE_FORMATS: tuple[str, ...] = ("jpg", "jpeg", "png", "gif", "webp")

# 形式名 → (MIMEタイプ, 拡張子)
_IMAGE_FORMATS: dict[str, tuple[str, tuple[str, ...]]] = {
    "jpg": (MIME_JPEG, (".jpg", ".jpeg")),
    "jpeg": (MIME_JPEG, (".jpg", ".jpeg")),
    "png": (MIME_PNG, (".png",)),
    "gif": (MIME_GIF, (".gif",)),
    "webp": (MIME_WEBP, (".webp",)),
}

# テキストには現れない制御バイト（タブ・改行・FF・CR・ESC 以外）
_BINARY_BYTES = frozenset(
    [*range(0x00, 0x09), 0x0B, *range(0x0E, 0x1B), *range(0x1C, 0x20)]
)

# filetype が返すサブタイプ → 許可リストで使う汎用のMIMEタイプ
_MIME_ALIASES: dict[str, str] = {
    "image/apng": MIME_PNG,
}

_TEXT_PLAIN = "text/plain; charset=utf-8"
_OCTET_STREAM = "application/octet-stream"


def _unique(items: Iterable[str]) -> tuple[str, ...]:
    """出現順を保ったまま重複を除く"""
    return tuple(dict.fromkeys(items))


# ---------------------------------------------------------------------------
# FileValidationConfig データクラス
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FileValidationConfig:
    """ファイル検証の設定を表すイミュータブルなデータクラス

    一度生成すれば複数の検証で再利用できる。

    Attributes:
        max_size: 最大ファイルサイズ（バイト）。0以下は無制限。
        allowed_types: 許可するMIMEタイプ（前方一致）。空ならMIME判定を行わない。
        allowed_extensions: 許可する拡張子（ドット付き）。空なら拡張子判定を行わない。
        max_dimensions: 最大解像度 (幅, 高さ)。None なら解像度判定を行わない。
    """

    max_size: int = 0
    allowed_types: tuple[str, ...] = ()
    allowed_extensions: tuple[str, ...] = ()
    max_dimensions: tuple[int, int] | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "allowed_types", _unique(self.allowed_types))
        object.__setattr__(
            self, "allowed_extensions", _unique(self.allowed_extensions)
        )


def image_config(
    max_size: int,
    *formats: str,
    max_dimensions: tuple[int, int] | None = None,
) -> FileValidationConfig:
    """画像ファイル用の標準的な検証設定を生成する

    形式名（"jpg", "png" 等、大文字小文字無視）をMIMEタイプと拡張子に
    展開する。形式名を省略した場合は DEFAULT_IMAGE_FORMATS を使う。
    未知の形式名は無視する。

    Args:
        max_size: 最大ファイルサイズ（バイト）。0以下は無制限。
        *formats: 許可する画像形式名
        max_dimensions: 最大解像度 (幅, 高さ)

    Returns:
        FileValidationConfig: 検証設定
    """
    if not formats:
        formats = DEFAULT_IMAGE_FORMATS

    mime_types: list[str] = []
    extensions: list[str] = []

    for name in formats:
        entry = _IMAGE_FORMATS.get(name.lower())
        if entry is None:
            logger.debug("未知の画像形式を無視します: %s", name)
            continue
        mime_type, exts = entry
        mime_types.append(mime_type)
        extensions.extend(exts)

    return FileValidationConfig(
        max_size=max_size,
        allowed_types=tuple(mime_types),
        allowed_extensions=tuple(extensions),
        max_dimensions=max_dimensions,
    )


# ---------------------------------------------------------------------------
# MIMEタイプ判定
# ---------------------------------------------------------------------------


def sniff_content_type(head: bytes) -> str:
    """先頭バイトから Content-Type を判定する

    filetype のマジックナンバー判定で一致しない場合、制御バイトを
    含まなければテキスト、含めばバイナリとみなす。

    Returns:
        判定されたMIMEタイプ。判定できない場合は "application/octet-stream"。
    """
    kind = filetype.guess(head)
    if kind is not None:
        return _MIME_ALIASES.get(kind.mime, kind.mime)
    if head and not any(byte in _BINARY_BYTES for byte in head):
        return _TEXT_PLAIN
    return _OCTET_STREAM


def file_extension(filename: str) -> str:
    """ファイル名の拡張子を小文字で返す（ドット付き、無ければ空文字列）"""
    name = filename.rsplit("/", 1)[-1]
    index = name.rfind(".")
    if index < 0:
        return ""
    return name[index:].lower()


# ---------------------------------------------------------------------------
# 検証本体
# ---------------------------------------------------------------------------


def check_file(
    upload: UploadHandle, config: FileValidationConfig
) -> str | None:
    """アップロードファイルを設定に従って検証する

    Args:
        upload: 検証対象のアップロードファイル
        config: 検証設定

    Returns:
        エラーメッセージ。検証に成功した場合は None。
    """
    if config.max_size > 0 and upload.size > config.max_size:
        return f"File size exceeds maximum limit of {config.max_size} bytes"

    if config.allowed_extensions:
        extension = file_extension(upload.filename)
        allowed = {ext.lower() for ext in config.allowed_extensions}
        if extension not in allowed:
            return (
                "Invalid file extension. Allowed: "
                + ", ".join(config.allowed_extensions)
            )

    if config.allowed_types:
        error = _check_content_type(upload, config.allowed_types)
        if error is not None:
            return error

    if config.max_dimensions is not None:
        return _check_dimensions(upload, config.max_dimensions)

    return None


def _check_content_type(
    upload: UploadHandle, allowed_types: tuple[str, ...]
) -> str | None:
    """先頭 SNIFF_LENGTH バイトからMIMEタイプを判定し、許可リストと照合する"""
    try:
        stream = upload.open()
    except OSError as err:
        logger.warning("アップロードファイルを開けません: %s (%s)", upload.filename, err)
        return "Could not process file"

    with stream:
        try:
            head = stream.read(SNIFF_LENGTH)
        except OSError as err:
            logger.warning(
                "アップロードファイルを読み込めません: %s (%s)", upload.filename, err
            )
            return "Could not read file content"

    detected = sniff_content_type(head)
    if not any(detected.startswith(allowed) for allowed in allowed_types):
        logger.debug("許可されていないMIMEタイプ: %s (%s)", detected, upload.filename)
        return "Invalid file type. Allowed: " + ", ".join(allowed_types)

    return None


def _check_dimensions(
    upload: UploadHandle, max_dimensions: tuple[int, int]
) -> str | None:
    """Pillow で画像の解像度を取得し、上限と比較する"""
    max_w, max_h = max_dimensions
    try:
        with upload.open() as stream, Image.open(stream) as img:
            width, height = img.size
    except OSError as err:
        # UnidentifiedImageError も OSError のサブクラス
        logger.warning("画像の解像度を取得できません: %s (%s)", upload.filename, err)
        return "Could not read image dimensions"

    if width > max_w or height > max_h:
        return f"Image dimensions exceed maximum of {max_w}x{max_h} pixels"

    return None
