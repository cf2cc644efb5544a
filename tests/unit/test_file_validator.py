"""ファイル検証（file_validator）のユニットテスト

テスト対象:
  - image_config による形式名の展開とデフォルト値
  - FileValidationConfig の重複除去
  - 先頭バイトからのMIMEタイプ判定
  - check_file の検証順序（サイズ → 拡張子 → MIME → 解像度）
  - I/Oエラー時のメッセージとストリームの解放
"""

import io

import pytest
from PIL import Image

from src.validators.file_validator import (
    DEFAULT_IMAGE_FORMATS,
    KB,
    MB,
    MIME_GIF,
    MIME_JPEG,
    MIME_PNG,
    MIME_WEBP,
    SNIFF_LENGTH,
    FileValidationConfig,
    check_file,
    file_extension,
    image_config,
    sniff_content_type,
)
from src.validators.uploads import UploadFile


# ---------------------------------------------------------------------------
# ヘルパー関数
# ---------------------------------------------------------------------------

JPEG_MAGIC = b"\xff\xd8\xff\xe0" + b"\x00" * 60


def _create_test_image(
    width: int = 10,
    height: int = 10,
    fmt: str = "PNG",
) -> bytes:
    """テスト用の画像バイナリを生成する"""
    image = Image.new("RGB", (width, height), color="red")
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


def _create_animated_png() -> bytes:
    """2フレームのアニメーションPNG（acTL チャンク付き）を生成する"""
    first = Image.new("RGB", (10, 10), color="red")
    second = Image.new("RGB", (10, 10), color="blue")
    buffer = io.BytesIO()
    first.save(buffer, format="PNG", save_all=True, append_images=[second])
    return buffer.getvalue()


class _TrackingStream(io.BytesIO):
    """close() が呼ばれたかを記録するストリーム"""

    def __init__(self, data: bytes, *, fail_read: bool = False) -> None:
        super().__init__(data)
        self.fail_read = fail_read
        self.was_closed = False

    def read(self, size: int | None = -1) -> bytes:
        if self.fail_read:
            raise OSError("disk read error")
        return super().read(size)

    def close(self) -> None:
        self.was_closed = True
        super().close()


class _StubUpload:
    """open() の挙動を差し替えられるアップロードファイル"""

    def __init__(
        self,
        filename: str,
        data: bytes = JPEG_MAGIC,
        *,
        fail_open: bool = False,
        fail_read: bool = False,
    ) -> None:
        self.filename = filename
        self.size = len(data)
        self._data = data
        self._fail_open = fail_open
        self._fail_read = fail_read
        self.streams: list[_TrackingStream] = []

    def open(self) -> _TrackingStream:
        if self._fail_open:
            raise OSError("temporary file vanished")
        stream = _TrackingStream(self._data, fail_read=self._fail_read)
        self.streams.append(stream)
        return stream


# ===========================================================================
# image_config のテスト
# ===========================================================================


class TestImageConfig:
    """画像設定ビルダーのテスト"""

    def test_デフォルト形式(self):
        """形式名を省略すると jpg/jpeg/png/gif/webp を許可する"""
        config = image_config(1 * MB)
        assert DEFAULT_IMAGE_FORMATS == ("jpg", "jpeg", "png", "gif", "webp")
        assert config.max_size == 1 * MB
        assert config.allowed_types == (MIME_JPEG, MIME_PNG, MIME_GIF, MIME_WEBP)
        assert config.allowed_extensions == (".jpg", ".jpeg", ".png", ".gif", ".webp")
        assert config.max_dimensions is None

    def test_形式名の指定(self):
        config = image_config(500 * KB, "png")
        assert config.allowed_types == (MIME_PNG,)
        assert config.allowed_extensions == (".png",)

    def test_jpgはjpegの拡張子も許可する(self):
        config = image_config(0, "jpg")
        assert config.allowed_types == (MIME_JPEG,)
        assert config.allowed_extensions == (".jpg", ".jpeg")

    def test_大文字小文字を無視する(self):
        config = image_config(0, "PNG", "Gif")
        assert config.allowed_types == (MIME_PNG, MIME_GIF)

    def test_未知の形式名は無視する(self):
        config = image_config(0, "bmp", "png", "tiff")
        assert config.allowed_types == (MIME_PNG,)
        assert config.allowed_extensions == (".png",)

    def test_未知の形式名のみなら制限なし(self):
        config = image_config(0, "bmp")
        assert config.allowed_types == ()
        assert config.allowed_extensions == ()

    def test_解像度制限の指定(self):
        config = image_config(0, max_dimensions=(800, 600))
        assert config.max_dimensions == (800, 600)

    def test_設定はイミュータブル(self):
        config = image_config(1 * MB)
        with pytest.raises(AttributeError):
            config.max_size = 0  # type: ignore[misc]


class TestFileValidationConfig:
    """FileValidationConfig のテスト"""

    def test_デフォルトは制限なし(self):
        config = FileValidationConfig()
        assert config.max_size == 0
        assert config.allowed_types == ()
        assert config.allowed_extensions == ()

    def test_重複を出現順で除去する(self):
        config = FileValidationConfig(
            allowed_types=("image/png", "image/gif", "image/png"),
            allowed_extensions=(".png", ".gif", ".png"),
        )
        assert config.allowed_types == ("image/png", "image/gif")
        assert config.allowed_extensions == (".png", ".gif")


# ===========================================================================
# MIMEタイプ判定のテスト
# ===========================================================================


class TestSniffContentType:
    """先頭バイトからのMIMEタイプ判定テスト"""

    @pytest.mark.parametrize(
        ("fmt", "expected"),
        [
            ("PNG", MIME_PNG),
            ("JPEG", MIME_JPEG),
            ("GIF", MIME_GIF),
            ("WEBP", MIME_WEBP),
        ],
    )
    def test_画像形式の判定(self, fmt: str, expected: str):
        data = _create_test_image(fmt=fmt)
        assert sniff_content_type(data[:SNIFF_LENGTH]) == expected

    def test_JPEGのマジックバイトだけで判定できる(self):
        assert sniff_content_type(JPEG_MAGIC) == MIME_JPEG

    def test_テキストの判定(self):
        assert sniff_content_type(b"hello, world\n") == "text/plain; charset=utf-8"

    def test_バイナリの判定(self):
        assert sniff_content_type(b"\x00\x01\x02\x03garbage") == "application/octet-stream"

    def test_空データはバイナリ扱い(self):
        assert sniff_content_type(b"") == "application/octet-stream"

    def test_アニメーションPNGはPNGとして判定する(self):
        data = _create_animated_png()
        assert b"acTL" in data
        assert sniff_content_type(data[:SNIFF_LENGTH]) == MIME_PNG


class TestFileExtension:
    """拡張子取得のテスト"""

    @pytest.mark.parametrize(
        ("filename", "expected"),
        [
            ("test.jpg", ".jpg"),
            ("PHOTO.JPEG", ".jpeg"),
            ("archive.tar.gz", ".gz"),
            ("noext", ""),
            ("dir.d/noext", ""),
            ("path/to/image.PNG", ".png"),
            (".hidden", ".hidden"),
            ("trailing.", "."),
        ],
    )
    def test_拡張子(self, filename: str, expected: str):
        assert file_extension(filename) == expected


# ===========================================================================
# check_file のテスト
# ===========================================================================


class TestCheckFile:
    """check_file の検証パイプラインのテスト"""

    def test_有効なJPEG(self):
        upload = UploadFile.from_bytes("test.jpg", JPEG_MAGIC)
        assert check_file(upload, image_config(1 * MB)) is None

    @pytest.mark.parametrize(
        ("filename", "fmt"),
        [("a.png", "PNG"), ("b.jpeg", "JPEG"), ("c.gif", "GIF"), ("d.webp", "WEBP")],
    )
    def test_有効な画像形式(self, filename: str, fmt: str):
        upload = UploadFile.from_bytes(filename, _create_test_image(fmt=fmt))
        assert check_file(upload, image_config(1 * MB)) is None

    def test_大文字の拡張子も許可する(self):
        upload = UploadFile.from_bytes("TEST.JPG", JPEG_MAGIC)
        assert check_file(upload, image_config(1 * MB)) is None

    def test_許可リスト側の大文字の拡張子も一致する(self):
        upload = UploadFile.from_bytes("a.jpg", JPEG_MAGIC)
        config = FileValidationConfig(allowed_extensions=(".JPG",))
        assert check_file(upload, config) is None

    def test_許可リスト側の大文字はメッセージにそのまま表示する(self):
        upload = UploadFile.from_bytes("a.gif", JPEG_MAGIC)
        config = FileValidationConfig(allowed_extensions=(".JPG", ".Png"))
        assert check_file(upload, config) == (
            "Invalid file extension. Allowed: .JPG, .Png"
        )

    def test_アニメーションPNGを許可する(self):
        upload = UploadFile.from_bytes("anim.png", _create_animated_png())
        assert check_file(upload, image_config(0, "png")) is None

    def test_サイズ超過(self):
        upload = UploadFile.from_bytes("test.jpg", JPEG_MAGIC + b"\x00" * KB)
        message = check_file(upload, image_config(KB))
        assert message == "File size exceeds maximum limit of 1024 bytes"

    def test_サイズ上限ちょうどは成功(self):
        data = JPEG_MAGIC + b"\x00" * (KB - len(JPEG_MAGIC))
        upload = UploadFile.from_bytes("test.jpg", data)
        assert upload.size == KB
        assert check_file(upload, image_config(KB)) is None

    @pytest.mark.parametrize("max_size", [0, -1])
    def test_サイズ上限0以下は無制限(self, max_size: int):
        upload = UploadFile.from_bytes("test.jpg", JPEG_MAGIC + b"\x00" * (2 * MB))
        assert check_file(upload, image_config(max_size)) is None

    def test_不正な拡張子(self):
        upload = UploadFile.from_bytes("test.txt", b"This is not an image")
        message = check_file(upload, image_config(1 * MB))
        assert message == (
            "Invalid file extension. Allowed: .jpg, .jpeg, .png, .gif, .webp"
        )

    def test_拡張子エラーならファイルを開かない(self):
        upload = _StubUpload("test.txt", fail_open=True)
        message = check_file(upload, image_config(1 * MB))
        assert message is not None
        assert message.startswith("Invalid file extension.")

    def test_拡張子なし(self):
        upload = UploadFile.from_bytes("jpg", JPEG_MAGIC)
        message = check_file(upload, image_config(1 * MB, "jpg"))
        assert message == "Invalid file extension. Allowed: .jpg, .jpeg"

    def test_サイズ超過が拡張子より優先される(self):
        upload = UploadFile.from_bytes("test.txt", b"x" * 100)
        message = check_file(upload, image_config(10))
        assert message == "File size exceeds maximum limit of 10 bytes"

    def test_内容が画像でない(self):
        upload = UploadFile.from_bytes("fake.png", b"plain text pretending to be png")
        message = check_file(upload, image_config(1 * MB))
        assert message == (
            "Invalid file type. Allowed: image/jpeg, image/png, image/gif, image/webp"
        )

    def test_内容と許可形式の不一致(self):
        """拡張子は許可されていても内容が別形式ならエラー"""
        upload = UploadFile.from_bytes("photo.png", _create_test_image(fmt="GIF"))
        config = FileValidationConfig(
            allowed_types=(MIME_PNG,), allowed_extensions=(".png",)
        )
        assert check_file(upload, config) == "Invalid file type. Allowed: image/png"

    def test_MIMEタイプは前方一致(self):
        upload = UploadFile.from_bytes("any.bin", _create_test_image(fmt="GIF"))
        config = FileValidationConfig(allowed_types=("image/",))
        assert check_file(upload, config) is None

    def test_テキストを許可する設定(self):
        upload = UploadFile.from_bytes("notes.txt", b"just some notes")
        config = FileValidationConfig(
            allowed_types=("text/plain",), allowed_extensions=(".TXT",)
        )
        assert check_file(upload, config) is None

    def test_制限なしの設定ではファイルを開かない(self):
        upload = _StubUpload("anything.bin", fail_open=True)
        assert check_file(upload, FileValidationConfig()) is None

    def test_ファイルを開けない(self):
        upload = _StubUpload("test.jpg", fail_open=True)
        assert check_file(upload, image_config(1 * MB)) == "Could not process file"

    def test_ファイルを読めない場合もストリームを閉じる(self):
        upload = _StubUpload("test.jpg", fail_read=True)
        message = check_file(upload, image_config(1 * MB))
        assert message == "Could not read file content"
        assert len(upload.streams) == 1
        assert upload.streams[0].was_closed is True

    def test_成功時もストリームを閉じる(self):
        upload = _StubUpload("test.jpg")
        assert check_file(upload, image_config(1 * MB)) is None
        assert all(stream.was_closed for stream in upload.streams)

    def test_短いファイルも判定できる(self):
        upload = UploadFile.from_bytes("tiny.jpg", b"\xff\xd8\xff")
        assert check_file(upload, image_config(1 * MB)) is None


class TestCheckFileDimensions:
    """解像度制限のテスト"""

    def test_解像度内は成功(self):
        upload = UploadFile.from_bytes("a.png", _create_test_image(100, 50))
        config = image_config(1 * MB, "png", max_dimensions=(100, 100))
        assert check_file(upload, config) is None

    def test_幅が超過(self):
        upload = UploadFile.from_bytes("a.png", _create_test_image(101, 50))
        config = image_config(1 * MB, "png", max_dimensions=(100, 100))
        assert check_file(upload, config) == (
            "Image dimensions exceed maximum of 100x100 pixels"
        )

    def test_高さが超過(self):
        upload = UploadFile.from_bytes("a.png", _create_test_image(10, 200))
        config = image_config(1 * MB, "png", max_dimensions=(100, 100))
        assert check_file(upload, config) is not None

    def test_画像として読めない(self):
        """マジックバイトだけのJPEGは解像度を取得できない"""
        upload = UploadFile.from_bytes("test.jpg", JPEG_MAGIC)
        config = image_config(1 * MB, max_dimensions=(100, 100))
        assert check_file(upload, config) == "Could not read image dimensions"

    def test_MIMEエラーが解像度より優先される(self):
        upload = UploadFile.from_bytes("a.png", b"not an image at all")
        config = image_config(1 * MB, "png", max_dimensions=(1, 1))
        assert check_file(upload, config) == "Invalid file type. Allowed: image/png"
