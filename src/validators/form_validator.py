"""フォーム検証モジュール

リクエストから取り出したフォーム値とアップロードファイルを保持し、
フィールドごとに検証関数を適用してエラーメッセージを蓄積する。

Validator はリクエストごとに生成し、リクエスト完了後に破棄する。
スレッド間での共有は想定しない。
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from .file_validator import FileValidationConfig, check_file
from .rules import ValidationFunc, parse_int64
from .uploads import UploadHandle

logger = logging.getLogger(__name__)


class FormValidationError(Exception):
    """検証エラーが残っている状態で raise_for_errors() を呼んだ場合のエラー

    Attributes:
        errors: フィールド名 → エラーメッセージの辞書
    """

    def __init__(self, errors: Mapping[str, str]) -> None:
        self.errors = dict(errors)
        fields = ", ".join(sorted(self.errors))
        super().__init__(f"Form validation failed for: {fields}")


class Validator:
    """フォーム値とアップロードファイルの検証器

    検証の失敗は例外ではなく errors に記録される。
    呼び出し側は valid() を確認してから戻り値を利用する。

    Attributes:
        errors: フィールド名 → エラーメッセージ（1フィールドにつき1件）
        _values: フィールド名 → 文字列値
        _files: フィールド名 → アップロードファイル
    """

    def __init__(
        self,
        values: Mapping[str, str] | None = None,
        files: Mapping[str, UploadHandle] | None = None,
    ) -> None:
        self.errors: dict[str, str] = {}
        self._values: dict[str, str] = dict(values or {})
        self._files: dict[str, UploadHandle] = dict(files or {})

    def __repr__(self) -> str:
        return (
            f"Validator(values={sorted(self._values)!r}, "
            f"files={sorted(self._files)!r}, errors={self.errors!r})"
        )

    # -------------------------------------------------------------------
    # 値ストア
    # -------------------------------------------------------------------

    def set_value(self, field: str, value: str) -> None:
        self._values[field] = value

    def get_value(self, field: str) -> str:
        """フォーム値を返す（未設定の場合は空文字列）"""
        return self._values.get(field, "")

    def set_file(self, field: str, upload: UploadHandle) -> None:
        self._files[field] = upload

    def get_file(self, field: str) -> UploadHandle | None:
        """アップロードファイルを返す（未設定の場合は None）"""
        return self._files.get(field)

    # -------------------------------------------------------------------
    # 型付きアクセサ
    # -------------------------------------------------------------------

    def string(self, field: str, *validations: ValidationFunc) -> str:
        """検証関数を順に適用し、生の文字列値を返す

        最初に失敗した検証関数のメッセージだけを記録し、
        残りの検証関数は評価しない。戻り値は検証結果に関わらず生の値。
        """
        value = self.get_value(field)
        self._run(field, value, validations)
        return value

    def integer(self, field: str, *validations: ValidationFunc) -> int:
        """検証関数を適用した後、10進数の64ビット整数に変換して返す

        検証関数の結果に関わらず変換は必ず試みる。変換に失敗した場合は
        既存のエラーを "This field must be a valid integer" で上書きし 0 を返す。
        変換に成功した場合、検証関数のエラーはそのまま残る。
        """
        value = self.get_value(field)
        self._run(field, value, validations)

        number = parse_int64(value)
        if number is None:
            self._fail(field, "This field must be a valid integer")
            return 0
        return number

    def image(
        self, field: str, config: FileValidationConfig
    ) -> UploadHandle | None:
        """アップロードファイルを検証し、成功時はハンドルをそのまま返す

        Returns:
            検証に成功したアップロードファイル。失敗時は None。
        """
        upload = self._files.get(field)
        if upload is None:
            self._fail(field, "No file was uploaded")
            return None

        message = check_file(upload, config)
        if message is not None:
            self._fail(field, message)
            return None

        return upload

    # -------------------------------------------------------------------
    # エラー管理
    # -------------------------------------------------------------------

    def check(self, ok: bool, field: str, message: str) -> None:
        """条件が偽の場合にエラーを記録する"""
        if not ok:
            self._fail(field, message)

    def valid(self) -> bool:
        """エラーが1件もなければ True"""
        return not self.errors

    def raise_for_errors(self) -> None:
        """エラーが残っていれば FormValidationError を送出する

        Raises:
            FormValidationError: エラーが1件以上ある場合
        """
        if self.errors:
            raise FormValidationError(self.errors)

    # -------------------------------------------------------------------
    # プライベートメソッド
    # -------------------------------------------------------------------

    def _run(
        self,
        field: str,
        value: str,
        validations: tuple[ValidationFunc, ...],
    ) -> None:
        for validation in validations:
            ok, message = validation(field, value)
            if not ok:
                self._fail(field, message)
                break

    def _fail(self, field: str, message: str) -> None:
        logger.debug("検証エラー: %s: %s", field, message)
        self.errors[field] = message
