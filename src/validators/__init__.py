"""フォーム検証パッケージ

リクエストのフォーム値とアップロードファイルを、組み合わせ可能な
検証関数で検証し、フィールドごとのエラーメッセージを蓄積する。

使用例::

    from src.validators import MB, Validator, email, image_config, required

    validator = Validator(values={"email": "john@example.com"}, files=files)
    address = validator.string("email", required, email)
    avatar = validator.image("avatar", image_config(1 * MB))
    if not validator.valid():
        print(validator.errors)
"""

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
    image_config,
    sniff_content_type,
)
from src.validators.form_validator import FormValidationError, Validator
from src.validators.rules import (
    ValidationFunc,
    boolean,
    custom,
    email,
    in_list,
    int_range,
    matches,
    max_length,
    min_length,
    required,
)
from src.validators.uploads import UploadFile, UploadHandle

__all__ = [
    "DEFAULT_IMAGE_FORMATS",
    "FileValidationConfig",
    "FormValidationError",
    "KB",
    "MB",
    "MIME_GIF",
    "MIME_JPEG",
    "MIME_PNG",
    "MIME_WEBP",
    "SNIFF_LENGTH",
    "UploadFile",
    "UploadHandle",
    "ValidationFunc",
    "Validator",
    "boolean",
    "check_file",
    "custom",
    "email",
    "image_config",
    "in_list",
    "int_range",
    "matches",
    "max_length",
    "min_length",
    "required",
    "sniff_content_type",
]
