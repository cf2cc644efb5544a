"""リクエスト解析パッケージ

HTTPリクエストのボディとクエリ文字列を解析し、フォーム値と
アップロードファイルを Validator に読み込む。

使用例:
    from src.forms import validator_from_request

    validator = validator_from_request(body, content_type, query_string)
    name = validator.string("name", required)
"""

from .parser import FormData, parse_form, validator_from_request

__all__ = [
    "FormData",
    "parse_form",
    "validator_from_request",
]
