"""検証関数モジュール

フィールド単位の検証関数（ValidationFunc）とそのファクトリを提供する。

検証関数のシグネチャ::

    def rule(field: str, value: str) -> tuple[bool, str]:
        '''成功時は (True, "")、失敗時は (False, エラーメッセージ) を返す'''

パラメータ付きの検証関数はファクトリ関数が生成する::

    Validator.string("name", required, min_length(3), max_length(50))

検証関数は副作用を持たず、値ストアを変更しない。
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable

# 検証関数の型エイリアス
ValidationFunc = Callable[[str, str], tuple[bool, str]]

# 符号付き64ビット整数の範囲
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

_INTEGER_RE = re.compile(r"[+-]?[0-9]+")

# 構造のみを確認する簡易パターン（RFC 5322 準拠ではない）
_EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+\-]+@[a-zA-Z0-9.\-]+\.[a-zA-Z]{2,}")

# 大文字小文字を区別しない真偽値トークン
_BOOLEAN_TOKENS = frozenset({"1", "t", "true", "0", "f", "false"})

# 前後から除去する空白文字（str.strip() と異なり \x1c-\x1f は含まない）
_WHITESPACE = (
    "\t\n\v\f\r \x85\xa0\u1680"
    "\u2000\u2001\u2002\u2003\u2004\u2005\u2006\u2007\u2008\u2009\u200a"
    "\u2028\u2029\u202f\u205f\u3000"
)

_OK = (True, "")


def parse_int64(value: str) -> int | None:
    """10進数の符号付き64ビット整数として解析する

    符号と ASCII 数字以外（空白、アンダースコア等）を含む場合や
    範囲外の場合は None を返す。
    """
    if not _INTEGER_RE.fullmatch(value):
        return None
    number = int(value)
    if number < INT64_MIN or number > INT64_MAX:
        return None
    return number


# ---------------------------------------------------------------------------
# 必須チェック
# ---------------------------------------------------------------------------


def required(field: str, value: str) -> tuple[bool, str]:
    """前後の空白を除いた値が空でないこと"""
    if not value.strip(_WHITESPACE):
        return False, "This field is required"
    return _OK


# ---------------------------------------------------------------------------
# 文字数チェック
# ---------------------------------------------------------------------------


def min_length(minimum: int) -> ValidationFunc:
    """コードポイント数が minimum 以上であること"""

    def check(field: str, value: str) -> tuple[bool, str]:
        if len(value) < minimum:
            return False, f"This field must be at least {minimum} characters long"
        return _OK

    return check


def max_length(maximum: int) -> ValidationFunc:
    """コードポイント数が maximum 以下であること"""

    def check(field: str, value: str) -> tuple[bool, str]:
        if len(value) > maximum:
            return False, f"This field must not exceed {maximum} characters"
        return _OK

    return check


# ---------------------------------------------------------------------------
# 形式チェック
# ---------------------------------------------------------------------------


def email(field: str, value: str) -> tuple[bool, str]:
    """メールアドレスの形式であること（値全体が一致する必要がある）"""
    if not _EMAIL_RE.fullmatch(value):
        return False, "Please enter a valid email address"
    return _OK


def matches(pattern: str, message: str) -> ValidationFunc:
    """値のどこかに pattern と一致する部分があること

    Raises:
        re.error: pattern が正規表現として不正な場合（生成時）
    """
    compiled = re.compile(pattern)

    def check(field: str, value: str) -> tuple[bool, str]:
        if compiled.search(value) is None:
            return False, message
        return _OK

    return check


def boolean(field: str, value: str) -> tuple[bool, str]:
    """真偽値として解釈できること（1/t/true/0/f/false、大文字小文字無視）"""
    if value.strip(_WHITESPACE).lower() not in _BOOLEAN_TOKENS:
        return False, "This field must be true or false"
    return _OK


# ---------------------------------------------------------------------------
# 範囲・選択肢チェック
# ---------------------------------------------------------------------------


def int_range(minimum: int, maximum: int) -> ValidationFunc:
    """整数として解釈でき、minimum 以上 maximum 以下であること"""

    def check(field: str, value: str) -> tuple[bool, str]:
        number = parse_int64(value)
        if number is None:
            return False, "This field must be a valid integer"
        if number < minimum or number > maximum:
            return False, f"This field must be between {minimum} and {maximum}"
        return _OK

    return check


def in_list(choices: Iterable[str]) -> ValidationFunc:
    """choices のいずれかと完全一致すること（大文字小文字を区別する）"""
    allowed = frozenset(choices)

    def check(field: str, value: str) -> tuple[bool, str]:
        if value not in allowed:
            return False, "This value is not in the allowed list"
        return _OK

    return check


# ---------------------------------------------------------------------------
# カスタムチェック
# ---------------------------------------------------------------------------


def custom(predicate: Callable[[str], bool], message: str) -> ValidationFunc:
    """任意の述語関数を検証関数に変換する"""

    def check(field: str, value: str) -> tuple[bool, str]:
        if not predicate(value):
            return False, message
        return _OK

    return check
