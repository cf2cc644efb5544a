"""アップロードファイルのハンドル

リクエストパーサが生成するアップロードファイルの型を定義する。
検証器はハンドルの filename / size / open() だけを参照し、
ファイル内容をコピー・保存・変換しない。
"""

from __future__ import annotations

import io
from dataclasses import dataclass, field
from typing import BinaryIO, Protocol


class UploadHandle(Protocol):
    """アップロードファイルのハンドルが満たすべきプロトコル

    Attributes:
        filename: クライアントが送信したファイル名
        size: ファイルサイズ（バイト）
    """

    filename: str
    size: int

    def open(self) -> BinaryIO:
        """ファイル内容を読み出すストリームを開く

        Raises:
            OSError: ストリームを開けない場合
        """
        ...


@dataclass(frozen=True)
class UploadFile:
    """メモリ上に保持されたアップロードファイル

    open() を呼ぶたびに先頭から読み出せる新しいストリームを返す。

    Attributes:
        filename: ファイル名
        size: ファイルサイズ（バイト）
        content_type: クライアントが申告した Content-Type
    """

    filename: str
    size: int
    content_type: str = "application/octet-stream"
    content: bytes = field(default=b"", repr=False)

    @classmethod
    def from_bytes(
        cls,
        filename: str,
        data: bytes,
        content_type: str = "application/octet-stream",
    ) -> UploadFile:
        """バイナリデータからサイズを算出してハンドルを作成する"""
        return cls(
            filename=filename,
            size=len(data),
            content_type=content_type,
            content=data,
        )

    def open(self) -> BinaryIO:
        return io.BytesIO(self.content)
