"""
ターゲット指定の解析

ステップやコンディションで使う要素指定文字列を解析する。

  - "Canvas/PlayButton"  : 階層パス
  - "id:PlayButton"      : 安定 ID による検索（プレフィックスは大文字小文字を区別しない）
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Literal

logger = logging.getLogger(__name__)

ID_PREFIX = "id:"

# ID として推奨される文字種
_ID_PATTERN = re.compile(r"^[A-Za-z0-9_\-]+$")


@dataclass(frozen=True)
class Target:
    """解析済みのターゲット指定。

    Attributes:
        kind: "path"（階層パス）または "id"（安定 ID）
        value: パス文字列または ID
    """

    kind: Literal["path", "id"]
    value: str

    def __str__(self) -> str:
        return f"{ID_PREFIX}{self.value}" if self.kind == "id" else self.value


def parse_target(raw: str) -> Target:
    """ターゲット指定文字列を Target に変換する。

    Args:
        raw: 階層パス、または "id:" プレフィックス付きの ID

    Returns:
        解析済みの Target

    Raises:
        ValueError: 空文字列、または ID 部分が空の場合
    """
    if not raw or not raw.strip():
        raise ValueError("ターゲット指定が空です")

    if raw[: len(ID_PREFIX)].lower() == ID_PREFIX:
        value = raw[len(ID_PREFIX):]
        if not value:
            raise ValueError(f"ID が指定されていません: '{raw}'")
        if not is_recommended_id(value):
            logger.debug("ID に推奨外の文字が含まれています: '%s'", value)
        return Target(kind="id", value=value)

    return Target(kind="path", value=raw)


def is_recommended_id(value: str) -> bool:
    """ID が推奨文字種（英数字, '_', '-'）のみで構成されているかを返す。"""
    return bool(_ID_PATTERN.match(value))
