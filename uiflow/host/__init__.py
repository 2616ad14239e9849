# ホスト境界モジュール
# エンジンが利用する境界 Protocol、ターゲット解析、メモリ上のホスト実装を提供

from .memory import Element, InMemoryHost
from .ports import (
    Capability,
    ElementHandle,
    Environment,
    ReadinessEvent,
    TextVariant,
    UIHost,
)
from .targets import Target, parse_target

__all__ = [
    "Capability",
    "Element",
    "ElementHandle",
    "Environment",
    "InMemoryHost",
    "ReadinessEvent",
    "Target",
    "TextVariant",
    "UIHost",
    "parse_target",
]
