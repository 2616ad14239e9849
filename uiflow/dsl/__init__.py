# DSL モジュール
# YAML テストケース・シーン定義のスキーマとパーサーを提供

from .parser import DslParser, DslValidationError
from .schema import SceneDocument, TestCaseDocument

__all__ = [
    "DslParser",
    "DslValidationError",
    "SceneDocument",
    "TestCaseDocument",
]
