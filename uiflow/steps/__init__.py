"""
ステップライブラリモジュール

標準ステップ、ステップ基底クラス、プラグイン機構を提供する。

主要エクスポート:
  - Step / StepContext: ステップ基底クラスと実行コンテキスト
  - StepRegistry / StepFactory / StepInfo: ステップファクトリの登録・検索・一覧
  - create_default_registry: 全標準ステップ登録済みレジストリの生成
"""

from .base import Step, StepContext
from .builtin import (
    ActionStep,
    ActionType,
    CallableAction,
    CompositeStep,
    ConditionKind,
    ConditionSpec,
    LogStep,
    MatchMode,
    WaitForConditionStep,
    WaitTimeStep,
    create_default_registry,
)
from .registry import StepFactory, StepInfo, StepRegistry

__all__ = [
    "ActionStep",
    "ActionType",
    "CallableAction",
    "CompositeStep",
    "ConditionKind",
    "ConditionSpec",
    "LogStep",
    "MatchMode",
    "Step",
    "StepContext",
    "StepFactory",
    "StepInfo",
    "StepRegistry",
    "WaitForConditionStep",
    "WaitTimeStep",
    "create_default_registry",
]
