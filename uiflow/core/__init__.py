# コアモジュール
# フレームクロック、コンディション、待機戦略、ステップ実行、テストケース、Runner 状態機械、レポート生成を提供

from .batch import BatchResult, CaseBatch
from .case import CaseResult, TestCase
from .clock import FrameClock
from .errors import (
    ActionFailure,
    CaseAbort,
    ErrorKind,
    StepTimeoutError,
    UITestError,
    WaitTimeoutError,
)
from .executor import CancelToken, StepExecutor, StepOutcome
from .reporting import Reporter
from .runner import RunDriver, Runner
from .state import RunPhase, RunSnapshot, RunState
from .waits import Waiter

__all__ = [
    "ActionFailure",
    "BatchResult",
    "CancelToken",
    "CaseBatch",
    "CaseAbort",
    "CaseResult",
    "ErrorKind",
    "FrameClock",
    "Reporter",
    "RunDriver",
    "RunPhase",
    "RunSnapshot",
    "RunState",
    "Runner",
    "StepExecutor",
    "StepOutcome",
    "StepTimeoutError",
    "TestCase",
    "UITestError",
    "WaitTimeoutError",
    "Waiter",
]
