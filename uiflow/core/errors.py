"""
例外階層とエラー種別

UI テスト実行中に発生し得るエラーを分類する。

主な構成:
  - ErrorKind: StepOutcome に記録されるエラー種別
  - UITestError: 全ての UI テスト例外の基底クラス
  - WaitTimeoutError / StepTimeoutError: 待機・ステップ単位のタイムアウト
  - ActionFailure: 境界アクション（press, inputText 等）の失敗
  - CaseAbort: stopOnError によるケース中断
  - classify(): 任意の例外を ErrorKind に分類する

Condition の評価はこれらの例外を送出しない（未充足として扱う）。
ステップ内で発生した例外は StepExecutor の境界で捕捉され、
StepOutcome に変換される。
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """ステップ失敗の分類。"""

    TIMEOUT = "timeout"
    ACTION_FAILURE = "action_failure"
    CASE_ABORT = "case_abort"
    ERROR = "error"
    CANCELLED = "cancelled"


class UITestError(Exception):
    """UI テスト例外の基底クラス。"""

    kind: ErrorKind = ErrorKind.ERROR


class ConditionUnsatisfiable(UITestError):
    """条件の評価に必要な対象が解決できないことを表す。

    Condition.satisfied() の外へは送出されず、常に「未充足」へ畳み込まれる。
    """


class WaitTimeoutError(UITestError, TimeoutError):
    """Waiter の待機がタイムアウトしたことを表す。

    Attributes:
        description: タイムアウト時点の条件の診断メッセージ
        elapsed: 経過時間（秒、unscaled）
        checks: 条件の評価回数
        origin: wait() の呼び出し元（ファイル名:行番号 in 関数名）
    """

    kind = ErrorKind.TIMEOUT

    def __init__(
        self,
        message: str,
        *,
        description: str = "",
        elapsed: float = 0.0,
        checks: int = 0,
        origin: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.description = description
        self.elapsed = elapsed
        self.checks = checks
        self.origin = origin


class StepTimeoutError(UITestError, TimeoutError):
    """ステップ全体の実行時間が予算を超えたことを表す。"""

    kind = ErrorKind.TIMEOUT

    def __init__(self, message: str, *, timeout: float = 0.0, elapsed: float = 0.0) -> None:
        super().__init__(message)
        self.timeout = timeout
        self.elapsed = elapsed


class ActionFailure(UITestError):
    """境界アクションの呼び出しが失敗したことを表す。

    対象が見つからない、必要な capability タグを持たない、
    ホスト側の呼び出しが例外を送出した、などのケース。
    """

    kind = ErrorKind.ACTION_FAILURE


class CaseAbort(UITestError):
    """stopOnError によってテストケースが中断されたことを表す。"""

    kind = ErrorKind.CASE_ABORT


def classify(exc: BaseException) -> ErrorKind:
    """例外を ErrorKind に分類する。

    Args:
        exc: 分類対象の例外

    Returns:
        対応する ErrorKind
    """
    if isinstance(exc, UITestError):
        return exc.kind
    if isinstance(exc, asyncio.CancelledError):
        return ErrorKind.CANCELLED
    if isinstance(exc, TimeoutError):
        return ErrorKind.TIMEOUT
    return ErrorKind.ERROR
