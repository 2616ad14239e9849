"""
StepExecutor — ステップ単位のタイムアウト付き実行

ステップの execute() を独立したタスクとして開始し、フレームごとに状態を確認する。

主な機能:
  - StepOutcome: ステップ 1 回分の実行結果（成功/失敗・エラー種別・所要時間）
  - CancelToken: 実行中のステップ・ケースを協調的に中断するためのトークン
  - StepExecutor.run_step_with_timeout: 実効タイムアウトの決定と例外の捕捉

実効タイムアウトは step.timeout_override が 0 より大きければその値、
そうでなければ実行時のデフォルト値（ambient_timeout）となる。
各フレームでは「タスク完了」を「予算超過」より先に判定するため、
内側の待機タイムアウトが同じフレームで発生した場合は内側のメッセージが優先される。
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from .errors import ErrorKind, StepTimeoutError, classify

if TYPE_CHECKING:
    from ..steps.base import Step, StepContext
    from .clock import FrameClock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepOutcome:
    """ステップ 1 回分の実行結果。

    Attributes:
        index: ケース内のステップインデックス（0始まり）
        success: 成功したかどうか
        error_message: 失敗時のエラーメッセージ
        error_kind: 失敗時のエラー種別
        duration: 実行時間（秒、unscaled）
        label: ステップの表示ラベル
    """

    index: int
    success: bool
    error_message: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    duration: float = 0.0
    label: str = ""


class CancelToken:
    """協調的キャンセルのためのトークン。

    Runner が cancel() を呼び、実行中のタスクがフレームごとに cancelled を確認する。
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._reason = ""

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str = "") -> None:
        self._cancelled = True
        self._reason = reason

    def __repr__(self) -> str:
        return f"CancelToken(cancelled={self._cancelled!r})"


class StepExecutor:
    """ステップをタイムアウト付きで実行し、StepOutcome を返す。

    ステップ内で発生した例外は全てここで捕捉され、呼び出し元へは伝播しない。

    使用例::

        executor = StepExecutor(context, default_timeout=10.0)
        outcome = await executor.run_step_with_timeout(step, 0)
    """

    def __init__(self, context: StepContext, default_timeout: Optional[float] = None) -> None:
        """StepExecutor を初期化する。

        Args:
            context: ステップ実行コンテキスト
            default_timeout: 実行時のデフォルトタイムアウト（秒）。None の場合は Waiter の値
        """
        self._context = context
        self._default_timeout = (
            default_timeout if default_timeout is not None else context.waiter.timeout
        )

    @property
    def context(self) -> StepContext:
        return self._context

    @property
    def clock(self) -> FrameClock:
        return self._context.clock

    @property
    def default_timeout(self) -> float:
        return self._default_timeout

    def effective_timeout(self, step: Step, ambient_timeout: Optional[float] = None) -> float:
        """ステップの実効タイムアウトを返す。"""
        if step.timeout_override > 0:
            return step.timeout_override
        if ambient_timeout is not None and ambient_timeout > 0:
            return ambient_timeout
        return self._default_timeout

    async def run_step_with_timeout(
        self,
        step: Step,
        index: int,
        ambient_timeout: Optional[float] = None,
        cancel: Optional[CancelToken] = None,
    ) -> StepOutcome:
        """ステップを実行し、結果を StepOutcome として返す。

        経過時間はステップが最初に実行されたフレームを起点に clock.now() の差で測る。
        ステップが最初の実行で待機を開始し、待機と同じ予算を持つ場合は
        両者が同じフレームで期限を迎え、待機側の WaitTimeoutError が報告される。

        Args:
            step: 実行するステップ
            index: ケース内のステップインデックス
            ambient_timeout: 実行時のデフォルトタイムアウト（秒）。None で default_timeout
            cancel: 協調的キャンセルのトークン

        Returns:
            ステップの実行結果
        """
        clock = self._context.clock
        timeout = self.effective_timeout(step, ambient_timeout)
        label = step.label

        logger.info("ステップ %d 開始: %s（timeout=%.2fs）", index, label, timeout)
        task = asyncio.ensure_future(step.execute(self._context))
        elapsed = 0.0

        try:
            # ステップの最初の実行と同じフレームで計測を開始する
            await asyncio.sleep(0)
            start = clock.now()

            while True:
                if task.done():
                    return self._complete(task, index, label, elapsed)

                if cancel is not None and cancel.cancelled:
                    task.cancel()
                    await asyncio.wait({task})
                    logger.warning("ステップ %d はキャンセルされました: %s", index, label)
                    return StepOutcome(
                        index=index,
                        success=False,
                        error_message=f"ステップがキャンセルされました: {cancel.reason or label}",
                        error_kind=ErrorKind.CANCELLED,
                        duration=elapsed,
                        label=label,
                    )

                if elapsed > timeout:
                    # 同じフレームで再開したステップ側を先に進める
                    await asyncio.sleep(0)
                    if task.done():
                        return self._complete(task, index, label, elapsed)
                    task.cancel()
                    await asyncio.wait({task})
                    error = StepTimeoutError(
                        f"ステップ '{label}' が {timeout}s 以内に完了しませんでした",
                        timeout=timeout,
                        elapsed=elapsed,
                    )
                    logger.error("ステップ %d 失敗: %s", index, error)
                    return StepOutcome(
                        index=index,
                        success=False,
                        error_message=str(error),
                        error_kind=error.kind,
                        duration=elapsed,
                        label=label,
                    )

                await clock.next_tick()
                elapsed = clock.now() - start
        finally:
            if not task.done():
                task.cancel()

    def _complete(self, task: asyncio.Future, index: int, label: str, elapsed: float) -> StepOutcome:
        """完了したタスクの結果を StepOutcome に変換する。"""
        if task.cancelled():
            logger.warning("ステップ %d のタスクが外部からキャンセルされました: %s", index, label)
            return StepOutcome(
                index=index,
                success=False,
                error_message="ステップのタスクがキャンセルされました",
                error_kind=ErrorKind.CANCELLED,
                duration=elapsed,
                label=label,
            )

        exc = task.exception()
        if exc is None:
            logger.info("ステップ %d 完了: %s（%.2fs）", index, label, elapsed)
            return StepOutcome(index=index, success=True, duration=elapsed, label=label)

        message = str(exc) or type(exc).__name__
        kind = classify(exc)
        logger.error("ステップ %d 失敗: %s - %s", index, label, message)
        logger.debug("ステップ %d の例外詳細", index, exc_info=exc)
        return StepOutcome(
            index=index,
            success=False,
            error_message=message,
            error_kind=kind,
            duration=elapsed,
            label=label,
        )
