"""
TestCase — ステップの順次実行と stopOnError ポリシー

主な構成:
  - TestCase: 名前・説明・stopOnError・ステップ列
  - CaseResult: ケース全体の実行結果
  - CaseObserver: ステップ開始・完了の通知を受け取る Protocol
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Literal, Optional, Protocol

from .errors import CaseAbort, ErrorKind

if TYPE_CHECKING:
    from ..steps.base import Step
    from .executor import CancelToken, StepExecutor, StepOutcome

logger = logging.getLogger(__name__)


class CaseObserver(Protocol):
    """TestCase.run() の進行を受け取るオブザーバ。"""

    def on_step_started(self, index: int, step: Step) -> None: ...

    def on_step_finished(self, outcome: StepOutcome) -> None: ...


@dataclass
class CaseResult:
    """テストケース全体の実行結果。

    Attributes:
        name: ケース名
        status: 全体結果（passed / failed / cancelled）
        outcomes: 実行された各ステップの結果（stopOnError で中断された後続ステップは含まない）
        aborted: stopOnError によって中断されたかどうか
        abort_reason: 中断理由（CaseAbort のメッセージ）
        step_count: ケースのステップ数
        duration: 全体実行時間（秒、unscaled）
        started_at: 実行開始日時
        finished_at: 実行終了日時
    """

    name: str
    status: Literal["passed", "failed", "cancelled"] = "passed"
    outcomes: list[StepOutcome] = field(default_factory=list)
    aborted: bool = False
    abort_reason: Optional[str] = None
    step_count: int = 0
    duration: float = 0.0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def passed(self) -> bool:
        return self.status == "passed"

    @property
    def first_failure(self) -> Optional[StepOutcome]:
        """最初に失敗したステップの結果。"""
        return next((o for o in self.outcomes if not o.success), None)


@dataclass
class TestCase:
    """順番に実行されるステップの列。

    Attributes:
        name: ケース名
        description: ケースの説明
        stop_on_error: True の場合、最初の失敗で以降のステップを実行しない
        steps: ステップ列（None は未設定として警告付きでスキップ）
    """

    __test__ = False

    name: str
    description: str = ""
    stop_on_error: bool = True
    steps: list[Optional[Step]] = field(default_factory=list)

    async def run(
        self,
        executor: StepExecutor,
        *,
        ambient_timeout: Optional[float] = None,
        observer: Optional[CaseObserver] = None,
        cancel: Optional[CancelToken] = None,
    ) -> CaseResult:
        """ステップを順番に実行する。

        各ステップの後に 1 フレーム譲る。リトライは行わない。

        Args:
            executor: ステップを実行する StepExecutor
            ambient_timeout: ステップの実行時デフォルトタイムアウト（秒）
            observer: 進行通知の受け取り先
            cancel: 協調的キャンセルのトークン

        Returns:
            ケース全体の実行結果
        """
        clock = executor.clock
        result = CaseResult(name=self.name, step_count=len(self.steps), started_at=datetime.now())
        start = clock.now()
        logger.info("テストケース開始: %s（%d ステップ）", self.name, len(self.steps))

        for index, step in enumerate(self.steps):
            if cancel is not None and cancel.cancelled:
                result.status = "cancelled"
                logger.warning("テストケース '%s' はキャンセルされました", self.name)
                break

            if step is None:
                logger.warning("テストケース '%s' のステップ %d が未設定のためスキップします", self.name, index)
                continue

            if observer is not None:
                observer.on_step_started(index, step)

            outcome = await executor.run_step_with_timeout(step, index, ambient_timeout, cancel)
            result.outcomes.append(outcome)
            if observer is not None:
                observer.on_step_finished(outcome)

            if outcome.error_kind is ErrorKind.CANCELLED and cancel is not None and cancel.cancelled:
                result.status = "cancelled"
                break

            if not outcome.success:
                result.status = "failed"
                if self.stop_on_error:
                    abort = CaseAbort(
                        f"ステップ {index}（{outcome.label}）の失敗によりテストケースを中断しました: "
                        f"{outcome.error_message}"
                    )
                    result.aborted = True
                    result.abort_reason = str(abort)
                    logger.warning("%s", abort)
                    break

            await clock.next_tick()

        result.duration = clock.now() - start
        result.finished_at = datetime.now()
        logger.info(
            "テストケース終了: %s → %s（%.2fs）", self.name, result.status, result.duration,
        )
        return result
