"""
RunState — 実行状態の単一書き込み・スナップショット読み取り

Runner だけが書き込みを行い、それ以外（UI 表示、CLI、テスト）は
snapshot() または subscribe() で不変のスナップショットを受け取る。

主な構成:
  - RunPhase: IDLE → PREPARING → RUNNING → FINISHED → IDLE
  - RunSnapshot: 読み取り専用のスナップショット
  - RunState: 状態本体（読み取りプロパティと Runner 用の書き込みメソッド）
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional

if TYPE_CHECKING:
    from .case import TestCase
    from .executor import StepOutcome

logger = logging.getLogger(__name__)


class RunPhase(str, Enum):
    """Runner の状態。"""

    IDLE = "idle"
    PREPARING = "preparing"
    RUNNING = "running"
    FINISHED = "finished"


@dataclass(frozen=True)
class RunSnapshot:
    """ある時点の RunState の不変コピー。"""

    phase: RunPhase
    case_name: Optional[str]
    current_step_index: int
    is_running: bool
    has_failed: bool
    failure_message: Optional[str]
    step_results: tuple[Optional[bool], ...]


SnapshotListener = Callable[[RunSnapshot], None]


class RunState:
    """現在のテストケースの実行状態。

    step_results はケースのステップ数と同じ長さで、None は未実行を表す。
    set_test_case ごとにちょうど 1 回だけ再確保される。
    current_step_index は実行中に単調増加し、実行開始時・終了時は -1。
    """

    def __init__(self) -> None:
        self._phase = RunPhase.IDLE
        self._case: Optional[TestCase] = None
        self._current_step_index = -1
        self._has_failed = False
        self._failure_message: Optional[str] = None
        self._step_results: list[Optional[bool]] = []
        self._listeners: list[SnapshotListener] = []

    # -------------------------------------------------------------------
    # 読み取り
    # -------------------------------------------------------------------

    @property
    def phase(self) -> RunPhase:
        return self._phase

    @property
    def current_case(self) -> Optional[TestCase]:
        return self._case

    @property
    def current_step_index(self) -> int:
        return self._current_step_index

    @property
    def is_running(self) -> bool:
        return self._phase is RunPhase.RUNNING

    @property
    def has_failed(self) -> bool:
        return self._has_failed

    @property
    def failure_message(self) -> Optional[str]:
        return self._failure_message

    @property
    def step_results(self) -> tuple[Optional[bool], ...]:
        """各ステップの結果のコピー（True: 成功, False: 失敗, None: 未実行）。"""
        return tuple(self._step_results)

    def snapshot(self) -> RunSnapshot:
        """現在の状態の不変スナップショットを返す。"""
        return RunSnapshot(
            phase=self._phase,
            case_name=self._case.name if self._case is not None else None,
            current_step_index=self._current_step_index,
            is_running=self.is_running,
            has_failed=self._has_failed,
            failure_message=self._failure_message,
            step_results=tuple(self._step_results),
        )

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """状態変化のたびにスナップショットを受け取るリスナーを登録する。

        Args:
            listener: スナップショットを受け取る関数

        Returns:
            登録を解除する関数
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self) -> None:
        if not self._listeners:
            return
        snap = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snap)
            except Exception:
                logger.exception("RunState リスナーでエラーが発生しました")

    # -------------------------------------------------------------------
    # 書き込み（Runner 専用）
    # -------------------------------------------------------------------

    def prepare(self, case: TestCase) -> None:
        """新しいケースのために状態を初期化し、PREPARING に遷移する。"""
        self._case = case
        self._step_results = [None] * len(case.steps)
        self._has_failed = False
        self._failure_message = None
        self._current_step_index = -1
        self._phase = RunPhase.PREPARING
        self._publish()

    def start_running(self) -> None:
        self._phase = RunPhase.RUNNING
        self._current_step_index = -1
        self._publish()

    def mark_step_running(self, index: int) -> None:
        """実行中のステップインデックスを更新する。インデックスは単調増加する。"""
        if index < self._current_step_index:
            raise ValueError(
                f"ステップインデックスは単調増加である必要があります: "
                f"{self._current_step_index} → {index}"
            )
        self._current_step_index = index
        self._publish()

    def record(self, outcome: StepOutcome) -> None:
        """ステップの結果を記録する。最初の失敗メッセージを failure_message に保持する。"""
        if 0 <= outcome.index < len(self._step_results):
            self._step_results[outcome.index] = outcome.success
        else:
            logger.warning("範囲外のステップ結果を無視します: index=%d", outcome.index)
        if not outcome.success:
            if not self._has_failed:
                self._failure_message = outcome.error_message
            self._has_failed = True
        self._publish()

    def fail(self, message: str) -> None:
        """ステップ外の失敗を記録する。既に失敗していればメッセージは上書きしない。"""
        if not self._has_failed:
            self._failure_message = message
        self._has_failed = True
        self._publish()

    def finish(self) -> None:
        """FINISHED に遷移する。ケースと結果は次の set_test_case / reset まで保持する。"""
        self._phase = RunPhase.FINISHED
        self._current_step_index = -1
        self._publish()

    def clear(self) -> None:
        """全ての状態を消去し、IDLE に遷移する。"""
        self._phase = RunPhase.IDLE
        self._case = None
        self._current_step_index = -1
        self._has_failed = False
        self._failure_message = None
        self._step_results = []
        self._publish()
