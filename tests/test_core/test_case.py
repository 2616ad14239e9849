"""
TestCase.run() のユニットテスト

テスト対象:
  - ステップの順次実行と CaseResult
  - stopOnError（中断）/ continue（続行）ポリシー
  - 未設定（None）ステップのスキップ
  - オブザーバへの通知
  - CancelToken によるケースの中断
"""

from __future__ import annotations

import logging

import pytest

from uiflow.core.case import CaseResult, TestCase
from uiflow.core.errors import ErrorKind
from uiflow.core.executor import CancelToken, StepExecutor, StepOutcome
from uiflow.host.memory import InMemoryHost
from uiflow.steps.base import Step
from uiflow.steps.builtin import ActionStep, ActionType, CallableAction, LogStep


class _RecordingObserver:
    """通知を記録するオブザーバ。"""

    def __init__(self) -> None:
        self.events: list[tuple] = []

    def on_step_started(self, index: int, step: Step) -> None:
        self.events.append(("started", index))

    def on_step_finished(self, outcome: StepOutcome) -> None:
        self.events.append(("finished", outcome.index, outcome.success))


def _failing_step(note: str = "失敗ステップ") -> ActionStep:
    def fail(ctx) -> None:
        raise RuntimeError("意図的な失敗")

    return ActionStep(action=ActionType.CUSTOM, custom=CallableAction(fail), note=note)


def _case(stop_on_error: bool) -> TestCase:
    return TestCase(
        name="three-steps",
        stop_on_error=stop_on_error,
        steps=[
            ActionStep(action=ActionType.PRESS, target="Canvas/PlayButton"),
            _failing_step(),
            LogStep(message="最後のステップ"),
        ],
    )


# ===========================================================================
# 1. 基本動作
# ===========================================================================

class TestRun:
    """TestCase.run() の基本動作テスト。"""

    async def test_all_steps_pass(self, executor: StepExecutor, host: InMemoryHost) -> None:
        case = TestCase(
            name="press",
            steps=[
                ActionStep(action=ActionType.PRESS, target="Canvas/PlayButton"),
                ActionStep(action=ActionType.ASSERT_LABEL, target="id:status", text="Ready"),
            ],
        )

        result = await case.run(executor)

        assert isinstance(result, CaseResult)
        assert result.passed
        assert result.status == "passed"
        assert [o.success for o in result.outcomes] == [True, True]
        assert result.step_count == 2
        assert result.started_at is not None
        assert result.finished_at is not None
        assert result.first_failure is None

    async def test_empty_case(self, executor: StepExecutor) -> None:
        result = await TestCase(name="empty").run(executor)
        assert result.passed
        assert result.outcomes == []

    async def test_none_step_is_skipped(
        self, executor: StepExecutor, caplog: pytest.LogCaptureFixture,
    ) -> None:
        """未設定のステップは警告付きでスキップされ、後続は実行されること。"""
        case = TestCase(name="with-none", steps=[None, LogStep(message="ok")])

        with caplog.at_level(logging.WARNING, logger="uiflow.core.case"):
            result = await case.run(executor)

        assert result.passed
        assert [o.index for o in result.outcomes] == [1]
        assert "未設定" in caplog.text


# ===========================================================================
# 2. stopOnError
# ===========================================================================

class TestStopOnError:
    """stopOnError ポリシーのテスト。"""

    async def test_stop_on_error_aborts(self, executor: StepExecutor) -> None:
        """stop_on_error=True では失敗したステップで中断し、後続は実行しないこと。"""
        result = await _case(stop_on_error=True).run(executor)

        assert result.status == "failed"
        assert result.aborted
        assert [o.success for o in result.outcomes] == [True, False]
        assert "ステップ 1（失敗ステップ）の失敗によりテストケースを中断しました" in result.abort_reason
        assert result.first_failure.error_message == "意図的な失敗"

    async def test_continue_on_error(self, executor: StepExecutor) -> None:
        """stop_on_error=False では失敗後も後続ステップを実行すること。"""
        result = await _case(stop_on_error=False).run(executor)

        assert result.status == "failed"
        assert not result.aborted
        assert [o.success for o in result.outcomes] == [True, False, True]


# ===========================================================================
# 3. オブザーバ・キャンセル
# ===========================================================================

class TestObserverAndCancel:
    """オブザーバ通知とキャンセルのテスト。"""

    async def test_observer_order(self, executor: StepExecutor) -> None:
        observer = _RecordingObserver()
        await _case(stop_on_error=False).run(executor, observer=observer)

        assert observer.events == [
            ("started", 0), ("finished", 0, True),
            ("started", 1), ("finished", 1, False),
            ("started", 2), ("finished", 2, True),
        ]

    async def test_cancel_before_start(self, executor: StepExecutor) -> None:
        token = CancelToken()
        token.cancel("停止")

        result = await _case(stop_on_error=True).run(executor, cancel=token)

        assert result.status == "cancelled"
        assert result.outcomes == []

    async def test_cancel_during_step(self, executor: StepExecutor) -> None:
        """実行中のステップでキャンセルされた場合は cancelled で終了すること。"""
        token = CancelToken()

        async def cancel_inside(ctx) -> None:
            token.cancel("ステップ内から停止")
            await ctx.clock.sleep(5.0)

        case = TestCase(
            name="cancel",
            steps=[
                ActionStep(action=ActionType.CUSTOM, custom=CallableAction(cancel_inside)),
                LogStep(message="実行されない"),
            ],
        )
        result = await case.run(executor, cancel=token)

        assert result.status == "cancelled"
        assert len(result.outcomes) == 1
        assert result.outcomes[0].error_kind is ErrorKind.CANCELLED
