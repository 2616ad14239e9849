"""
Runner のユニットテスト

InMemoryHost と仮想クロック（1 フレーム 0.1 秒）上で状態機械の振る舞いを検証する。

テスト対象:
  - set_test_case(): 即時開始・READY 通知までの保留・二重設定
  - stopOnError / continue による step_results
  - reset(): 実行中のキャンセルと状態の消去
  - TORN_DOWN 通知による保留中ケースの中止
  - RunDriver の重複防止
  - ステップ単位のタイムアウト（timeout_override / デフォルト値）
  - RunState の購読
"""

from __future__ import annotations

import pytest

from uiflow.config import EngineConfig
from uiflow.core.case import TestCase
from uiflow.core.errors import ErrorKind
from uiflow.core.runner import Runner
from uiflow.core.state import RunPhase, RunSnapshot
from uiflow.host.memory import InMemoryHost
from uiflow.steps.builtin import (
    ActionStep,
    ActionType,
    CallableAction,
    LogStep,
    WaitForConditionStep,
    WaitTimeStep,
)


# ---------------------------------------------------------------------------
# ヘルパー
# ---------------------------------------------------------------------------

def _fail(ctx) -> None:
    raise RuntimeError("意図的な失敗")


def _three_step_case(stop_on_error: bool) -> TestCase:
    """成功 → 失敗 → 成功 の 3 ステップのケース。"""
    return TestCase(
        name="three-steps",
        stop_on_error=stop_on_error,
        steps=[
            ActionStep(action=ActionType.PRESS, target="Canvas/PlayButton"),
            ActionStep(action=ActionType.CUSTOM, custom=CallableAction(_fail), note="fail"),
            LogStep(message="done"),
        ],
    )


def _hang_case(name: str = "hang", seconds: float = 100.0) -> TestCase:
    return TestCase(
        name=name,
        steps=[WaitTimeStep(seconds=seconds, timeout_override=seconds + 10)],
    )


class _BrokenCase(TestCase):
    """run() 自体が例外を送出するケース。"""

    async def run(self, executor, **kwargs):
        raise RuntimeError("broken case")


# ===========================================================================
# 1. 実行と step_results
# ===========================================================================

class TestRunToCompletion:
    """ケースの実行結果のテスト。"""

    async def test_stop_on_error(self, host: InMemoryHost, config: EngineConfig) -> None:
        """stop_on_error=True では失敗後のステップは未実行（None）のまま残ること。"""
        runner = Runner(host, config)
        runner.set_test_case(_three_step_case(stop_on_error=True))
        await runner.wait_finished()

        assert runner.phase is RunPhase.FINISHED
        assert runner.state.step_results == (True, False, None)
        assert runner.state.has_failed
        assert runner.state.failure_message == "意図的な失敗"
        assert runner.state.current_step_index == -1
        assert runner.last_result is not None
        assert runner.last_result.aborted

    async def test_continue_on_error(self, host: InMemoryHost, config: EngineConfig) -> None:
        """stop_on_error=False では失敗後も全ステップを実行すること。"""
        runner = Runner(host, config)
        runner.set_test_case(_three_step_case(stop_on_error=False))
        await runner.wait_finished()

        assert runner.state.step_results == (True, False, True)
        assert runner.last_result.status == "failed"

    async def test_all_passed(self, host: InMemoryHost, config: EngineConfig) -> None:
        runner = Runner(host, config)
        runner.set_test_case(TestCase(name="ok", steps=[LogStep(message="a"), LogStep(message="b")]))
        await runner.wait_finished()

        assert runner.state.step_results == (True, True)
        assert not runner.state.has_failed
        assert runner.last_result.passed

    async def test_runner_survives_failures(self, host: InMemoryHost, config: EngineConfig) -> None:
        """ステップやケースが例外を送出しても、Runner は次のケースを実行できること。"""
        runner = Runner(host, config)

        runner.set_test_case(_BrokenCase(name="broken", steps=[LogStep(message="x")]))
        await runner.wait_finished()
        assert runner.phase is RunPhase.FINISHED
        assert runner.last_result is None
        assert runner.state.has_failed
        assert runner.state.failure_message == "broken case"
        assert runner.state.step_results == (None,)

        runner.set_test_case(_three_step_case(stop_on_error=True))
        await runner.wait_finished()

        runner.set_test_case(TestCase(name="after", steps=[LogStep(message="ok")]))
        await runner.wait_finished()
        assert runner.state.step_results == (True,)
        assert runner.last_result.name == "after"

    async def test_driver_released_after_finish(self, host: InMemoryHost, config: EngineConfig) -> None:
        runner = Runner(host, config)
        runner.set_test_case(TestCase(name="ok", steps=[LogStep(message="a")]))
        assert runner.driver is not None
        await runner.wait_finished()
        assert runner.driver is None

    def test_none_case_rejected(self, idle_host: InMemoryHost) -> None:
        runner = Runner(idle_host)
        with pytest.raises(ValueError, match="テストケース"):
            runner.set_test_case(None)  # type: ignore[arg-type]


# ===========================================================================
# 2. reset / 二重設定
# ===========================================================================

class TestResetAndReplace:
    """reset() と set_test_case() の二重呼び出しのテスト。"""

    async def test_reset_while_running(self, host: InMemoryHost, config: EngineConfig) -> None:
        """reset() で実行中のケースをキャンセルし、IDLE に戻ること。"""
        runner = Runner(host, config)
        runner.set_test_case(_hang_case())
        await host.clock.sleep(0.5)
        assert runner.phase is RunPhase.RUNNING
        assert runner.state.current_step_index == 0

        runner.reset()

        assert runner.phase is RunPhase.IDLE
        assert runner.state.current_step_index == -1
        assert runner.state.step_results == ()
        assert runner.state.current_case is None
        await runner.wait_finished()

        # 放棄された実行が状態を書き換えないこと
        await host.clock.sleep(1.0)
        assert runner.phase is RunPhase.IDLE
        assert runner.state.step_results == ()

    async def test_second_set_replaces_first(self, host: InMemoryHost, config: EngineConfig) -> None:
        """実行中に別のケースを設定すると、最初のケースは放棄され 2 つ目だけが実行されること。"""
        executed: list[str] = []

        def record(label: str):
            def action(ctx) -> None:
                executed.append(label)
            return CallableAction(action, name=label)

        first = TestCase(
            name="first",
            steps=[
                ActionStep(action=ActionType.CUSTOM, custom=record("first-0")),
                WaitTimeStep(seconds=5.0),
                ActionStep(action=ActionType.CUSTOM, custom=record("first-2")),
            ],
        )
        second = TestCase(
            name="second",
            steps=[ActionStep(action=ActionType.CUSTOM, custom=record("second-0"))],
        )

        runner = Runner(host, config)
        runner.set_test_case(first)
        await host.clock.sleep(0.5)
        runner.set_test_case(second)
        await runner.wait_finished()
        await host.clock.sleep(6.0)

        assert executed == ["first-0", "second-0"]
        assert runner.state.current_case is second
        assert runner.state.step_results == (True,)
        assert runner.last_result.name == "second"
        assert runner.phase is RunPhase.FINISHED


# ===========================================================================
# 3. 準備完了通知
# ===========================================================================

class TestReadiness:
    """READY / TORN_DOWN 通知のテスト。"""

    async def test_deferred_until_ready(self, idle_host: InMemoryHost, config: EngineConfig) -> None:
        """実行環境が準備完了するまで開始を保留し、READY 通知で開始すること。"""
        runner = Runner(idle_host, config)
        runner.set_test_case(TestCase(name="deferred", steps=[LogStep(message="a")]))

        assert runner.phase is RunPhase.PREPARING
        assert runner.pending
        assert runner.state.step_results == (None,)
        assert idle_host.listener_count == 1

        idle_host.start()
        try:
            assert runner.phase is RunPhase.RUNNING
            assert not runner.pending
            assert idle_host.listener_count == 0
            await runner.wait_finished()
            assert runner.state.step_results == (True,)
        finally:
            await idle_host.shutdown()

    async def test_torn_down_while_preparing(self, idle_host: InMemoryHost, config: EngineConfig) -> None:
        """保留中に TORN_DOWN が通知されると、ケースを中止して IDLE に戻ること。"""
        runner = Runner(idle_host, config)
        runner.set_test_case(TestCase(name="never", steps=[LogStep(message="a")]))

        idle_host.stop()

        assert runner.phase is RunPhase.IDLE
        assert runner.state.current_case is None
        assert not runner.pending
        assert idle_host.listener_count == 0
        await runner.wait_finished()

    async def test_reset_while_preparing(self, idle_host: InMemoryHost, config: EngineConfig) -> None:
        runner = Runner(idle_host, config)
        runner.set_test_case(TestCase(name="never", steps=[LogStep(message="a")]))
        runner.reset()

        assert runner.phase is RunPhase.IDLE
        assert idle_host.listener_count == 0

        # reset 後の READY では開始しない
        idle_host.start()
        try:
            await idle_host.clock.sleep(0.3)
            assert runner.phase is RunPhase.IDLE
        finally:
            await idle_host.shutdown()


# ===========================================================================
# 4. RunDriver
# ===========================================================================

class TestRunDriver:
    """RunDriver の重複防止テスト。"""

    def test_duplicate_driver_is_discarded(self, idle_host: InMemoryHost) -> None:
        """生存中のドライバがある状態で生成したドライバは破棄扱いになり、開始できないこと。"""
        runner = Runner(idle_host)
        first = runner.create_driver()
        second = runner.create_driver()

        assert first.live
        assert second.discarded
        assert runner.driver is first

        async def noop() -> None:
            return None

        with pytest.raises(RuntimeError, match="RunDriver"):
            second.start(noop())

        first.destroy()
        assert runner.driver is None
        third = runner.create_driver()
        assert third.live
        assert runner.driver is third


# ===========================================================================
# 5. タイムアウト
# ===========================================================================

class TestStepTimeouts:
    """Runner 経由でのステップ単位タイムアウトのテスト。"""

    async def test_timeout_override(self, host: InMemoryHost, config: EngineConfig) -> None:
        """timeout_override=3 のステップは約 3 秒でタイムアウトすること。"""
        runner = Runner(host, config)
        runner.set_test_case(TestCase(
            name="override",
            steps=[WaitTimeStep(seconds=100.0, timeout_override=3.0)],
        ))
        await runner.wait_finished()

        outcome = runner.last_result.outcomes[0]
        assert outcome.error_kind is ErrorKind.TIMEOUT
        assert 3.0 < outcome.duration <= 3.3
        assert runner.state.step_results == (False,)

    async def test_default_timeout(self, host: InMemoryHost, config: EngineConfig) -> None:
        """timeout_override=0 のステップは設定のデフォルト値（10 秒）でタイムアウトすること。"""
        runner = Runner(host, config)
        runner.set_test_case(TestCase(name="default", steps=[WaitTimeStep(seconds=100.0)]))
        await runner.wait_finished()

        outcome = runner.last_result.outcomes[0]
        assert outcome.error_kind is ErrorKind.TIMEOUT
        assert 10.0 < outcome.duration <= 10.3

    async def test_empty_wait_for_condition_passes(self, host: InMemoryHost, config: EngineConfig) -> None:
        runner = Runner(host, config)
        runner.set_test_case(TestCase(name="empty-wait", steps=[WaitForConditionStep()]))
        await runner.wait_finished()
        assert runner.state.step_results == (True,)


# ===========================================================================
# 6. 購読
# ===========================================================================

class TestSubscription:
    """RunState の購読テスト。"""

    async def test_snapshots_follow_lifecycle(self, host: InMemoryHost, config: EngineConfig) -> None:
        runner = Runner(host, config)
        snapshots: list[RunSnapshot] = []
        runner.state.subscribe(snapshots.append)

        runner.set_test_case(_three_step_case(stop_on_error=False))
        await runner.wait_finished()

        phases = [s.phase for s in snapshots]
        assert phases[0] is RunPhase.PREPARING
        assert phases[-1] is RunPhase.FINISHED
        assert RunPhase.RUNNING in phases

        running = [s.current_step_index for s in snapshots if s.phase is RunPhase.RUNNING]
        assert running == sorted(running)
        assert snapshots[-1].step_results == (True, False, True)
        assert all(len(s.step_results) == 3 for s in snapshots)
