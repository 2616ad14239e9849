"""
StepExecutor のユニットテスト

テスト対象:
  - run_step_with_timeout(): 成功・例外の捕捉・タイムアウト
  - 実効タイムアウトの決定（timeout_override > ambient > default）
  - 内側の待機タイムアウトとステップ単位のタイムアウトの関係
  - CancelToken による中断
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import ClassVar

import pytest

from uiflow.core.conditions import Predicate
from uiflow.core.errors import ErrorKind
from uiflow.core.executor import CancelToken, StepExecutor
from uiflow.steps.base import Step, StepContext


# ---------------------------------------------------------------------------
# ヘルパー: テスト用ステップ
# ---------------------------------------------------------------------------

@dataclass(kw_only=True)
class _SleepStep(Step):
    """指定秒数待機するだけのステップ。"""

    seconds: float = 0.0
    kind: ClassVar[str] = "sleep"

    async def execute(self, ctx: StepContext) -> None:
        await ctx.clock.sleep(self.seconds)


@dataclass(kw_only=True)
class _HangStep(Step):
    """Waiter を使わずに永久に中断し続けるステップ。"""

    kind: ClassVar[str] = "hang"

    async def execute(self, ctx: StepContext) -> None:
        while True:
            await ctx.clock.next_tick()


@dataclass(kw_only=True)
class _RaiseStep(Step):
    """1 フレーム後に例外を送出するステップ。"""

    error: Exception
    kind: ClassVar[str] = "raise"

    async def execute(self, ctx: StepContext) -> None:
        await ctx.clock.next_tick()
        raise self.error


@dataclass(kw_only=True)
class _NeverStep(Step):
    """満たされない条件を待機するステップ。"""

    wait_timeout: float = 1.0
    kind: ClassVar[str] = "never"

    async def execute(self, ctx: StepContext) -> None:
        await ctx.waiter.wait(Predicate(lambda: False, label="never"), self.wait_timeout)


# ===========================================================================
# 1. 実効タイムアウト
# ===========================================================================

class TestEffectiveTimeout:
    """effective_timeout() のテスト。"""

    async def test_override_wins(self, executor: StepExecutor) -> None:
        step = _SleepStep(timeout_override=3.0)
        assert executor.effective_timeout(step, ambient_timeout=7.0) == 3.0

    async def test_ambient_when_no_override(self, executor: StepExecutor) -> None:
        assert executor.effective_timeout(_SleepStep(), ambient_timeout=7.0) == 7.0

    async def test_default_when_no_ambient(self, executor: StepExecutor) -> None:
        assert executor.effective_timeout(_SleepStep()) == 10.0

    def test_negative_override_rejected(self) -> None:
        with pytest.raises(ValueError, match="timeout_override"):
            _SleepStep(timeout_override=-1.0)


# ===========================================================================
# 2. 実行結果
# ===========================================================================

class TestRunStep:
    """run_step_with_timeout() のテスト。"""

    async def test_success(self, executor: StepExecutor) -> None:
        outcome = await executor.run_step_with_timeout(_SleepStep(seconds=0.5, note="短い待機"), 2)

        assert outcome.success
        assert outcome.index == 2
        assert outcome.label == "短い待機"
        assert outcome.error_message is None
        assert outcome.duration >= 0.5

    async def test_exception_is_captured(self, executor: StepExecutor) -> None:
        """ステップ内の例外は送出されず、失敗として報告されること。"""
        outcome = await executor.run_step_with_timeout(_RaiseStep(error=RuntimeError("boom")), 0)

        assert not outcome.success
        assert outcome.error_message == "boom"
        assert outcome.error_kind is ErrorKind.ERROR
        assert outcome.label == "raise"

    async def test_empty_message_uses_type_name(self, executor: StepExecutor) -> None:
        outcome = await executor.run_step_with_timeout(_RaiseStep(error=KeyError()), 0)
        assert outcome.error_message == "KeyError"

    async def test_override_timeout(self, executor: StepExecutor) -> None:
        """timeout_override=3 のステップは約 3 秒で打ち切られること。"""
        outcome = await executor.run_step_with_timeout(_HangStep(timeout_override=3.0), 0)

        assert not outcome.success
        assert outcome.error_kind is ErrorKind.TIMEOUT
        assert "3.0s 以内に完了しませんでした" in outcome.error_message
        assert 3.0 < outcome.duration <= 3.3

    async def test_ambient_timeout(self, executor: StepExecutor) -> None:
        """timeout_override=0 のステップは実行時のデフォルト値（10 秒）で打ち切られること。"""
        outcome = await executor.run_step_with_timeout(_HangStep(), 0, ambient_timeout=10.0)

        assert outcome.error_kind is ErrorKind.TIMEOUT
        assert 10.0 < outcome.duration <= 10.3

    async def test_inner_wait_timeout_reported(self, executor: StepExecutor) -> None:
        """内側の待機が先にタイムアウトした場合、待機の診断メッセージが報告されること。"""
        outcome = await executor.run_step_with_timeout(
            _NeverStep(wait_timeout=1.0, timeout_override=5.0), 0,
        )

        assert outcome.error_kind is ErrorKind.TIMEOUT
        assert "待機がタイムアウトしました" in outcome.error_message
        assert "never" in outcome.error_message
        assert outcome.duration < 2.0

    async def test_outer_timeout_when_step_budget_is_shorter(self, executor: StepExecutor) -> None:
        """内側の待機より短いステップ予算ではステップ単位のタイムアウトが報告されること。"""
        outcome = await executor.run_step_with_timeout(
            _NeverStep(wait_timeout=5.0, timeout_override=1.0), 0,
        )

        assert outcome.error_kind is ErrorKind.TIMEOUT
        assert "以内に完了しませんでした" in outcome.error_message
        assert outcome.duration <= 1.3

    @pytest.mark.parametrize("budget", [0.3, 0.7, 1.0, 1.5, 2.0, 3.0, 5.0])
    async def test_equal_budgets_report_inner_wait(self, executor: StepExecutor, budget: float) -> None:
        """待機とステップの予算が等しい場合は常に待機側のメッセージが報告されること。"""
        outcome = await executor.run_step_with_timeout(
            _NeverStep(wait_timeout=budget, timeout_override=budget), 0,
        )

        assert outcome.error_kind is ErrorKind.TIMEOUT
        assert "待機がタイムアウトしました" in outcome.error_message
        assert "以内に完了しませんでした" not in outcome.error_message
        assert budget - 1e-6 <= outcome.duration <= budget + 0.25

    async def test_cancel_token(self, executor: StepExecutor) -> None:
        token = CancelToken()

        async def cancel_later() -> None:
            await executor.clock.sleep(0.5)
            token.cancel("中断テスト")

        canceller = asyncio.ensure_future(cancel_later())
        outcome = await executor.run_step_with_timeout(_HangStep(), 0, cancel=token)
        await canceller

        assert outcome.error_kind is ErrorKind.CANCELLED
        assert "中断テスト" in outcome.error_message
        assert outcome.duration < 2.0
