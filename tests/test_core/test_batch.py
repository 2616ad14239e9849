"""
CaseBatch のユニットテスト

テスト対象:
  - run_all(): ケースの逐次実行・失敗後の続行
  - ケース間の gap（unscaled 時間）
  - 未設定ケースのスキップ・キャンセル
"""

from __future__ import annotations

import pytest

from uiflow.core.batch import BatchResult, CaseBatch
from uiflow.core.case import TestCase
from uiflow.core.executor import CancelToken, StepExecutor
from uiflow.steps.builtin import ActionStep, ActionType, CallableAction, LogStep


def _ok(name: str) -> TestCase:
    return TestCase(name=name, steps=[LogStep(message=name)])


def _failing(name: str) -> TestCase:
    def fail(ctx) -> None:
        raise RuntimeError("失敗")

    return TestCase(name=name, steps=[ActionStep(action=ActionType.CUSTOM, custom=CallableAction(fail))])


class TestCaseBatch:
    """CaseBatch のテスト。"""

    def test_negative_gap_rejected(self) -> None:
        with pytest.raises(ValueError, match="gap"):
            CaseBatch(None, gap=-1)  # type: ignore[arg-type]

    async def test_runs_all_cases_in_order(self, executor: StepExecutor) -> None:
        """失敗したケースがあっても後続のケースを実行すること。"""
        batch = CaseBatch(executor, gap=0.0)
        result = await batch.run_all([_ok("a"), _failing("b"), _ok("c")])

        assert isinstance(result, BatchResult)
        assert [r.name for r in result.results] == ["a", "b", "c"]
        assert result.passed == 2
        assert result.failed == 1
        assert not result.all_passed

    async def test_gap_between_cases(self, executor: StepExecutor) -> None:
        """ケース間に gap 秒以上の間隔を空けること。"""
        clock = executor.clock
        start = clock.now()
        result = await CaseBatch(executor, gap=1.0).run_all([_ok("a"), _ok("b"), _ok("c")])

        assert result.duration >= 2.0
        assert clock.now() - start >= 2.0

    async def test_none_case_is_skipped(self, executor: StepExecutor) -> None:
        result = await CaseBatch(executor, gap=0.0).run_all([_ok("a"), None, _ok("b")])
        assert [r.name for r in result.results] == ["a", "b"]
        assert result.all_passed

    async def test_cancelled_batch_stops(self, executor: StepExecutor) -> None:
        token = CancelToken()
        token.cancel()
        result = await CaseBatch(executor, gap=0.0).run_all([_ok("a"), _ok("b")], cancel=token)
        assert result.results == []
