"""
CaseBatch — 複数テストケースの逐次実行

ケースを 1 つずつ順番に実行し、ケース間には unscaled 時間で gap 秒の間隔を空ける。
失敗したケースがあっても後続のケースは実行する。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, Optional

from .executor import CancelToken

if TYPE_CHECKING:
    from .case import CaseResult, TestCase
    from .executor import StepExecutor

logger = logging.getLogger(__name__)

DEFAULT_CASE_GAP = 0.5


@dataclass
class BatchResult:
    """バッチ全体の実行結果。"""

    results: list[CaseResult] = field(default_factory=list)
    duration: float = 0.0

    @property
    def passed(self) -> int:
        return sum(1 for r in self.results if r.status == "passed")

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.status != "passed")

    @property
    def all_passed(self) -> bool:
        return self.failed == 0


class CaseBatch:
    """テストケースを逐次実行するバッチランナー。

    使用例::

        batch = CaseBatch(executor, gap=0.5)
        result = await batch.run_all([case_a, case_b])
    """

    def __init__(
        self,
        executor: StepExecutor,
        *,
        gap: float = DEFAULT_CASE_GAP,
        ambient_timeout: Optional[float] = None,
    ) -> None:
        if gap < 0:
            raise ValueError(f"gap は 0 以上である必要があります: {gap}")
        self._executor = executor
        self._gap = gap
        self._ambient_timeout = ambient_timeout

    @property
    def gap(self) -> float:
        return self._gap

    async def run_all(
        self,
        cases: Iterable[Optional[TestCase]],
        cancel: Optional[CancelToken] = None,
    ) -> BatchResult:
        """全ケースを順番に実行する。

        Args:
            cases: 実行するテストケース（None は警告付きでスキップ）
            cancel: 協調的キャンセルのトークン

        Returns:
            バッチ全体の実行結果
        """
        clock = self._executor.clock
        batch = BatchResult()
        start = clock.now()
        first = True

        for case in cases:
            if cancel is not None and cancel.cancelled:
                logger.warning("バッチ実行はキャンセルされました")
                break
            if case is None:
                logger.warning("未設定のテストケースをスキップします")
                continue

            if not first:
                await clock.sleep(self._gap)
            first = False

            result = await case.run(
                self._executor, ambient_timeout=self._ambient_timeout, cancel=cancel,
            )
            batch.results.append(result)

        batch.duration = clock.now() - start
        logger.info(
            "バッチ実行完了: %d 件（成功: %d, 失敗: %d, %.2fs）",
            len(batch.results), batch.passed, batch.failed, batch.duration,
        )
        return batch
