"""
待機戦略 — Condition を満たされるまでポーリングする Waiter

FrameClock 上で呼び出し元タスクを中断しながら Condition を再評価する。
実時間（unscaled）でタイムアウトを判定する唯一の場所。

主な機能:
  - Waiter.wait: 条件が満たされるまで interval_ticks フレームごとに再評価
  - タイムアウト時は条件の診断メッセージと呼び出し元を含む WaitTimeoutError を送出

Waiter は不変の設定値のみを保持し、待機ごとの状態は全てローカル変数に置く。
そのため異なるタスクから同時に wait() を呼び出しても状態を共有しない。
"""

from __future__ import annotations

import logging
import traceback
from pathlib import Path
from typing import Optional

from .clock import FrameClock
from .conditions import Condition
from .errors import WaitTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_WAIT_TIMEOUT = 10.0
DEFAULT_WAIT_INTERVAL_TICKS = 10


class Waiter:
    """Condition を満たされるまでポーリングする。

    使用例::

        waiter = Waiter(clock, timeout=5.0, interval_ticks=5)
        await waiter.wait(ObjectAppeared(host, "Canvas/PlayButton"))
    """

    def __init__(
        self,
        clock: FrameClock,
        timeout: float = DEFAULT_WAIT_TIMEOUT,
        interval_ticks: int = DEFAULT_WAIT_INTERVAL_TICKS,
    ) -> None:
        """Waiter を初期化する。

        Args:
            clock: フレームを供給するクロック
            timeout: デフォルトのタイムアウト（秒）
            interval_ticks: デフォルトの再評価間隔（フレーム数）
        """
        if timeout < 0:
            raise ValueError(f"timeout は 0 以上である必要があります: {timeout}")
        if interval_ticks < 1:
            raise ValueError(f"interval_ticks は 1 以上である必要があります: {interval_ticks}")
        self._clock = clock
        self._timeout = timeout
        self._interval_ticks = interval_ticks

    @property
    def clock(self) -> FrameClock:
        return self._clock

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def interval_ticks(self) -> int:
        return self._interval_ticks

    async def wait(
        self,
        condition: Condition,
        timeout: Optional[float] = None,
        poll_interval_ticks: Optional[int] = None,
        *,
        origin: Optional[str] = None,
    ) -> float:
        """条件が満たされるまで待機する。

        最初の評価は即座に行い、以降は poll_interval_ticks フレームごとに再評価する。
        未充足の評価時点で経過時間が timeout を超えていれば WaitTimeoutError を送出する。

        Args:
            condition: 待機する条件
            timeout: タイムアウト（秒）。None または 0 以下でデフォルト値
            poll_interval_ticks: 再評価間隔（フレーム数）。None でデフォルト値
            origin: タイムアウトメッセージに含める呼び出し元。None の場合は自動取得

        Returns:
            条件が満たされるまでの経過時間（秒）

        Raises:
            WaitTimeoutError: タイムアウト時間内に条件が満たされなかった場合
        """
        limit = timeout if timeout is not None and timeout > 0 else self._timeout
        interval = poll_interval_ticks if poll_interval_ticks is not None else self._interval_ticks
        interval = max(1, interval)
        if origin is None:
            origin = _caller_origin()

        start = self._clock.now()
        checks = 0

        while True:
            checks += 1
            if condition.satisfied():
                elapsed = self._clock.now() - start
                logger.debug(
                    "条件が満たされました（%d 回評価, %.2fs）: %s",
                    checks, elapsed, condition.subject_label,
                )
                return elapsed

            elapsed = self._clock.now() - start
            if elapsed > limit:
                description = condition.describe()
                logger.error(
                    "%d 回の評価・%.2fs 経過でタイムアウトしました。条件: %s",
                    checks, elapsed, description,
                )
                raise WaitTimeoutError(
                    f"待機がタイムアウトしました（{limit}s）: {description}\n呼び出し元: {origin}",
                    description=description,
                    elapsed=elapsed,
                    checks=checks,
                    origin=origin,
                )

            for _ in range(interval):
                await self._clock.next_tick()


def _caller_origin(depth: int = 2) -> str:
    """wait() の呼び出し元を "ファイル名:行番号 in 関数名" 形式で返す。"""
    stack = traceback.extract_stack(limit=depth + 1)
    if len(stack) <= depth:
        return "unknown"
    frame = stack[0]
    return f"{Path(frame.filename).name}:{frame.lineno} in {frame.name}"
