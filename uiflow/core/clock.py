"""
フレームクロック — ホストのフレームで駆動される協調スケジューラ

UI ホストのフレーム（tick）単位でタスクを再開させる。
全ての待機・遅延はこのクロックを通じて行い、スレッドは使用しない。

主な機能:
  - next_tick(): 次のフレームまで呼び出し元タスクを中断する
  - tick(): フレームを 1 つ進め、待機中の全タスクを同じフレームで再開する
  - run() / stop(): tick_interval ごとにフレームを進めるポンプ
  - now(): スケーリングの影響を受けない単調増加時刻（秒）
  - virtual(): 実時間に依存しない決定的なクロック（テスト・CLI 用）
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)

# デフォルトのフレーム間隔（60fps 相当）
DEFAULT_TICK_INTERVAL = 1.0 / 60.0


class FrameClock:
    """フレーム単位でタスクを再開させる協調スケジューラ。

    ホスト（UI 環境）が tick() を呼ぶか、run() でポンプを回すことで
    フレームが進む。同じフレームを待っている全タスクは同じ tick で再開される。

    使用例::

        clock = FrameClock()
        pump = asyncio.create_task(clock.run())
        await clock.next_tick()
        await clock.sleep(0.5)
        clock.stop()
    """

    def __init__(
        self,
        tick_interval: float = DEFAULT_TICK_INTERVAL,
        time_source: Optional[Callable[[], float]] = None,
        *,
        realtime: bool = True,
    ) -> None:
        """クロックを初期化する。

        Args:
            tick_interval: run() がフレームを進める間隔（秒）
            time_source: unscaled な単調時刻を返す関数（デフォルト: time.perf_counter）
            realtime: False の場合、run() は実時間で眠らずにフレームを進める
        """
        if tick_interval <= 0:
            raise ValueError(f"tick_interval は正の値である必要があります: {tick_interval}")
        self._tick_interval = tick_interval
        self._time_source = time_source or time.perf_counter
        self._realtime = realtime
        self._frame = 0
        self._waiters: list[asyncio.Future] = []
        self._running = False

    @classmethod
    def virtual(cls, dt: float = DEFAULT_TICK_INTERVAL) -> FrameClock:
        """1 フレームごとに時刻がちょうど dt 進む仮想クロックを生成する。

        run() は実時間で眠らないため、長いタイムアウトも即座に検証できる。

        Args:
            dt: 1 フレームあたりの経過秒数

        Returns:
            仮想時刻で動作する FrameClock
        """
        clock = cls(dt, realtime=False)
        clock._time_source = lambda: clock._frame * dt
        return clock

    # -------------------------------------------------------------------
    # 読み取り
    # -------------------------------------------------------------------

    @property
    def frame(self) -> int:
        """現在のフレーム番号。"""
        return self._frame

    @property
    def tick_interval(self) -> float:
        return self._tick_interval

    @property
    def running(self) -> bool:
        """run() のポンプが動作中かどうか。"""
        return self._running

    def now(self) -> float:
        """unscaled な単調時刻（秒）を返す。"""
        return self._time_source()

    # -------------------------------------------------------------------
    # 待機
    # -------------------------------------------------------------------

    async def next_tick(self) -> int:
        """次のフレームまで呼び出し元タスクを中断する。

        Returns:
            再開時のフレーム番号
        """
        future = asyncio.get_running_loop().create_future()
        self._waiters.append(future)
        return await future

    async def sleep(self, seconds: float) -> None:
        """unscaled 時刻で seconds 秒以上経過するまでフレーム単位で待機する。

        seconds が 0 以下でも 1 フレームは譲る。

        Args:
            seconds: 待機秒数
        """
        start = self.now()
        await self.next_tick()
        while self.now() - start < seconds:
            await self.next_tick()

    # -------------------------------------------------------------------
    # フレーム駆動
    # -------------------------------------------------------------------

    def tick(self) -> int:
        """フレームを 1 つ進め、待機中のタスクを全て再開させる。

        Returns:
            新しいフレーム番号
        """
        self._frame += 1
        waiters, self._waiters = self._waiters, []
        for future in waiters:
            # キャンセル済みの待機はスキップ
            if not future.done():
                future.set_result(self._frame)
        return self._frame

    async def run(self) -> None:
        """stop() が呼ばれるまでフレームを進め続ける。"""
        if self._running:
            logger.warning("FrameClock は既に実行中です")
            return
        self._running = True
        logger.debug(
            "FrameClock 開始（interval=%.4fs, realtime=%s）",
            self._tick_interval, self._realtime,
        )
        try:
            while self._running:
                await asyncio.sleep(self._tick_interval if self._realtime else 0)
                self.tick()
        finally:
            self._running = False
            logger.debug("FrameClock 停止（frame=%d）", self._frame)

    def stop(self) -> None:
        """run() のポンプを停止する。"""
        self._running = False
