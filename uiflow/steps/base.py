"""
ステップ基底クラスと実行コンテキスト

主な構成:
  - StepContext: ステップ実行時に渡される共通機能（ホスト・クロック・Waiter・アクション）
  - Step: 全ステップの基底クラス（note, timeout_override, async execute）
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar

if TYPE_CHECKING:
    from ..config import EngineConfig
    from ..core.actions import UIActions
    from ..core.clock import FrameClock
    from ..core.waits import Waiter
    from ..host.ports import UIHost

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# ステップ実行コンテキスト
# ---------------------------------------------------------------------------

@dataclass
class StepContext:
    """ステップ実行時のコンテキスト情報。

    各ステップの execute() に渡され、ホストの境界機能・フレームクロック・
    待機戦略へのアクセスを提供する。

    Attributes:
        host: 境界機能を提供する UIHost
        clock: フレームを供給するクロック
        waiter: 条件待機に使う Waiter
        actions: 出現待ち付きの高レベル UI 操作
        config: エンジン設定。None の場合はデフォルト値
    """

    host: UIHost
    clock: FrameClock
    waiter: Waiter
    actions: UIActions
    config: EngineConfig | None = None

    @classmethod
    def create(cls, host: UIHost, clock: FrameClock, config: EngineConfig | None = None) -> StepContext:
        """設定値から Waiter と UIActions を組み立ててコンテキストを生成する。"""
        from ..config import EngineConfig
        from ..core.actions import UIActions
        from ..core.waits import Waiter

        config = config or EngineConfig()
        waiter = Waiter(clock, timeout=config.wait_timeout, interval_ticks=config.wait_interval_ticks)
        return cls(
            host=host,
            clock=clock,
            waiter=waiter,
            actions=UIActions(host, clock, waiter),
            config=config,
        )


# ---------------------------------------------------------------------------
# ステップ基底クラス
# ---------------------------------------------------------------------------

@dataclass(kw_only=True)
class Step(ABC):
    """テストケースを構成する 1 ステップ。

    execute() はフレームクロックを通じて中断する非同期処理で、必ず終了すること。
    例外は StepExecutor の境界で捕捉され、StepOutcome に変換される。

    Attributes:
        note: 表示用ラベル。空の場合はステップ種別から生成する
        timeout_override: ステップ全体のタイムアウト（秒）。0 で実行時のデフォルト値
    """

    note: str = ""
    timeout_override: float = 0.0
    kind: ClassVar[str] = "step"

    def __post_init__(self) -> None:
        if self.timeout_override < 0:
            raise ValueError(
                f"timeout_override は 0 以上である必要があります: {self.timeout_override}"
            )

    @abstractmethod
    async def execute(self, ctx: StepContext) -> None:
        """ステップを実行する。

        Args:
            ctx: ステップ実行コンテキスト
        """

    @property
    def label(self) -> str:
        """表示用ラベル。note が空ならステップの説明を返す。"""
        return self.note or self.describe()

    def describe(self) -> str:
        return self.kind
