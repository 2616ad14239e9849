"""
テスト共通フィクスチャ定義

全テストモジュールで共有するフィクスチャを提供する。
時間に依存するテストは FrameClock.virtual() を使用し、実時間で待機しない。
"""

from __future__ import annotations

from pathlib import Path

import pytest

from uiflow.config import EngineConfig
from uiflow.core.clock import FrameClock
from uiflow.core.executor import StepExecutor
from uiflow.host.memory import InMemoryHost
from uiflow.steps.base import StepContext

# 仮想クロックの 1 フレームあたりの秒数
DT = 0.1


# ---------------------------------------------------------------------------
# pytest フィクスチャ
# ---------------------------------------------------------------------------

@pytest.fixture
def clock() -> FrameClock:
    """1 フレーム 0.1 秒の仮想クロック（ポンプ未起動）。"""
    return FrameClock.virtual(DT)


@pytest.fixture
def examples_dir() -> Path:
    """リポジトリ同梱のサンプル YAML ディレクトリ。"""
    return Path(__file__).parent.parent / "examples"


@pytest.fixture
def config() -> EngineConfig:
    """テスト用のエンジン設定（毎フレーム再評価）。"""
    return EngineConfig(wait_timeout=10.0, wait_interval_ticks=1)


@pytest.fixture
def idle_host(clock: FrameClock) -> InMemoryHost:
    """start() していない（READY 未通知の）ホスト。"""
    return _populate(InMemoryHost(clock))


@pytest.fixture
async def host(clock: FrameClock):
    """start() 済みでクロックのポンプが動作しているホスト。"""
    h = _populate(InMemoryHost(clock))
    h.start()
    yield h
    await h.shutdown()


@pytest.fixture
def context(host: InMemoryHost, config: EngineConfig) -> StepContext:
    return StepContext.create(host, host.clock, config)


@pytest.fixture
def executor(context: StepContext, config: EngineConfig) -> StepExecutor:
    return StepExecutor(context, config.wait_timeout)


def _populate(host: InMemoryHost) -> InMemoryHost:
    """標準的なデモ UI ツリーを構築する。"""
    host.add_element("Canvas", tags=set())
    host.add_element("Canvas/PlayButton", id="play", tags={"button"})
    host.add_element("Canvas/StatusLabel", id="status", tags={"text"}, text="Ready")
    host.add_element("Canvas/RichLabel", tags={"rich_text"}, rich_text="<b>Rich</b>")
    host.add_element("Canvas/NameInput", tags={"input"}, text="")
    host.add_element("Canvas/SoundToggle", tags={"toggle"})
    host.add_element("Canvas/Volume", tags={"slider"})
    host.add_element("Canvas/Difficulty", tags={"dropdown"}, options=["Easy", "Normal", "Hard"])
    host.add_element("Canvas/List", tags={"scroll"})
    host.add_element("Canvas/Item", tags=set())
    host.add_element("Canvas/Slot", tags=set())
    return host

