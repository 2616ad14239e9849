"""
Runner — テストケース実行の状態機械

実行環境の準備完了（READY）・破棄（TORN_DOWN）通知をまたいで
テストケースの開始を保留・再開し、実行結果を RunState に書き込む。

状態遷移:
  IDLE → PREPARING → RUNNING → FINISHED → IDLE

主な構成:
  - RunDriver: 1 回の実行を駆動するタスクの所有者（同時に生存できるのは 1 つ）
  - Runner: set_test_case / reset / wait_finished を提供する状態機械本体

RunState への書き込みは Runner の駆動タスクのみが行う。
放棄された実行（reset や二重の set_test_case）の書き込みは CancelToken によって無視される。
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Coroutine, Optional

from ..config import EngineConfig
from ..host.ports import ReadinessEvent
from ..steps.base import StepContext
from .executor import CancelToken, StepExecutor
from .state import RunPhase, RunState

if TYPE_CHECKING:
    from ..host.ports import Environment
    from ..steps.base import Step
    from .case import CaseResult, TestCase
    from .executor import StepOutcome

logger = logging.getLogger(__name__)


def _loop_running() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


# ---------------------------------------------------------------------------
# RunDriver
# ---------------------------------------------------------------------------

class RunDriver:
    """1 回の実行を駆動するタスクの所有者。

    生成時に Runner へ自身を登録する。既に生存中のドライバがある場合は
    discarded としてマークされ、開始できない（元のドライバが所有権を保持する）。
    """

    def __init__(self, runner: Runner) -> None:
        self._runner = runner
        self._task: Optional[asyncio.Task] = None
        self.discarded = False
        self.destroyed = False
        runner._adopt(self)

    @property
    def live(self) -> bool:
        return not self.discarded and not self.destroyed

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    def start(self, coro: Coroutine) -> asyncio.Task:
        """駆動タスクを開始する。

        Raises:
            RuntimeError: 破棄済み・重複ドライバで開始しようとした場合
        """
        if not self.live:
            coro.close()
            raise RuntimeError("破棄済みの RunDriver は開始できません")
        self._task = asyncio.ensure_future(coro)
        return self._task

    def cancel(self) -> None:
        """駆動タスクをキャンセルする。駆動タスク自身から呼ばれた場合は何もしない。"""
        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def destroy(self) -> None:
        """タスクをキャンセルし、Runner から登録を解除する。"""
        if self.destroyed:
            return
        self.cancel()
        self.destroyed = True
        self._runner._release(self)


# ---------------------------------------------------------------------------
# Runner 本体
# ---------------------------------------------------------------------------

class _RunObserver:
    """実行中のケースの進行を RunState に反映する。放棄された実行の通知は無視する。"""

    def __init__(self, runner: Runner, token: CancelToken) -> None:
        self._runner = runner
        self._token = token

    def _current(self) -> bool:
        return self._runner._token is self._token and not self._token.cancelled

    def on_step_started(self, index: int, step: Step) -> None:
        if self._current():
            self._runner.state.mark_step_running(index)

    def on_step_finished(self, outcome: StepOutcome) -> None:
        if self._current():
            self._runner.state.record(outcome)


class Runner:
    """テストケース実行の状態機械。

    使用例::

        runner = Runner(environment)
        runner.set_test_case(case)
        await runner.wait_finished()
        print(runner.state.step_results)
    """

    def __init__(
        self,
        environment: Environment,
        config: Optional[EngineConfig] = None,
        state: Optional[RunState] = None,
    ) -> None:
        """Runner を初期化する。

        Args:
            environment: ホスト・クロック・準備完了通知を提供する実行環境
            config: エンジン設定。None の場合はデフォルト値
            state: 書き込み先の RunState。None の場合は新規生成
        """
        self._env = environment
        self._config = config or EngineConfig()
        self._state = state or RunState()
        self._context = StepContext.create(environment.host, environment.clock, self._config)
        self._executor = StepExecutor(self._context, self._config.wait_timeout)
        self._driver: Optional[RunDriver] = None
        self._token: Optional[CancelToken] = None
        self._pending = False
        self._listening = False
        self._finished = asyncio.Event()
        self._finished.set()
        self.last_result: Optional[CaseResult] = None

    # -------------------------------------------------------------------
    # 読み取り
    # -------------------------------------------------------------------

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def phase(self) -> RunPhase:
        return self._state.phase

    @property
    def driver(self) -> Optional[RunDriver]:
        return self._driver

    @property
    def pending(self) -> bool:
        """開始が準備完了通知待ちで保留されているかどうか。"""
        return self._pending

    @property
    def executor(self) -> StepExecutor:
        return self._executor

    # -------------------------------------------------------------------
    # パブリック API
    # -------------------------------------------------------------------

    def set_test_case(self, case: TestCase) -> None:
        """テストケースを設定し、実行を開始（または保留）する。

        実行中・準備中のケースがあれば先に放棄する。
        実行環境が準備完了ならすぐに開始し、そうでなければ READY 通知まで保留する。

        Args:
            case: 実行するテストケース
        """
        if case is None:
            raise ValueError("テストケースが指定されていません")

        if self._state.phase in (RunPhase.PREPARING, RunPhase.RUNNING):
            self._abandon(f"テストケース '{case.name}' が新たに設定されました")

        self._token = CancelToken()
        self.last_result = None
        self._state.prepare(case)
        self._finished.clear()
        self._pending = True

        if self._env.is_ready and _loop_running():
            self._start_pending()
        else:
            self._listen()
            logger.info("実行環境の準備完了を待機します: %s", case.name)

    def reset(self) -> None:
        """実行中の処理をキャンセルし、全ての状態を消去して IDLE に戻す。"""
        self._abandon("reset() が呼ばれました")
        self._state.clear()
        self._finished.set()
        logger.debug("Runner をリセットしました")

    async def wait_finished(self) -> None:
        """現在の実行が終了（FINISHED / IDLE）するまで待機する。"""
        await self._finished.wait()

    def create_driver(self) -> RunDriver:
        """RunDriver を生成する。生存中のドライバがある場合、生成されたドライバは破棄扱い。"""
        return RunDriver(self)

    # -------------------------------------------------------------------
    # ドライバ管理
    # -------------------------------------------------------------------

    def _adopt(self, driver: RunDriver) -> None:
        if self._driver is not None and self._driver.live:
            driver.discarded = True
            logger.warning("RunDriver は既に存在します。重複したドライバを破棄します")
            return
        self._driver = driver

    def _release(self, driver: RunDriver) -> None:
        if self._driver is driver:
            self._driver = None

    # -------------------------------------------------------------------
    # 準備完了通知
    # -------------------------------------------------------------------

    def _listen(self) -> None:
        if not self._listening:
            self._env.add_readiness_listener(self._on_readiness)
            self._listening = True

    def _unlisten(self) -> None:
        if self._listening:
            self._env.remove_readiness_listener(self._on_readiness)
            self._listening = False

    def _on_readiness(self, event: ReadinessEvent) -> None:
        if self._state.phase is not RunPhase.PREPARING or not self._pending:
            return

        if event is ReadinessEvent.READY:
            if not _loop_running():
                logger.warning("イベントループが実行されていないため開始できません")
                return
            logger.info("実行環境の準備が完了しました。テストケースを開始します")
            self._start_pending()
        elif event is ReadinessEvent.TORN_DOWN:
            logger.info("実行環境が破棄されたため、保留中のテストケースを中止します")
            self._abandon("実行環境が破棄されました")
            self._state.clear()
            self._finished.set()

    # -------------------------------------------------------------------
    # 実行
    # -------------------------------------------------------------------

    def _start_pending(self) -> None:
        self._pending = False
        self._unlisten()
        case = self._state.current_case
        token = self._token

        if self._driver is None or not self._driver.live:
            self.create_driver()
        self._state.start_running()
        self._driver.start(self._drive(case, token))

    async def _drive(self, case: TestCase, token: CancelToken) -> None:
        observer = _RunObserver(self, token)
        try:
            result = await case.run(
                self._executor,
                ambient_timeout=self._config.wait_timeout,
                observer=observer,
                cancel=token,
            )
        except asyncio.CancelledError:
            logger.info("テストケース '%s' の実行が中断されました", case.name)
            raise
        except Exception as exc:
            logger.exception("テストケース '%s' の実行中に予期しないエラーが発生しました", case.name)
            if self._token is token and not token.cancelled:
                self._state.fail(str(exc) or type(exc).__name__)
                self._finish()
            return

        if self._token is not token or token.cancelled:
            logger.debug("放棄された実行の結果を無視します: %s", case.name)
            return

        self.last_result = result
        self._finish()

    def _finish(self) -> None:
        self._state.finish()
        if self._driver is not None:
            self._driver.destroy()
        self._finished.set()
        logger.info(
            "テストケース完了: %s（失敗: %s）",
            self._state.current_case.name if self._state.current_case is not None else "-",
            self._state.has_failed,
        )

    def _abandon(self, reason: str) -> None:
        """実行中・保留中の処理を放棄する。"""
        if self._token is not None:
            self._token.cancel(reason)
        self._pending = False
        self._unlisten()
        if self._driver is not None:
            self._driver.destroy()
