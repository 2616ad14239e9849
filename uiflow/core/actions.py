"""
UI アクションヘルパー — 対象の出現を待ってから境界アクションを呼び出す

各アクションは次の順序で実行する:
  1. ObjectAppeared で対象要素の出現を待つ（Waiter のタイムアウトが適用される）
  2. capability タグで操作可否を確認する（非対応なら ActionFailure）
  3. ホストの境界アクションを呼び出す（ホストの例外は ActionFailure に変換）
  4. 1 フレーム譲る

主な機能:
  - press / assert_label / load_scene / input_text / set_toggle / set_slider
  - select_dropdown / scroll / hover / hold / drag_and_drop / raycast_click
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from ..host.ports import Capability, ElementHandle, UIHost
from .clock import FrameClock
from .conditions import ButtonAccessible, Condition, LabelTextEquals, ObjectAppeared, SceneActive
from .errors import ActionFailure
from .waits import Waiter, _caller_origin

logger = logging.getLogger(__name__)


class UIActions:
    """ホストに対する高レベル UI 操作。

    使用例::

        actions = UIActions(host, clock, waiter)
        await actions.press("Canvas/PlayButton")
        await actions.assert_label("Canvas/Status", "Game Started")
    """

    def __init__(self, host: UIHost, clock: FrameClock, waiter: Waiter) -> None:
        self._host = host
        self._clock = clock
        self._waiter = waiter

    @property
    def host(self) -> UIHost:
        return self._host

    @property
    def waiter(self) -> Waiter:
        return self._waiter

    # -------------------------------------------------------------------
    # 待機
    # -------------------------------------------------------------------

    async def wait_for(self, condition: Condition, timeout: Optional[float] = None) -> float:
        """任意の条件を待機する。"""
        return await self._waiter.wait(condition, timeout, origin=_caller_origin())

    async def _resolve(self, target: str) -> ElementHandle:
        """ターゲットの出現を待ち、解決済みハンドルを返す。"""
        if not target:
            raise ActionFailure("操作対象のターゲットが指定されていません")
        appeared = ObjectAppeared(self._host, target)
        await self._waiter.wait(appeared, origin=_caller_origin(3))
        if appeared.handle is None:
            raise ActionFailure(f"ターゲットが見つかりません: {target}")
        return appeared.handle

    def _require(self, handle: ElementHandle, action: str, *tags: Capability) -> Capability:
        """ハンドルが対応する最初の capability を返す。対応していなければ ActionFailure。"""
        for tag in tags:
            if handle.supports(tag):
                return tag
        expected = " / ".join(t.value for t in tags)
        raise ActionFailure(f"{action}: '{handle.name}' は {expected} に対応していません")

    def _call(self, action: str, func: Callable[..., Any], *args: Any) -> Any:
        """境界アクションを呼び出し、ホスト側の例外を ActionFailure に変換する。"""
        try:
            return func(*args)
        except ActionFailure:
            raise
        except Exception as exc:
            raise ActionFailure(f"{action} に失敗しました: {exc}") from exc

    # -------------------------------------------------------------------
    # アクション
    # -------------------------------------------------------------------

    async def press(self, target: str) -> None:
        """ボタンを押下する。"""
        handle = await self._resolve(target)
        await self._waiter.wait(ButtonAccessible(self._host, target), origin=_caller_origin())
        self._call("press", self._host.press, handle)
        await self._clock.next_tick()
        logger.info("press: %s", target)

    async def assert_label(self, target: str, text: str) -> None:
        """ラベルのテキストが一致するまで待機する。"""
        await self._waiter.wait(
            LabelTextEquals(self._host, target, text), origin=_caller_origin(),
        )
        logger.info("assertLabel: %s == '%s'", target, text)

    async def load_scene(self, name: str) -> None:
        """シーン切り替えを要求し、アクティブになるまで待機する。"""
        if not name:
            raise ActionFailure("シーン名が指定されていません")
        self._call("loadScene", self._host.request_scene, name)
        await self._waiter.wait(SceneActive(self._host, name), origin=_caller_origin())
        logger.info("loadScene: %s", name)

    async def input_text(self, target: str, text: str) -> None:
        """入力フィールドにテキストを設定する。"""
        handle = await self._resolve(target)
        self._require(handle, "inputText", Capability.INPUT, Capability.RICH_INPUT)
        self._call("inputText", self._host.input_text, handle, text)
        await self._clock.next_tick()
        logger.info("inputText: %s → %s", target, text)

    async def set_toggle(self, target: str, is_on: bool) -> None:
        """トグルの状態を設定する。"""
        handle = await self._resolve(target)
        self._require(handle, "setToggle", Capability.TOGGLE)
        self._call("setToggle", self._host.set_toggle, handle, is_on)
        await self._clock.next_tick()
        logger.info("setToggle: %s → %s", target, is_on)

    async def set_slider(self, target: str, value: float) -> None:
        """スライダーの値を設定する。"""
        handle = await self._resolve(target)
        self._require(handle, "setSlider", Capability.SLIDER)
        self._call("setSlider", self._host.set_slider, handle, value)
        await self._clock.next_tick()
        logger.info("setSlider: %s → %s", target, value)

    async def select_dropdown(self, target: str, index: int) -> None:
        """ドロップダウンの選択肢をインデックスで選ぶ。"""
        handle = await self._resolve(target)
        self._require(handle, "selectDropdown", Capability.DROPDOWN, Capability.RICH_DROPDOWN)
        count = self._call("selectDropdown", self._host.option_count, handle)
        if index < 0 or index >= count:
            raise ActionFailure(
                f"ドロップダウン '{handle.name}' のインデックス {index} が範囲外です（0-{count - 1}）"
            )
        self._call("selectDropdown", self._host.select_option, handle, index)
        await self._clock.next_tick()
        logger.info("selectDropdown: %s → %d", target, index)

    async def scroll(self, target: str, delta_x: float, delta_y: float) -> None:
        """スクロール領域をスクロールする。"""
        handle = await self._resolve(target)
        self._require(handle, "scroll", Capability.SCROLL)
        self._call("scroll", self._host.scroll, handle, delta_x, delta_y)
        await self._clock.next_tick()
        logger.info("scroll: %s (%s, %s)", target, delta_x, delta_y)

    async def hover(self, target: str) -> None:
        """要素にポインタを重ねる。"""
        handle = await self._resolve(target)
        self._call("hover", self._host.hover, handle)
        await self._clock.next_tick()
        logger.info("hover: %s", target)

    async def hold(self, target: str, duration: float) -> None:
        """要素を duration 秒間（unscaled）押し続ける。"""
        handle = await self._resolve(target)
        self._call("hold", self._host.pointer_down, handle)
        try:
            await self._clock.sleep(duration)
        finally:
            self._call("hold", self._host.pointer_up, handle)
        logger.info("hold: %s (%.2fs)", target, duration)

    async def drag_and_drop(self, source: str, target: str) -> None:
        """source 要素を target 要素へドラッグ＆ドロップする。"""
        source_handle = await self._resolve(source)
        target_handle = await self._resolve(target)
        self._call("dragAndDrop", self._host.drag_and_drop, source_handle, target_handle)
        await self._clock.next_tick()
        logger.info("dragAndDrop: %s → %s", source, target)

    async def raycast_click(self, target: str) -> None:
        """レイキャストで要素をクリックする。"""
        handle = await self._resolve(target)
        self._call("raycastClick", self._host.raycast_click, handle)
        await self._clock.next_tick()
        logger.info("raycastClick: %s", target)
