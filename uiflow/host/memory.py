"""
InMemoryHost — メモリ上の UI ツリーによるホスト実装

全ての境界機能（ElementLookup / TextInspector / ActionPerformer / SceneController）と
準備完了通知（ReadinessSource）を、メモリ上の Element ツリーで実装する。
CLI のシーン定義 YAML 実行と、エンジンのテストで使用する。

主な機能:
  - 階層パス / "id:" によるターゲット解決（祖先が非アクティブなら非アクティブ）
  - capability タグ付きの要素と押下時の副作用（テキスト変更・表示切り替え・シーン遷移）
  - delay 付きの副作用とシーン切り替えの遅延反映（クロックの時刻・フレームで判定）
  - start() / stop() による READY / TORN_DOWN 通知とクロックのポンプ管理
  - events: 実行された境界アクションの記録
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Optional

from ..core.clock import FrameClock
from .ports import Capability, ElementHandle, ReadinessEvent, TextVariant
from .targets import Target

if TYPE_CHECKING:
    from ..dsl.schema import SceneDocument

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# 要素・副作用
# ---------------------------------------------------------------------------

@dataclass
class Effect:
    """要素の押下時・開始時に適用される副作用。

    Attributes:
        action: setText / activate / deactivate / setInteractable / loadScene
        target: 対象要素のパス（loadScene 以外）
        text: setText のテキスト
        scene: loadScene のシーン名
        interactable: setInteractable の値
        delay: 適用までの秒数（unscaled）
    """

    action: str
    target: str = ""
    text: str = ""
    scene: str = ""
    interactable: bool = True
    delay: float = 0.0


@dataclass
class Element:
    """メモリ上の UI 要素。"""

    path: str
    id: Optional[str] = None
    active: bool = True
    interactable: bool = True
    tags: set[str] = field(default_factory=set)
    text: Optional[str] = None
    rich_text: Optional[str] = None
    value: float = 0.0
    is_on: bool = False
    options: list[str] = field(default_factory=list)
    selected: int = 0
    scroll_position: tuple[float, float] = (0.0, 0.0)
    scene: Optional[str] = None
    on_press: list[Effect] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    def handle(self) -> ElementHandle:
        return ElementHandle(key=self.path, name=self.name, capabilities=frozenset(self.tags))


# ---------------------------------------------------------------------------
# InMemoryHost 本体
# ---------------------------------------------------------------------------

class InMemoryHost:
    """メモリ上の UI ツリーを操作するホスト兼実行環境。

    使用例::

        clock = FrameClock.virtual(0.1)
        host = InMemoryHost(clock)
        host.add_element("Canvas/PlayButton", tags={"button"})
        host.start()
        runner = Runner(host)
    """

    def __init__(
        self,
        clock: Optional[FrameClock] = None,
        *,
        active_scene: str = "Main",
        scenes: Optional[list[str]] = None,
        scene_load_frames: int = 1,
    ) -> None:
        self._clock = clock or FrameClock()
        self._elements: dict[str, Element] = {}
        self._active_scene = active_scene
        self._scenes = list(scenes or [])
        self._scene_load_frames = scene_load_frames
        self._pending_scene: Optional[tuple[str, int]] = None
        self._scheduled: list[tuple[float, Effect]] = []
        self._on_start: list[Effect] = []
        self._ready = False
        self._listeners: list[Callable[[ReadinessEvent], None]] = []
        self._pump: Optional[asyncio.Task] = None
        self.events: list[tuple] = []

    @classmethod
    def from_scene(cls, doc: SceneDocument, clock: Optional[FrameClock] = None) -> InMemoryHost:
        """シーン定義文書からホストを構築する。"""
        host = cls(
            clock,
            active_scene=doc.activeScene,
            scenes=doc.scenes,
            scene_load_frames=doc.sceneLoadFrames,
        )
        for model in doc.elements:
            host.add(Element(
                path=model.path,
                id=model.id,
                active=model.active,
                interactable=model.interactable,
                tags={tag.value for tag in model.tags},
                text=model.text,
                rich_text=model.richText,
                value=model.value,
                options=list(model.options),
                selected=model.selected,
                scene=model.scene,
                on_press=[Effect(**e.model_dump()) for e in model.onPress],
            ))
        host._on_start = [Effect(**e.model_dump()) for e in doc.onStart]
        logger.debug("シーン定義から %d 要素を構築しました", len(doc.elements))
        return host

    # -------------------------------------------------------------------
    # Environment
    # -------------------------------------------------------------------

    @property
    def host(self) -> InMemoryHost:
        return self

    @property
    def clock(self) -> FrameClock:
        return self._clock

    @property
    def is_ready(self) -> bool:
        return self._ready

    def add_readiness_listener(self, listener: Callable[[ReadinessEvent], None]) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_readiness_listener(self, listener: Callable[[ReadinessEvent], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def _emit(self, event: ReadinessEvent) -> None:
        logger.debug("readiness: %s", event.value)
        for listener in list(self._listeners):
            listener(event)

    def start(self, *, pump: bool = True) -> None:
        """クロックのポンプを開始し、READY を通知する。実行中のイベントループが必要。

        Args:
            pump: False の場合、クロックのポンプを開始しない（tick() を手動で呼ぶ）
        """
        if self._ready:
            return
        if pump and not self._clock.running:
            self._pump = asyncio.ensure_future(self._clock.run())
        self._ready = True
        for effect in self._on_start:
            self._schedule(effect)
        self._emit(ReadinessEvent.READY)

    def stop(self) -> None:
        """TORN_DOWN を通知し、クロックのポンプを停止する。"""
        self._ready = False
        self._emit(ReadinessEvent.TORN_DOWN)
        if self._pump is not None:
            if self._clock.running:
                self._clock.stop()
            else:
                # ポンプがまだ一度も実行されていない
                self._pump.cancel()

    async def shutdown(self) -> None:
        """stop() した上でポンプタスクの終了を待つ。"""
        self.stop()
        if self._pump is not None:
            await asyncio.wait({self._pump})
            self._pump = None

    # -------------------------------------------------------------------
    # ツリー構築
    # -------------------------------------------------------------------

    def add(self, element: Element) -> Element:
        self._elements[element.path] = element
        return element

    def add_element(self, path: str, **kwargs) -> Element:
        """要素を追加する。tags は Capability または文字列の集合。"""
        tags = {t.value if isinstance(t, Capability) else t for t in kwargs.pop("tags", ())}
        return self.add(Element(path=path, tags=tags, **kwargs))

    def get(self, path: str) -> Element:
        return self._elements[path]

    def remove(self, path: str) -> None:
        self._elements.pop(path, None)

    # -------------------------------------------------------------------
    # 遅延反映
    # -------------------------------------------------------------------

    def _schedule(self, effect: Effect) -> None:
        if effect.delay <= 0:
            self._apply(effect)
        else:
            self._scheduled.append((self._clock.now() + effect.delay, effect))

    def _apply_due(self) -> None:
        if self._pending_scene is not None:
            name, frame = self._pending_scene
            if self._clock.frame >= frame:
                self._pending_scene = None
                self._active_scene = name
                logger.debug("シーンを切り替えました: %s", name)
        if self._scheduled:
            now = self._clock.now()
            due = [item for item in self._scheduled if item[0] <= now]
            if due:
                self._scheduled = [item for item in self._scheduled if item[0] > now]
                for _, effect in due:
                    self._apply(effect)

    def _apply(self, effect: Effect) -> None:
        if effect.action == "loadScene":
            self.request_scene(effect.scene)
            return
        element = self._elements.get(effect.target)
        if element is None:
            logger.warning("副作用の対象要素が見つかりません: %s", effect.target)
            return
        if effect.action == "setText":
            element.text = effect.text
            if Capability.RICH_TEXT.value in element.tags:
                element.rich_text = effect.text
        elif effect.action == "activate":
            element.active = True
        elif effect.action == "deactivate":
            element.active = False
        elif effect.action == "setInteractable":
            element.interactable = effect.interactable

    # -------------------------------------------------------------------
    # ElementLookup
    # -------------------------------------------------------------------

    def _in_scene(self, element: Element) -> bool:
        return element.scene is None or element.scene == self._active_scene

    def _element(self, handle: ElementHandle) -> Element:
        element = self._elements.get(handle.key)
        if element is None:
            raise LookupError(f"要素が存在しません: {handle.key}")
        return element

    def find(self, target: Target) -> Optional[ElementHandle]:
        self._apply_due()
        if target.kind == "id":
            for element in self._elements.values():
                if element.id == target.value and self._in_scene(element):
                    return element.handle()
            return None
        element = self._elements.get(target.value)
        if element is None or not self._in_scene(element):
            return None
        return element.handle()

    def is_active(self, handle: ElementHandle) -> bool:
        self._apply_due()
        element = self._elements.get(handle.key)
        if element is None or not element.active or not self._in_scene(element):
            return False
        parts = element.path.split("/")
        for i in range(1, len(parts)):
            ancestor = self._elements.get("/".join(parts[:i]))
            if ancestor is not None and not ancestor.active:
                return False
        return True

    def is_interactable(self, handle: ElementHandle) -> bool:
        self._apply_due()
        element = self._elements.get(handle.key)
        return element is not None and element.interactable

    # -------------------------------------------------------------------
    # TextInspector
    # -------------------------------------------------------------------

    def read_text(self, handle: ElementHandle, variant: TextVariant) -> Optional[str]:
        self._apply_due()
        element = self._element(handle)
        return element.rich_text if variant is TextVariant.RICH else element.text

    # -------------------------------------------------------------------
    # ActionPerformer
    # -------------------------------------------------------------------

    def press(self, handle: ElementHandle) -> None:
        element = self._element(handle)
        if not element.interactable:
            raise RuntimeError(f"ボタン {element.path} は操作不可です")
        self.events.append(("press", element.path))
        for effect in element.on_press:
            self._schedule(effect)

    def input_text(self, handle: ElementHandle, text: str) -> None:
        element = self._element(handle)
        if Capability.RICH_INPUT.value in element.tags:
            element.rich_text = text
        element.text = text
        self.events.append(("input_text", element.path, text))

    def set_toggle(self, handle: ElementHandle, is_on: bool) -> None:
        element = self._element(handle)
        element.is_on = is_on
        self.events.append(("set_toggle", element.path, is_on))

    def set_slider(self, handle: ElementHandle, value: float) -> None:
        element = self._element(handle)
        element.value = value
        self.events.append(("set_slider", element.path, value))

    def option_count(self, handle: ElementHandle) -> int:
        return len(self._element(handle).options)

    def select_option(self, handle: ElementHandle, index: int) -> None:
        element = self._element(handle)
        element.selected = index
        self.events.append(("select_option", element.path, index))

    def hover(self, handle: ElementHandle) -> None:
        self.events.append(("hover", self._element(handle).path))

    def pointer_down(self, handle: ElementHandle) -> None:
        self.events.append(("pointer_down", self._element(handle).path, self._clock.now()))

    def pointer_up(self, handle: ElementHandle) -> None:
        self.events.append(("pointer_up", self._element(handle).path, self._clock.now()))

    def drag_and_drop(self, source: ElementHandle, target: ElementHandle) -> None:
        self.events.append(("drag_and_drop", self._element(source).path, self._element(target).path))

    def raycast_click(self, handle: ElementHandle) -> None:
        element = self._element(handle)
        self.events.append(("raycast_click", element.path))
        for effect in element.on_press:
            self._schedule(effect)

    def scroll(self, handle: ElementHandle, delta_x: float, delta_y: float) -> None:
        element = self._element(handle)
        x, y = element.scroll_position
        element.scroll_position = (x + delta_x, y + delta_y)
        self.events.append(("scroll", element.path, delta_x, delta_y))

    # -------------------------------------------------------------------
    # SceneController
    # -------------------------------------------------------------------

    def request_scene(self, name: str) -> None:
        """シーン切り替えを要求する。scene_load_frames フレーム後にアクティブになる。"""
        if self._scenes and name not in self._scenes:
            raise ValueError(f"シーン '{name}' は登録されていません")
        self.events.append(("request_scene", name))
        if self._scene_load_frames <= 0:
            self._active_scene = name
            self._pending_scene = None
            return
        self._pending_scene = (name, self._clock.frame + self._scene_load_frames)

    def active_scene(self) -> Optional[str]:
        self._apply_due()
        return self._active_scene
