"""
ホスト境界インターフェース — エンジンが UI 環境から利用する機能

エンジンは UI 要素の検索・テキスト読み取り・入力操作・シーン切り替えを
自前では実装せず、ここで定義する Protocol を通じてホストに委譲する。

主な構成:
  - ElementHandle: 解決済み UI 要素のハンドル（capability タグ付き）
  - Capability: 要素が対応する機能を表すタグ
  - ElementLookup / TextInspector / ActionPerformer / SceneController: 機能ごとの Protocol
  - UIHost: 上記を全て満たすホスト
  - ReadinessSource / Environment: 実行環境の準備完了・破棄の通知
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..core.clock import FrameClock
    from .targets import Target


# ---------------------------------------------------------------------------
# capability タグ
# ---------------------------------------------------------------------------

class Capability(str, Enum):
    """UI 要素が対応する機能のタグ。

    ホストは要素ごとに対応タグの集合を返し、エンジンは型の動的判定ではなく
    タグの有無で操作可否を判断する。
    """

    TEXT = "text"
    RICH_TEXT = "rich_text"
    INPUT = "input"
    RICH_INPUT = "rich_input"
    BUTTON = "button"
    TOGGLE = "toggle"
    SLIDER = "slider"
    DROPDOWN = "dropdown"
    RICH_DROPDOWN = "rich_dropdown"
    SCROLL = "scroll"
    SELECTABLE = "selectable"


class TextVariant(str, Enum):
    """テキスト読み取りの対象ウィジェット種別。"""

    PLAIN = "plain"
    RICH = "rich"


class ReadinessEvent(str, Enum):
    """実行環境のライフサイクル通知。"""

    READY = "ready"
    TORN_DOWN = "torn_down"


@dataclass(frozen=True)
class ElementHandle:
    """ホストが解決した UI 要素のハンドル。

    Attributes:
        key: ホスト内で要素を一意に識別する不透明キー
        name: 表示用の要素名
        capabilities: 要素が対応する capability タグの集合
    """

    key: str
    name: str
    capabilities: frozenset[str] = field(default_factory=frozenset)

    def supports(self, *tags: str) -> bool:
        """いずれかのタグに対応しているかを返す。"""
        return any(tag in self.capabilities for tag in tags)


# ---------------------------------------------------------------------------
# 機能ごとの Protocol
# ---------------------------------------------------------------------------

@runtime_checkable
class ElementLookup(Protocol):
    """論理ターゲットを UI 要素に解決する機能。"""

    def find(self, target: Target) -> Optional[ElementHandle]:
        """ターゲットを要素に解決する。見つからなければ None。"""
        ...

    def is_active(self, handle: ElementHandle) -> bool:
        """要素が現在アクティブ（表示中）かを返す。"""
        ...

    def is_interactable(self, handle: ElementHandle) -> bool:
        """要素が現在操作可能かを返す。"""
        ...


@runtime_checkable
class TextInspector(Protocol):
    """要素の表示テキストを読み取る機能。"""

    def read_text(self, handle: ElementHandle, variant: TextVariant) -> Optional[str]:
        ...


@runtime_checkable
class ActionPerformer(Protocol):
    """要素に対するプリミティブ操作。各呼び出しはホスト側で実装される。"""

    def press(self, handle: ElementHandle) -> None: ...

    def input_text(self, handle: ElementHandle, text: str) -> None: ...

    def set_toggle(self, handle: ElementHandle, is_on: bool) -> None: ...

    def set_slider(self, handle: ElementHandle, value: float) -> None: ...

    def option_count(self, handle: ElementHandle) -> int: ...

    def select_option(self, handle: ElementHandle, index: int) -> None: ...

    def hover(self, handle: ElementHandle) -> None: ...

    def pointer_down(self, handle: ElementHandle) -> None: ...

    def pointer_up(self, handle: ElementHandle) -> None: ...

    def drag_and_drop(self, source: ElementHandle, target: ElementHandle) -> None: ...

    def raycast_click(self, handle: ElementHandle) -> None: ...

    def scroll(self, handle: ElementHandle, delta_x: float, delta_y: float) -> None: ...


@runtime_checkable
class SceneController(Protocol):
    """シーン（実行コンテキスト）の切り替え。"""

    def request_scene(self, name: str) -> None: ...

    def active_scene(self) -> Optional[str]: ...


@runtime_checkable
class UIHost(ElementLookup, TextInspector, ActionPerformer, SceneController, Protocol):
    """エンジンが必要とする全ての境界機能を持つホスト。"""


@runtime_checkable
class ReadinessSource(Protocol):
    """実行環境の準備完了・破棄を通知する機能。"""

    @property
    def is_ready(self) -> bool: ...

    def add_readiness_listener(self, listener: Callable[[ReadinessEvent], None]) -> None: ...

    def remove_readiness_listener(self, listener: Callable[[ReadinessEvent], None]) -> None: ...


class Environment(ReadinessSource, Protocol):
    """Runner が駆動対象とする実行環境。

    Attributes:
        host: 境界機能を提供する UIHost
        clock: フレームを供給する FrameClock
    """

    host: UIHost
    clock: FrameClock
