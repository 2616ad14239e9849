"""
標準ステップ — UI 操作・条件待機・時間待機・ログ・グループ

各ステップは Step を継承した dataclass で、execute() は StepContext の
UIActions / Waiter / FrameClock を通じてのみ中断する。
各ファクトリは StepFactory Protocol を満たし、StepRegistry に DSL キーで登録される。

カテゴリ:
  - 操作: press, inputText, setToggle, setSlider, selectDropdown, scroll,
          hover, hold, dragAndDrop, raycastClick
  - 検証: assertLabel
  - シーン: loadScene
  - 待機: waitSeconds, waitForCondition, waitTime
  - デバッグ: log
  - 合成: group
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, ClassVar, Literal, Optional, Protocol, Union, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..core.conditions import (
    AllOf,
    AnyOf,
    ButtonAccessible,
    Condition,
    Interactable,
    LabelTextEquals,
    ObjectAppeared,
    ObjectDisappeared,
    SceneActive,
)
from ..host.ports import UIHost
from .base import Step, StepContext
from .registry import StepInfo, StepRegistry

logger = logging.getLogger(__name__)


# ===========================================================================
# アクションステップ
# ===========================================================================

class ActionType(str, Enum):
    """ActionStep が実行する操作の種類。値は DSL のステップキー。"""

    PRESS = "press"
    ASSERT_LABEL = "assertLabel"
    LOAD_SCENE = "loadScene"
    INPUT_TEXT = "inputText"
    SET_TOGGLE = "setToggle"
    WAIT_SECONDS = "waitSeconds"
    DRAG_AND_DROP = "dragAndDrop"
    RAYCAST_CLICK = "raycastClick"
    SELECT_DROPDOWN = "selectDropdown"
    SET_SLIDER = "setSlider"
    HOVER = "hover"
    HOLD = "hold"
    SCROLL = "scroll"
    CUSTOM = "custom"


@runtime_checkable
class CustomAction(Protocol):
    """ActionType.CUSTOM で実行される利用者定義のアクション。"""

    name: str

    async def run(self, ctx: StepContext) -> None:
        ...


class CallableAction:
    """関数を CustomAction として扱うアダプタ。

    関数は StepContext を 1 つ受け取る。戻り値が awaitable なら完了を待つ。
    """

    def __init__(
        self,
        func: Callable[[StepContext], Union[None, Awaitable[None]]],
        name: Optional[str] = None,
    ) -> None:
        self._func = func
        self.name = name or getattr(func, "__name__", "custom")

    async def run(self, ctx: StepContext) -> None:
        result = self._func(ctx)
        if inspect.isawaitable(result):
            await result


@dataclass(kw_only=True)
class ActionStep(Step):
    """単一の UI 操作を実行するステップ。

    使用するフィールドは action によって異なる。

    Attributes:
        action: 操作の種類
        target: 操作対象（階層パスまたは "id:" 付き ID）
        second_target: dragAndDrop のドロップ先
        text: inputText の入力値 / assertLabel の期待値 / loadScene のシーン名
        value: setSlider の値
        index: selectDropdown の選択肢インデックス
        is_on: setToggle の状態
        duration: waitSeconds / hold の秒数
        delta: scroll の移動量 (x, y)
        custom: ActionType.CUSTOM の場合に実行するアクション
    """

    action: ActionType
    target: str = ""
    second_target: str = ""
    text: str = ""
    value: float = 0.0
    index: int = 0
    is_on: bool = True
    duration: float = 0.0
    delta: tuple[float, float] = (0.0, 0.0)
    custom: Optional[CustomAction] = None

    kind: ClassVar[str] = "action"

    def __post_init__(self) -> None:
        super().__post_init__()
        self.action = ActionType(self.action)
        if self.action is ActionType.CUSTOM and self.custom is None:
            raise ValueError("ActionType.CUSTOM には custom アクションの指定が必要です")

    async def execute(self, ctx: StepContext) -> None:
        actions = ctx.actions
        action = self.action

        if action is ActionType.PRESS:
            await actions.press(self.target)
        elif action is ActionType.ASSERT_LABEL:
            await actions.assert_label(self.target, self.text)
        elif action is ActionType.LOAD_SCENE:
            await actions.load_scene(self.text)
        elif action is ActionType.INPUT_TEXT:
            await actions.input_text(self.target, self.text)
        elif action is ActionType.SET_TOGGLE:
            await actions.set_toggle(self.target, self.is_on)
        elif action is ActionType.WAIT_SECONDS:
            await ctx.clock.sleep(self.duration)
        elif action is ActionType.DRAG_AND_DROP:
            await actions.drag_and_drop(self.target, self.second_target)
        elif action is ActionType.RAYCAST_CLICK:
            await actions.raycast_click(self.target)
        elif action is ActionType.SELECT_DROPDOWN:
            await actions.select_dropdown(self.target, self.index)
        elif action is ActionType.SET_SLIDER:
            await actions.set_slider(self.target, self.value)
        elif action is ActionType.HOVER:
            await actions.hover(self.target)
        elif action is ActionType.HOLD:
            await actions.hold(self.target, self.duration)
        elif action is ActionType.SCROLL:
            await actions.scroll(self.target, self.delta[0], self.delta[1])
        elif action is ActionType.CUSTOM:
            logger.info("custom: %s", self.custom.name)
            await self.custom.run(ctx)

    def describe(self) -> str:
        action = self.action.value
        if self.action is ActionType.ASSERT_LABEL:
            return f"{action} {self.target} == '{self.text}'"
        if self.action is ActionType.LOAD_SCENE:
            return f"{action} {self.text}"
        if self.action is ActionType.WAIT_SECONDS:
            return f"{action} {self.duration}s"
        if self.action is ActionType.DRAG_AND_DROP:
            return f"{action} {self.target} → {self.second_target}"
        if self.action is ActionType.CUSTOM:
            return f"{action} {self.custom.name}"
        return f"{action} {self.target}"


# ===========================================================================
# 条件待機ステップ
# ===========================================================================

class ConditionKind(str, Enum):
    """WaitForConditionStep で使える条件の種類。値は DSL のキー。"""

    OBJECT_APPEARED = "objectAppeared"
    OBJECT_DISAPPEARED = "objectDisappeared"
    LABEL_TEXT_EQUALS = "labelTextEquals"
    INTERACTABLE = "interactable"
    BUTTON_ACCESSIBLE = "buttonAccessible"
    SCENE_ACTIVE = "sceneActive"


class MatchMode(str, Enum):
    """複数条件の合成方法。"""

    ALL = "all"
    ANY = "any"


@dataclass
class ConditionSpec:
    """待機条件の宣言。待機の直前に build() で Condition を生成する。

    Attributes:
        kind: 条件の種類
        target: 対象要素（sceneActive 以外）
        expected: labelTextEquals の期待テキスト
        scene: sceneActive のシーン名
    """

    kind: ConditionKind
    target: str = ""
    expected: str = ""
    scene: str = ""

    def build(self, host: UIHost) -> Condition:
        kind = ConditionKind(self.kind)
        if kind is ConditionKind.OBJECT_APPEARED:
            return ObjectAppeared(host, self.target)
        if kind is ConditionKind.OBJECT_DISAPPEARED:
            return ObjectDisappeared(host, self.target)
        if kind is ConditionKind.LABEL_TEXT_EQUALS:
            return LabelTextEquals(host, self.target, self.expected)
        if kind is ConditionKind.INTERACTABLE:
            return Interactable(host, self.target)
        if kind is ConditionKind.BUTTON_ACCESSIBLE:
            return ButtonAccessible(host, self.target)
        return SceneActive(host, self.scene)


@dataclass(kw_only=True)
class WaitForConditionStep(Step):
    """条件リストが ALL / ANY で満たされるまで待機するステップ。

    条件が空の場合は即座に完了する。conditions には宣言（ConditionSpec）と
    Condition インスタンス（Predicate やユーザー定義の条件）を混在させられる。

    Attributes:
        conditions: 待機する条件
        mode: 合成方法
        wait_timeout: 待機のタイムアウト（秒）。0 で Waiter のデフォルト値
    """

    conditions: list[Union[ConditionSpec, Condition]] = field(default_factory=list)
    mode: MatchMode = MatchMode.ALL
    wait_timeout: float = 0.0

    kind: ClassVar[str] = "waitForCondition"

    def __post_init__(self) -> None:
        super().__post_init__()
        self.mode = MatchMode(self.mode)
        if self.wait_timeout < 0:
            raise ValueError(f"wait_timeout は 0 以上である必要があります: {self.wait_timeout}")
        for c in self.conditions:
            if not isinstance(c, (ConditionSpec, Condition)):
                raise TypeError(f"条件は ConditionSpec または Condition である必要があります: {c!r}")

    async def execute(self, ctx: StepContext) -> None:
        if not self.conditions:
            logger.debug("waitForCondition: 条件が空のため即座に完了します")
            return
        built = [
            c.build(ctx.host) if isinstance(c, ConditionSpec) else c
            for c in self.conditions
        ]
        combined = AllOf(built) if self.mode is MatchMode.ALL else AnyOf(built)
        elapsed = await ctx.waiter.wait(combined, self.wait_timeout)
        logger.info("waitForCondition: %d 件（%s）を %.2fs で満たしました", len(built), self.mode.value, elapsed)

    def describe(self) -> str:
        return f"waitForCondition {self.mode.value} ({len(self.conditions)})"


# ===========================================================================
# 時間待機・ログ・グループ
# ===========================================================================

@dataclass(kw_only=True)
class WaitTimeStep(Step):
    """指定秒数（unscaled）待機するステップ。"""

    seconds: float = 0.0

    kind: ClassVar[str] = "waitTime"

    async def execute(self, ctx: StepContext) -> None:
        await ctx.clock.sleep(self.seconds)

    def describe(self) -> str:
        return f"waitTime {self.seconds}s"


_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


@dataclass(kw_only=True)
class LogStep(Step):
    """メッセージをログに出力するステップ。"""

    message: str = ""
    level: str = "info"

    kind: ClassVar[str] = "log"

    async def execute(self, ctx: StepContext) -> None:
        logger.log(_LOG_LEVELS.get(self.level, logging.INFO), "[log] %s", self.message)
        await ctx.clock.next_tick()

    def describe(self) -> str:
        return f"log '{self.message}'"


@dataclass(kw_only=True)
class CompositeStep(Step):
    """子ステップを順番に実行するステップ。

    子ステップの timeout_override は無視され、composite 全体の予算が適用される。
    """

    steps: list[Optional[Step]] = field(default_factory=list)

    kind: ClassVar[str] = "group"

    async def execute(self, ctx: StepContext) -> None:
        for i, child in enumerate(self.steps):
            if child is None:
                logger.warning("group '%s' の %d 番目の子ステップが未設定のためスキップします", self.label, i)
                continue
            logger.debug("group '%s': %s", self.label, child.label)
            await child.execute(ctx)

    def describe(self) -> str:
        return f"group ({len(self.steps)} steps)"


# ===========================================================================
# パラメータスキーマ定義
# ===========================================================================

class StepParams(BaseModel):
    """全ステップ共通のパラメータ。"""

    model_config = ConfigDict(extra="forbid")

    note: str | None = None
    timeout: float = Field(default=0.0, ge=0)


# --- 操作 ---

class PressParams(StepParams):
    """press ステップのパラメータ。"""
    target: str


class InputTextParams(StepParams):
    """inputText ステップのパラメータ。"""
    target: str
    text: str


class SetToggleParams(StepParams):
    """setToggle ステップのパラメータ。"""
    target: str
    isOn: bool = True


class SetSliderParams(StepParams):
    """setSlider ステップのパラメータ。"""
    target: str
    value: float


class SelectDropdownParams(StepParams):
    """selectDropdown ステップのパラメータ。"""
    target: str
    index: int


class ScrollParams(StepParams):
    """scroll ステップのパラメータ。"""
    target: str
    deltaX: float = 0.0
    deltaY: float = 0.0


class HoverParams(StepParams):
    """hover ステップのパラメータ。"""
    target: str


class HoldParams(StepParams):
    """hold ステップのパラメータ。"""
    target: str
    duration: float = Field(ge=0)


class DragAndDropParams(StepParams):
    """dragAndDrop ステップのパラメータ。"""
    source: str
    target: str


class RaycastClickParams(StepParams):
    """raycastClick ステップのパラメータ。"""
    target: str


# --- 検証・シーン ---

class AssertLabelParams(StepParams):
    """assertLabel ステップのパラメータ。"""
    target: str
    text: str


class LoadSceneParams(StepParams):
    """loadScene ステップのパラメータ。"""
    scene: str


# --- 待機 ---

class WaitSecondsParams(StepParams):
    """waitSeconds ステップのパラメータ。"""
    seconds: float = Field(ge=0)


class WaitTimeParams(StepParams):
    """waitTime ステップのパラメータ。"""
    seconds: float = Field(ge=0)


class ConditionParams(BaseModel):
    """waitForCondition の条件 1 件。

    DSL では単一キーの辞書で記述する::

        - objectAppeared: Canvas/PlayButton
        - labelTextEquals: {target: Canvas/Status, text: Ready}
        - sceneActive: Main
    """

    model_config = ConfigDict(extra="forbid")

    kind: ConditionKind
    target: str = ""
    text: str = ""
    scene: str = ""

    @model_validator(mode="before")
    @classmethod
    def _expand_shorthand(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "kind" in data:
            return data
        if len(data) != 1:
            raise ValueError(f"条件は 1 つのキーを持つ辞書である必要があります: {data!r}")
        kind, body = next(iter(data.items()))
        if isinstance(body, dict):
            return {"kind": kind, **body}
        if kind == ConditionKind.SCENE_ACTIVE.value:
            return {"kind": kind, "scene": body}
        return {"kind": kind, "target": body}

    @model_validator(mode="after")
    def _check_required(self) -> ConditionParams:
        if self.kind is ConditionKind.SCENE_ACTIVE:
            if not self.scene:
                raise ValueError("sceneActive にはシーン名が必要です")
        elif not self.target:
            raise ValueError(f"{self.kind.value} には target が必要です")
        return self

    def to_spec(self) -> ConditionSpec:
        return ConditionSpec(kind=self.kind, target=self.target, expected=self.text, scene=self.scene)


class WaitForConditionParams(StepParams):
    """waitForCondition ステップのパラメータ。"""
    conditions: list[ConditionParams] = Field(default_factory=list)
    mode: MatchMode = MatchMode.ALL
    waitTimeout: float = Field(default=0.0, ge=0)


# --- デバッグ・合成 ---

class LogParams(StepParams):
    """log ステップのパラメータ。"""
    message: str
    level: Literal["debug", "info", "warning", "error"] = "info"


class GroupParams(StepParams):
    """group ステップのパラメータ。"""
    steps: list[dict] = Field(default_factory=list)


# ===========================================================================
# ファクトリ
# ===========================================================================

class _ParamsFactory:
    """パラメータモデルの検証と共通フィールドの受け渡しを行う基底ファクトリ。"""

    schema: ClassVar[type[StepParams]] = StepParams

    def get_schema(self) -> type[BaseModel]:
        return self.schema

    def build(self, params: dict, registry: StepRegistry) -> Step:
        p = self.schema.model_validate(params)
        return self._create(p, registry, note=p.note or "", timeout_override=p.timeout)

    def _create(self, p: Any, registry: StepRegistry, **common: Any) -> Step:
        raise NotImplementedError


class PressFactory(_ParamsFactory):
    """press ステップ — ボタンが押下可能になるまで待ってから押下する。"""

    schema = PressParams

    def _create(self, p: PressParams, registry: StepRegistry, **common: Any) -> Step:
        return ActionStep(action=ActionType.PRESS, target=p.target, **common)


class AssertLabelFactory(_ParamsFactory):
    """assertLabel ステップ — ラベルのテキストが一致するまで待機する。"""

    schema = AssertLabelParams

    def _create(self, p: AssertLabelParams, registry: StepRegistry, **common: Any) -> Step:
        return ActionStep(action=ActionType.ASSERT_LABEL, target=p.target, text=p.text, **common)


class LoadSceneFactory(_ParamsFactory):
    """loadScene ステップ — シーンを切り替え、アクティブになるまで待機する。"""

    schema = LoadSceneParams

    def _create(self, p: LoadSceneParams, registry: StepRegistry, **common: Any) -> Step:
        return ActionStep(action=ActionType.LOAD_SCENE, text=p.scene, **common)


class InputTextFactory(_ParamsFactory):
    """inputText ステップ — 入力フィールドにテキストを設定する。"""

    schema = InputTextParams

    def _create(self, p: InputTextParams, registry: StepRegistry, **common: Any) -> Step:
        return ActionStep(action=ActionType.INPUT_TEXT, target=p.target, text=p.text, **common)


class SetToggleFactory(_ParamsFactory):
    """setToggle ステップ — トグルの状態を設定する。"""

    schema = SetToggleParams

    def _create(self, p: SetToggleParams, registry: StepRegistry, **common: Any) -> Step:
        return ActionStep(action=ActionType.SET_TOGGLE, target=p.target, is_on=p.isOn, **common)


class WaitSecondsFactory(_ParamsFactory):
    """waitSeconds ステップ — 指定秒数待機する（アクションとして）。"""

    schema = WaitSecondsParams

    def _create(self, p: WaitSecondsParams, registry: StepRegistry, **common: Any) -> Step:
        return ActionStep(action=ActionType.WAIT_SECONDS, duration=p.seconds, **common)


class DragAndDropFactory(_ParamsFactory):
    """dragAndDrop ステップ — 要素を別の要素へドラッグ＆ドロップする。"""

    schema = DragAndDropParams

    def _create(self, p: DragAndDropParams, registry: StepRegistry, **common: Any) -> Step:
        return ActionStep(
            action=ActionType.DRAG_AND_DROP, target=p.source, second_target=p.target, **common,
        )


class RaycastClickFactory(_ParamsFactory):
    """raycastClick ステップ — レイキャストで要素をクリックする。"""

    schema = RaycastClickParams

    def _create(self, p: RaycastClickParams, registry: StepRegistry, **common: Any) -> Step:
        return ActionStep(action=ActionType.RAYCAST_CLICK, target=p.target, **common)


class SelectDropdownFactory(_ParamsFactory):
    """selectDropdown ステップ — ドロップダウンの選択肢をインデックスで選ぶ。"""

    schema = SelectDropdownParams

    def _create(self, p: SelectDropdownParams, registry: StepRegistry, **common: Any) -> Step:
        return ActionStep(action=ActionType.SELECT_DROPDOWN, target=p.target, index=p.index, **common)


class SetSliderFactory(_ParamsFactory):
    """setSlider ステップ — スライダーの値を設定する。"""

    schema = SetSliderParams

    def _create(self, p: SetSliderParams, registry: StepRegistry, **common: Any) -> Step:
        return ActionStep(action=ActionType.SET_SLIDER, target=p.target, value=p.value, **common)


class HoverFactory(_ParamsFactory):
    """hover ステップ — 要素にポインタを重ねる。"""

    schema = HoverParams

    def _create(self, p: HoverParams, registry: StepRegistry, **common: Any) -> Step:
        return ActionStep(action=ActionType.HOVER, target=p.target, **common)


class HoldFactory(_ParamsFactory):
    """hold ステップ — 要素を指定秒数押し続ける。"""

    schema = HoldParams

    def _create(self, p: HoldParams, registry: StepRegistry, **common: Any) -> Step:
        return ActionStep(action=ActionType.HOLD, target=p.target, duration=p.duration, **common)


class ScrollFactory(_ParamsFactory):
    """scroll ステップ — スクロール領域をスクロールする。"""

    schema = ScrollParams

    def _create(self, p: ScrollParams, registry: StepRegistry, **common: Any) -> Step:
        return ActionStep(
            action=ActionType.SCROLL, target=p.target, delta=(p.deltaX, p.deltaY), **common,
        )


class WaitForConditionFactory(_ParamsFactory):
    """waitForCondition ステップ — 条件リストが満たされるまで待機する。"""

    schema = WaitForConditionParams

    def _create(self, p: WaitForConditionParams, registry: StepRegistry, **common: Any) -> Step:
        return WaitForConditionStep(
            conditions=[c.to_spec() for c in p.conditions],
            mode=p.mode,
            wait_timeout=p.waitTimeout,
            **common,
        )


class WaitTimeFactory(_ParamsFactory):
    """waitTime ステップ — 指定秒数待機する。"""

    schema = WaitTimeParams

    def _create(self, p: WaitTimeParams, registry: StepRegistry, **common: Any) -> Step:
        return WaitTimeStep(seconds=p.seconds, **common)


class LogFactory(_ParamsFactory):
    """log ステップ — メッセージをログに出力する。"""

    schema = LogParams

    def _create(self, p: LogParams, registry: StepRegistry, **common: Any) -> Step:
        return LogStep(message=p.message, level=p.level, **common)


class GroupFactory(_ParamsFactory):
    """group ステップ — 子ステップを順番に実行する。"""

    schema = GroupParams

    def _create(self, p: GroupParams, registry: StepRegistry, **common: Any) -> Step:
        return CompositeStep(steps=[registry.build(entry) for entry in p.steps], **common)


# ===========================================================================
# 登録
# ===========================================================================

_BUILTIN_STEPS: list[tuple[str, _ParamsFactory, StepInfo]] = [
    ("press", PressFactory(), StepInfo("press", "ボタンを押下する", "action")),
    ("inputText", InputTextFactory(), StepInfo("inputText", "入力フィールドにテキストを設定する", "action")),
    ("setToggle", SetToggleFactory(), StepInfo("setToggle", "トグルの状態を設定する", "action")),
    ("setSlider", SetSliderFactory(), StepInfo("setSlider", "スライダーの値を設定する", "action")),
    ("selectDropdown", SelectDropdownFactory(), StepInfo("selectDropdown", "ドロップダウンの選択肢を選ぶ", "action")),
    ("scroll", ScrollFactory(), StepInfo("scroll", "スクロール領域をスクロールする", "action")),
    ("hover", HoverFactory(), StepInfo("hover", "要素にポインタを重ねる", "action")),
    ("hold", HoldFactory(), StepInfo("hold", "要素を指定秒数押し続ける", "action")),
    ("dragAndDrop", DragAndDropFactory(), StepInfo("dragAndDrop", "要素をドラッグ＆ドロップする", "action")),
    ("raycastClick", RaycastClickFactory(), StepInfo("raycastClick", "レイキャストで要素をクリックする", "action")),
    ("assertLabel", AssertLabelFactory(), StepInfo("assertLabel", "ラベルのテキストを検証する", "validation")),
    ("loadScene", LoadSceneFactory(), StepInfo("loadScene", "シーンを切り替える", "scene")),
    ("waitSeconds", WaitSecondsFactory(), StepInfo("waitSeconds", "指定秒数待機する（アクション）", "wait")),
    ("waitForCondition", WaitForConditionFactory(), StepInfo("waitForCondition", "条件が満たされるまで待機する", "wait")),
    ("waitTime", WaitTimeFactory(), StepInfo("waitTime", "指定秒数待機する", "wait")),
    ("log", LogFactory(), StepInfo("log", "メッセージをログに出力する", "debug")),
    ("group", GroupFactory(), StepInfo("group", "子ステップを順番に実行する", "composite")),
]


def register_builtin_steps(registry: StepRegistry) -> None:
    """全標準ステップファクトリをレジストリに登録する。

    Args:
        registry: 登録先の StepRegistry
    """
    for name, factory, info in _BUILTIN_STEPS:
        registry.register(name, factory, info=info)
    logger.debug("標準ステップ %d 種を登録しました", len(_BUILTIN_STEPS))


def create_default_registry() -> StepRegistry:
    """標準ステップが登録済みの StepRegistry を生成する。"""
    registry = StepRegistry()
    register_builtin_steps(registry)
    return registry
