"""
YAML DSL スキーマ定義

テストケース文書とシーン文書の Pydantic v2 モデル。

テストケース文書::

    name: play-button
    description: Play ボタンを押してステータスを確認する
    stopOnError: true
    steps:
      - press: {target: Canvas/PlayButton}
      - assertLabel: {target: "id:status", text: Game Started}

ステップの各エントリは単一キーの辞書で、キーは StepRegistry の登録名。
パラメータの詳細な検証は各ステップのパラメータモデルが行う。

シーン文書は InMemoryHost の UI ツリーを記述する（CLI・テスト用）。
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..host.ports import Capability


# ---------------------------------------------------------------------------
# テストケース文書
# ---------------------------------------------------------------------------

class TestCaseDocument(BaseModel):
    """YAML DSL のルートモデル。1 つのテストケースを表現する。"""

    __test__ = False

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, description="テストケース名")
    description: str = Field(default="", description="テストケースの説明")
    stopOnError: Optional[bool] = Field(
        default=None,
        description="最初の失敗で中断するか（省略時は設定のデフォルト値）",
    )
    steps: list[dict] = Field(
        default_factory=list,
        description="ステップ配列（単一キーの辞書）",
    )

    @field_validator("steps")
    @classmethod
    def validate_step_entries(cls, v: list[dict]) -> list[dict]:
        """各ステップが単一キーの辞書であることを検証する。"""
        for i, entry in enumerate(v):
            if len(entry) != 1:
                raise ValueError(
                    f"steps[{i}] は 1 つのキーを持つ辞書である必要があります: {list(entry.keys())}"
                )
        return v


# ---------------------------------------------------------------------------
# シーン文書
# ---------------------------------------------------------------------------

class EffectModel(BaseModel):
    """要素の押下時・シーン開始時に適用される副作用。

    delay 秒（unscaled）後に適用される。
    """

    model_config = ConfigDict(extra="forbid")

    action: Literal["setText", "activate", "deactivate", "setInteractable", "loadScene"]
    target: str = ""
    text: str = ""
    scene: str = ""
    interactable: bool = True
    delay: float = Field(default=0.0, ge=0)


class ElementModel(BaseModel):
    """UI 要素 1 件の定義。

    path は "/" 区切りの階層パス。祖先要素が非アクティブなら子孫も非アクティブとみなす。
    """

    model_config = ConfigDict(extra="forbid")

    path: str = Field(..., min_length=1)
    id: Optional[str] = None
    active: bool = True
    interactable: bool = True
    tags: list[Capability] = Field(default_factory=list)
    text: Optional[str] = None
    richText: Optional[str] = None
    value: float = 0.0
    options: list[str] = Field(default_factory=list)
    selected: int = 0
    scene: Optional[str] = Field(default=None, description="所属シーン（省略時は全シーン共通）")
    onPress: list[EffectModel] = Field(default_factory=list)


class SceneDocument(BaseModel):
    """InMemoryHost の UI ツリー定義。"""

    model_config = ConfigDict(extra="forbid")

    activeScene: str = "Main"
    scenes: list[str] = Field(
        default_factory=list,
        description="loadScene で切り替え可能なシーン名（空の場合は制限なし）",
    )
    sceneLoadFrames: int = Field(default=1, ge=0)
    elements: list[ElementModel] = Field(default_factory=list)
    onStart: list[EffectModel] = Field(default_factory=list)
