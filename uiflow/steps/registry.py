"""
ステップレジストリ — DSL キーとステップファクトリの対応を管理する

プラグイン方式により、標準ステップとカスタムステップを
同一のインターフェースで管理する。

主な構成:
  - StepFactory Protocol: DSL パラメータから Step を生成する共通インターフェース
  - StepInfo: ステップのメタ情報（名前、説明、カテゴリ）
  - StepRegistry: ステップファクトリの登録・検索・一覧
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Protocol, runtime_checkable

from pydantic import BaseModel

if TYPE_CHECKING:
    from .base import Step

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# ステップメタ情報
# ---------------------------------------------------------------------------

@dataclass
class StepInfo:
    """ステップのメタ情報。

    CLI の list-steps コマンドで一覧表示に使用する。

    Attributes:
        name: ステップ名（YAML DSL で使用するキー名）
        description: ステップの説明文
        category: カテゴリ（action, wait, validation, scene, debug, composite）
    """

    name: str
    description: str
    category: str


# ---------------------------------------------------------------------------
# ステップファクトリ Protocol
# ---------------------------------------------------------------------------

@runtime_checkable
class StepFactory(Protocol):
    """DSL パラメータから Step を生成するファクトリの共通インターフェース。"""

    def build(self, params: dict, registry: StepRegistry) -> Step:
        """パラメータから Step を生成する。

        Args:
            params: ステップパラメータ辞書（YAML DSL から取得）
            registry: 子ステップの生成に使うレジストリ（group 等）

        Returns:
            生成された Step
        """
        ...

    def get_schema(self) -> type[BaseModel]:
        """パラメータの Pydantic スキーマクラスを返す。"""
        ...


# ---------------------------------------------------------------------------
# StepRegistry 本体
# ---------------------------------------------------------------------------

class StepRegistry:
    """ステップファクトリの登録・検索・一覧を管理するレジストリ。

    使用例::

        registry = StepRegistry()
        registry.register("press", PressFactory(), info=StepInfo(...))
        step = registry.get("press").build({"target": "Canvas/Play"}, registry)
    """

    def __init__(self) -> None:
        """空のレジストリを初期化する。"""
        self._factories: dict[str, StepFactory] = {}
        self._info: dict[str, StepInfo] = {}

    def register(
        self,
        name: str,
        factory: StepFactory,
        *,
        info: Optional[StepInfo] = None,
    ) -> None:
        """ステップファクトリを登録する。

        同名のファクトリが既に登録されている場合は上書きする（警告を出力）。

        Args:
            name: ステップ名（YAML DSL で使用するキー名）
            factory: ステップファクトリインスタンス
            info: ステップのメタ情報。None の場合はデフォルト値を使用

        Raises:
            TypeError: factory が StepFactory Protocol を満たさない場合
        """
        if not isinstance(factory, StepFactory):
            raise TypeError(
                f"factory は StepFactory Protocol を満たす必要があります: "
                f"{type(factory).__name__}"
            )

        if name in self._factories:
            logger.warning(
                "ステップ '%s' のファクトリを上書きします（既存: %s → 新規: %s）",
                name,
                type(self._factories[name]).__name__,
                type(factory).__name__,
            )

        self._factories[name] = factory

        if info is not None:
            self._info[name] = info
        elif name not in self._info:
            self._info[name] = StepInfo(
                name=name,
                description=f"{name} ステップ",
                category="unknown",
            )

        logger.debug("ステップ '%s' を登録しました: %s", name, type(factory).__name__)

    def get(self, name: str) -> StepFactory:
        """名前でステップファクトリを取得する。

        Raises:
            KeyError: 指定名のファクトリが未登録の場合
        """
        if name not in self._factories:
            registered = ", ".join(sorted(self._factories.keys()))
            raise KeyError(
                f"ステップ '{name}' は登録されていません。"
                f"登録済みステップ: [{registered}]"
            )
        return self._factories[name]

    def build(self, entry: dict) -> Step:
        """単一キーの辞書（DSL のステップ記述）から Step を生成する。

        Args:
            entry: {ステップ名: パラメータ辞書} 形式の辞書

        Returns:
            生成された Step

        Raises:
            ValueError: 辞書の形式が不正、またはパラメータ検証に失敗した場合
            KeyError: ステップ名が未登録の場合
        """
        if not isinstance(entry, dict) or len(entry) != 1:
            raise ValueError(f"ステップは 1 つのキーを持つ辞書である必要があります: {entry!r}")
        name, params = next(iter(entry.items()))
        if params is None:
            params = {}
        if not isinstance(params, dict):
            raise ValueError(f"ステップ '{name}' のパラメータは辞書である必要があります: {params!r}")
        return self.get(name).build(params, self)

    def list_all(self) -> list[StepInfo]:
        """登録済み全ステップのメタ情報を名前順で返す。"""
        return sorted(self._info.values(), key=lambda s: s.name)

    def has(self, name: str) -> bool:
        return name in self._factories

    @property
    def names(self) -> list[str]:
        """登録済み全ステップ名をソート済みリストで返す。"""
        return sorted(self._factories.keys())
