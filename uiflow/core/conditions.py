"""
コンディション — Waiter がポーリングする述語

各 Condition は satisfied() で真偽を返し、describe() で
「なぜ満たされていないか」を人間向けに説明する。

satisfied() は何度呼び出しても副作用を持たず（最後の検索結果のキャッシュを除く）、
決して例外を送出しない。内部の検索失敗は全て「未充足」として扱う。

主な構成:
  - Condition: 基底クラス
  - ObjectAppeared / ObjectDisappeared: 要素の出現・消失
  - LabelTextEquals: ラベルテキストの一致（plain / rich テキスト対応）
  - ButtonAccessible / Interactable: 操作可能状態
  - SceneActive: アクティブシーンの一致
  - Predicate: 任意の関数による条件
  - AllOf / AnyOf: 複数条件の合成
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Callable, Iterable, Optional, Sequence

from ..host.ports import Capability, ElementHandle, TextVariant, UIHost
from ..host.targets import parse_target

logger = logging.getLogger(__name__)


class Condition(ABC):
    """ポーリングされる述語の基底クラス。

    Attributes:
        subject_label: 何を検査しているか（表示用）
        expected_value: 期待値（ある場合）
    """

    subject_label: Optional[str] = None
    expected_value: Optional[object] = None

    def satisfied(self) -> bool:
        """条件が満たされているかを返す。例外は送出しない。"""
        try:
            return bool(self._evaluate())
        except Exception as exc:
            logger.debug("%s の評価中にエラー（未充足として扱う）: %s", type(self).__name__, exc)
            return False

    @abstractmethod
    def _evaluate(self) -> bool:
        """条件を評価する。サブクラスで実装する。"""

    def describe(self) -> str:
        """条件の診断メッセージを返す。"""
        try:
            return self._describe()
        except Exception as exc:
            return f"{type(self).__name__} の診断メッセージを生成できません: {exc}"

    def _describe(self) -> str:
        subject = self.subject_label if self.subject_label is not None else ""
        return f"{type(self).__name__} '{subject}'"

    def __str__(self) -> str:
        return self.describe()


# ---------------------------------------------------------------------------
# 要素ベースの条件
# ---------------------------------------------------------------------------

class ObjectAppeared(Condition):
    """ターゲット要素が存在し、アクティブであること。

    最後に解決したハンドルを handle にキャッシュする。
    アクションヘルパーは待機完了後にこのハンドルを操作対象として使う。
    """

    def __init__(self, host: UIHost, target: str) -> None:
        self._host = host
        self.subject_label = target
        self.handle: Optional[ElementHandle] = None

    def _lookup(self) -> Optional[ElementHandle]:
        if not self.subject_label:
            self.handle = None
            return None
        self.handle = self._host.find(parse_target(self.subject_label))
        return self.handle

    def _evaluate(self) -> bool:
        handle = self._lookup()
        return handle is not None and self._host.is_active(handle)

    def _describe(self) -> str:
        if self.handle is None:
            return f"ObjectAppeared({self.subject_label}): オブジェクトが存在しません"
        if not self._host.is_active(self.handle):
            return f"ObjectAppeared({self.subject_label}): オブジェクトが非アクティブです"
        return f"ObjectAppeared({self.subject_label})"


class ObjectDisappeared(ObjectAppeared):
    """ターゲット要素が存在しないか、非アクティブであること。"""

    def _evaluate(self) -> bool:
        return not super()._evaluate()

    def _describe(self) -> str:
        if self.handle is not None and self._host.is_active(self.handle):
            return f"ObjectDisappeared({self.subject_label}): オブジェクトがまだアクティブです"
        return f"ObjectDisappeared({self.subject_label})"


class LabelTextEquals(Condition):
    """ラベル要素の表示テキストが期待値と一致すること。

    要素の capability タグで読み取り方法を決める。
    text タグがあれば plain テキスト、rich_text タグがあれば rich テキストを読む。
    variant を指定した場合はその種別のみを対象にする。
    """

    def __init__(
        self,
        host: UIHost,
        target: str,
        expected: str,
        variant: Optional[TextVariant] = None,
    ) -> None:
        self._host = host
        self.subject_label = target
        self.expected_value = expected
        self._variant = variant
        self.actual: Optional[str] = None

    def _error_message(self) -> Optional[str]:
        """不一致の理由を返す。一致している場合は None。"""
        if not self.subject_label:
            return "ラベルのターゲットが指定されていません"
        handle = self._host.find(parse_target(self.subject_label))
        if handle is None:
            return f"ラベル {self.subject_label} が存在しません"
        if not self._host.is_active(handle):
            return f"ラベル {self.subject_label} が非アクティブです"

        variant = self._resolve_variant(handle)
        if variant is None:
            return f"ラベル {self.subject_label} はテキスト表示に対応していません"

        self.actual = self._host.read_text(handle, variant)
        if self.actual != self.expected_value:
            return (
                f"ラベル {self.subject_label}\n"
                f" 期待値: {self.expected_value},\n"
                f" 実際値: {self.actual}"
            )
        return None

    def _resolve_variant(self, handle: ElementHandle) -> Optional[TextVariant]:
        if self._variant is TextVariant.PLAIN:
            return TextVariant.PLAIN if handle.supports(Capability.TEXT) else None
        if self._variant is TextVariant.RICH:
            return TextVariant.RICH if handle.supports(Capability.RICH_TEXT) else None
        if handle.supports(Capability.TEXT):
            return TextVariant.PLAIN
        if handle.supports(Capability.RICH_TEXT):
            return TextVariant.RICH
        return None

    def _evaluate(self) -> bool:
        return self._error_message() is None

    def _describe(self) -> str:
        return self._error_message() or f"ラベル {self.subject_label} == '{self.expected_value}'"


class ButtonAccessible(Condition):
    """要素がボタンとして押下可能であること。"""

    def __init__(self, host: UIHost, target: str) -> None:
        self._host = host
        self.subject_label = target

    def _error_message(self) -> Optional[str]:
        handle = self._host.find(parse_target(self.subject_label or ""))
        if handle is None:
            return f"ボタン {self.subject_label} が見つかりません"
        if not handle.supports(Capability.BUTTON):
            return f"{self.subject_label} はボタンではありません"
        if not self._host.is_active(handle):
            return f"ボタン {self.subject_label} が非アクティブです"
        if not self._host.is_interactable(handle):
            return f"ボタン {self.subject_label} は操作不可です"
        return None

    def _evaluate(self) -> bool:
        return self._error_message() is None

    def _describe(self) -> str:
        return self._error_message() or f"ボタン {self.subject_label} は押下可能です"


class Interactable(Condition):
    """要素がアクティブかつ操作可能であること。"""

    def __init__(self, host: UIHost, target: str) -> None:
        self._host = host
        self.subject_label = target

    def _evaluate(self) -> bool:
        handle = self._host.find(parse_target(self.subject_label or ""))
        if handle is None or not self._host.is_active(handle):
            return False
        return self._host.is_interactable(handle)

    def _describe(self) -> str:
        return f"Interactable({self.subject_label})"


class SceneActive(Condition):
    """指定名のシーンがアクティブであること。"""

    def __init__(self, host: UIHost, scene: str) -> None:
        self._host = host
        self.subject_label = scene
        self.expected_value = scene

    def _evaluate(self) -> bool:
        return self._host.active_scene() == self.expected_value

    def _describe(self) -> str:
        return f"SceneActive '{self.expected_value}'（現在: {self._host.active_scene()}）"


class Predicate(Condition):
    """任意の関数を条件として扱う。"""

    def __init__(self, getter: Callable[[], bool], label: Optional[str] = None) -> None:
        self._getter = getter
        self.subject_label = label or getattr(getter, "__qualname__", repr(getter))

    def _evaluate(self) -> bool:
        return bool(self._getter())

    def _describe(self) -> str:
        return f"Predicate({self.subject_label})"


# ---------------------------------------------------------------------------
# 合成条件
# ---------------------------------------------------------------------------

class AllOf(Condition):
    """全ての子条件が満たされていること。子条件が空なら常に真。"""

    def __init__(self, conditions: Iterable[Condition]) -> None:
        self.conditions: Sequence[Condition] = list(conditions)
        self.subject_label = f"{len(self.conditions)} condition(s)"

    def _evaluate(self) -> bool:
        return all(c.satisfied() for c in self.conditions)

    def _describe(self) -> str:
        pending = [c.describe() for c in self.conditions if not c.satisfied()]
        if not pending:
            return f"AllOf: 全 {len(self.conditions)} 件を満たしています"
        return "AllOf: 未充足の条件:\n  - " + "\n  - ".join(pending)


class AnyOf(Condition):
    """いずれかの子条件が満たされていること。子条件が空なら常に偽。"""

    def __init__(self, conditions: Iterable[Condition]) -> None:
        self.conditions: Sequence[Condition] = list(conditions)
        self.subject_label = f"{len(self.conditions)} condition(s)"

    def _evaluate(self) -> bool:
        return any(c.satisfied() for c in self.conditions)

    def _describe(self) -> str:
        details = [c.describe() for c in self.conditions]
        return "AnyOf: いずれも満たされていません:\n  - " + "\n  - ".join(details)
