"""
DSL パーサー — YAML DSL の読み込み・検証・TestCase への変換

ruamel.yaml で YAML を読み込み、Pydantic モデルで検証した後、
StepRegistry を使って実行可能な TestCase を組み立てる。
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

from pydantic import ValidationError as PydanticValidationError
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from ..core.case import TestCase
from .schema import SceneDocument, TestCaseDocument

if TYPE_CHECKING:
    from ..config import EngineConfig
    from ..steps.registry import StepRegistry


# ---------------------------------------------------------------------------
# バリデーションエラー表現
# ---------------------------------------------------------------------------

@dataclass
class DslValidationError:
    """YAML DSL の検証で検出されたエラー。

    Attributes:
        message: エラーメッセージ
        location: エラー箇所（フィールドパス等）
        line: YAML ファイル内の行番号（取得可能な場合）
    """

    message: str
    location: str = ""
    line: Optional[int] = None


# ---------------------------------------------------------------------------
# DslParser 本体
# ---------------------------------------------------------------------------

class DslParser:
    """YAML DSL の読み込み・検証・TestCase への変換を担当するパーサー。"""

    def __init__(self) -> None:
        """ruamel.yaml インスタンスを初期化する。"""
        self._yaml = YAML(typ="safe", pure=True)

    # ----- load -----

    def load(self, path: Path) -> TestCaseDocument:
        """YAML ファイルを読み込み、TestCaseDocument に変換する。

        Raises:
            FileNotFoundError: ファイルが存在しない場合
            ValueError: YAML 構文エラーまたはスキーマ検証エラーの場合
        """
        return self._parse(self._read(path), TestCaseDocument)

    def loads(self, text: str) -> TestCaseDocument:
        """YAML 文字列を TestCaseDocument に変換する。"""
        return self._parse(self._load_text(text), TestCaseDocument)

    def load_scene(self, path: Path) -> SceneDocument:
        """シーン定義 YAML を読み込み、SceneDocument に変換する。"""
        return self._parse(self._read(path), SceneDocument)

    def loads_scene(self, text: str) -> SceneDocument:
        return self._parse(self._load_text(text), SceneDocument)

    # ----- validate -----

    def validate(self, path: Path, registry: Optional[StepRegistry] = None) -> list[DslValidationError]:
        """YAML ファイルを検証し、違反箇所を報告する。

        スキーマ検証に加えて、registry が指定された場合は各ステップの
        キーとパラメータも検証する。エラーがない場合は空リストを返す。

        Args:
            path: 検証する YAML ファイルのパス
            registry: ステップ検証に使うレジストリ

        Returns:
            検出されたバリデーションエラーのリスト
        """
        path = Path(path)
        if not path.exists():
            return [DslValidationError(message=f"YAML ファイルが見つかりません: {path}", location="file")]

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = self._yaml.load(f)
        except YAMLError as e:
            line = None
            if getattr(e, "problem_mark", None) is not None:
                line = e.problem_mark.line + 1
            return [DslValidationError(message=f"YAML 構文エラー: {e}", location="yaml", line=line)]

        if data is None:
            return [DslValidationError(message="YAML ファイルが空です", location="file")]

        try:
            document = TestCaseDocument(**self._to_plain_dict(data))
        except PydanticValidationError as e:
            return _convert_errors(e)
        except TypeError as e:
            return [DslValidationError(message=f"ルート要素はマッピングである必要があります: {e}", location="root")]

        if registry is None:
            return []

        errors: list[DslValidationError] = []
        for i, entry in enumerate(document.steps):
            name = next(iter(entry))
            try:
                registry.build(entry)
            except PydanticValidationError as e:
                errors.extend(_convert_errors(e, prefix=["steps", str(i), str(name)]))
            except KeyError as e:
                errors.append(DslValidationError(message=str(e.args[0]), location=f"steps -> {i}"))
            except ValueError as e:
                errors.append(DslValidationError(message=str(e), location=f"steps -> {i} -> {name}"))
        return errors

    # ----- build -----

    def build(
        self,
        document: TestCaseDocument,
        registry: Optional[StepRegistry] = None,
        config: Optional[EngineConfig] = None,
    ) -> TestCase:
        """TestCaseDocument から実行可能な TestCase を組み立てる。

        Args:
            document: 読み込み済みのテストケース文書
            registry: ステップの生成に使うレジストリ。None の場合は標準レジストリ
            config: stopOnError 省略時のデフォルト値を決める設定

        Returns:
            組み立てた TestCase

        Raises:
            ValueError: ステップのパラメータが不正な場合
            KeyError: 未登録のステップキーが含まれる場合
        """
        if registry is None:
            from ..steps import create_default_registry

            registry = create_default_registry()

        stop_on_error = document.stopOnError
        if stop_on_error is None:
            stop_on_error = config.stop_on_error_default if config is not None else True

        steps = []
        for i, entry in enumerate(document.steps):
            try:
                steps.append(registry.build(entry))
            except PydanticValidationError as e:
                raise ValueError(f"steps[{i}] のパラメータが不正です: {e}") from e

        return TestCase(
            name=document.name,
            description=document.description,
            stop_on_error=stop_on_error,
            steps=steps,
        )

    # ----- ユーティリティ -----

    def _read(self, path: Path) -> Any:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"YAML ファイルが見つかりません: {path}")
        with open(path, "r", encoding="utf-8") as f:
            return self._load_text(f.read())

    def _load_text(self, text: str) -> Any:
        try:
            data = self._yaml.load(text)
        except YAMLError as e:
            line_info = ""
            mark = getattr(e, "problem_mark", None)
            if mark is not None:
                line_info = f" (行 {mark.line + 1}, 列 {mark.column + 1})"
            raise ValueError(f"YAML 構文エラー{line_info}: {e}") from e
        if data is None:
            raise ValueError("YAML ファイルが空です")
        return data

    def _parse(self, data: Any, model: type) -> Any:
        plain_data = self._to_plain_dict(data)
        if not isinstance(plain_data, dict):
            raise ValueError("ルート要素はマッピングである必要があります")
        try:
            return model(**plain_data)
        except PydanticValidationError as e:
            raise ValueError(f"スキーマ検証エラー: {e}") from e

    def _to_plain_dict(self, data: object) -> object:
        """ruamel.yaml の CommentedMap/CommentedSeq を通常の dict/list に再帰変換する。"""
        if isinstance(data, dict):
            return {key: self._to_plain_dict(value) for key, value in data.items()}
        if isinstance(data, list):
            return [self._to_plain_dict(item) for item in data]
        return data


def _convert_errors(
    error: PydanticValidationError,
    prefix: Optional[list[str]] = None,
) -> list[DslValidationError]:
    """Pydantic の検証エラーを DslValidationError のリストに変換する。"""
    errors = []
    for err in error.errors():
        loc_parts = list(prefix or []) + [str(part) for part in err.get("loc", [])]
        location = " -> ".join(loc_parts) if loc_parts else "unknown"
        errors.append(DslValidationError(message=err.get("msg", "不明なエラー"), location=location))
    return errors
