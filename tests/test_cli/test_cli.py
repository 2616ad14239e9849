"""
CLI コマンドのテスト

Typer の CliRunner を使用して各サブコマンドの出力と終了コードを検証する。
実行系のコマンドは --virtual で仮想時刻を使い、実時間では待機しない。

テスト対象:
  - list-steps: 全ステップ一覧の表示
  - validate: スキーマ検証の成功・失敗
  - run: 単一ケースの実行とレポート出力
  - run-all: 複数ケースの連続実行
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from unittest.mock import patch

from typer.testing import CliRunner

from uiflow.cli import app

runner = CliRunner()


# ---------------------------------------------------------------------------
# list-steps
# ---------------------------------------------------------------------------

class TestListSteps:
    """list-steps コマンドのテスト。"""

    def test_lists_all_categories(self) -> None:
        result = runner.invoke(app, ["list-steps"])

        assert result.exit_code == 0
        assert "[action]" in result.output
        assert "[wait]" in result.output
        assert "waitForCondition" in result.output
        assert "合計: 17 ステップ" in result.output


# ---------------------------------------------------------------------------
# validate
# ---------------------------------------------------------------------------

class TestValidate:
    """validate コマンドのテスト。"""

    def test_valid_example(self, examples_dir: Path) -> None:
        result = runner.invoke(app, ["validate", str(examples_dir / "play_button.yaml")])

        assert result.exit_code == 0
        assert "スキーマ検証 OK" in result.output

    def test_invalid_case(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text(
            "name: bad\nsteps:\n  - press: {}\n  - explode: {}\n", encoding="utf-8",
        )
        result = runner.invoke(app, ["validate", str(path)])

        assert result.exit_code == 1
        assert "steps -> 0 -> press -> target" in result.output
        assert "explode" in result.output

    def test_syntax_error_shows_line(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.yaml"
        path.write_text("name: test\n  invalid_indent: true\n", encoding="utf-8")
        result = runner.invoke(app, ["validate", str(path)])

        assert result.exit_code == 1
        assert "(行 2)" in result.output


# ---------------------------------------------------------------------------
# run / run-all
# ---------------------------------------------------------------------------

class TestRun:
    """run コマンドのテスト。"""

    def test_passing_case(self, examples_dir: Path, tmp_path: Path) -> None:
        with patch.dict(os.environ, {}, clear=True):
            result = runner.invoke(app, [
                "run", str(examples_dir / "play_button.yaml"),
                "--scene", str(examples_dir / "demo_scene.yaml"),
                "--virtual",
                "--report-dir", str(tmp_path),
            ])

        assert result.exit_code == 0, result.output
        assert "テストケース: play-button" in result.output
        assert "ステータス: passed" in result.output
        assert "ステップ: 8 (passed=8, failed=0)" in result.output
        assert "Play ボタン押下" in result.output

        report = json.loads((tmp_path / "report.json").read_text(encoding="utf-8"))
        assert report["status"] == "passed"
        assert (tmp_path / "junit.xml").exists()

    def test_failing_case(self, examples_dir: Path) -> None:
        """失敗したケースは終了コード 1 で、失敗理由を表示すること。"""
        with patch.dict(os.environ, {}, clear=True):
            result = runner.invoke(app, [
                "run", str(examples_dir / "broken_status.yaml"),
                "-s", str(examples_dir / "demo_scene.yaml"),
                "--virtual",
            ])

        assert result.exit_code == 1
        assert "ステータス: failed" in result.output
        assert "ステップ: 2 (passed=0, failed=1)" in result.output
        assert "✗ [0]" in result.output

    def test_missing_case_file(self, examples_dir: Path, tmp_path: Path) -> None:
        result = runner.invoke(app, [
            "run", str(tmp_path / "missing.yaml"),
            "--scene", str(examples_dir / "demo_scene.yaml"),
            "--virtual",
        ])

        assert result.exit_code == 1
        assert "エラー:" in result.output

    def test_invalid_wait_timeout(self, examples_dir: Path) -> None:
        result = runner.invoke(app, [
            "run", str(examples_dir / "play_button.yaml"),
            "--scene", str(examples_dir / "demo_scene.yaml"),
            "--wait-timeout", "-1",
            "--virtual",
        ])

        assert result.exit_code == 1
        assert "エラー:" in result.output


class TestRunAll:
    """run-all コマンドのテスト。"""

    def test_runs_every_case(self, examples_dir: Path, tmp_path: Path) -> None:
        with patch.dict(os.environ, {}, clear=True):
            result = runner.invoke(app, [
                "run-all",
                str(examples_dir / "play_button.yaml"),
                str(examples_dir / "broken_status.yaml"),
                "--scene", str(examples_dir / "demo_scene.yaml"),
                "--case-gap", "0",
                "--virtual",
                "--report-dir", str(tmp_path),
            ])

        assert result.exit_code == 1
        assert "テストケース: play-button" in result.output
        assert "テストケース: broken-status" in result.output
        assert "合計: 2 ケース (passed=1, failed=1)" in result.output

        report = json.loads((tmp_path / "report.json").read_text(encoding="utf-8"))
        assert report["summary"]["total"] == 2
