"""
Reporter — テスト実行レポートの生成

CaseResult / BatchResult を受け取り、JSON / JUnit XML 形式のレポートを生成する。

主な機能:
  - generate_json(): JSON レポート（report.json）の生成
  - generate_junit_xml(): JUnit XML レポート（junit.xml）の生成（CI 統合用）
"""

from __future__ import annotations

import json
import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any

from .batch import BatchResult
from .case import CaseResult
from .executor import StepOutcome

logger = logging.getLogger(__name__)


class Reporter:
    """テスト実行レポートの生成クラス。"""

    # -------------------------------------------------------------------
    # JSON レポート
    # -------------------------------------------------------------------

    def generate_json(self, result: CaseResult | BatchResult, output_dir: Path) -> Path:
        """JSON レポートを生成する。

        単一ケースの結果はそのまま、バッチ結果は cases 配列として出力する。

        Args:
            result: ケースまたはバッチの実行結果
            output_dir: 出力先ディレクトリ

        Returns:
            生成された report.json のパス
        """
        output_dir.mkdir(parents=True, exist_ok=True)

        if isinstance(result, BatchResult):
            report_data: dict[str, Any] = {
                "cases": [self._build_case_dict(r) for r in result.results],
                "duration": result.duration,
                "summary": {
                    "total": len(result.results),
                    "passed": result.passed,
                    "failed": result.failed,
                },
            }
        else:
            report_data = self._build_case_dict(result)

        output_path = output_dir / "report.json"
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(report_data, f, ensure_ascii=False, indent=2)

        logger.info("JSON レポートを生成しました: %s", output_path)
        return output_path

    # -------------------------------------------------------------------
    # JUnit XML レポート
    # -------------------------------------------------------------------

    def generate_junit_xml(self, result: CaseResult | BatchResult, output_dir: Path) -> Path:
        """JUnit XML レポートを生成する。

        ケースごとに testsuite、ステップごとに testcase を出力する。
        stopOnError で実行されなかったステップは skipped として出力する。

        Args:
            result: ケースまたはバッチの実行結果
            output_dir: 出力先ディレクトリ

        Returns:
            生成された junit.xml のパス
        """
        output_dir.mkdir(parents=True, exist_ok=True)
        cases = result.results if isinstance(result, BatchResult) else [result]

        testsuites = ET.Element("testsuites")
        for case in cases:
            summary = self._compute_summary(case)
            testsuite = ET.SubElement(testsuites, "testsuite")
            testsuite.set("name", case.name)
            testsuite.set("tests", str(summary["total"]))
            testsuite.set("failures", str(summary["failed"]))
            testsuite.set("skipped", str(summary["skipped"]))
            testsuite.set("time", f"{case.duration:.3f}")

            for outcome in case.outcomes:
                testcase = ET.SubElement(testsuite, "testcase")
                testcase.set("name", _outcome_name(outcome))
                testcase.set("classname", case.name)
                testcase.set("time", f"{outcome.duration:.3f}")
                if not outcome.success:
                    failure = ET.SubElement(testcase, "failure")
                    message = outcome.error_message or ""
                    failure.set("message", message)
                    if outcome.error_kind is not None:
                        failure.set("type", outcome.error_kind.value)
                    failure.text = message

            executed = {o.index for o in case.outcomes}
            for index in sorted(set(range(summary["total"])) - executed):
                testcase = ET.SubElement(testsuite, "testcase")
                testcase.set("name", f"step-{index}")
                testcase.set("classname", case.name)
                ET.SubElement(testcase, "skipped")

        tree = ET.ElementTree(testsuites)
        output_path = output_dir / "junit.xml"
        ET.indent(tree, space="  ")
        tree.write(str(output_path), encoding="utf-8", xml_declaration=True)

        logger.info("JUnit XML レポートを生成しました: %s", output_path)
        return output_path

    # -------------------------------------------------------------------
    # 内部ヘルパー
    # -------------------------------------------------------------------

    def _build_case_dict(self, result: CaseResult) -> dict[str, Any]:
        steps_data = [
            {
                "index": o.index,
                "label": o.label,
                "success": o.success,
                "error_kind": o.error_kind.value if o.error_kind is not None else None,
                "error_message": o.error_message,
                "duration": o.duration,
            }
            for o in result.outcomes
        ]
        return {
            "name": result.name,
            "status": result.status,
            "aborted": result.aborted,
            "abort_reason": result.abort_reason,
            "duration": result.duration,
            "started_at": result.started_at.isoformat() if result.started_at else None,
            "finished_at": result.finished_at.isoformat() if result.finished_at else None,
            "steps": steps_data,
            "summary": self._compute_summary(result),
        }

    def _compute_summary(self, result: CaseResult) -> dict[str, int]:
        """ケース結果からサマリー（total, passed, failed, skipped）を計算する。"""
        total = max(result.step_count, len(result.outcomes))
        passed = sum(1 for o in result.outcomes if o.success)
        failed = sum(1 for o in result.outcomes if not o.success)
        return {
            "total": total,
            "passed": passed,
            "failed": failed,
            "skipped": total - passed - failed,
        }


def _outcome_name(outcome: StepOutcome) -> str:
    return f"step-{outcome.index}: {outcome.label}" if outcome.label else f"step-{outcome.index}"
