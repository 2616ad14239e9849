"""
CLI エントリポイント — Typer ベースのコマンドラインインターフェース

uiflow コマンドとして以下のサブコマンドを提供する:
  - run: テストケースをシーン定義上で実行
  - run-all: 複数のテストケースを順番に実行
  - validate: スキーマ・ステップパラメータの検証
  - list-steps: 全ステップ一覧
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Typer アプリ定義
# ---------------------------------------------------------------------------

app = typer.Typer(
    help=(
        "uiflow — 宣言的 UI テスト実行エンジン\n\n"
        "基本の流れ:\n"
        "  1. uiflow validate cases/xxx.yaml            テストケースを検証\n"
        "  2. uiflow run cases/xxx.yaml --scene s.yaml  シーン定義上で実行\n\n"
        "詳しくは各コマンドに --help を付けてください。"
    ),
    no_args_is_help=True,
)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(name)s - %(levelname)s - %(message)s",
    )


def _build_config(wait_timeout: Optional[float], case_gap: Optional[float] = None):
    from .config import apply_overrides, load_config_from_env

    return apply_overrides(load_config_from_env(), wait_timeout=wait_timeout, case_gap=case_gap)


def _make_clock(config, virtual: bool):
    from .core.clock import FrameClock

    if virtual:
        return FrameClock.virtual(config.tick_interval)
    return FrameClock(config.tick_interval)


def _echo_case(result) -> None:
    typer.echo(f"テストケース: {result.name}")
    typer.echo(f"ステータス: {result.status}")
    typer.echo(f"実行時間: {result.duration:.2f}s")
    passed = sum(1 for o in result.outcomes if o.success)
    failed = sum(1 for o in result.outcomes if not o.success)
    typer.echo(f"ステップ: {result.step_count} (passed={passed}, failed={failed})")
    for outcome in result.outcomes:
        mark = "✓" if outcome.success else "✗"
        line = f"  {mark} [{outcome.index}] {outcome.label}"
        if not outcome.success:
            line += f": {outcome.error_message}"
        typer.echo(line)


# ---------------------------------------------------------------------------
# run コマンド
# ---------------------------------------------------------------------------

async def _run_case(case, scene_doc, config, virtual: bool):
    from .core.runner import Runner
    from .host.memory import InMemoryHost

    host = InMemoryHost.from_scene(scene_doc, _make_clock(config, virtual))
    runner = Runner(host, config)
    # ホストの準備完了（READY）を待ってから開始される
    runner.set_test_case(case)
    host.start()
    try:
        await runner.wait_finished()
    finally:
        await host.shutdown()
    return runner.last_result


@app.command()
def run(
    case_file: Path = typer.Argument(..., help="実行する YAML テストケース"),
    scene: Path = typer.Option(..., "--scene", "-s", help="UI ツリーを定義するシーン YAML"),
    wait_timeout: Optional[float] = typer.Option(
        None, "--wait-timeout", help="待機・ステップのデフォルトタイムアウト（秒）",
    ),
    report_dir: Optional[Path] = typer.Option(
        None, "--report-dir", help="report.json / junit.xml の出力先",
    ),
    virtual: bool = typer.Option(
        False, "--virtual/--realtime", help="仮想時刻で実行する（実時間で待機しない）",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="DEBUG ログを出力する"),
) -> None:
    """テストケースをシーン定義上で実行する。"""
    import asyncio

    from .core.reporting import Reporter
    from .dsl.parser import DslParser
    from .steps import create_default_registry

    _setup_logging(verbose)
    try:
        config = _build_config(wait_timeout)
        parser = DslParser()
        case = parser.build(parser.load(case_file), create_default_registry(), config)
        scene_doc = parser.load_scene(scene)

        result = asyncio.run(_run_case(case, scene_doc, config, virtual))
        if result is None:
            typer.echo("エラー: テストケースが完了しませんでした", err=True)
            raise typer.Exit(code=1)

        _echo_case(result)

        if report_dir is not None:
            reporter = Reporter()
            typer.echo(f"レポート: {reporter.generate_json(result, report_dir)}")
            typer.echo(f"レポート: {reporter.generate_junit_xml(result, report_dir)}")

        if not result.passed:
            raise typer.Exit(code=1)
    except typer.Exit:
        raise
    except Exception as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# run-all コマンド
# ---------------------------------------------------------------------------

async def _run_batch(cases, scene_doc, config, virtual: bool):
    from .core.batch import CaseBatch
    from .core.executor import StepExecutor
    from .host.memory import InMemoryHost
    from .steps.base import StepContext

    host = InMemoryHost.from_scene(scene_doc, _make_clock(config, virtual))
    executor = StepExecutor(StepContext.create(host, host.clock, config), config.wait_timeout)
    batch = CaseBatch(executor, gap=config.case_gap, ambient_timeout=config.wait_timeout)
    host.start()
    try:
        return await batch.run_all(cases)
    finally:
        await host.shutdown()


@app.command("run-all")
def run_all(
    case_files: list[Path] = typer.Argument(..., help="実行する YAML テストケース（複数可）"),
    scene: Path = typer.Option(..., "--scene", "-s", help="UI ツリーを定義するシーン YAML"),
    wait_timeout: Optional[float] = typer.Option(
        None, "--wait-timeout", help="待機・ステップのデフォルトタイムアウト（秒）",
    ),
    case_gap: Optional[float] = typer.Option(
        None, "--case-gap", help="ケース間の待機時間（秒）",
    ),
    report_dir: Optional[Path] = typer.Option(
        None, "--report-dir", help="report.json / junit.xml の出力先",
    ),
    virtual: bool = typer.Option(
        False, "--virtual/--realtime", help="仮想時刻で実行する（実時間で待機しない）",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="DEBUG ログを出力する"),
) -> None:
    """複数のテストケースを同じシーン上で順番に実行する。"""
    import asyncio

    from .core.reporting import Reporter
    from .dsl.parser import DslParser
    from .steps import create_default_registry

    _setup_logging(verbose)
    try:
        config = _build_config(wait_timeout, case_gap)
        parser = DslParser()
        registry = create_default_registry()
        cases = [parser.build(parser.load(path), registry, config) for path in case_files]
        scene_doc = parser.load_scene(scene)

        batch = asyncio.run(_run_batch(cases, scene_doc, config, virtual))
        for result in batch.results:
            _echo_case(result)
        typer.echo(f"\n合計: {len(batch.results)} ケース (passed={batch.passed}, failed={batch.failed})")

        if report_dir is not None:
            reporter = Reporter()
            typer.echo(f"レポート: {reporter.generate_json(batch, report_dir)}")
            typer.echo(f"レポート: {reporter.generate_junit_xml(batch, report_dir)}")

        if not batch.all_passed:
            raise typer.Exit(code=1)
    except typer.Exit:
        raise
    except Exception as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# validate コマンド
# ---------------------------------------------------------------------------

@app.command()
def validate(
    case_file: Path = typer.Argument(..., help="検証する YAML テストケース"),
) -> None:
    """YAML テストケースのスキーマとステップパラメータを検証する。"""
    from .dsl.parser import DslParser
    from .steps import create_default_registry

    parser = DslParser()
    errors = parser.validate(case_file, create_default_registry())

    if not errors:
        typer.echo(f"✓ {case_file}: スキーマ検証 OK")
    else:
        for err in errors:
            line_info = f" (行 {err.line})" if err.line else ""
            typer.echo(f"✗ {err.location}{line_info}: {err.message}", err=True)
        raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# list-steps コマンド
# ---------------------------------------------------------------------------

@app.command("list-steps")
def list_steps() -> None:
    """登録済み全ステップの一覧を表示する。"""
    from .steps import create_default_registry

    registry = create_default_registry()
    all_steps = registry.list_all()

    categories: dict[str, list] = {}
    for info in all_steps:
        categories.setdefault(info.category, []).append(info)

    for category, steps in sorted(categories.items()):
        typer.echo(f"\n[{category}]")
        for step in steps:
            typer.echo(f"  {step.name:20s} {step.description}")

    typer.echo(f"\n合計: {len(all_steps)} ステップ")


if __name__ == "__main__":
    app()
