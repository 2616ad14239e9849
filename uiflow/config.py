"""
エンジン設定 — 環境変数・CLI 引数からの設定読み込み

CLI 引数 > 環境変数 > デフォルト値 の優先順位で適用される。

環境変数一覧:
  UIFLOW_WAIT_TIMEOUT        : 待機・ステップのデフォルトタイムアウト秒（デフォルト: 10.0）
  UIFLOW_WAIT_INTERVAL_TICKS : 条件の再評価間隔フレーム数（デフォルト: 10）
  UIFLOW_TICK_INTERVAL       : フレーム間隔秒（デフォルト: 1/60）
  UIFLOW_CASE_GAP            : バッチ実行時のケース間隔秒（デフォルト: 0.5）
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# 環境変数キー定数
# ---------------------------------------------------------------------------

_ENV_WAIT_TIMEOUT = "UIFLOW_WAIT_TIMEOUT"
_ENV_WAIT_INTERVAL_TICKS = "UIFLOW_WAIT_INTERVAL_TICKS"
_ENV_TICK_INTERVAL = "UIFLOW_TICK_INTERVAL"
_ENV_CASE_GAP = "UIFLOW_CASE_GAP"


# ---------------------------------------------------------------------------
# 設定データクラス
# ---------------------------------------------------------------------------

@dataclass
class EngineConfig:
    """エンジンの実行時設定。

    Attributes:
        wait_timeout: 待機・ステップのデフォルトタイムアウト（秒）
        wait_interval_ticks: 条件の再評価間隔（フレーム数）
        tick_interval: フレーム間隔（秒）
        case_gap: バッチ実行時のケース間隔（秒、unscaled）
        stop_on_error_default: DSL で stopOnError が省略された場合の値
    """

    wait_timeout: float = 10.0
    wait_interval_ticks: int = 10
    tick_interval: float = 1.0 / 60.0
    case_gap: float = 0.5
    stop_on_error_default: bool = True


# ---------------------------------------------------------------------------
# 環境変数からの読み込み
# ---------------------------------------------------------------------------

def _read_env(
    key: str,
    convert: Callable[[str], Any],
    valid: Callable[[Any], bool],
) -> Optional[Any]:
    """環境変数を読み込んで変換する。未設定・不正値の場合は None。"""
    if key not in os.environ:
        return None
    raw = os.environ[key]
    try:
        value = convert(raw)
    except ValueError:
        logger.warning("%s の値が不正です: %s", key, raw)
        return None
    if not valid(value):
        logger.warning("%s の値が範囲外です: %s", key, raw)
        return None
    return value


def load_config_from_env() -> EngineConfig:
    """環境変数から EngineConfig を生成する。

    設定されていない環境変数、および不正な値はデフォルト値を使用する。

    Returns:
        環境変数から読み込んだ設定
    """
    config = EngineConfig()

    wait_timeout = _read_env(_ENV_WAIT_TIMEOUT, float, lambda v: v > 0)
    if wait_timeout is not None:
        config.wait_timeout = wait_timeout

    interval_ticks = _read_env(_ENV_WAIT_INTERVAL_TICKS, int, lambda v: v >= 1)
    if interval_ticks is not None:
        config.wait_interval_ticks = interval_ticks

    tick_interval = _read_env(_ENV_TICK_INTERVAL, float, lambda v: v > 0)
    if tick_interval is not None:
        config.tick_interval = tick_interval

    case_gap = _read_env(_ENV_CASE_GAP, float, lambda v: v >= 0)
    if case_gap is not None:
        config.case_gap = case_gap

    logger.debug("設定を読み込みました: %s", config)
    return config


def apply_overrides(
    config: EngineConfig,
    *,
    wait_timeout: Optional[float] = None,
    wait_interval_ticks: Optional[int] = None,
    tick_interval: Optional[float] = None,
    case_gap: Optional[float] = None,
) -> EngineConfig:
    """CLI 引数を EngineConfig に適用する。

    指定された値（None 以外）のみ上書きする。

    Args:
        config: ベースとなる設定（環境変数から読み込み済み）

    Returns:
        CLI 引数が適用された設定

    Raises:
        ValueError: 範囲外の値が指定された場合
    """
    if wait_timeout is not None:
        if wait_timeout <= 0:
            raise ValueError(f"wait_timeout は正の値である必要があります: {wait_timeout}")
        config.wait_timeout = wait_timeout

    if wait_interval_ticks is not None:
        if wait_interval_ticks < 1:
            raise ValueError(f"wait_interval_ticks は 1 以上である必要があります: {wait_interval_ticks}")
        config.wait_interval_ticks = wait_interval_ticks

    if tick_interval is not None:
        if tick_interval <= 0:
            raise ValueError(f"tick_interval は正の値である必要があります: {tick_interval}")
        config.tick_interval = tick_interval

    if case_gap is not None:
        if case_gap < 0:
            raise ValueError(f"case_gap は 0 以上である必要があります: {case_gap}")
        config.case_gap = case_gap

    return config
