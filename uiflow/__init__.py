"""
uiflow — 宣言的・非同期 UI テスト実行エンジン

再利用可能なステップとコンディションをテストケースに並べ、
フレームクロック上で条件のポーリング・タイムアウト・結果記録を行う。
"""

__version__ = "0.1.0"
