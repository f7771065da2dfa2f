"""Trade query and export surface."""

from signal_engine.reports.query import (
    TradeQuery,
    build_report,
    query_trades,
    trades_from_csv,
    trades_to_csv,
    trades_to_json,
)

__all__ = [
    "TradeQuery",
    "build_report",
    "query_trades",
    "trades_from_csv",
    "trades_to_csv",
    "trades_to_json",
]
