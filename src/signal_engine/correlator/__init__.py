"""Signal correlation into trade lifecycles."""

from signal_engine.correlator.corroboration import SignalCorroborator, corroborated_confidence
from signal_engine.correlator.engine import (
    SignalCorrelator,
    TradeSink,
    classify_result,
    close_trade,
)
from signal_engine.correlator.policy import (
    ScaleInPolicy,
    ignore_scale_in,
    weighted_average_scale_in,
)

__all__ = [
    "ScaleInPolicy",
    "SignalCorrelator",
    "SignalCorroborator",
    "TradeSink",
    "classify_result",
    "close_trade",
    "corroborated_confidence",
    "ignore_scale_in",
    "weighted_average_scale_in",
]
