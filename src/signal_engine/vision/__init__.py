"""Screenshot (OCR) position extraction."""

from signal_engine.vision.changes import (
    PositionChanges,
    detect_position_changes,
    positions_to_signals,
)
from signal_engine.vision.colors import analyze_position_colors, apply_color_hint
from signal_engine.vision.ocr import OcrEngine, analyze_image, detect_platform, extract

__all__ = [
    "OcrEngine",
    "PositionChanges",
    "analyze_image",
    "analyze_position_colors",
    "apply_color_hint",
    "detect_platform",
    "detect_position_changes",
    "extract",
    "positions_to_signals",
]
