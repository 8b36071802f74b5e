"""Presentation helpers for scores. Informational only, not part of scoring."""

from __future__ import annotations


def score_label(score: float) -> str:
    if score >= 0.85:
        return "Excellent"
    if score >= 0.70:
        return "Good"
    if score >= 0.50:
        return "Fair"
    return "Poor"


def score_color(score: float) -> str:
    if score >= 0.85:
        return "text-green-400"
    if score >= 0.65:
        return "text-yellow-400"
    return "text-red-400"


def score_bg_color(score: float) -> str:
    if score >= 0.85:
        return "bg-green-400/10 border-green-400/30"
    if score >= 0.65:
        return "bg-yellow-400/10 border-yellow-400/30"
    return "bg-red-400/10 border-red-400/30"
