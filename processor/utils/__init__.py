"""Processor utilities."""

from .signals import canonical_signal_key, dedupe_signals

__all__ = ["canonical_signal_key", "dedupe_signals"]
