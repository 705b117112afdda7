"""Tests for fraud signal canonicalization."""

from processor.utils.signals import canonical_signal_key, dedupe_signals


def test_case_punctuation_and_spacing_are_ignored():
    assert canonical_signal_key("No weather report!") == canonical_signal_key("  no   WEATHER report ")


def test_filler_words_are_dropped():
    assert canonical_signal_key("No weather report was provided") == "no weather report"
    assert canonical_signal_key("The weather report is not available") == "weather report not"


def test_negation_is_kept():
    assert canonical_signal_key("Weather report available") != canonical_signal_key(
        "No weather report available"
    )


def test_unicode_compatibility_forms_match():
    # Fullwidth letters normalize to ASCII under NFKC
    assert canonical_signal_key("ＮＯ weather report") == "no weather report"


def test_dedupe_keeps_first_original_in_order():
    signals = [
        "No weather report available",
        "Roof age inconsistent with claim",
        "no weather report",
        "ROOF AGE INCONSISTENT WITH CLAIM.",
        "Prior claim found on the same address",
    ]

    assert dedupe_signals(signals) == [
        "No weather report available",
        "Roof age inconsistent with claim",
        "Prior claim found on the same address",
    ]


def test_dedupe_drops_blank_and_filler_only_signals():
    assert dedupe_signals(["", "   ", "N/A was provided", "is available", "Photo metadata missing "]) == [
        "N/A was provided",
        "Photo metadata missing",
    ]
