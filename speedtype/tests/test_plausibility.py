import pytest

from speedtype.features.results import plausibility
from speedtype.features.results.plausibility import PlausibilityLimits, check_plausibility
from speedtype.features.results.stats import TypingStats
from speedtype.models.submission import Keystroke


def _stats(wpm=80, accuracy=95, correct=100, incorrect=5):
    return TypingStats(wpm=wpm, accuracy=accuracy, correct_chars=correct, incorrect_chars=incorrect)


def _keys(count, backspaces=0):
    keys = [Keystroke(timestamp=i, key="Backspace") for i in range(backspaces)]
    keys += [Keystroke(timestamp=backspaces + i, key="a") for i in range(count - backspaces)]
    return keys


def test_wpm_ceiling_boundary():
    assert check_plausibility(_stats(wpm=300), _keys(105)).valid

    result = check_plausibility(_stats(wpm=301), _keys(105))
    assert not result.valid
    assert result.reason == plausibility.REASON_WPM_CEILING


def test_wpm_ceiling_wins_regardless_of_accuracy():
    result = check_plausibility(_stats(wpm=305, accuracy=101), _keys(105))
    assert result.reason.startswith("WPM exceeds human capability")


@pytest.mark.parametrize("accuracy,valid", [(-1, False), (0, True), (100, True), (101, False)])
def test_accuracy_bounds(accuracy, valid):
    result = check_plausibility(_stats(accuracy=accuracy), _keys(105))
    assert result.valid is valid
    if not valid:
        assert result.reason == plausibility.REASON_BAD_STATS


def test_negative_wpm_rejected():
    assert check_plausibility(_stats(wpm=-1), _keys(105)).reason == plausibility.REASON_BAD_STATS


def test_keystroke_ratio_bounds():
    stats = _stats(correct=100, incorrect=0)
    assert check_plausibility(stats, _keys(30)).valid
    assert check_plausibility(stats, _keys(1000)).valid
    assert check_plausibility(stats, _keys(29)).reason == plausibility.REASON_KEYSTROKE_RATIO
    assert check_plausibility(stats, _keys(1001)).reason == plausibility.REASON_KEYSTROKE_RATIO


def test_zero_characters_uses_unit_denominator():
    stats = _stats(wpm=0, accuracy=100, correct=0, incorrect=0)
    assert check_plausibility(stats, _keys(5)).valid
    assert not check_plausibility(stats, _keys(11)).valid


def test_no_keystrokes_skips_ratio_checks():
    assert check_plausibility(_stats(), []).valid


def test_backspace_heavy_input_rejected():
    stats = _stats(correct=20, incorrect=0)
    result = check_plausibility(stats, _keys(20, backspaces=17))
    assert result.reason == plausibility.REASON_BACKSPACE
    assert check_plausibility(stats, _keys(20, backspaces=16)).valid


def test_backspace_check_needs_twenty_keystrokes():
    stats = _stats(correct=19, incorrect=0)
    assert check_plausibility(stats, _keys(19, backspaces=19)).valid


def test_limits_are_configurable():
    limits = PlausibilityLimits(max_wpm=200)
    assert not check_plausibility(_stats(wpm=250), _keys(105), limits).valid
