import pytest

from lesson_progression.progression.levels import level_for_xp, level_progress, xp_threshold_for_level
from lesson_progression.utils.errors import InvalidArgumentError


def test_level_for_xp_starts_at_one():
    assert level_for_xp(0) == 1
    assert level_for_xp(499) == 1
    assert level_for_xp(500) == 2
    assert level_for_xp(1250) == 3


def test_level_for_xp_is_non_decreasing():
    levels = [level_for_xp(x) for x in range(0, 5001, 7)]
    assert all(level >= 1 for level in levels)
    assert levels == sorted(levels)


@pytest.mark.parametrize("level_step", [1, 100, 500, 733])
def test_threshold_and_level_agree_at_boundaries(level_step):
    for x in range(0, 3000, 13):
        level = level_for_xp(x, level_step)
        assert xp_threshold_for_level(level, level_step) <= x < xp_threshold_for_level(level + 1, level_step)


def test_xp_threshold_for_level():
    assert xp_threshold_for_level(1) == 0
    assert xp_threshold_for_level(2) == 500
    assert xp_threshold_for_level(4, level_step=100) == 300


@pytest.mark.parametrize("level_step", [0, -500])
def test_non_positive_level_step_is_rejected(level_step):
    with pytest.raises(InvalidArgumentError, match="Level step"):
        level_for_xp(10, level_step)
    with pytest.raises(InvalidArgumentError, match="Level step"):
        xp_threshold_for_level(2, level_step)


def test_negative_xp_and_level_zero_are_rejected():
    with pytest.raises(InvalidArgumentError):
        level_for_xp(-1)
    with pytest.raises(InvalidArgumentError):
        xp_threshold_for_level(0)


def test_level_progress_for_xp_to_next_level():
    progress = level_progress(1200)
    assert progress.level == 3
    assert progress.currentLevelXp == 1000
    assert progress.nextLevelXp == 1500
    assert progress.xpIntoLevel == 200
    assert progress.xpToNextLevel == 300
    assert progress.progressFraction == pytest.approx(0.4)


def test_level_progress_exactly_on_boundary():
    progress = level_progress(500)
    assert progress.level == 2
    assert progress.xpIntoLevel == 0
    assert progress.xpToNextLevel == 500
