from lesson_progression.models.xp_models import LevelProgressModel
from lesson_progression.utils.errors import InvalidArgumentError

DEFAULT_LEVEL_STEP = 500


def _check_level_step(level_step: int) -> None:
    if level_step <= 0:
        raise InvalidArgumentError(f"Level step must be positive, got {level_step}")


def level_for_xp(total_xp: int, level_step: int = DEFAULT_LEVEL_STEP) -> int:
    """Level 1 at 0 XP, one level per `level_step` XP after that."""
    _check_level_step(level_step)
    if total_xp < 0:
        raise InvalidArgumentError(f"Total XP cannot be negative, got {total_xp}")
    return total_xp // level_step + 1


def xp_threshold_for_level(level: int, level_step: int = DEFAULT_LEVEL_STEP) -> int:
    """Minimum total XP at which `level` is reached. Inverse of level_for_xp at the boundaries."""
    _check_level_step(level_step)
    if level < 1:
        raise InvalidArgumentError(f"Level must be at least 1, got {level}")
    return (level - 1) * level_step


def level_progress(total_xp: int, level_step: int = DEFAULT_LEVEL_STEP) -> LevelProgressModel:
    level = level_for_xp(total_xp, level_step)
    current_threshold = xp_threshold_for_level(level, level_step)
    next_threshold = xp_threshold_for_level(level + 1, level_step)
    xp_into_level = total_xp - current_threshold
    return LevelProgressModel(
        level=level,
        currentLevelXp=current_threshold,
        nextLevelXp=next_threshold,
        xpIntoLevel=xp_into_level,
        xpToNextLevel=next_threshold - total_xp,
        progressFraction=xp_into_level / level_step,
    )
