import logging
import typing

from lesson_progression.models.content_models import DEFAULT_PASSING_SCORE, QuestionModel
from lesson_progression.utils.base_types import QuestionId
from lesson_progression.utils.errors import InvalidArgumentError

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


def round_ratio(numerator: int, denominator: int) -> int:
    """
    Rounds numerator / denominator to the nearest integer, halves rounding up.
    Exact for non-negative integers (no float error at .5 boundaries).
    """
    if denominator <= 0:
        raise InvalidArgumentError(f"Denominator must be positive, got {denominator}")
    return (2 * numerator + denominator) // (2 * denominator)


def validate_score(score: int, field_name: str = "score") -> None:
    if isinstance(score, bool) or not isinstance(score, int):
        raise InvalidArgumentError(f"{field_name} must be an integer, got {score!r}")
    if score < 0 or score > 100:
        raise InvalidArgumentError(f"{field_name} must be between 0 and 100, got {score}")


def compute_score(questions: typing.Sequence[QuestionModel], answers: typing.Mapping[QuestionId, str]) -> int:
    """
    Converts submitted answers into an integer percentage.

    :param questions: The assessment's questions, each carrying its correct answer.
    :param answers: question id -> selected option. Unanswered questions count as wrong.
    :return: round(correct / total * 100), in [0, 100].
    :raises InvalidArgumentError: If there are no questions.
    """
    if not questions:
        raise InvalidArgumentError("Cannot score an assessment with no questions")

    correct_count = sum(1 for q in questions if answers.get(q.questionId) == q.correctAnswer)
    score = round_ratio(correct_count * 100, len(questions))
    _LOGGER.debug(f"Scored {correct_count}/{len(questions)} correct -> {score}%")
    return score


def is_passing(score: int, passing_score: typing.Optional[int] = None) -> bool:
    if passing_score is None:
        passing_score = DEFAULT_PASSING_SCORE
    validate_score(score)
    validate_score(passing_score, "passing_score")
    return score >= passing_score
