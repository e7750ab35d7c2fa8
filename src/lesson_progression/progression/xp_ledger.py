import contextlib
import logging
import math
import threading
import typing
from datetime import datetime, timezone

from lesson_progression.dynamodb.user_profile_table import UserProfileTable
from lesson_progression.dynamodb.xp_awards_table import XpAwardsTable
from lesson_progression.models.xp_models import (
    QUIZ_PASS,
    TOPIC_READ,
    AwardKind,
    XpAwardModel,
    XpPolicy,
    XpResultModel,
    XpStatusModel,
)
from lesson_progression.progression.levels import level_for_xp, level_progress
from lesson_progression.progression.scoring import validate_score
from lesson_progression.utils.base_types import IsoTimestamp, UnitId, UserId
from lesson_progression.utils.errors import ConflictError, InvalidArgumentError, NotFoundError

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class XpLedger:
    """
    Grants XP for learning events and derives totals from the persisted award ledger.

    Each (user, unit, kind) event is rewarded at most once. Awards for the same user are
    serialized within this process, and the ledger write is conditional so a concurrent
    writer in another process cannot double-grant either.
    """

    def __init__(
        self,
        xp_awards_table: XpAwardsTable,
        user_profile_table: UserProfileTable,
        policy: typing.Optional[XpPolicy] = None,
    ) -> None:
        self.xp_awards_table = xp_awards_table
        self.user_profile_table = user_profile_table
        self.policy = policy or XpPolicy()
        # user id -> (lock, number of callers holding or waiting on it)
        self._locks: dict[UserId, tuple[threading.Lock, int]] = {}
        self._locks_guard = threading.Lock()

    def quiz_xp(self, score: int, unit_ordinal: int = 0) -> int:
        """
        base + ordinal * per_ordinal + round((score - offset) * multiplier), capped at quiz_xp_max.
        The defaults reduce to round(score * 2) capped at 200.
        """
        policy = self.policy
        score_bonus = math.floor(max(score - policy.quiz_score_offset, 0) * policy.quiz_xp_multiplier + 0.5)
        amount = policy.quiz_xp_base + unit_ordinal * policy.quiz_xp_per_ordinal + score_bonus
        return min(amount, policy.quiz_xp_max)

    def read_xp(self, unit_ordinal: int) -> int:
        return self.policy.read_xp + unit_ordinal * self.policy.read_xp_per_ordinal

    @contextlib.contextmanager
    def _user_lock(self, user_id: UserId) -> typing.Iterator[None]:
        with self._locks_guard:
            lock, holders = self._locks.get(user_id, (threading.Lock(), 0))
            self._locks[user_id] = (lock, holders + 1)
        try:
            with lock:
                yield
        finally:
            with self._locks_guard:
                lock, holders = self._locks[user_id]
                if holders == 1:
                    del self._locks[user_id]
                else:
                    self._locks[user_id] = (lock, holders - 1)

    def ensure_user_exists(self, user_id: UserId) -> None:
        if not self.user_profile_table.user_exists(user_id):
            _LOGGER.warning(f"XP requested for unknown user {user_id}")
            raise NotFoundError(f"User {user_id} not found")

    def get_total_xp(self, user_id: UserId) -> int:
        return sum(award.amount for award in self.xp_awards_table.get_awards_for_user(user_id))

    def get_xp_status(self, user_id: UserId) -> XpStatusModel:
        self.ensure_user_exists(user_id)
        total_xp = self.get_total_xp(user_id)
        return XpStatusModel(
            userId=user_id,
            totalXp=total_xp,
            progress=level_progress(total_xp, self.policy.level_step),
        )

    def _result(self, awarded: int, total_after: int) -> XpResultModel:
        level_before = level_for_xp(total_after - awarded, self.policy.level_step)
        level_after = level_for_xp(total_after, self.policy.level_step)
        return XpResultModel(
            xpAwarded=awarded,
            totalXp=total_after,
            level=level_after,
            leveledUp=level_after > level_before,
        )

    def _grant(
        self,
        user_id: UserId,
        unit_id: UnitId,
        unit_ordinal: int,
        kind: AwardKind,
        amount: int,
    ) -> XpResultModel:
        with self._user_lock(user_id):
            if amount == 0:
                return self._result(0, self.get_total_xp(user_id))

            existing = self.xp_awards_table.get_award(user_id, unit_id, kind)
            if existing is not None:
                _LOGGER.info(f"User {user_id} already received {kind} XP for unit {unit_id}. Awarding 0.")
                return self._result(0, self.get_total_xp(user_id))

            award = XpAwardModel(
                userId=user_id,
                awardKey=self.xp_awards_table.make_award_key(unit_id, kind),
                unitId=unit_id,
                unitOrdinal=unit_ordinal,
                kind=kind,
                amount=amount,
                awardedAt=IsoTimestamp(datetime.now(timezone.utc).isoformat()),
            )
            if not self.xp_awards_table.save_award(award):
                # Another process wrote the award between our read and our write; theirs stands.
                if self.xp_awards_table.get_award(user_id, unit_id, kind) is None:
                    raise ConflictError(f"{kind} XP for unit {unit_id} was rejected but is not in the ledger")
                _LOGGER.info(f"User {user_id} was concurrently granted {kind} XP for unit {unit_id}. Awarding 0.")
                return self._result(0, self.get_total_xp(user_id))

            _LOGGER.info(f"Awarded {amount} {kind} XP to user {user_id} for unit {unit_id}")
            # Re-read so awards written by other processes meanwhile are counted too.
            return self._result(amount, self.get_total_xp(user_id))

    def award_for_quiz(
        self,
        user_id: UserId,
        unit_id: UnitId,
        unit_ordinal: int,
        passed: bool,
        score: int,
    ) -> XpResultModel:
        """
        Grants quiz XP for a unit (see quiz_xp), only when passed.
        A failed attempt awards 0 XP and writes nothing to the ledger. A retake of a passed
        quiz, or losing the write to a concurrent grant, awards 0.

        :raises InvalidArgumentError: If score is outside 0-100 or the ordinal is negative.
        :raises NotFoundError: If the user is unknown.
        """
        validate_score(score)
        if unit_ordinal < 0:
            raise InvalidArgumentError(f"Unit ordinal cannot be negative, got {unit_ordinal}")
        self.ensure_user_exists(user_id)

        amount = self.quiz_xp(score, unit_ordinal) if passed else 0
        return self._grant(user_id, unit_id, unit_ordinal, QUIZ_PASS, amount)

    def award_for_read(self, user_id: UserId, unit_id: UnitId, unit_ordinal: int) -> XpResultModel:
        """
        Grants the reading reward for a unit, once per user.

        :raises InvalidArgumentError: If the ordinal is negative.
        :raises NotFoundError: If the user is unknown.
        """
        if unit_ordinal < 0:
            raise InvalidArgumentError(f"Unit ordinal cannot be negative, got {unit_ordinal}")
        self.ensure_user_exists(user_id)

        return self._grant(user_id, unit_id, unit_ordinal, TOPIC_READ, self.read_xp(unit_ordinal))
