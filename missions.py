from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple
import logging

from advanced_config import CHECKIN_SETTINGS, LIMITS, TOKEN_SETTINGS
from errors import NotFoundError, StateError, ValidationError
from models import Mission, MissionPeriod, MissionProgress, MissionType
from utils import DAY_MS, day_key, make_token, now_ms, parse_int, week_key

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ('title', 'reward', 'period')


@dataclass
class AnswerResult:
    mission: Mission
    correct: bool


@dataclass
class CheckinResult:
    ok: bool
    reward: int = 0
    remaining_ms: int = 0


def _check_period(period: str) -> str:
    try:
        return MissionPeriod(period).value
    except ValueError:
        raise ValidationError('❌ دوره باید once، daily یا weekly باشد.')


def period_key(period: str, ts: int) -> str:
    if period == MissionPeriod.ONCE.value:
        return 'once'
    if period == MissionPeriod.DAILY.value:
        return day_key(ts)
    return week_key(ts)


class MissionEngine:
    def __init__(self, db, ledger, referrals, clock: Callable[[], int] = now_ms):
        self.db = db
        self.ledger = ledger
        self.referrals = referrals
        self.clock = clock

    # Catalogue
    def get(self, mission_id: str) -> Optional[Mission]:
        data = self.db.get(f"mission:{mission_id}")
        return Mission.from_dict(data) if data else None

    def require(self, mission_id: str, mission_type: str = None) -> Mission:
        mission = self.get(mission_id)
        if mission is None or not mission.enabled or (mission_type and mission.type != mission_type):
            raise NotFoundError('❌ مأموریت یافت نشد.')
        return mission

    def save(self, mission: Mission):
        self.db.put(f"mission:{mission.id}", mission.to_dict())

    def list(self, enabled_only: bool = False) -> List[Mission]:
        missions = [m for m in (self.get(i) for i in self.db.get_list('missions:index')) if m]
        return [m for m in missions if m.enabled] if enabled_only else missions

    def create(self, title: str, reward: int, period: str = 'once', mission_type: str = 'generic',
               config: dict = None) -> Mission:
        title = (title or '').strip()
        if not title:
            raise ValidationError('❌ عنوان نمی‌تواند خالی باشد.')
        if reward <= 0:
            raise ValidationError('❌ پاداش باید مثبت باشد.')
        period = _check_period(period)
        try:
            MissionType(mission_type)
        except ValueError:
            raise ValidationError('❌ نوع مأموریت نامعتبر است.')
        mission = Mission(
            id=f"m_{make_token(TOKEN_SETTINGS['mission_id_length'])}",
            title=title,
            reward=reward,
            period=period,
            type=mission_type,
            config=dict(config or {}),
            created_at=self.clock(),
        )
        self.save(mission)
        ids = self.db.get_list('missions:index')
        ids.append(mission.id)
        self.db.put('missions:index', ids)
        logger.info(f"Mission {mission.id} ({mission_type}/{period}) created")
        return mission

    def update_field(self, mission_id: str, field_name: str, value) -> Mission:
        mission = self.get(mission_id)
        if mission is None:
            raise NotFoundError('❌ مأموریت یافت نشد.')
        if field_name not in EDITABLE_FIELDS:
            raise ValidationError('❌ فیلد نامعتبر است.')
        if field_name == 'title':
            value = str(value).strip()
            if not value:
                raise ValidationError('❌ عنوان نمی‌تواند خالی باشد.')
        elif field_name == 'reward':
            value = parse_int(value, minimum=1)
        else:
            value = _check_period(value)
        setattr(mission, field_name, value)
        self.save(mission)
        return mission

    def toggle(self, mission_id: str) -> Mission:
        mission = self.get(mission_id)
        if mission is None:
            raise NotFoundError('❌ مأموریت یافت نشد.')
        mission.enabled = not mission.enabled
        self.save(mission)
        return mission

    def delete(self, mission_id: str):
        self.db.delete(f"mission:{mission_id}")
        self.db.remove_from_list('missions:index', mission_id)

    # Progress
    def progress(self, user_id: int) -> MissionProgress:
        return MissionProgress.from_dict(self.db.get(f"missionprog:{user_id}") or {})

    def save_progress(self, user_id: int, progress: MissionProgress):
        self.db.put(f"missionprog:{user_id}", progress.to_dict())

    def mark_key(self, mission: Mission) -> str:
        return f"{mission.id}:{period_key(mission.period, self.clock())}"

    def is_done(self, user_id: int, mission: Mission, progress: MissionProgress = None) -> bool:
        progress = progress or self.progress(user_id)
        return self.mark_key(mission) in progress.map

    def complete_if_eligible(self, user_id: int, mission: Mission) -> bool:
        """Mark the mission done for the current period and pay its reward once"""
        progress = self.progress(user_id)
        key = self.mark_key(mission)
        if key in progress.map:
            return False
        progress.map[key] = self.clock()
        progress.completed += 1
        self.save_progress(user_id, progress)
        self.ledger.credit(user_id, mission.reward)
        self.add_weekly_points(user_id, mission.reward)
        logger.info(f"Mission {mission.id} completed by {user_id}")
        return True

    def _record_attempt(self, user_id: int, mission: Mission):
        # A wrong answer closes the mission for this period without a reward
        progress = self.progress(user_id)
        progress.map[self.mark_key(mission)] = self.clock()
        self.save_progress(user_id, progress)

    def submit_answer(self, user_id: int, mission_id: str, answer) -> AnswerResult:
        """Answer a quiz (option index or text) or a question mission; one attempt per period"""
        mission = self.get(mission_id)
        if mission is None or not mission.enabled or mission.type not in (MissionType.QUIZ.value, MissionType.QUESTION.value):
            raise NotFoundError('❌ مأموریت یافت نشد.')
        if self.is_done(user_id, mission):
            raise StateError('ℹ️ قبلاً به این مأموریت پاسخ داده‌اید.')

        options = mission.config.get('options') or []
        if mission.type == MissionType.QUIZ.value and len(options) >= 2:
            try:
                index = int(answer)
            except (TypeError, ValueError):
                raise ValidationError('❌ گزینه نامعتبر است.')
            if index < 0 or index >= len(options):
                raise ValidationError('❌ گزینه نامعتبر است.')
            correct = index == int(mission.config.get('correct_index', -1))
        else:
            expected = str(mission.config.get('answer') or '').strip().lower()
            correct = bool(expected) and str(answer).strip().lower() == expected

        if correct:
            self.complete_if_eligible(user_id, mission)
        else:
            self._record_attempt(user_id, mission)
        return AnswerResult(mission=mission, correct=correct)

    def check_invites(self, user_id: int) -> List[Mission]:
        """Complete invite missions whose weekly referral target is met"""
        completed = []
        count = self.referrals.weekly_count(user_id)
        for mission in self.list(enabled_only=True):
            if mission.type != MissionType.INVITE.value:
                continue
            needed = int(mission.config.get('needed') or 0)
            if needed > 0 and count >= needed and self.complete_if_eligible(user_id, mission):
                completed.append(mission)
        return completed

    # Weekly check-in
    def weekly_checkin(self, user_id: int) -> CheckinResult:
        cooldown = CHECKIN_SETTINGS['cooldown_days'] * DAY_MS
        now = self.clock()
        progress = self.progress(user_id)
        last = progress.weekly_last_ts or 0
        if last and now - last < cooldown:
            return CheckinResult(ok=False, remaining_ms=cooldown - (now - last))
        progress.weekly_last_ts = now
        progress.map[f"checkin:{week_key(now)}"] = now
        self.save_progress(user_id, progress)
        reward = CHECKIN_SETTINGS['reward']
        self.ledger.credit(user_id, reward)
        return CheckinResult(ok=True, reward=reward, remaining_ms=cooldown)

    # Weekly leaderboard
    def add_weekly_points(self, user_id: int, points: int):
        key = f"points_week:{user_id}:{week_key(self.clock())}"
        record = self.db.get(key) or {'points': 0}
        record['points'] = record.get('points', 0) + points
        self.db.put(key, record)

    def weekly_points(self, user_id: int, week: str = None) -> int:
        record = self.db.get(f"points_week:{user_id}:{week or week_key(self.clock())}") or {}
        return int(record.get('points', 0))

    def leaderboard(self, user_ids: List[int], limit: int = None) -> List[Tuple[int, int]]:
        week = week_key(self.clock())
        scores = [(uid, self.weekly_points(uid, week)) for uid in user_ids]
        scores = [s for s in scores if s[1] > 0]
        scores.sort(key=lambda s: s[1], reverse=True)
        return scores[:limit or LIMITS['leaderboard_size']]
