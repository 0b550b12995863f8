from typing import Callable, List, Optional
import logging
import random

from advanced_config import LIMITS
from errors import ValidationError
from models import LotteryConfig
from utils import day_key, now_ms

logger = logging.getLogger(__name__)

_random = random.SystemRandom()


class LotteryEngine:
    """Daily enrolment pools and draws.

    A draw writes ``lottery:drawn:{day}`` so the same day is never paid twice,
    whether it was triggered by the daily task or by an admin.
    """

    CONFIG_KEY = 'lottery:config'

    def __init__(self, db, ledger, clock: Callable[[], int] = now_ms):
        self.db = db
        self.ledger = ledger
        self.clock = clock

    def config(self) -> LotteryConfig:
        return LotteryConfig.from_dict(self.db.get(self.CONFIG_KEY) or {})

    def save_config(self, config: LotteryConfig):
        self.db.put(self.CONFIG_KEY, config.to_dict())

    def configure(self, winners: int, reward: int, run_every_hours: int) -> LotteryConfig:
        if winners <= 0 or reward <= 0 or run_every_hours <= 0:
            raise ValidationError('❌ مقادیر باید مثبت باشند.')
        config = self.config()
        config.winners = winners
        config.reward_diamonds = reward
        config.run_every_hours = run_every_hours
        config.next_run_at = self.clock() + run_every_hours * 3600 * 1000
        self.save_config(config)
        return config

    def toggle(self) -> LotteryConfig:
        config = self.config()
        config.enabled = not config.enabled
        self.save_config(config)
        return config

    def pool(self, day: str = None) -> List[int]:
        return self.db.get_list(f"lottery:pool:{day or day_key(self.clock())}")

    def is_enrolled(self, user_id: int) -> bool:
        return user_id in self.pool()

    def enroll(self, user_id: int) -> bool:
        """Join today's pool; False if already in it"""
        key = f"lottery:pool:{day_key(self.clock())}"
        pool = self.db.get_list(key)
        if user_id in pool:
            return False
        pool.append(user_id)
        self.db.put(key, pool)
        return True

    def auto_enroll(self, user_id: int) -> bool:
        if not self.config().enabled:
            return False
        return self.enroll(user_id)

    def draw(self, day: str) -> Optional[List[int]]:
        """Pick and pay the winners of ``day``; None if nothing was drawn"""
        config = self.config()
        if not config.enabled or config.winners <= 0 or config.reward_diamonds <= 0:
            return None
        if self.db.get(f"lottery:drawn:{day}"):
            logger.warning(f"Lottery for {day} was already drawn")
            return None
        pool = list(dict.fromkeys(self.pool(day)))
        if not pool:
            return None

        winners = _random.sample(pool, min(config.winners, len(pool)))
        self.db.put(f"lottery:drawn:{day}", {'at': self.clock(), 'winners': winners})
        for winner in winners:
            self.ledger.credit(winner, config.reward_diamonds)

        history = self.db.get_list('lottery:hist')
        history.insert(0, {
            'at': self.clock(),
            'day': day,
            'winners': winners,
            'reward_diamonds': config.reward_diamonds,
        })
        self.db.put('lottery:hist', history[:LIMITS['lottery_history']])

        config.next_run_at = self.clock() + (config.run_every_hours or 24) * 3600 * 1000
        self.save_config(config)
        logger.info(f"Lottery {day}: {len(winners)} winners out of {len(pool)}")
        return winners

    def history(self, limit: int = 20) -> List[dict]:
        return self.db.get_list('lottery:hist')[:limit]
