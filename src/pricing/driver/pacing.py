"""Pacing policy between (card, condition) pairs."""

from __future__ import annotations

import time
from typing import Callable

from src.common.config import PipelineSettings


class PairPacer:
    """Sleep a short delay after every pair and a cooldown after every N pairs.

    Args:
        pair_delay: Seconds after each pair.
        cooldown_every: Pairs between cooldowns.
        cooldown_seconds: Cooldown length; replaces the pair delay on that pair.
        sleep: Sleep function, injectable for tests.
    """

    def __init__(
        self,
        pair_delay: float = 0.5,
        cooldown_every: int = 5,
        cooldown_seconds: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.pair_delay = pair_delay
        self.cooldown_every = max(cooldown_every, 1)
        self.cooldown_seconds = cooldown_seconds
        self._sleep = sleep
        self.pairs = 0

    @classmethod
    def from_settings(
        cls,
        pipeline: PipelineSettings,
        sleep: Callable[[float], None] = time.sleep,
    ) -> PairPacer:
        return cls(
            pair_delay=pipeline.pair_delay_seconds,
            cooldown_every=pipeline.cooldown_every,
            cooldown_seconds=pipeline.cooldown_seconds,
            sleep=sleep,
        )

    def after_pair(self) -> float:
        """Record one processed pair and sleep accordingly.

        Returns:
            Seconds slept.
        """
        self.pairs += 1
        delay = (
            self.cooldown_seconds
            if self.pairs % self.cooldown_every == 0
            else self.pair_delay
        )
        if delay > 0:
            self._sleep(delay)
        return delay
