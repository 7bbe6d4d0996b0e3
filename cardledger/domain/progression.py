"""XP curve and progression state."""

from __future__ import annotations

from dataclasses import dataclass


def xp_required_for_level(level: int) -> int:
    return 100 + 25 * (level - 1)


@dataclass(slots=True, frozen=True)
class LevelState:
    level: int
    xp_current_level: int
    xp_next_level: int


def level_state_for(xp_total: int) -> LevelState:
    """Walk thresholds from level 1 until the remainder no longer fills a level."""
    level = 1
    remaining = max(0, xp_total)
    xp_next_level = xp_required_for_level(level)
    while remaining >= xp_next_level:
        remaining -= xp_next_level
        level += 1
        xp_next_level = xp_required_for_level(level)
    return LevelState(level=level, xp_current_level=remaining, xp_next_level=xp_next_level)


@dataclass(slots=True, frozen=True)
class ProgressionState:
    user_id: str
    xp_total: int = 0
    level: int = 1
    xp_current_level: int = 0
    xp_next_level: int = 100

    @classmethod
    def from_xp(cls, user_id: str, xp_total: int) -> "ProgressionState":
        state = level_state_for(xp_total)
        return cls(
            user_id=user_id,
            xp_total=max(0, xp_total),
            level=state.level,
            xp_current_level=state.xp_current_level,
            xp_next_level=state.xp_next_level,
        )

    def gain(self, xp_delta: int) -> "ProgressionState":
        """Apply a non-negative XP delta; negative deltas are ignored."""
        return ProgressionState.from_xp(self.user_id, self.xp_total + max(0, xp_delta))
