"""
Configuration for Roombot Meeting Room Booking Service

Loads service settings from ROOMBOT_* environment variables and validates
them up front so a bad slot grid or TTL fails at startup, not mid-conversation.
"""

import os
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)

# Eight one-hour slots with a lunch gap
DEFAULT_SLOT_GRID: List[Tuple[str, str]] = [
    ("08:00", "09:00"),
    ("09:00", "10:00"),
    ("10:00", "11:00"),
    ("11:00", "12:00"),
    ("13:00", "14:00"),
    ("14:00", "15:00"),
    ("15:00", "16:00"),
    ("16:00", "17:00"),
]

STORE_BACKENDS = ("memory", "redis")


@dataclass
class BookingConfig:
    """
    Configuration for the booking session engine.

    Attributes:
        store_backend: Key/value backend, "memory" or "redis" (default: memory)
        session_ttl: Session TTL in seconds (default: 1800 = 30min)
        max_retries: Invalid inputs per field before hints are added to re-prompts (default: 3)
        max_text_length: Maximum length of title/organizer text (default: 100)
        allow_past_dates: Accept booking dates before today (default: False)
        slot_grid: Ordered daily slot grid as (start, end) "HH:MM" pairs
        lock_timeout: Seconds a Redis lock is held before it expires (default: 10)
        lock_blocking_timeout: Seconds to wait for a Redis lock (default: 5)
        log_state_transitions: Log FSM state transitions (default: True)
    """

    store_backend: str = "memory"
    session_ttl: int = 1800
    max_retries: int = 3
    max_text_length: int = 100
    allow_past_dates: bool = False
    slot_grid: List[Tuple[str, str]] = field(default_factory=lambda: list(DEFAULT_SLOT_GRID))
    lock_timeout: float = 10.0
    lock_blocking_timeout: float = 5.0
    log_state_transitions: bool = True

    def __post_init__(self):
        """Validate configuration after initialization"""
        if self.store_backend not in STORE_BACKENDS:
            raise ValueError(
                f"store_backend must be one of {STORE_BACKENDS}, got {self.store_backend}"
            )

        if self.session_ttl <= 0:
            raise ValueError(
                f"session_ttl must be positive, got {self.session_ttl}"
            )

        if self.max_retries < 1:
            raise ValueError(
                f"max_retries must be at least 1, got {self.max_retries}"
            )

        if self.max_text_length < 1:
            raise ValueError(
                f"max_text_length must be at least 1, got {self.max_text_length}"
            )

        if self.lock_timeout <= 0 or self.lock_blocking_timeout <= 0:
            raise ValueError("lock_timeout and lock_blocking_timeout must be positive")

        _validate_slot_grid(self.slot_grid)

        if self.log_state_transitions:
            logger.info(
                f" BookingConfig loaded: backend={self.store_backend}, "
                f"session_ttl={self.session_ttl}s, slots={len(self.slot_grid)}, "
                f"allow_past_dates={self.allow_past_dates}"
            )

    @staticmethod
    def from_env() -> "BookingConfig":
        """
        Load configuration from environment variables.

        Environment Variables:
            ROOMBOT_STORE_BACKEND: memory or redis (default: memory)
            ROOMBOT_SESSION_TTL: Session TTL in seconds (default: 1800)
            ROOMBOT_MAX_RETRIES: Max invalid inputs per field before hints (default: 3)
            ROOMBOT_MAX_TEXT_LENGTH: Max title/organizer length (default: 100)
            ROOMBOT_ALLOW_PAST_DATES: Accept past dates (default: false)
            ROOMBOT_SLOT_GRID: Comma separated "HH:MM-HH:MM" slots (default: 08:00-17:00 hourly, lunch gap)
            ROOMBOT_LOCK_TIMEOUT: Redis lock expiry in seconds (default: 10)
            ROOMBOT_LOCK_BLOCKING_TIMEOUT: Redis lock wait in seconds (default: 5)
            ROOMBOT_LOG_STATE_TRANSITIONS: Log state transitions (default: true)

        Returns:
            BookingConfig instance loaded from environment
        """
        slot_grid_env = os.getenv("ROOMBOT_SLOT_GRID")
        slot_grid = parse_slot_grid(slot_grid_env) if slot_grid_env else list(DEFAULT_SLOT_GRID)

        return BookingConfig(
            store_backend=os.getenv("ROOMBOT_STORE_BACKEND", "memory").lower(),
            session_ttl=_int_from_env("ROOMBOT_SESSION_TTL", 1800),
            max_retries=_int_from_env("ROOMBOT_MAX_RETRIES", 3),
            max_text_length=_int_from_env("ROOMBOT_MAX_TEXT_LENGTH", 100),
            allow_past_dates=_bool_from_env("ROOMBOT_ALLOW_PAST_DATES", False),
            slot_grid=slot_grid,
            lock_timeout=_float_from_env("ROOMBOT_LOCK_TIMEOUT", 10.0),
            lock_blocking_timeout=_float_from_env("ROOMBOT_LOCK_BLOCKING_TIMEOUT", 5.0),
            log_state_transitions=_bool_from_env("ROOMBOT_LOG_STATE_TRANSITIONS", True),
        )


def parse_slot_grid(value: str) -> List[Tuple[str, str]]:
    """Parse "08:00-09:00,09:00-10:00" into [("08:00", "09:00"), ("09:00", "10:00")]"""
    grid = []
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        start, sep, end = item.partition("-")
        if not sep:
            raise ValueError(f"Invalid slot '{item}' in ROOMBOT_SLOT_GRID, expected HH:MM-HH:MM")
        grid.append((start.strip(), end.strip()))
    return grid


def _validate_slot_grid(grid: List[Tuple[str, str]]) -> None:
    if not grid:
        raise ValueError("slot_grid must contain at least one slot")

    previous_end = None
    for start, end in grid:
        try:
            start_t = datetime.strptime(start, "%H:%M").time()
            end_t = datetime.strptime(end, "%H:%M").time()
        except ValueError:
            raise ValueError(f"slot_grid entries must be HH:MM, got {start}-{end}")

        if start_t >= end_t:
            raise ValueError(f"slot start must be before end, got {start}-{end}")

        # Chronological and pairwise non-overlapping
        if previous_end is not None and start_t < previous_end:
            raise ValueError(f"slot_grid must be ordered and non-overlapping, got {start}-{end}")
        previous_end = end_t


def _int_from_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        logger.warning(f"Invalid {name}, using default {default}")
        return default


def _float_from_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        logger.warning(f"Invalid {name}, using default {default}")
        return default


def _bool_from_env(name: str, default: bool) -> bool:
    raw: Optional[str] = os.getenv(name)
    if raw is None:
        return default
    return raw.lower() in ("true", "1", "yes")
