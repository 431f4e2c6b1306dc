import os
import logging
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

from koop.logic.constants import (
    DEFAULT_MIN_THRESHOLD,
    DEFAULT_THRESHOLD,
    MAX_ITERATIONS,
    STRATEGIES,
    STRATEGY_SCALE,
    BUNDLE_MODES,
)
from koop.logic.models import ReconcileOptions

logger = logging.getLogger("Config")


class EngineSettings(BaseModel):
    strategy: str = STRATEGY_SCALE
    bundle_mode: Optional[str] = None
    threshold: float = DEFAULT_THRESHOLD
    min_threshold: float = DEFAULT_MIN_THRESHOLD
    max_iterations: int = MAX_ITERATIONS
    seed: Optional[int] = None
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000

    def default_options(self, **overrides) -> ReconcileOptions:
        """ReconcileOptions seeded from these settings; overrides win."""
        base = {
            "strategy": self.strategy,
            "bundle_mode": self.bundle_mode,
            "threshold": self.threshold,
            "min_threshold": self.min_threshold,
            "max_iterations": self.max_iterations,
            "seed": self.seed,
        }
        base.update({k: v for k, v in overrides.items() if v is not None})
        return ReconcileOptions(**base)


def _env_float(name: str, default: float, low: float = 0.0, high: float = 1.0) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"Ignoring {name}={raw!r}: not a number, using {default}")
        return default
    if not low <= value <= high:
        logger.warning(f"Ignoring {name}={raw!r}: outside [{low}, {high}], using {default}")
        return default
    return value


def _env_int(name: str, default: Optional[int], low: int = 0, high: Optional[int] = None) -> Optional[int]:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Ignoring {name}={raw!r}: not an integer, using {default}")
        return default
    if value < low or (high is not None and value > high):
        logger.warning(f"Ignoring {name}={raw!r}: out of range, using {default}")
        return default
    return value


def _env_choice(name: str, choices, default: Optional[str]) -> Optional[str]:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    value = raw.strip().lower()
    if value not in choices:
        logger.warning(f"Ignoring {name}={raw!r}: expected one of {choices}, using {default}")
        return default
    return value


def load_settings(dotenv_path: Optional[str] = None) -> EngineSettings:
    """
    Reads engine defaults from the environment (and a .env file if present).

    KOOP_STRATEGY, KOOP_BUNDLE_MODE, KOOP_THRESHOLD, KOOP_MIN_THRESHOLD,
    KOOP_MAX_ITERATIONS, KOOP_SEED, KOOP_LOG_LEVEL, KOOP_HOST, KOOP_PORT.
    Bad values are logged and replaced by the defaults.
    """
    load_dotenv(dotenv_path)

    return EngineSettings(
        strategy=_env_choice("KOOP_STRATEGY", STRATEGIES, STRATEGY_SCALE),
        bundle_mode=_env_choice("KOOP_BUNDLE_MODE", BUNDLE_MODES, None),
        threshold=_env_float("KOOP_THRESHOLD", DEFAULT_THRESHOLD),
        min_threshold=_env_float("KOOP_MIN_THRESHOLD", DEFAULT_MIN_THRESHOLD),
        max_iterations=_env_int("KOOP_MAX_ITERATIONS", MAX_ITERATIONS, low=1, high=MAX_ITERATIONS),
        seed=_env_int("KOOP_SEED", None),
        log_level=os.environ.get("KOOP_LOG_LEVEL", "INFO").upper(),
        host=os.environ.get("KOOP_HOST", "0.0.0.0"),
        port=_env_int("KOOP_PORT", 8000, low=1, high=65535),
    )
