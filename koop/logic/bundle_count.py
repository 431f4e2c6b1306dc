import math
import logging

from .constants import (
    BUNDLE_MODE_CEILING,
    BUNDLE_MODE_THRESHOLD,
    DEFAULT_MIN_THRESHOLD,
    DEFAULT_THRESHOLD,
    MSG_BUCKET_SIZE,
    MSG_NO_BUNDLE,
)
from .errors import ConfigurationError, InfeasibleError

logger = logging.getLogger("BundleCountResolver")

# Ratios are rounded before floor/ceil so 0.1 + 0.2 style noise cannot add a bundle
RATIO_PRECISION = 9


def resolve_bundle_count(
    demand: float,
    bucket_size: float,
    mode: str = BUNDLE_MODE_CEILING,
    *,
    threshold: float = DEFAULT_THRESHOLD,
    min_threshold: float = DEFAULT_MIN_THRESHOLD,
) -> int:
    """
    Decides how many bundles the total demand justifies.

    - ceiling:   ceil(demand / bucket_size)
    - threshold: below one bundle, 1 if the fill ratio reaches min_threshold
                 else 0; above, round up only when the fractional part is
                 strictly greater than threshold.

    Raises InfeasibleError when the result is 0 bundles.
    """
    if bucket_size <= 0:
        raise ConfigurationError(MSG_BUCKET_SIZE)

    ratio = round(demand / bucket_size, RATIO_PRECISION)

    if mode == BUNDLE_MODE_CEILING:
        bundles = math.ceil(ratio)
    elif mode == BUNDLE_MODE_THRESHOLD:
        if ratio < 1:
            bundles = 1 if ratio >= min_threshold else 0
        else:
            floor = math.floor(ratio)
            bundles = math.ceil(ratio) if ratio > floor + threshold else floor
    else:
        raise ConfigurationError(f"unknown bundle mode: {mode}")

    logger.debug(f"ratio={ratio} mode={mode} threshold={threshold} min_threshold={min_threshold} -> {bundles}")

    if bundles == 0:
        raise InfeasibleError(MSG_NO_BUNDLE)
    return bundles
