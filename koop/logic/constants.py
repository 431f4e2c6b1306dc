# === RECONCILIATION DEFAULTS ===
#
# Single source of truth for engine defaults and user-facing messages.
# Used by the resolver, scaler, distributors and the API boundary.

STRATEGY_SCALE = "scale"
STRATEGY_WEIGHTED = "weighted"
STRATEGIES = [STRATEGY_SCALE, STRATEGY_WEIGHTED]

BUNDLE_MODE_CEILING = "ceiling"
BUNDLE_MODE_THRESHOLD = "threshold"
BUNDLE_MODES = [BUNDLE_MODE_CEILING, BUNDLE_MODE_THRESHOLD]

# Default bundle mode per strategy
STRATEGY_BUNDLE_MODES = {
    STRATEGY_SCALE: BUNDLE_MODE_CEILING,
    STRATEGY_WEIGHTED: BUNDLE_MODE_THRESHOLD,
}

DEFAULT_THRESHOLD = 0.6
DEFAULT_MIN_THRESHOLD = 0.75
DEFAULT_UNIT_COUNT = 1

# Hard cap for the random walk distributor
MAX_ITERATIONS = 100

# Tolerance for "is a multiple of" checks on float steps (0.1, 0.5 ...)
MULTIPLE_TOLERANCE = 1e-9

# --- Configuration errors ---
MSG_ROUNDING_GT_STEP = "rounding_step_size must not be greater than step_size"
MSG_ROUNDING_NOT_DIVIDER_OF_STEP = "rounding_step_size must be a divider of step_size"
MSG_STEP_NOT_DIVIDER_OF_UNIT = "step_size must be a divider of unit_size"
MSG_ROUNDING_NOT_DIVIDER_OF_UNIT = "rounding_step_size must be a divider of unit_size"
MSG_BUCKET_SIZE = "bucket_size must be greater than 0"
MSG_TOTAL_NOT_MULTIPLE = "total_amount must be a non-negative multiple of rounding_step_size"

# --- Data errors ---
MSG_IDS = "all orders must have an id and it must be unique"
MSG_NOT_STEP_MULTIPLE = "the value of {id} must be a multiple of step_size"

# --- Infeasibility ---
MSG_NO_BUNDLE = "not enough orders to complete at least one bundle."
MSG_ALL_LOCKED = "Not enough orders to round. Try to unlock locked orders."
MSG_ALL_AT_ZERO = "Not enough orders to round. All unlocked orders are already at zero."

# --- Non-convergence ---
MSG_NOT_CONVERGED = "rounding did not converge after {iterations} iterations ({rounded_total} of {target_total})"
