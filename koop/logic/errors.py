class ReconciliationError(Exception):
    """Base class for failures raised inside the engine stages.

    These never leave ``reconcile()``: the engine converts them into an
    error ``ReconciliationResult`` carrying the original orders.
    """

    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(ReconciliationError):
    """Offer steps do not divide each other or the bucket is empty."""

    kind = "configuration"


class OrderDataError(ReconciliationError):
    """Duplicate/missing ids or quantities off the step grid."""

    kind = "data"


class InfeasibleError(ReconciliationError):
    """Not enough demand for a bundle, or no order left to absorb a step."""

    kind = "infeasible"
