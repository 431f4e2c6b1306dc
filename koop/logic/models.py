from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from .constants import (
    DEFAULT_MIN_THRESHOLD,
    DEFAULT_THRESHOLD,
    DEFAULT_UNIT_COUNT,
    MAX_ITERATIONS,
    STRATEGY_SCALE,
)


class Offer(BaseModel):
    """
    A seller's packaging constraint ("bundle").

    step_size defaults to unit_size; rounding_step_size is left unset here
    because its default depends on the strategy (see ReconciliationEngine).
    Extra fields (article_nr, unit_massunit, ...) are kept and echoed back.
    """
    model_config = ConfigDict(extra="allow")

    id: Optional[Union[int, str]] = None
    unit_count: int = Field(default=DEFAULT_UNIT_COUNT, ge=0, strict=True)
    unit_size: float = Field(ge=0, strict=True)
    step_size: Optional[float] = Field(default=None, gt=0, strict=True)
    rounding_step_size: Optional[float] = Field(default=None, gt=0, strict=True)
    total_amount: Optional[float] = Field(default=None, ge=0, strict=True)
    total_amount_adjusted: Optional[float] = Field(default=None, ge=0, strict=True)

    @property
    def bucket_size(self) -> float:
        return self.unit_count * self.unit_size

    @property
    def total_override(self) -> Optional[float]:
        if self.total_amount_adjusted is not None:
            return self.total_amount_adjusted
        return self.total_amount


class Order(BaseModel):
    """A single requested quantity. Locked orders are never changed."""
    model_config = ConfigDict(extra="allow")

    id: Optional[Union[int, str]] = None
    name: Optional[str] = None
    quantity: float = Field(ge=0, strict=True)
    locked: bool = Field(
        default=False,
        strict=True,
        validation_alias=AliasChoices("locked", "quantity_adjusted_locked"),
    )
    quantity_adjusted: Optional[float] = Field(default=None, strict=True)

    # Output-only
    weight: Optional[float] = None
    quantity_adjusted_below_zero: bool = False


class ReconcileOptions(BaseModel):
    strategy: Literal["scale", "weighted"] = STRATEGY_SCALE
    bundle_mode: Optional[Literal["ceiling", "threshold"]] = None
    threshold: float = Field(default=DEFAULT_THRESHOLD, ge=0, le=1)
    min_threshold: float = Field(default=DEFAULT_MIN_THRESHOLD, ge=0, le=1)
    max_iterations: int = Field(default=MAX_ITERATIONS, ge=1, le=MAX_ITERATIONS)
    seed: Optional[int] = None
    total_amount: Optional[float] = Field(default=None, ge=0)
    total_amount_adjusted: Optional[float] = Field(default=None, ge=0)
    enforce_step_multiples: Optional[bool] = None
    clamp_rounding_step: bool = False
    chain: bool = False

    @property
    def total_override(self) -> Optional[float]:
        if self.total_amount_adjusted is not None:
            return self.total_amount_adjusted
        return self.total_amount


class ResultStatus(str, Enum):
    OK = "ok"
    UNCHANGED = "unchanged"        # nothing adjustable, orders passed through
    NOT_CONVERGED = "not_converged"
    ERROR = "error"


class ErrorKind(str, Enum):
    CONFIGURATION = "configuration"
    DATA = "data"
    INFEASIBLE = "infeasible"
    NOT_CONVERGED = "not_converged"


class ReconciliationResult(BaseModel):
    """
    Tagged result of one reconcile() call.

    On ERROR the values are the caller's original orders, untouched.
    On NOT_CONVERGED the values are the best effort reached at the cap.
    """
    status: ResultStatus
    strategy: str = STRATEGY_SCALE
    iterations: int = 0
    total: float = 0.0
    rounded_total: float = 0.0
    target_total: float = 0.0
    bundles: float = 0
    values: List[Order] = Field(default_factory=list)
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    @property
    def success(self) -> bool:
        return self.status in (ResultStatus.OK, ResultStatus.UNCHANGED)

    @property
    def adjusted_total(self) -> float:
        return self.rounded_total

    @property
    def orders(self) -> List[Order]:
        return self.values

    def summary(self) -> Dict[str, Any]:
        """Stats without the per-order values."""
        return self.model_dump(mode="json", exclude={"values"})
