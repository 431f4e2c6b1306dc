import json
import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ValidationError

from koop.config import load_settings
from koop.logic.models import Offer, Order, ReconcileOptions, ReconciliationResult
from koop.logic.reconciliation_engine import ReconciliationEngine

settings = load_settings()

# Configure Logging
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger("KOOP-API")

app = FastAPI(title="Koop Rounding API", version="1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

engine = ReconciliationEngine(settings.default_options())


class ReconcileRequest(BaseModel):
    orders: List[Order]
    offer: Offer
    options: Optional[ReconcileOptions] = None


def effective_options(request: ReconcileRequest) -> ReconcileOptions:
    """Server defaults, with whatever the caller explicitly set on top."""
    if request.options is None:
        return engine.options
    return settings.default_options(**request.options.model_dump(exclude_unset=True))


def build_response(request: ReconcileRequest, result: ReconciliationResult) -> Dict[str, Any]:
    return {
        "offer": request.offer.model_dump(mode="json"),
        "orders": {
            "origin": [o.model_dump(mode="json") for o in request.orders],
            "adjusted": [o.model_dump(mode="json") for o in result.values],
        },
        "result": result.summary(),
    }


def parse_payload(payload: Any) -> ReconcileRequest:
    """
    Validates a decoded wire payload. Raises ValueError with a readable
    message for structurally wrong input, ValidationError for bad fields.
    """
    if not isinstance(payload, dict):
        raise ValueError("Input must be an object")
    if not isinstance(payload.get("orders"), list):
        raise ValueError("Orders must be an array")
    if not isinstance(payload.get("offer"), dict):
        raise ValueError("Offer must be an object")
    options = payload.get("options")
    if options is not None and not isinstance(options, dict):
        raise ValueError("Options must be an object")
    return ReconcileRequest.model_validate(payload)


def execute_payload(payload: str) -> str:
    """
    JSON in, JSON out. Malformed input comes back as
    {"error": ..., "error_kind": "validation"} instead of raising.
    """
    try:
        request = parse_payload(json.loads(payload))
    except json.JSONDecodeError as e:
        logger.warning(f"Rejected payload: invalid JSON ({e})")
        return json.dumps({"error": "Input must be valid JSON", "error_kind": "validation"})
    except ValidationError as e:
        logger.warning(f"Rejected payload: {e.error_count()} validation errors")
        return json.dumps({"error": str(e), "error_kind": "validation"})
    except ValueError as e:
        logger.warning(f"Rejected payload: {e}")
        return json.dumps({"error": str(e), "error_kind": "validation"})

    result = engine.reconcile(request.orders, request.offer, effective_options(request))
    return json.dumps(build_response(request, result))


@app.get("/")
def read_root():
    return {"status": "Koop rounding backend is running"}


@app.get("/config")
def get_config():
    return settings.model_dump()


@app.post("/reconcile")
def reconcile_orders(request: ReconcileRequest):
    result = engine.reconcile(request.orders, request.offer, effective_options(request))
    if not result.success:
        logger.info(f"Reconcile returned {result.status.value}: {result.error}")
    return build_response(request, result)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)
