"""
Claim API Routes

    POST    /api/claims    Submit a claim (the address gate)
    OPTIONS /api/claims    Preflight, always 200 with permissive CORS headers
    other   /api/claims    405
    GET     /api/catalog   Public list of claimable options (no links)

Status mapping: 200 accepted, 400 invalid input or identity, 429 rate
limited, 500 store failure.
"""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response

from ..core import ClaimService
from ..observability import MetricsCollector, client_address_var, get_logger
from ..schemas import ClaimRequest
from .errors import CORS_HEADERS, error_response

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["Claims"])


def get_claim_service(request: Request) -> ClaimService:
    """Get claim service from app state."""
    return request.app.state.claim_service


def get_metrics(request: Request) -> MetricsCollector:
    """Get metrics collector from app state."""
    return request.app.state.metrics


@router.post("/claims")
def submit_claim(request: Request, body: ClaimRequest):
    """
    Submit a claim for one catalog option.

    Plain `def`: the store call blocks, so FastAPI runs this in its
    threadpool. Concurrent requests for one address are serialized by the
    store's conditional upsert, not here.
    """
    service = get_claim_service(request)
    peer = request.client.host if request.client else None

    outcome = service.submit_claim(body, request.headers, peer_address=peer)

    if outcome.address:
        client_address_var.set(outcome.address)

    get_metrics(request).record_outcome(
        None if outcome.accepted else outcome.error.reason,
        outcome.commit_ms,
    )

    logger.info(
        "Claim request finished",
        state=outcome.state.value,
        status_code=outcome.status_code,
        option_id=outcome.entry.option_id if outcome.entry else None,
    )

    return JSONResponse(
        status_code=outcome.status_code,
        content=outcome.to_response().to_json(),
        headers=CORS_HEADERS,
    )


@router.options("/claims")
async def claim_preflight():
    """Preflight without CORS request headers still gets a 200."""
    return Response(status_code=200, headers=CORS_HEADERS)


@router.api_route(
    "/claims",
    methods=["GET", "HEAD", "PUT", "PATCH", "DELETE", "TRACE"],
    include_in_schema=False,
)
async def claim_method_not_allowed():
    response = error_response(405, "Method not allowed", "method_not_allowed")
    response.headers["Allow"] = "POST, OPTIONS"
    return response


@router.get("/catalog")
async def list_catalog(request: Request):
    """Claimable options. Links are only handed out by the client after a claim."""
    catalog = get_claim_service(request).catalog
    return [
        option.model_dump(by_alias=True)
        for option in catalog.public_options()
    ]
