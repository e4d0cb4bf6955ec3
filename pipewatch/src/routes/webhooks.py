"""
GitHub webhook endpoints.
"""

from fastapi import APIRouter, Request, HTTPException, Header, Depends
from typing import Optional
import logging

from pipewatch.src.routes.deps import get_engine
from pipewatch.src.services.engine import ReconciliationEngine
from pipewatch.src.services.errors import InvalidPayload, InvalidSignature, StoreUnavailable

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

@router.post("/github")
async def github_webhook(
    request: Request,
    engine: ReconciliationEngine = Depends(get_engine),
    x_hub_signature_256: Optional[str] = Header(None),
    x_github_event: Optional[str] = Header(None),
):
    """
    Receive GitHub webhook events.
    """
    # Get raw body for signature verification
    body = await request.body()

    try:
        result = await engine.apply_webhook_payload(body, x_hub_signature_256, x_github_event)
    except InvalidSignature:
        raise HTTPException(status_code=401, detail="Invalid signature")
    except InvalidPayload as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StoreUnavailable as e:
        logger.error(f"Store unavailable while applying webhook: {e}")
        raise HTTPException(status_code=503, detail="Store unavailable, retry delivery")

    response = {"accepted": result.accepted}
    if result.execution is not None:
        response.update({
            "execution_id": str(result.execution.id),
            "build_number": result.execution.build_number,
            "status": result.execution.status,
            "created": result.created,
            "changed": result.changed,
        })
    if result.reason:
        response["message"] = result.reason
    return response

