"""GitHub webhook endpoint"""
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from devsync.api.development_requests import DevelopmentRequestResponse
from devsync.models.base import get_db
from devsync.services.webhook_handler import PayloadMalformed, SignatureInvalid, WebhookHandler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/github", tags=["github"])

WEBHOOK_PATH = "/api/github/webhook"


@router.post("/webhook")
async def github_webhook(request: Request, db: Session = Depends(get_db)):
    """Receive GitHub ``issues`` events and mirror them onto development requests"""
    body = await request.body()
    handler = WebhookHandler(db)
    try:
        # Raw body needs an async route; the database work runs off the event loop.
        result = await run_in_threadpool(
            handler.handle,
            request.headers.get("X-GitHub-Event"),
            body,
            request.headers.get("X-Hub-Signature-256"),
        )
    except SignatureInvalid as e:
        logger.warning(f"Rejected GitHub webhook: {e}")
        return JSONResponse(status_code=401, content={"success": False, "message": str(e)})
    except PayloadMalformed as e:
        logger.warning(f"Malformed GitHub webhook: {e}")
        return JSONResponse(status_code=400, content={"success": False, "message": str(e)})

    data = result.get("data")
    if data is not None:
        result = dict(result)
        result["data"] = DevelopmentRequestResponse.model_validate(data).model_dump(mode="json")
    return result
