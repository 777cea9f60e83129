import hashlib
import hmac
import json
import os
import time
from typing import Any, Dict

from dotenv import load_dotenv
from fastapi import BackgroundTasks, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.concurrency import run_in_threadpool

# Load environment variables
load_dotenv()

# Import our modules
from connectors.kv_store import create_store
from connectors.lead_store import LeadNotFound, PersistenceError, create_lead_store
from connectors.messages import NOTIFICATION_KINDS, lead_notification
from connectors.notifier import build_fanout
from pipeline.config import get_settings
from pipeline.state import LEAD_STATUSES
from pipeline.workflow import LeadPipeline, PipelineContext

settings = get_settings()

# Configure logging
logger.add("logs/app.log", rotation="1 day", retention="7 days", level=settings.log_level)

# Initialize FastAPI app
app = FastAPI(
    title="Lead Attribution & Scoring Service",
    description="UTM attribution, lead scoring and notification fanout for landing-page forms",
    version="1.0.0"
)


def build_pipeline() -> LeadPipeline:
    """Wire the workflow to the configured key-value store and lead table."""
    ctx = PipelineContext(
        store=create_store(settings.redis_url),
        sink=create_lead_store(settings),
        settings=settings,
    )
    return LeadPipeline(ctx)


# Initialize workflow and notification fanout
app.state.pipeline = build_pipeline()
app.state.notifier = build_fanout(settings)


@app.post("/track/visit")
async def track_visit(req: Request):
    """
    Resolve attribution for a page view.

    Expected payload:
    {
        "visitor_id": "3f7c...",
        "url": "https://getshortcut.co/linkedin?utm_source=linkedin&utm_campaign=holiday-2025",
        "referrer": "https://www.linkedin.com/"
    }
    """
    payload = await req.json()
    pipeline: LeadPipeline = req.app.state.pipeline

    record = await run_in_threadpool(
        pipeline.track_visit,
        payload.get("visitor_id"),
        payload.get("url"),
        payload.get("referrer"),
    )
    return {"status": "ok", "attribution": record}


@app.post("/webhooks/lead")
async def ingest_lead(req: Request, background_tasks: BackgroundTasks):
    """
    Lead-capture form submission.

    Expected payload:
    {
        "first_name": "Jane",
        "last_name": "Doe",
        "email": "jane.doe@acme.com",
        "phone": "555-0100",
        "company": "Acme Corp",
        "service_type": "massage",
        "event_date": "2025-12-12",
        "message": "...",
        "platform": "linkedin",
        "visitor_id": "3f7c...",
        "page_url": "https://getshortcut.co/linkedin?utm_source=linkedin",
        "referrer": "https://www.linkedin.com/"
    }
    """
    start_time = time.time()

    payload = await req.json()
    if not payload.get("user_agent") and not payload.get("userAgent"):
        payload["user_agent"] = req.headers.get("user-agent")
    logger.info(f"Received lead submission: {payload.get('email', 'unknown')}")

    pipeline: LeadPipeline = req.app.state.pipeline
    try:
        result = await run_in_threadpool(pipeline.submit, payload)
    except PersistenceError as e:
        logger.error(f"Lead persistence failed: {e}")
        return JSONResponse(
            status_code=502,
            content={"status": "error", "message": "Failed to submit contact request"}
        )

    outcome = result.get("outcome")
    if outcome == "bot_rejected":
        return JSONResponse(
            status_code=403,
            content={"status": "rejected", "message": "Submission not allowed"}
        )
    if outcome == "rate_limited":
        retry_after = result.get("retry_after") or 0
        return JSONResponse(
            status_code=429,
            headers={"Retry-After": str(retry_after)},
            content={
                "status": "rate_limited",
                "message": f"Please wait {retry_after} seconds before submitting another request",
                "retry_after": retry_after
            }
        )

    # Notify once the lead is stored; delivery never affects this response
    background_tasks.add_task(req.app.state.notifier.dispatch, lead_notification(result["record"]))

    processing_time = time.time() - start_time
    logger.info(f"Lead processing completed in {processing_time:.2f}s: {result.get('lead_id')}")

    return {
        "status": "success",
        "lead_id": result.get("lead_id"),
        "processing_time": processing_time,
        "lead_score": result.get("lead_score"),
        "conversion_value": result.get("conversion_value"),
        "score_reasons": result.get("score_reasons", []),
        "errors": result.get("errors", [])
    }


@app.post("/notifications")
async def relay_notification(req: Request, background_tasks: BackgroundTasks):
    """Relay agreement, invoice and proposal events from the site's other functions."""
    body = await req.body()

    # Optional signature verification
    if settings.notify_webhook_secret:
        signature = req.headers.get("X-Signature", "")
        expected = hmac.new(settings.notify_webhook_secret.encode(), body, hashlib.sha256).hexdigest()
        if not hmac.compare_digest(signature, expected):
            logger.warning("Notification signature verification failed")
            raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        notification: Dict[str, Any] = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON")

    kind = notification.get("kind") if isinstance(notification, dict) else None
    if kind not in NOTIFICATION_KINDS:
        raise HTTPException(status_code=400, detail=f"Unknown notification kind: {kind}")

    logger.info(f"Queued {kind} notification")
    background_tasks.add_task(req.app.state.notifier.dispatch, notification)
    return {"status": "queued", "kind": kind}


@app.get("/health")
def health(req: Request):
    """Health check endpoint."""
    ctx = req.app.state.pipeline.ctx
    return {
        "status": "healthy",
        "timestamp": time.time(),
        "version": "1.0.0",
        "services": {
            "store": ctx.store.backend,
            "sink": ctx.sink.backend,
            "workflow": "ready"
        }
    }


@app.get("/admin/leads")
def list_leads(req: Request, limit: int = 100):
    """Stored leads, newest first."""
    try:
        return {"leads": req.app.state.pipeline.ctx.sink.list(limit=limit)}
    except PersistenceError as e:
        logger.error(f"Failed to fetch contact requests: {e}")
        raise HTTPException(status_code=502, detail="Failed to fetch contact requests")


@app.get("/admin/leads/{lead_id}")
def get_lead(req: Request, lead_id: str):
    """Fetch one stored lead."""
    try:
        return req.app.state.pipeline.ctx.sink.get(lead_id)
    except LeadNotFound:
        raise HTTPException(status_code=404, detail="Lead not found")
    except PersistenceError as e:
        logger.error(f"Failed to fetch lead {lead_id}: {e}")
        raise HTTPException(status_code=502, detail="Failed to fetch lead")


@app.patch("/admin/leads/{lead_id}/status")
async def update_lead_status(req: Request, lead_id: str):
    """Move a lead through new -> contacted -> followed_up -> closed."""
    payload = await req.json()
    status = payload.get("status")
    if status not in LEAD_STATUSES:
        raise HTTPException(status_code=400, detail=f"Invalid status: {status}")

    logger.info(f"Updating contact request status: {lead_id} -> {status}")
    sink = req.app.state.pipeline.ctx.sink
    try:
        record = await run_in_threadpool(sink.update_status, lead_id, status)
    except LeadNotFound:
        raise HTTPException(status_code=404, detail="Lead not found")
    except PersistenceError as e:
        logger.error(f"Failed to update contact request status: {e}")
        raise HTTPException(status_code=502, detail="Failed to update contact request status")
    return {"status": "updated", "lead": record}


@app.delete("/admin/leads/{lead_id}")
def delete_lead(req: Request, lead_id: str):
    """Remove a stored lead."""
    try:
        req.app.state.pipeline.ctx.sink.delete(lead_id)
    except LeadNotFound:
        raise HTTPException(status_code=404, detail="Lead not found")
    except PersistenceError as e:
        logger.error(f"Failed to delete contact request: {e}")
        raise HTTPException(status_code=502, detail="Failed to delete contact request")
    logger.info(f"Contact request deleted: {lead_id}")
    return {"status": "deleted", "lead_id": lead_id}


# Error handlers
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"status": "error", "message": "Internal server error"}
    )


if __name__ == "__main__":
    import uvicorn

    # Create logs directory if it doesn't exist
    os.makedirs("logs", exist_ok=True)

    logger.info("Starting Lead Attribution & Scoring Service")

    uvicorn.run(
        "app:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
