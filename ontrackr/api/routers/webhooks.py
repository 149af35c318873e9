"""GitHub webhook router."""

from __future__ import annotations

import time

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ontrackr.api.deps import get_webhook_dispatcher, get_webhook_session
from ontrackr.api.errors import webhook_error_content
from ontrackr.services import WebhookError
from ontrackr.services.webhook_service import SUPPORTED_EVENTS, DeliveryResult, WebhookDispatcher

log = structlog.get_logger("ontrackr.webhook")

router = APIRouter()


def _elapsed_ms(start: float) -> int:
    return round((time.perf_counter() - start) * 1000)


def _success_content(result: DeliveryResult, processing_ms: int) -> dict:
    if result.ping:
        return {
            "success": True,
            "message": "Webhook received successfully",
            "repository": result.repository,
        }
    summary = result.summary
    return {
        "success": True,
        "event": result.event,
        "projectId": str(result.project_id),
        "projectName": result.project_name,
        "repository": result.repository,
        "processingTime": f"{processing_ms}ms",
        "summary": {
            "recorded": summary.recorded,
            "duplicates": summary.duplicates,
            "unauthorized": summary.unauthorized,
            "failed": summary.failed,
            "match_failed": summary.match_failed,
            "tasks_updated": [
                {
                    "task_id": str(t.task_id),
                    "title": t.title,
                    "from": t.from_status,
                    "to": t.to_status,
                }
                for t in summary.tasks_updated
            ],
        },
    }


@router.post("/github")
async def receive_github_webhook(
    request: Request,
    session: AsyncSession = Depends(get_webhook_session),
    dispatcher: WebhookDispatcher = Depends(get_webhook_dispatcher),
) -> JSONResponse:
    start = time.perf_counter()
    event = request.headers.get("x-github-event")
    delivery_id = request.headers.get("x-github-delivery")
    with structlog.contextvars.bound_contextvars(github_event=event, delivery_id=delivery_id):
        log.info("webhook.received")
        body = await request.body()
        try:
            result = await dispatcher.dispatch(
                session,
                event_type=event,
                body=body,
                signature=request.headers.get("x-hub-signature-256"),
                delivery_id=delivery_id,
            )
        except WebhookError as exc:
            log.warning(
                "webhook.rejected", status_code=exc.status_code, error=exc.error, reason=str(exc)
            )
            return JSONResponse(status_code=exc.status_code, content=webhook_error_content(exc))
        except Exception as exc:
            log.exception("webhook.processing_failed", processing_time_ms=_elapsed_ms(start))
            return JSONResponse(
                status_code=500,
                content={"error": "Webhook processing failed", "message": str(exc)},
            )

        processing_ms = _elapsed_ms(start)
        log.info("webhook.completed", processing_time_ms=processing_ms)
        return JSONResponse(_success_content(result, processing_ms))


@router.get("/github")
async def webhook_info() -> JSONResponse:
    return JSONResponse(
        {
            "status": "active",
            "endpoint": "/api/webhooks/github",
            "supportedEvents": list(SUPPORTED_EVENTS),
            "instructions": {
                "setup": [
                    "1. Go to your GitHub repository settings",
                    "2. Navigate to Webhooks section",
                    '3. Click "Add webhook"',
                    "4. Set Payload URL to: https://your-domain.com/api/webhooks/github",
                    "5. Set Content type to: application/json",
                    "6. Set Secret to the value of ONTRACKR_WEBHOOK_SECRET",
                    "7. Select events: Push, Pull requests, Issues",
                    '8. Click "Add webhook"',
                ],
                "localDevelopment": [
                    "1. Run the API: uvicorn ontrackr.api:create_app --factory --port 8000",
                    "2. In a new terminal, run: ngrok http 8000",
                    "3. Copy the HTTPS URL from ngrok (e.g., https://abc123.ngrok.io)",
                    "4. Use this URL in GitHub webhook: https://abc123.ngrok.io/api/webhooks/github",
                ],
            },
        }
    )
