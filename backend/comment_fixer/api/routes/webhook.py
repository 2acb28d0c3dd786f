"""
GitHub webhook endpoint
Receives PR comment events and queues them for the fix pipeline
"""
import json
from typing import Optional, Dict, Any
from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from comment_fixer.models.github import InboundEvent
from comment_fixer.services.dispatcher import EventDispatcher, dispatcher
from comment_fixer.services.github_service import GitHubService, github_service
from comment_fixer.utils.logger import logger


router = APIRouter()

COMMENT_EVENTS = ("pull_request_review_comment", "issue_comment")


def get_github_service() -> GitHubService:
    return github_service


def get_dispatcher() -> EventDispatcher:
    return dispatcher


@router.post("")
async def github_webhook(
    request: Request,
    x_github_event: Optional[str] = Header(None),
    x_hub_signature_256: Optional[str] = Header(None),
    github: GitHubService = Depends(get_github_service),
    event_dispatcher: EventDispatcher = Depends(get_dispatcher),
):
    """
    Handle GitHub webhook events.
    Answers before the pipeline runs; the outcome shows up as a PR comment.
    """

    # Read raw body for signature verification
    body = await request.body()

    # SECURITY: Verify webhook signature
    if not github.verify_webhook_signature(body, x_hub_signature_256):
        logger.error("Invalid webhook signature")
        return JSONResponse(status_code=401, content={"error": "Invalid signature"})

    logger.info(f"Received {x_github_event} event")

    try:
        if x_github_event in COMMENT_EVENTS:
            handle_comment_event(json.loads(body), event_dispatcher)
        elif x_github_event == "ping":
            logger.info("Webhook ping received")
        else:
            logger.info(f"Unhandled event type: {x_github_event}")
    except Exception as e:
        logger.error(f"Webhook error: {e}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    return {"status": "ok"}


def handle_comment_event(payload: Dict[str, Any], event_dispatcher: EventDispatcher) -> None:
    action = payload.get("action")
    if action != "created":
        logger.info(f"Skipping {action} action")
        return

    event = InboundEvent.model_validate(payload)

    reason = event_dispatcher.processor.skip_reason(event)
    if reason:
        logger.info(reason)
        return

    event_dispatcher.submit(event)
