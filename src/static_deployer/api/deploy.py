"""Deploy API: ``POST /api/deploy``."""

from __future__ import annotations

from typing import Any, Dict

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from static_deployer.deploy.models import DeployOutcome, DeployRequest, DeployResult
from static_deployer.deploy.orchestrator import DeployOrchestrator


router = APIRouter()
logger = structlog.get_logger()


_orchestrator: DeployOrchestrator | None = None


def init_orchestrator(orchestrator: DeployOrchestrator) -> DeployOrchestrator:
    global _orchestrator
    _orchestrator = orchestrator
    return _orchestrator


def get_orchestrator(req: Request | None = None) -> DeployOrchestrator:
    state_orchestrator = getattr(req.app.state, "orchestrator", None) if req is not None else None
    if state_orchestrator is not None:
        return state_orchestrator
    if _orchestrator is None:
        raise RuntimeError("DeployOrchestrator not initialized")
    return _orchestrator


STATUS_CODES = {
    DeployOutcome.SUCCESS: 200,
    DeployOutcome.STATUS: 200,
    DeployOutcome.REJECTED_QUOTA: 429,
    DeployOutcome.REJECTED_COOLDOWN: 429,
    DeployOutcome.MISSING_FILE: 400,
    DeployOutcome.UPLOAD_TOO_LARGE: 413,
    DeployOutcome.STAGING_FAILED: 500,
}


def render_result(result: DeployResult) -> Dict[str, Any]:
    """Response body for a deploy result, field set depends on the outcome."""
    if result.outcome == DeployOutcome.SUCCESS:
        return {
            "success": True,
            "url": result.url,
            "remainingQuota": result.remaining_quota,
            "message": result.message,
        }
    if result.outcome == DeployOutcome.STATUS:
        return {
            "remainingQuota": result.remaining_quota,
            "cooldown": result.cooldown,
            "remainingSeconds": result.remaining_seconds,
        }
    if result.outcome == DeployOutcome.REJECTED_QUOTA:
        return {
            "error": result.error,
            "remainingQuota": 0,
            "cooldown": True,
        }
    if result.outcome == DeployOutcome.REJECTED_COOLDOWN:
        return {
            "error": result.error,
            "remainingQuota": result.remaining_quota,
            "cooldown": True,
            "remainingSeconds": result.remaining_seconds,
        }
    if result.outcome == DeployOutcome.STAGING_FAILED:
        return {
            "error": result.error,
            "remainingQuota": result.remaining_quota,
        }
    return {"error": result.error}


@router.post("/api/deploy")
async def deploy_endpoint(payload: DeployRequest, req: Request) -> JSONResponse:
    orchestrator = get_orchestrator(req)
    result = await orchestrator.handle_deploy(payload)
    status_code = STATUS_CODES[result.outcome]
    if status_code >= 500:
        logger.error("Deploy request failed", outcome=result.outcome.value, error=result.error)
    return JSONResponse(status_code=status_code, content=render_result(result))
