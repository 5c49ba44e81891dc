from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, status
from fastapi.responses import JSONResponse

from mailcheck.core.deps import get_activity_reporter
from mailcheck.schemas.mail import CustomApiCallRequest, CustomApiCallResponse
from mailcheck.services.activity import ActivityReporter, ExternalApiError

logger = logging.getLogger("mailcheck.api")

router = APIRouter(prefix="/api", tags=["external"])


@router.post("/custom-api-call", response_model=CustomApiCallResponse)
def custom_api_call(
    payload: CustomApiCallRequest,
    background_tasks: BackgroundTasks,
    reporter: ActivityReporter = Depends(get_activity_reporter),
) -> CustomApiCallResponse | JSONResponse:
    logger.info("%s invokes the external API with action %s", payload.email, payload.action)
    try:
        data = reporter.call_custom_api(
            {"email": payload.email, "action": payload.action, "data": payload.account_data}
        )
    except ExternalApiError as e:
        background_tasks.add_task(
            reporter.log_activity,
            "custom_api_call",
            {"email": payload.email, "action": payload.action, "success": False, "error": str(e)},
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": str(e)},
            background=background_tasks,
        )

    background_tasks.add_task(
        reporter.log_activity,
        "custom_api_call",
        {"email": payload.email, "action": payload.action, "success": True},
    )
    return CustomApiCallResponse(
        success=True,
        data=data,
        message="API call processed successfully",
    )
