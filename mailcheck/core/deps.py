from __future__ import annotations

from typing import Any

from fastapi import BackgroundTasks, Depends

from mailcheck.core.config import get_settings
from mailcheck.services.activity import ActivityReporter
from mailcheck.services.orchestrator import MailOrchestrator


def get_activity_reporter() -> ActivityReporter:
    return ActivityReporter(get_settings())


def get_orchestrator(
    background_tasks: BackgroundTasks,
    reporter: ActivityReporter = Depends(get_activity_reporter),
) -> MailOrchestrator:
    # Activity delivery runs after the response is sent and can never fail the request.
    def report(action: str, data: dict[str, Any]) -> None:
        background_tasks.add_task(reporter.log_activity, action, data)

    return MailOrchestrator(get_settings(), report=report)
