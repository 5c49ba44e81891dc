from __future__ import annotations

from fastapi import APIRouter, Depends

from mailcheck.core.deps import get_orchestrator
from mailcheck.schemas.mail import (
    ConnectionTestRequest,
    ConnectionTestResponse,
    FetchEmailsRequest,
    FetchEmailsResponse,
    FolderOut,
    GetFoldersRequest,
    GetFoldersResponse,
    MarkReadRequest,
    MarkReadResponse,
    MessageOut,
    SendEmailRequest,
    SendEmailResponse,
)
from mailcheck.services.mail.errors import MailError
from mailcheck.services.orchestrator import MailOrchestrator

router = APIRouter(prefix="/api", tags=["mail"])


@router.post("/test-connection", response_model=ConnectionTestResponse)
def test_connection(
    payload: ConnectionTestRequest,
    orchestrator: MailOrchestrator = Depends(get_orchestrator),
) -> ConnectionTestResponse:
    result = orchestrator.test_connection(
        email=payload.email,
        password=payload.password.get_secret_value(),
        receive_protocol=payload.receive_protocol,
        overrides=payload.overrides,
    )
    return ConnectionTestResponse(
        success=result.success,
        protocol=result.protocol,
        receive_ok=result.receive_ok,
        send_ok=result.send_ok,
        smtp=result.send_ok,
        errors=result.errors,
        error=", ".join(result.errors) if result.errors else None,
    )


@router.post(
    "/fetch-emails",
    response_model=FetchEmailsResponse,
    response_model_exclude_none=True,
)
def fetch_emails(
    payload: FetchEmailsRequest,
    orchestrator: MailOrchestrator = Depends(get_orchestrator),
) -> FetchEmailsResponse:
    try:
        messages = orchestrator.fetch_messages(
            email=payload.email,
            password=payload.password.get_secret_value(),
            receive_protocol=payload.receive_protocol,
            folder=payload.folder,
            count=payload.count,
            overrides=payload.overrides,
        )
    except MailError as e:
        return FetchEmailsResponse(success=False, error=str(e))

    protocol = payload.receive_protocol.strip().lower()
    emails = [MessageOut.from_summary(m, protocol=protocol) for m in messages]
    return FetchEmailsResponse(success=True, emails=emails, count=len(emails))


@router.post("/send-email", response_model=SendEmailResponse)
def send_email(
    payload: SendEmailRequest,
    orchestrator: MailOrchestrator = Depends(get_orchestrator),
) -> SendEmailResponse:
    try:
        confirmation = orchestrator.send_message(
            email=payload.email,
            password=payload.password.get_secret_value(),
            to=payload.to,
            subject=payload.subject,
            text=payload.text,
            overrides=payload.overrides,
        )
    except MailError as e:
        return SendEmailResponse(success=False, error=str(e))
    return SendEmailResponse.from_confirmation(confirmation)


@router.post("/mark-read", response_model=MarkReadResponse)
def mark_read(
    payload: MarkReadRequest,
    orchestrator: MailOrchestrator = Depends(get_orchestrator),
) -> MarkReadResponse:
    try:
        orchestrator.mark_read(
            email=payload.email,
            password=payload.password.get_secret_value(),
            message_ids=payload.message_ids,
            receive_protocol=payload.receive_protocol,
            folder=payload.folder,
            overrides=payload.overrides,
        )
    except MailError as e:
        return MarkReadResponse(success=False, error=str(e))
    return MarkReadResponse(success=True, message="Messages marked as read")


@router.post("/get-folders", response_model=GetFoldersResponse)
def get_folders(
    payload: GetFoldersRequest,
    orchestrator: MailOrchestrator = Depends(get_orchestrator),
) -> GetFoldersResponse:
    try:
        folders = orchestrator.list_folders(
            email=payload.email,
            password=payload.password.get_secret_value(),
            receive_protocol=payload.receive_protocol,
            overrides=payload.overrides,
        )
    except MailError as e:
        return GetFoldersResponse(success=False, error=str(e))
    return GetFoldersResponse(success=True, folders=[FolderOut.from_node(f) for f in folders])
