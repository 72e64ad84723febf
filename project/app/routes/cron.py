# app/routes/cron.py

import secrets
from typing import Optional

from fastapi import APIRouter, Header, HTTPException, Request, status

from app.config import settings
from app.services.email import process_scheduled_emails

router = APIRouter()


@router.get(
    "/emails",
    status_code=status.HTTP_200_OK,
    summary="Send due scheduled emails",
    responses={
        200: {"description": "Counts of sent and failed emails"},
        401: {"description": "Missing or wrong CRON_SECRET bearer"},
    },
)
async def run_scheduled_emails(request: Request, authorization: Optional[str] = Header(default=None)):
    """Вызывается планировщиком с `Authorization: Bearer <CRON_SECRET>`."""
    expected = f"Bearer {settings.CRON_SECRET}"
    if not settings.CRON_SECRET or not authorization or not secrets.compare_digest(authorization, expected):
        await request.app.state.log.log_warning("cron", "Unauthorized cron call")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    result = await process_scheduled_emails(request)
    return {"success": True, **result}
