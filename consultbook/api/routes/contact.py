# consultbook/api/routes/contact.py
from __future__ import annotations

from fastapi import APIRouter, Depends

from consultbook.api.deps import get_services
from consultbook.core.errors import AppError
from consultbook.schemas.auth import ContactIn
from consultbook.services.container import Services

router = APIRouter(prefix="/api", tags=["contact"])


@router.post("/contact")
async def submit_contact_form(payload: ContactIn, services: Services = Depends(get_services)):
    sent = await services.dispatcher.contact_message(
        name=payload.name,
        email=payload.email,
        company=payload.company,
        message=payload.message,
    )
    if not sent:
        # nothing is stored, so a failed send loses the message
        raise AppError("Failed to send message, please try again later", status_code=502)
    return {"message": "Message received successfully"}
