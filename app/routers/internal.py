# app/routers/internal.py
# Вызовы от сервиса продажи билетов. Подключается с префиксом /api/internal.

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.core.config import settings
from app.crud import event as crud_event
from app.dependencies import get_conversion_recorder, get_db, verify_internal_secret
from app.schemas.conversion import ConversionResult
from app.services.conversion import ConversionRecorder

logger = logging.getLogger(__name__)
router = APIRouter(dependencies=[Depends(verify_internal_secret)])


@router.post("/tickets/{ticket_id}/conversion", response_model=ConversionResult)
def record_ticket_conversion(
    ticket_id: int,
    request: Request,
    db: Session = Depends(get_db),
    recorder: ConversionRecorder = Depends(get_conversion_recorder),
):
    """
    Засчитывает конверсию для только что выпущенного билета по реферальной куке покупателя.
    Отсутствие конверсии - нормальный исход, а не ошибка.
    """
    ticket = crud_event.get_ticket(db, ticket_id)
    if ticket is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ticket not found")

    cookie_token = request.cookies.get(settings.REFERRAL_COOKIE_NAME)
    conversion = recorder.record_conversion(db, cookie_token, ticket)
    return ConversionResult(recorded=conversion is not None, conversion=conversion)
