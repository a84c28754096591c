"""
Settings API Routes
Webhook URL the game server plugin reports match events back to.
"""
from typing import Optional

from fastapi import APIRouter, Depends
from sqlmodel import Session

from tourney.database import get_session
from tourney.routes.serializers import CamelModel, http_error
from tourney.services import settings_service
from tourney.services.errors import MatchEngineError

router = APIRouter()


class SettingsModel(CamelModel):
    webhook_url: Optional[str] = None


class SettingsResponse(CamelModel):
    settings: SettingsModel


@router.get("/settings", response_model=SettingsResponse)
def get_settings(session: Session = Depends(get_session)):
    return SettingsResponse(settings=SettingsModel(webhook_url=settings_service.get_webhook_url(session)))


@router.put("/settings", response_model=SettingsResponse)
def update_settings(request: SettingsModel, session: Session = Depends(get_session)):
    try:
        webhook_url = settings_service.set_webhook_url(session, request.webhook_url)
    except MatchEngineError as e:
        raise http_error(e)
    return SettingsResponse(settings=SettingsModel(webhook_url=webhook_url))
