"""Application settings stored as key/value rows."""
import logging
from typing import Optional

from pydantic import AnyHttpUrl, TypeAdapter, ValidationError
from sqlmodel import Session

from tourney.models.app_setting import SETTING_WEBHOOK_URL, AppSetting
from tourney.services.errors import InvalidWebhookUrl

logger = logging.getLogger(__name__)


def get_setting(session: Session, key: str) -> Optional[str]:
    row = session.get(AppSetting, key)
    return row.value if row is not None else None


def set_setting(session: Session, key: str, value: Optional[str]) -> None:
    row = session.get(AppSetting, key)
    if row is None:
        row = AppSetting(key=key, value=value)
    else:
        row.value = value
    session.add(row)
    session.commit()


_http_url = TypeAdapter(AnyHttpUrl)


def normalize_webhook_url(url: str) -> str:
    """Accept only absolute http(s) URLs; strip trailing slashes."""
    url = (url or "").strip()
    try:
        parsed = _http_url.validate_python(url)
    except ValidationError as exc:
        raise InvalidWebhookUrl(f"Webhook URL must be an http(s) URL, got {url!r}") from exc
    return str(parsed).rstrip("/")


def get_webhook_url(session: Session) -> Optional[str]:
    return get_setting(session, SETTING_WEBHOOK_URL)


def set_webhook_url(session: Session, url: Optional[str]) -> Optional[str]:
    """Store (or clear, with an empty value) the URL the game server reports events to."""
    value = normalize_webhook_url(url) if url else None
    set_setting(session, SETTING_WEBHOOK_URL, value)
    logger.info("Webhook URL set to %s", value)
    return value
