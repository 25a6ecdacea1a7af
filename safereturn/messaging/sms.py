from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from typing import Optional

import httpx
from twilio.base.exceptions import TwilioException
from twilio.rest import Client

from ..config import settings

log = logging.getLogger(__name__)

twilio_client: Optional[Client] = None


@dataclass
class SMSResult:
    success: bool
    message_id: str | None = None
    error: str | None = None


def format_phone_number(phone: str, country_code: str | None = None) -> str:
    """
    Format a phone number for SMS delivery (E.164).

    Args:
        phone: Phone number as entered by the user, e.g. "050 123 4567"
        country_code: Code to apply to local numbers, defaults to settings.SMS_DEFAULT_COUNTRY_CODE

    Returns:
        Phone number with a leading "+" and country code
    """
    country_code = country_code or settings.SMS_DEFAULT_COUNTRY_CODE
    cleaned = re.sub(r"[\s\-()]", "", phone)

    # Leading trunk zero means a local number
    if cleaned.startswith("0"):
        return country_code + cleaned[1:]
    if not cleaned.startswith("+"):
        return country_code + cleaned
    return cleaned


def get_twilio_client() -> Optional[Client]:
    """Get or create Twilio client."""
    global twilio_client

    if not settings.TWILIO_ACCOUNT_SID or not settings.TWILIO_AUTH_TOKEN:
        log.warning("[SMS] Twilio credentials not configured")
        return None

    if twilio_client is None:
        twilio_client = Client(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN)

    return twilio_client


async def send_twilio_sms(to_number: str, message: str) -> SMSResult:
    """Send SMS via Twilio."""
    client = get_twilio_client()
    if not client:
        return SMSResult(success=False, error="Twilio client not initialized")

    if settings.TWILIO_MESSAGING_SERVICE_SID:
        message_params = {
            'messaging_service_sid': settings.TWILIO_MESSAGING_SERVICE_SID,
            'to': to_number,
            'body': message
        }
    elif settings.TWILIO_FROM_NUMBER:
        message_params = {
            'from_': settings.TWILIO_FROM_NUMBER,
            'to': to_number,
            'body': message
        }
    else:
        log.error("[SMS] Neither TWILIO_MESSAGING_SERVICE_SID nor TWILIO_FROM_NUMBER configured")
        return SMSResult(success=False, error="Twilio sender not configured")

    try:
        message_instance = client.messages.create(**message_params)
        log.info(f"[SMS] Sent via Twilio to {to_number}, SID: {message_instance.sid}")
        return SMSResult(success=True, message_id=message_instance.sid)
    except TwilioException as e:
        log.error(f"[SMS] Twilio error sending to {to_number}: {e}")
        return SMSResult(success=False, error=str(e))


async def send_gateway_sms(to_number: str, message: str) -> SMSResult:
    """Send SMS through a generic HTTP gateway (JSON body, bearer key)."""
    if not settings.SMS_API_URL or not settings.SMS_API_KEY:
        return SMSResult(success=False, error="SMS gateway not configured")

    try:
        async with httpx.AsyncClient() as client:
            response = await client.post(
                settings.SMS_API_URL,
                json={"to": to_number, "message": message},
                headers={"Authorization": f"Bearer {settings.SMS_API_KEY}"},
                timeout=10.0
            )

        if response.status_code >= 400:
            log.error(f"[SMS] Gateway returned {response.status_code} for {to_number}")
            return SMSResult(success=False, error=f"SMS API returned {response.status_code}")

        data = response.json()
        message_id = data.get("messageId") or data.get("id")
        log.info(f"[SMS] Sent via gateway to {to_number}, id: {message_id}")
        return SMSResult(success=True, message_id=message_id)

    except httpx.HTTPError as e:
        log.error(f"[SMS] Gateway error sending to {to_number}: {e}")
        return SMSResult(success=False, error=str(e))


async def send_dummy_sms(to_number: str, message: str) -> SMSResult:
    """Development backend: log the message instead of sending it."""
    log.info("=" * 60)
    log.info("[SMS] Development mode - not actually sent")
    log.info(f"[SMS] To: {to_number}")
    log.info(f"[SMS] Message:\n{message}")
    log.info("=" * 60)
    return SMSResult(success=True, message_id=f"dev-{int(time.time() * 1000)}")


async def send_sms(phone: str, message: str) -> SMSResult:
    """Send an SMS through the backend selected by settings.SMS_BACKEND.

    Provider failures are returned as SMSResult(success=False), never raised.
    """
    to_number = format_phone_number(phone)
    backend = settings.SMS_BACKEND.lower()

    try:
        if backend == "twilio":
            return await send_twilio_sms(to_number, message)
        if backend == "gateway":
            return await send_gateway_sms(to_number, message)
        return await send_dummy_sms(to_number, message)
    except Exception as e:
        log.error(f"[SMS] Unexpected error sending to {to_number}: {e}", exc_info=True)
        return SMSResult(success=False, error=str(e))
