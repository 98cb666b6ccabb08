"""
Pickup notifications over SMS (Twilio REST API).

Best-effort: notify_pickup never raises. A failed SMS is logged and
counted, and never affects the job transition that triggered it.
"""
import re
from dataclasses import dataclass

import httpx

from printflow.config import settings
from printflow.logging_config import get_logger
from printflow.routes.metrics import track_notification
from printflow.sentry_config import capture_exception


@dataclass
class NotificationResult:
    success: bool
    message_sid: str | None = None
    status: str | None = None
    error: str | None = None
    code: int | None = None


def format_phone_number(phone: str, country_code: str | None = None) -> str:
    """
    Normalise a phone number to E.164.

    Numbers already starting with "+" are returned unchanged. Otherwise
    non-digits are stripped, a leading 0 is dropped and 10-digit numbers get
    the default country code.
    """
    if phone.startswith("+"):
        return phone
    country_code = country_code or settings.DEFAULT_COUNTRY_CODE
    cleaned = re.sub(r"\D", "", phone)
    if cleaned.startswith("0"):
        cleaned = cleaned[1:]
    if len(cleaned) == 10:
        cleaned = country_code + cleaned
    return "+" + cleaned


def build_pickup_message(token_number: int) -> str:
    return f"PrintFlow:\nPrint ready.\nToken: #{token_number}\nCollect from vendor counter."


class SmsNotifier:
    """Sends the "your print is ready" SMS."""

    def __init__(
        self,
        account_sid: str | None = None,
        auth_token: str | None = None,
        from_number: str | None = None,
        api_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.account_sid = account_sid if account_sid is not None else settings.TWILIO_ACCOUNT_SID
        self.auth_token = auth_token if auth_token is not None else settings.TWILIO_AUTH_TOKEN
        self.from_number = from_number if from_number is not None else settings.TWILIO_PHONE_NUMBER
        self.api_url = api_url or settings.TWILIO_API_URL
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    async def notify_pickup(self, phone: str | None, job_summary: dict) -> NotificationResult:
        """
        Send the pickup SMS for a finished job.

        job_summary must contain "token_number"; "job_id" is used for logging.
        """
        log = get_logger(job_id=job_summary.get("job_id"), token_number=job_summary.get("token_number"))

        if not phone:
            log.info("pickup_sms_skipped", reason="no_phone")
            track_notification("skipped")
            return NotificationResult(success=False, error="No phone number on file")

        if not self.configured:
            log.warning("pickup_sms_skipped", reason="twilio_not_configured")
            track_notification("skipped")
            return NotificationResult(success=False, error="Twilio not configured")

        to = format_phone_number(phone)
        url = f"{self.api_url}/Accounts/{self.account_sid}/Messages.json"
        data = {
            "To": to,
            "From": self.from_number,
            "Body": build_pickup_message(job_summary["token_number"]),
        }

        try:
            async with httpx.AsyncClient(timeout=10.0, transport=self._transport) as client:
                response = await client.post(url, data=data, auth=(self.account_sid, self.auth_token))
            body = response.json() if response.content else {}
        except Exception as exc:
            log.warning("pickup_sms_failed", to=to, error=str(exc))
            capture_exception(exc)
            track_notification("failed")
            return NotificationResult(success=False, error=str(exc))

        if response.status_code >= 400:
            # 21608: unverified number on a trial account, 21211: invalid number
            code = body.get("code")
            error = body.get("message") or f"HTTP {response.status_code}"
            log.warning("pickup_sms_failed", to=to, code=code, error=error)
            track_notification("failed")
            return NotificationResult(success=False, error=error, code=code)

        status = body.get("status")
        if status in ("failed", "undelivered"):
            log.warning("pickup_sms_failed", to=to, status=status, code=body.get("error_code"))
            track_notification("failed")
            return NotificationResult(
                success=False,
                message_sid=body.get("sid"),
                status=status,
                error=body.get("error_message"),
                code=body.get("error_code"),
            )

        log.info("pickup_sms_sent", to=to, message_sid=body.get("sid"), status=status)
        track_notification("sent")
        return NotificationResult(success=True, message_sid=body.get("sid"), status=status)
