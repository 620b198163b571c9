"""
Twilio SMS sender adapter - Implements NotificationSender protocol.

Posts OTP text messages to the Twilio Messages REST API with httpx.
The HTTP client carries a short timeout so delivery never outlives the
configured deadline.
"""

import logging

import httpx

from marketplace_identity.domain.exceptions import NotificationError
from marketplace_identity.domain.ports import OTPPurpose

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


class TwilioSmsSender:
    """Send OTP text messages through Twilio."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        timeout: float = 5.0,
        ttl_minutes: int = 10,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._account_sid = account_sid
        self._from_number = from_number
        self._ttl_minutes = ttl_minutes
        self._http = (
            http_client
            if http_client is not None
            else httpx.Client(auth=(account_sid, auth_token), timeout=timeout)
        )

    def send_otp(self, destination: str, code: str, purpose: OTPPurpose) -> None:
        """
        Send an OTP by SMS.

        Raises:
            NotificationError: On transport errors or a non-2xx response
        """
        body = (
            f"Your Mura verification code is: {code}. "
            f"This code will expire in {self._ttl_minutes} minutes."
        )
        url = f"{TWILIO_API_BASE}/Accounts/{self._account_sid}/Messages.json"

        try:
            response = self._http.post(
                url, data={"To": destination, "From": self._from_number, "Body": body}
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise NotificationError("Failed to send OTP SMS") from e

        logger.info("Sent %s SMS to %s (status=%d)", purpose.value, destination, response.status_code)

    def close(self) -> None:
        self._http.close()
