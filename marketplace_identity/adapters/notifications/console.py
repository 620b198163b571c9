"""
Console notification sender adapter - Implements NotificationSender protocol.

This module provides a console-based implementation of the domain's
notification port, logging one-time passcodes for development use.
"""

import logging

from marketplace_identity.domain.ports import OTPPurpose

logger = logging.getLogger(__name__)


class ConsoleNotificationSender:
    """
    Implements NotificationSender protocol via console logging.

    Uses structural subtyping - no explicit inheritance from Protocol.
    For demo/development purposes - prints codes to the application log.
    """

    def __init__(self, channel: str = "EMAIL") -> None:
        self.channel = channel

    def send_otp(self, destination: str, code: str, purpose: OTPPurpose) -> None:
        """
        Log an OTP to the console (simulates delivery).

        The code is logged at INFO level to be visible in docker-compose logs.

        Args:
            destination: Recipient address (normalized by domain layer)
            code: Numeric one-time passcode
            purpose: Verification or password reset
        """
        logger.info(
            "[OTP] Channel: %s Purpose: %s To: %s Code: %s",
            self.channel,
            purpose.value,
            destination,
            code,
        )

    def close(self) -> None:
        pass
