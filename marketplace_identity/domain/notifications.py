"""
OTP dispatcher - Best-effort, fire-and-forget OTP delivery.

Delivery contract:
- deliver() schedules one job per channel on a thread pool and returns
  immediately; the calling operation never waits for delivery
- a failing channel is logged at WARNING with its exception and dropped;
  it never fails, delays, or rolls back the operation that issued the OTP
- network deadlines belong to the channel adapters (SMTP/HTTP timeouts)

E-mail is always attempted. SMS is attempted as well when an SMS sender is
configured and the account has a phone number.
"""

import logging
from concurrent.futures import Future, ThreadPoolExecutor

from .models import Account, OTPRecord
from .ports import NotificationSender

logger = logging.getLogger(__name__)


class OTPDispatcher:
    """Fan an issued OTP out to the configured delivery channels."""

    def __init__(
        self,
        email_sender: NotificationSender,
        sms_sender: NotificationSender | None = None,
        max_workers: int = 4,
    ) -> None:
        self._email_sender = email_sender
        self._sms_sender = sms_sender
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="otp-delivery")

    def deliver(self, account: Account, record: OTPRecord) -> list[Future]:
        """
        Schedule delivery of ``record`` to the account's channels.

        Returns:
            One future per scheduled channel. Callers in request paths ignore
            them; they exist so shutdown and tests can wait for delivery.
        """
        futures = [self._submit("email", self._email_sender, account.email, record)]
        if self._sms_sender is not None and account.phone:
            futures.append(self._submit("sms", self._sms_sender, account.phone, record))
        return futures

    def close(self, wait: bool = True) -> None:
        """
        Stop accepting jobs and release the channel adapters.

        With ``wait`` queued deliveries finish first. Without it, jobs still
        running may fail against closed channels and are logged like any
        other delivery failure.
        """
        self._executor.shutdown(wait=wait)
        self._email_sender.close()
        if self._sms_sender is not None:
            self._sms_sender.close()

    def _submit(
        self, channel: str, sender: NotificationSender, destination: str, record: OTPRecord
    ) -> Future:
        return self._executor.submit(self._send, channel, sender, destination, record)

    def _send(
        self, channel: str, sender: NotificationSender, destination: str, record: OTPRecord
    ) -> bool:
        try:
            sender.send_otp(destination, record.code, record.purpose)
        except Exception:
            logger.warning(
                "Failed to send %s OTP via %s to %s",
                record.purpose.value,
                channel,
                destination,
                exc_info=True,
            )
            return False
        return True
