"""Notification adapters - OTP delivery channels."""

from .console import ConsoleNotificationSender
from .sms import TwilioSmsSender
from .smtp import SmtpEmailSender

__all__ = ["ConsoleNotificationSender", "SmtpEmailSender", "TwilioSmsSender"]
