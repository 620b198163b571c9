"""
SMTP e-mail sender adapter - Implements NotificationSender protocol.

Delivers OTP e-mails over SMTP with STARTTLS. Every connection is bounded
by a socket timeout so a slow mail relay cannot hold a delivery worker.
"""

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from marketplace_identity.domain.exceptions import NotificationError
from marketplace_identity.domain.ports import OTPPurpose

logger = logging.getLogger(__name__)

_SUBJECTS = {
    OTPPurpose.VERIFICATION: ("Verify Your Account", "Account Verification"),
    OTPPurpose.PASSWORD_RESET: ("Reset Your Password", "Password Reset"),
}


class SmtpEmailSender:
    """Send OTP e-mails through an SMTP relay."""

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        from_email: str,
        from_name: str = "Mura Food",
        timeout: float = 5.0,
        ttl_minutes: int = 10,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_email = from_email
        self.from_name = from_name
        self.timeout = timeout
        self.ttl_minutes = ttl_minutes

    def send_otp(self, destination: str, code: str, purpose: OTPPurpose) -> None:
        """
        Send an OTP e-mail.

        Raises:
            NotificationError: If the relay could not be reached or refused
                the message
        """
        subject, title = _SUBJECTS[purpose]
        message = self._build_message(destination, subject, title, code)

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                server.starttls()
                if self.username:
                    server.login(self.username, self.password)
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(f"Failed to send {purpose.value} e-mail") from e

        logger.info("Sent %s e-mail to %s", purpose.value, destination)

    def close(self) -> None:
        """Nothing to release; each send opens its own SMTP connection."""

    def _build_message(self, destination: str, subject: str, title: str, code: str) -> MIMEMultipart:
        text_body = (
            f"{title}\n\n"
            f"Your verification code is: {code}\n\n"
            f"This code will expire in {self.ttl_minutes} minutes. "
            "If you didn't request this, please ignore this email.\n"
        )
        html_body = f"""
        <html>
          <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
            <h2>{title}</h2>
            <p>Your verification code is:</p>
            <p style="font-size: 32px; font-weight: bold; letter-spacing: 5px;">{code}</p>
            <p>This code will expire in {self.ttl_minutes} minutes.
               If you didn't request this, please ignore this email.</p>
            <p>Best regards,<br>The {self.from_name} Team</p>
          </body>
        </html>
        """

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = destination
        msg.attach(MIMEText(text_body, "plain", "utf-8"))
        msg.attach(MIMEText(html_body, "html", "utf-8"))
        return msg
