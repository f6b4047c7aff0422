"""
Notification System Module - Event Check-in

This module delivers registration emails. Each email carries the
participant's QR code as an inline PNG image, rendered into an HTML body
from a Jinja2 template, and is sent over SMTP.

Delivery is a single attempt: there is no queue and no retry. Callers
receive a NotificationError on failure and decide how to report it.
"""

import smtplib
import ssl
import logging
from email.mime.image import MIMEImage
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict, Optional

from jinja2 import Template

from checkin.modules.errors import NotificationError
from checkin.modules.qr_generator import decode_data_url

QR_CONTENT_ID = 'participant-qr'


class NotificationSystem:
    """
    Sends the QR code email to newly registered participants.
    """

    def __init__(self, email_config: Optional[Dict[str, Any]] = None,
                 event_name: str = 'Academic Event', enabled: bool = True):
        """
        Initialize the notification system.

        Args:
            email_config (Dict[str, Any]): SMTP settings (smtp_server, smtp_port,
                username, password, use_tls, sender, timeout)
            event_name (str): Event name shown in the subject and body
            enabled (bool): When False every delivery fails as not configured
        """
        self.logger = logging.getLogger(__name__)
        self.event_name = event_name
        self.enabled = enabled

        self.email_config = {
            'smtp_server': 'localhost',
            'smtp_port': 587,
            'username': None,
            'password': None,
            'use_tls': True,
            'sender': 'registration@event.local',
            'timeout': 15,
        }
        if email_config:
            self.email_config.update(email_config)

        self.template = Template(self._get_qr_email_template(), autoescape=True)

    @classmethod
    def from_config(cls, config) -> 'NotificationSystem':
        return cls(
            email_config={
                'smtp_server': config.get('MAIL_SERVER'),
                'smtp_port': config.get('MAIL_PORT'),
                'username': config.get('MAIL_USERNAME'),
                'password': config.get('MAIL_PASSWORD'),
                'use_tls': config.get('MAIL_USE_TLS'),
                'sender': config.get('MAIL_DEFAULT_SENDER'),
                'timeout': config.get('MAIL_TIMEOUT', 15),
            },
            event_name=config.get('EVENT_NAME', 'Academic Event'),
            enabled=bool(config.get('NOTIFICATIONS_EMAIL_ENABLED')),
        )

    def is_email_configured(self) -> bool:
        """Check if email delivery is enabled and has a server and sender."""
        return bool(
            self.enabled
            and self.email_config['smtp_server']
            and self.email_config['sender']
        )

    def build_qr_email(self, email: str, full_name: str, qr_code_data_url: str) -> MIMEMultipart:
        """
        Build the registration email with the QR code embedded inline.

        Args:
            email (str): Recipient address
            full_name (str): Participant display name
            qr_code_data_url (str): PNG data URL of the QR code

        Returns:
            MIMEMultipart: Message ready to send
        """
        try:
            png_bytes = decode_data_url(qr_code_data_url)
        except ValueError as e:
            raise NotificationError(f"Invalid QR image for {email}: {e}") from e

        msg = MIMEMultipart('related')
        msg['From'] = self.email_config['sender']
        msg['To'] = email
        msg['Subject'] = f"Your Event QR Code - {self.event_name}"

        body = self.template.render(
            full_name=full_name,
            event_name=self.event_name,
            qr_cid=QR_CONTENT_ID,
        )
        msg.attach(MIMEText(body, 'html', 'utf-8'))

        image = MIMEImage(png_bytes, _subtype='png')
        image.add_header('Content-ID', f'<{QR_CONTENT_ID}>')
        image.add_header('Content-Disposition', 'inline', filename='qr-code.png')
        msg.attach(image)

        return msg

    def send_qr_email(self, email: str, full_name: str, qr_code_data_url: str) -> None:
        """
        Send the QR code to a participant.

        Raises:
            NotificationError: If email is not configured or delivery fails
        """
        if not self.is_email_configured():
            self.logger.warning("Email not configured, skipping QR code email")
            raise NotificationError("Email delivery is not configured")

        msg = self.build_qr_email(email, full_name, qr_code_data_url)

        self.logger.info(f"Sending QR code email to {email} for participant {full_name}")
        try:
            with smtplib.SMTP(self.email_config['smtp_server'],
                              self.email_config['smtp_port'],
                              timeout=self.email_config['timeout']) as server:
                if self.email_config['use_tls']:
                    context = ssl.create_default_context()
                    server.starttls(context=context)

                if self.email_config['username'] and self.email_config['password']:
                    server.login(self.email_config['username'], self.email_config['password'])
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            self.logger.error(f"Failed to send QR code email to {email}: {str(e)}")
            raise NotificationError(f"Failed to send QR code email to {email}") from e

        self.logger.info(f"QR code email sent to {email}")

    def _get_qr_email_template(self) -> str:
        """Get HTML template for the QR code email."""
        return """
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
          <h1 style="color: #2563eb; text-align: center;">Welcome to {{ event_name }}!</h1>

          <p>Dear {{ full_name }},</p>

          <p>Thank you for registering. Your registration has been confirmed!</p>

          <div style="text-align: center; margin: 30px 0;">
            <h2 style="color: #1f2937; margin-bottom: 15px;">Your QR Code</h2>
            <img src="cid:{{ qr_cid }}" alt="Your QR Code"
                 style="border: 2px solid #e5e7eb; padding: 20px; border-radius: 8px; background: white;" />
          </div>

          <div style="background-color: #f3f4f6; padding: 20px; border-radius: 8px; margin: 20px 0;">
            <h3 style="margin-top: 0; color: #374151;">Important Instructions:</h3>
            <ul style="color: #6b7280; line-height: 1.6;">
              <li>Save this QR code to your phone or print it out</li>
              <li>Bring this QR code with you to the event</li>
              <li>Present it at check-in</li>
              <li>Keep this email for your records</li>
            </ul>
          </div>

          <p style="color: #6b7280; text-align: center; margin-top: 30px;">
            We look forward to seeing you at the event!<br>
            <strong>{{ event_name }} Team</strong>
          </p>
        </div>
        """
