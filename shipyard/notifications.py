"""
Backup notifications.

Events are mailed to the owning team over SMTP when MAIL_SERVER is configured,
otherwise they are only logged. Delivery is fire-and-forget: failures are
logged and never raised to the caller.
"""

import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class BackupSuccess:
    backup: Any
    database: Any

    @property
    def subject(self) -> str:
        return f"Backup succeeded for database {self.database.name}"

    def body(self) -> str:
        return (
            f"Scheduled backup of database '{self.database.name}' "
            f"(backup id {self.backup.id}) completed successfully."
        )


@dataclass
class BackupFailed:
    backup: Any
    database: Any
    output: Optional[str] = None

    @property
    def subject(self) -> str:
        return f"Backup FAILED for database {self.database.name}"

    def body(self) -> str:
        text = (
            f"Scheduled backup of database '{self.database.name}' "
            f"(backup id {self.backup.id}) failed."
        )
        if self.output:
            text += f"\n\nOutput:\n{self.output}"
        return text


class TeamNotifier:
    """Delivers backup events to teams and operator alerts."""

    def __init__(self, mail_config: Optional[Dict[str, Any]] = None):
        """
        Args:
            mail_config: Dict with MAIL_SERVER, MAIL_PORT, MAIL_USE_TLS, MAIL_USERNAME,
                MAIL_PASSWORD, MAIL_FROM and INTERNAL_NOTIFICATION_EMAIL keys
        """
        self.mail_config = mail_config or {}

    @classmethod
    def from_config(cls, config):
        keys = (
            'MAIL_SERVER', 'MAIL_PORT', 'MAIL_USE_TLS', 'MAIL_USERNAME',
            'MAIL_PASSWORD', 'MAIL_FROM', 'INTERNAL_NOTIFICATION_EMAIL'
        )
        return cls({key: config.get(key) for key in keys})

    def notify(self, team, event):
        """Send an event to a team. Never raises."""
        logger.info(f"Notifying team {team.name}: {event.subject}")
        if not team.email:
            logger.debug(f"Team {team.name} has no email address, notification only logged")
            return
        try:
            self._send_email(team.email, event.subject, event.body())
        except Exception as e:
            logger.error(f"Failed to notify team {team.name}: {e}")

    def send_internal(self, message: str):
        """Alert the platform operator. Never raises."""
        logger.warning(f"Internal notification: {message}")
        recipient = self.mail_config.get('INTERNAL_NOTIFICATION_EMAIL')
        if not recipient:
            return
        try:
            self._send_email(recipient, "Shipyard internal notification", message)
        except Exception as e:
            logger.error(f"Failed to send internal notification: {e}")

    def _send_email(self, recipient: str, subject: str, body: str):
        host = self.mail_config.get('MAIL_SERVER')
        if not host:
            return

        msg = EmailMessage()
        msg['Subject'] = subject
        msg['From'] = self.mail_config.get('MAIL_FROM') or 'shipyard@localhost'
        msg['To'] = recipient
        msg.set_content(body)

        with smtplib.SMTP(host, self.mail_config.get('MAIL_PORT') or 587, timeout=30) as smtp:
            if self.mail_config.get('MAIL_USE_TLS'):
                smtp.starttls()
            if self.mail_config.get('MAIL_USERNAME'):
                smtp.login(self.mail_config['MAIL_USERNAME'], self.mail_config.get('MAIL_PASSWORD') or '')
            smtp.send_message(msg)


def send_internal_notification(message: str, notifier: Optional[TeamNotifier] = None):
    """Alert the operator using the current app's mail settings."""
    if notifier is None:
        from flask import current_app
        notifier = TeamNotifier.from_config(current_app.config)
    notifier.send_internal(message)
