"""
Email Service - outbound transactional email through Postmark.

Without POSTMARK_SERVER_TOKEN the service runs in dev mode: messages are
logged and recorded as sent, nothing leaves the process. Every attempt is
written to `message_logs` and audited.
"""
from postmarker.core import PostmarkClient
from database import database
from models import MessageLog, EmailTemplateAlias, AuditAction
from utils.audit import create_audit_log
from datetime import datetime, timezone
import os
import logging
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_SENDER = os.getenv("EMAIL_SENDER", "support@taxdesk.local")


class EmailService:
    def __init__(self):
        token = os.getenv("POSTMARK_SERVER_TOKEN")
        self.client = PostmarkClient(server_token=token) if token else None
        if self.client:
            logger.info("Postmark email client initialized")
        else:
            logger.warning("POSTMARK_SERVER_TOKEN not set - emails will be logged but not sent")
    
    def _deliver(self, message_log: MessageLog, html_body: str, text_body: str) -> None:
        if not self.client:
            logger.info(f"[DEV MODE] Email to {message_log.recipient} not sent: {message_log.subject}")
            return
        response = self.client.emails.send(
            From=DEFAULT_SENDER,
            To=message_log.recipient,
            Subject=message_log.subject,
            HtmlBody=html_body,
            TextBody=text_body,
            TrackOpens=True,
            TrackLinks="HtmlOnly",
            Tag=message_log.template_alias.value,
        )
        message_log.postmark_message_id = response["MessageID"]
    
    async def send_email(
        self,
        recipient: str,
        template_alias: EmailTemplateAlias,
        subject: str,
        html_body: str,
        text_body: str,
        user_id: Optional[str] = None,
        order_id: Optional[str] = None,
    ) -> MessageLog:
        """Send a rendered email. The outcome is on the returned log (status sent/failed), never raised."""
        message_log = MessageLog(
            user_id=user_id,
            order_id=order_id,
            recipient=recipient,
            template_alias=template_alias,
            subject=subject,
        )
        
        try:
            self._deliver(message_log, html_body, text_body)
        except Exception as e:
            message_log.status = "failed"
            message_log.error_message = str(e)
            message_log.provider_error_type = type(e).__name__
            logger.error(f"Failed to send {template_alias.value} email to {recipient}: {e}")
        else:
            message_log.status = "sent"
            message_log.sent_at = datetime.now(timezone.utc)
            logger.info(f"Email {template_alias.value} sent to {recipient} ({message_log.postmark_message_id or 'dev'})")
        
        try:
            await database.get_db().message_logs.insert_one(message_log.model_dump(mode="json"))
        except Exception as e:
            logger.error(f"Failed to store message log for {recipient}: {e}")
        
        await create_audit_log(
            action=AuditAction.EMAIL_SENT if message_log.status == "sent" else AuditAction.EMAIL_FAILED,
            actor_id=user_id,
            resource_type="order" if order_id else None,
            resource_id=order_id,
            metadata={
                "template": template_alias.value,
                "status": message_log.status,
                "postmark_id": message_log.postmark_message_id,
                "error": message_log.error_message,
            }
        )
        return message_log


email_service = EmailService()
