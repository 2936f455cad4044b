from sqlmodel import Session, select
from datetime import datetime
from typing import Any, Dict, List, Optional
from models.boards import Task
from models.helper import as_utc, utcnow
from models.messaging import (
    DeliveryStatus, EmailSequenceEnrollment, MessageKind, OutboundMessage
)
from rules.collaborators import MessagingService, Recipient
from rules.errors import CollaboratorError
from .base import OutboundHandler, OutboundHandlerFactory
from settings import logger


class MessageSender(MessagingService):
    """Outbox-backed messaging: every message is stored, then delivered by its handler."""

    def __init__(self, db_session: Session, handlers: Optional[Dict[MessageKind, OutboundHandler]] = None):
        self.db_session = db_session
        self.handlers = handlers or {}

    def _handler(self, kind: MessageKind) -> OutboundHandler:
        if kind not in self.handlers:
            self.handlers[kind] = OutboundHandlerFactory.get_handler(kind)
        return self.handlers[kind]

    def _store(self, kind: MessageKind, recipients: List[Recipient], subject: str, body: str,
               task: Task, action_id: Optional[str], status: DeliveryStatus,
               send_at: Optional[datetime] = None, meta_data: Optional[Dict[str, Any]] = None
               ) -> List[OutboundMessage]:
        messages = []
        for recipient in recipients:
            message = OutboundMessage(
                kind=kind,
                task_id=task.id,
                action_id=action_id,
                recipient=recipient.address,
                recipient_user_id=recipient.user_id,
                subject=subject,
                body=body,
                status=status,
                send_at=send_at,
                meta_data=dict(meta_data or {})
            )
            self.db_session.add(message)
            messages.append(message)
        self.db_session.commit()
        for message in messages:
            self.db_session.refresh(message)
        return messages

    def deliver(self, message: OutboundMessage) -> bool:
        """
        Deliver one stored message and record the outcome on it.

        Errors are recorded in the message metadata, never raised.
        """
        meta_data = dict(message.meta_data or {})
        try:
            send_result = self._handler(message.kind).send(message)

            if send_result.get("status") == "sent":
                message.status = DeliveryStatus.SENT
                message.sent_at = utcnow()
                meta_data.update({
                    "external_id": send_result.get("external_id"),
                    "delivered": True
                })
                logger.info("Message delivered", extra={
                    "message_id": message.id,
                    "kind": message.kind,
                    "recipient": message.recipient
                })
            else:
                message.status = DeliveryStatus.FAILED
                meta_data.update({
                    "delivered": False,
                    "error": send_result.get("error"),
                    "error_type": send_result.get("error_type")
                })
                logger.error("Failed to deliver message", extra={
                    "message_id": message.id,
                    "kind": message.kind,
                    "error": send_result.get("error")
                })

        except (NotImplementedError, ValueError) as e:
            # Handler not available or not configured
            logger.warning("Message delivery not available", extra={
                "message_id": message.id,
                "kind": message.kind,
                "error": str(e)
            })
            message.status = DeliveryStatus.FAILED
            meta_data.update({
                "delivered": False,
                "error": str(e),
                "error_type": "not_supported"
            })

        except Exception as e:
            logger.error("Unexpected error delivering message", extra={
                "message_id": message.id,
                "kind": message.kind,
                "error": str(e)
            }, exc_info=True)
            message.status = DeliveryStatus.FAILED
            meta_data.update({
                "delivered": False,
                "error": "Unexpected error during delivery",
                "error_type": "unexpected"
            })

        message.meta_data = meta_data
        self.db_session.add(message)
        self.db_session.commit()
        self.db_session.refresh(message)
        return message.status == DeliveryStatus.SENT

    def _send_now(self, kind: MessageKind, recipients: List[Recipient], subject: str, body: str,
                  task: Task, action_id: Optional[str], meta_data: Optional[Dict[str, Any]] = None
                  ) -> Dict[str, Any]:
        messages = self._store(kind, recipients, subject, body, task, action_id,
                               DeliveryStatus.PENDING, meta_data=meta_data)
        delivered = [message.id for message in messages if self.deliver(message)]
        failed = [message for message in messages if message.id not in delivered]
        return {
            "status": "sent" if not failed else "failed",
            "message_ids": [message.id for message in messages],
            "delivered": len(delivered),
            "failed": len(failed),
            "errors": [(message.meta_data or {}).get("error") for message in failed],
        }

    def send_email(self, recipients: List[Recipient], subject: str, body: str,
                   task: Task, action_id: Optional[str]) -> Dict[str, Any]:
        return self._send_now(MessageKind.EMAIL, recipients, subject, body, task, action_id)

    def send_notification(self, recipients: List[Recipient], subject: str, body: str,
                          task: Task, action_id: Optional[str],
                          notification_type: str = "info") -> Dict[str, Any]:
        return self._send_now(MessageKind.NOTIFICATION, recipients, subject, body, task, action_id,
                              meta_data={"notification_type": notification_type})

    def schedule_email(self, recipients: List[Recipient], subject: str, body: str,
                       send_at: datetime, task: Task, action_id: Optional[str]) -> Dict[str, Any]:
        messages = self._store(MessageKind.EMAIL, recipients, subject, body, task, action_id,
                               DeliveryStatus.SCHEDULED, send_at=send_at)
        logger.info("Email scheduled", extra={
            "task_id": task.id,
            "send_at": send_at.isoformat(),
            "message_count": len(messages)
        })
        return {
            "status": "scheduled",
            "message_ids": [message.id for message in messages],
            "send_at": send_at.isoformat(),
        }

    def deliver_due(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Deliver scheduled emails whose send time has come."""
        now = now or utcnow()
        statement = select(OutboundMessage).where(OutboundMessage.status == DeliveryStatus.SCHEDULED)
        due = [
            message for message in self.db_session.exec(statement).all()
            if message.send_at is None or as_utc(message.send_at) <= now
        ]
        sent = sum(1 for message in due if self.deliver(message))
        return {"due": len(due), "sent": sent, "failed": len(due) - sent}

    def start_email_sequence(self, sequence_id: str, recipients: List[Recipient],
                             task: Task, action_id: Optional[str]) -> Dict[str, Any]:
        statement = select(EmailSequenceEnrollment).where(
            EmailSequenceEnrollment.task_id == task.id,
            EmailSequenceEnrollment.sequence_id == sequence_id,
            EmailSequenceEnrollment.is_active == True
        )
        existing = self.db_session.exec(statement).first()
        if existing:
            return {"already_active": True, "enrollment_id": existing.id}

        addresses = [recipient.address for recipient in recipients]
        try:
            provider_result = self._handler(MessageKind.EMAIL).start_sequence(sequence_id, addresses, task.id)
        except Exception as e:
            logger.error("Email sequence could not be started", extra={
                "task_id": task.id,
                "sequence_id": sequence_id,
                "error": str(e)
            })
            raise CollaboratorError(f"Email sequence {sequence_id} could not be started: {e}") from e

        enrollment = EmailSequenceEnrollment(
            task_id=task.id,
            sequence_id=sequence_id,
            action_id=action_id,
            recipients=addresses
        )
        self.db_session.add(enrollment)
        self.db_session.commit()
        self.db_session.refresh(enrollment)
        return {
            "already_active": False,
            "enrollment_id": enrollment.id,
            "external_id": provider_result.get("external_id"),
        }
