from typing import Dict, Any
from models.messaging import OutboundMessage
from .base import OutboundHandler
from settings import logger


class InAppNotificationHandler(OutboundHandler):
    """In-app notifications: the outbox row is the user's inbox entry."""

    def is_configured(self) -> bool:
        return True

    def send(self, message: OutboundMessage) -> Dict[str, Any]:
        if not message.recipient_user_id:
            return {
                "status": "error",
                "error": f"Recipient {message.recipient} is not a user",
                "error_type": "not_a_user"
            }

        logger.info("In-app notification stored", extra={
            "message_id": message.id,
            "user_id": message.recipient_user_id,
            "task_id": message.task_id
        })
        return {"status": "sent", "external_id": message.id}
