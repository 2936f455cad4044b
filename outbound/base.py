from abc import ABC, abstractmethod
from typing import Dict, Any, List
from models.messaging import MessageKind, OutboundMessage


class OutboundHandler(ABC):
    """Base interface for delivering outbound messages."""

    @abstractmethod
    def send(self, message: OutboundMessage) -> Dict[str, Any]:
        """
        Deliver one message.

        Args:
            message: Outbox row to deliver

        Returns:
            Dict with "status" ("sent" or "error") and provider details
        """
        pass

    def start_sequence(self, sequence_id: str, recipients: List[str], task_id: str) -> Dict[str, Any]:
        """Enroll recipients in a provider-side email sequence."""
        raise NotImplementedError(f"{type(self).__name__} does not run email sequences")

    @abstractmethod
    def is_configured(self) -> bool:
        """Whether the handler has what it needs to deliver."""
        pass


class OutboundHandlerFactory:
    """Factory to create the handler for a message kind."""

    @staticmethod
    def get_handler(kind: MessageKind) -> OutboundHandler:
        """Get the appropriate outbound handler for the message kind."""

        if kind == MessageKind.EMAIL:
            from .email_api import EmailApiOutboundHandler
            return EmailApiOutboundHandler()
        elif kind == MessageKind.NOTIFICATION:
            from .in_app import InAppNotificationHandler
            return InAppNotificationHandler()
        else:
            raise ValueError(f"Unsupported message kind: {kind}")
