import httpx
from typing import Dict, Any, List, Optional
from models.messaging import OutboundMessage
from .base import OutboundHandler
import settings
from settings import logger


class EmailApiOutboundHandler(OutboundHandler):
    """Handler for sending emails through the transactional email HTTP API."""

    def __init__(self, base_url: Optional[str] = None, api_token: Optional[str] = None,
                 timeout: Optional[float] = None):
        self.base_url = (base_url if base_url is not None else settings.EMAIL_API_URL).rstrip("/")
        self.api_token = api_token if api_token is not None else settings.EMAIL_API_TOKEN
        self.timeout = timeout if timeout is not None else settings.COLLABORATOR_TIMEOUT_SECONDS

    def is_configured(self) -> bool:
        return bool(self.base_url)

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    def _post(self, endpoint: str, body: Dict[str, Any]) -> Dict[str, Any]:
        if not self.is_configured():
            raise NotImplementedError("Email API is not configured (EMAIL_API_URL)")

        url = f"{self.base_url}{endpoint}"
        with httpx.Client(timeout=self.timeout) as client:
            response = client.post(url, headers=self._headers(), json=body)
            response.raise_for_status()
            if not response.content:
                return {}
            return response.json()

    def send(self, message: OutboundMessage) -> Dict[str, Any]:
        """Send one email."""

        logger.info("Sending email via email API", extra={
            "message_id": message.id,
            "task_id": message.task_id,
            "recipient": message.recipient
        })

        request_body = {
            "from": settings.EMAIL_FROM,
            "to": message.recipient,
            "subject": message.subject,
            "text": message.body,
            "metadata": {"message_id": message.id, "task_id": message.task_id}
        }

        try:
            response_data = self._post("/emails", request_body)
        except httpx.HTTPStatusError as e:
            logger.error("Email API rejected message", extra={
                "message_id": message.id,
                "status_code": e.response.status_code
            })
            return {
                "status": "error",
                "error": f"HTTP {e.response.status_code}",
                "error_type": "http_status"
            }
        except httpx.TimeoutException as e:
            logger.error("Email API timed out", extra={
                "message_id": message.id,
                "error": str(e)
            })
            return {"status": "error", "error": "Email API timed out", "error_type": "timeout"}
        except httpx.RequestError as e:
            logger.error("Email API request failed", extra={
                "message_id": message.id,
                "error": str(e)
            })
            return {"status": "error", "error": str(e), "error_type": "request"}

        return {
            "status": "sent",
            "external_id": response_data.get("id"),
            "provider_response": response_data
        }

    def start_sequence(self, sequence_id: str, recipients: List[str], task_id: str) -> Dict[str, Any]:
        """Ask the email provider to start a drip sequence."""
        response_data = self._post(
            f"/sequences/{sequence_id}/enrollments",
            {"recipients": recipients, "metadata": {"task_id": task_id}}
        )
        return {"status": "started", "external_id": response_data.get("id")}
