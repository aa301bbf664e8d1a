import httpx
from typing import Any, Dict, List, Optional, Union

from dashboard.core.config import get_settings
from dashboard.utils.logger import get_logger

logger = get_logger("email")

RESEND_API_URL = "https://api.resend.com/emails"


async def send_email(
    to: Union[str, List[str]],
    subject: str,
    html: str,
    from_address: Optional[str] = None,
) -> Dict[str, Any]:
    """Send a transactional email through Resend. Returns the API response body."""
    settings = get_settings()
    if not settings.RESEND_API_KEY:
        raise ValueError("RESEND_API_KEY is not configured")

    payload = {
        "from": from_address or settings.EMAIL_FROM,
        "to": to if isinstance(to, list) else [to],
        "subject": subject,
        "html": html,
    }
    headers = {"Authorization": f"Bearer {settings.RESEND_API_KEY}"}

    async with httpx.AsyncClient() as client:
        response = await client.post(RESEND_API_URL, json=payload, headers=headers)
        if response.status_code >= 400:
            logger.error(f"Failed to send email: {response.status_code} {response.text}")
        response.raise_for_status()
        return response.json()
