# mail.py
"""
Outbound notification dispatcher.

Sends transactional emails through the Brevo (Sendinblue) HTTP API. The
cascade only cares whether `send` succeeded; callers log any failure and
carry on.
"""

import html
import logging
from typing import Any, Dict, Mapping

import httpx

from errors import NotificationError
from settings import settings

logger = logging.getLogger(__name__)

_STYLE = """
    body { font-family: Arial, sans-serif; line-height: 1.6; color: #333; }
    .container { width: 90%; margin: auto; padding: 20px; border: 1px solid #ddd; border-radius: 5px; }
    .highlight { font-weight: bold; color: #007bff; }
    .footer { margin-top: 20px; font-size: 12px; color: #888; }
"""

# Template bodies use `str.format` placeholders filled from the send context.
TEMPLATES: Dict[str, str] = {
    "vendor-product-auto-published": """
        <h2>Hello {vendorName},</h2>
        <p>Your design was approved and your product
        <span class="highlight">{productName}</span> ({productPrice}) is now live.</p>
        <p><a href="{dashboardUrl}">Open your products</a></p>
    """,
    "vendor-product-validated-draft": """
        <h2>Hello {vendorName},</h2>
        <p>Your design was approved. Your product
        <span class="highlight">{productName}</span> ({productPrice}) has been saved as a draft
        and is ready to publish whenever you are.</p>
        <p><a href="{dashboardUrl}">Open your products</a></p>
    """,
    "vendor-product-published": """
        <h2>Hello {vendorName},</h2>
        <p>Your product <span class="highlight">{productName}</span> is now published.</p>
        <p><a href="{dashboardUrl}">Open your products</a></p>
    """,
    "design-approved": """
        <h2>Hello {vendorName},</h2>
        <p>Your design <span class="highlight">{designName}</span> was approved by
        {validatorName} on {approvalDate}.</p>
        <p><a href="{dashboardUrl}">Open your designs</a></p>
    """,
    "design-rejected": """
        <h2>Hello {vendorName},</h2>
        <p>Your design <span class="highlight">{designName}</span> needs changes.</p>
        <p>Reason: {rejectionReason}</p>
        <p><a href="{dashboardUrl}">Open your designs</a></p>
    """,
    "design-submission": """
        <h2>Hello {adminName},</h2>
        <p>{vendorName} submitted the design <span class="highlight">{designName}</span>
        for validation.</p>
        <p><a href="{validationUrl}">Review pending designs</a></p>
    """,
}


class _SafeContext(dict):
    """Leaves unknown placeholders empty instead of raising KeyError."""
    def __missing__(self, key):
        return ""


def render_template(template: str, context: Mapping[str, Any]) -> str:
    body = TEMPLATES.get(template)
    if body is None:
        raise NotificationError(f"Unknown email template '{template}'")
    # Context values come from vendors (design names, reasons) and must not inject markup.
    escaped = {key: "" if value is None else html.escape(str(value)) for key, value in context.items()}
    content = body.format_map(_SafeContext(escaped))
    return f"""
        <html>
        <head><style>{_STYLE}</style></head>
        <body>
            <div class="container">
                {content}
                <p class="footer">Printalma</p>
            </div>
        </body>
        </html>
    """


class MailService:
    """Brevo-backed implementation of `send(to, subject, template, context)`."""

    def __init__(self, api_key: str = None, sender: str = None, transport: httpx.AsyncBaseTransport = None):
        self.api_key = settings.BREVO_API_KEY if api_key is None else api_key
        self.sender = settings.EMAIL_SENDER if sender is None else sender
        self._transport = transport

    async def send(self, to: str, subject: str, template: str, context: Mapping[str, Any]) -> None:
        if not self.api_key or not self.sender:
            raise NotificationError("BREVO_API_KEY or EMAIL_SENDER not set")
        if not to:
            raise NotificationError(f"No recipient for template '{template}'")

        payload = {
            "sender": {"email": self.sender, "name": settings.EMAIL_SENDER_NAME},
            "to": [{"email": to}],
            "subject": subject,
            "htmlContent": render_template(template, context),
        }
        headers = {
            "api-key": self.api_key,
            "accept": "application/json",
            "content-type": "application/json",
        }

        try:
            async with httpx.AsyncClient(timeout=settings.MAIL_HTTP_TIMEOUT, transport=self._transport) as client:
                response = await client.post(settings.BREVO_API_URL, headers=headers, json=payload)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise NotificationError(f"Brevo request failed for {to}: {e}") from e

        if response.status_code != 201:
            raise NotificationError(
                f"Brevo API error for {to}. Status: {response.status_code}, Response: {response.text}"
            )
        logger.info(f"EMAIL: sent '{template}' to {to}")


_mailer = MailService()


def get_mailer() -> MailService:
    """FastAPI dependency returning the process-wide mail dispatcher."""
    return _mailer
