"""Transactional email delivery.

Every public method is fire-and-forget from the caller's point of view: it
returns True/False and never raises. Without SMTP credentials the message is
logged instead of sent.
"""
import asyncio
import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from html import escape
from typing import Callable, Optional

from errors import NotificationError
from models import Order
from monitoring import notification_failures_counter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SmtpSettings:
    host: str
    port: int
    user: str
    password: str
    sender: str


@dataclass(frozen=True)
class Recipient:
    email: str
    full_name: str


@dataclass(frozen=True)
class ShippingUpdate:
    status: str
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    estimated_delivery: Optional[str] = None


_STYLE = """
      body { font-family: Arial, sans-serif; line-height: 1.6; color: #333; }
      .container { max-width: 600px; margin: 0 auto; padding: 20px; }
      .header { background: #001f3f; color: white; padding: 20px; text-align: center; }
      .content { background: #f9f9f9; padding: 20px; }
      .panel { background: white; padding: 15px; margin: 15px 0; border-radius: 5px; }
      .footer { text-align: center; padding: 20px; color: #666; }
"""


def _layout(title: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html>
<head><style>{_STYLE}</style></head>
<body>
  <div class="container">
    <div class="header">
      <h1>TechStore</h1>
      <h2>{title}</h2>
    </div>
    <div class="content">
{body}
    </div>
    <div class="footer">
      <p>&copy; TechStore. All rights reserved.</p>
    </div>
  </div>
</body>
</html>
"""


def _items_html(order: Order) -> str:
    return "".join(
        f'<div style="margin: 10px 0; padding: 10px; border-bottom: 1px solid #eee;">'
        f"<strong>{escape(item.name)}</strong><br>"
        f"Quantity: {item.quantity} &times; ${item.price}</div>"
        for item in order.items
    )


def render_order_confirmation(order: Order, recipient: Recipient) -> str:
    order_date = order.created_at.strftime("%Y-%m-%d") if order.created_at else ""
    body = f"""
      <p>Hi {escape(recipient.full_name)},</p>
      <p>Thank you for your order! We're getting it ready to be shipped.</p>
      <div class="panel">
        <h3>Order Details</h3>
        <p><strong>Order Number:</strong> {order.order_number}</p>
        <p><strong>Order Date:</strong> {order_date}</p>
        <p><strong>Total Amount:</strong> ${order.final_amount}</p>
        <h4>Items Ordered:</h4>
        {_items_html(order)}
      </div>
      <p>We'll notify you when your order ships.</p>
      <p>Thank you for shopping with TechStore!</p>"""
    return _layout("Order Confirmed!", body)


def render_guest_order_confirmation(order: Order, recipient: Recipient) -> str:
    body = f"""
      <p>Hi {escape(recipient.full_name)},</p>
      <p>Thank you for your order! You checked out as a guest.</p>
      <div class="panel">
        <h3>Order Details</h3>
        <p><strong>Order Number:</strong> {order.order_number}</p>
        <p><strong>Total Amount:</strong> ${order.final_amount}</p>
        <h4>Items Ordered:</h4>
        {_items_html(order)}
      </div>
      <p>Track your order any time with your order number and this email address,
      or create an account to keep all your orders in one place.</p>"""
    return _layout("Order Confirmed!", body)


def render_shipping_update(order: Order, recipient: Recipient, update: ShippingUpdate) -> str:
    tracking = f"<p><strong>Tracking Number:</strong> {escape(update.tracking_number)}</p>" if update.tracking_number else ""
    carrier = f"<p><strong>Carrier:</strong> {escape(update.carrier)}</p>" if update.carrier else ""
    body = f"""
      <p>Hi {escape(recipient.full_name)},</p>
      <p>Your order #{order.order_number} has been {update.status}.</p>
      <div class="panel">
        <h3>Shipping Information</h3>
        <p><strong>Status:</strong> {update.status}</p>
        {tracking}
        {carrier}
        <p><strong>Estimated Delivery:</strong> {update.estimated_delivery or "Not available"}</p>
      </div>
      <p>Thank you for shopping with TechStore!</p>"""
    return _layout("Shipping Update", body)


class EmailService:
    """Service for sending order emails."""

    def __init__(self, smtp_settings: Optional[SmtpSettings] = None):
        """
        Initialize email service.

        Args:
            smtp_settings: SMTP connection settings, None to only log emails
        """
        self.smtp_settings = smtp_settings

    async def send_order_confirmation(self, order: Order, recipient: Recipient) -> bool:
        """Send the order confirmation to an account holder."""
        return await self._dispatch(
            "order_confirmation", order, recipient,
            f"Order Confirmation - #{order.order_number}",
            lambda: render_order_confirmation(order, recipient)
        )

    async def send_guest_order_confirmation(self, order: Order, recipient: Recipient) -> bool:
        """Send the order confirmation to a guest shopper."""
        return await self._dispatch(
            "guest_order_confirmation", order, recipient,
            f"Order Confirmation - #{order.order_number}",
            lambda: render_guest_order_confirmation(order, recipient)
        )

    async def send_shipping_update(self, order: Order, recipient: Recipient, update: ShippingUpdate) -> bool:
        """Tell the customer their order moved along."""
        return await self._dispatch(
            "shipping_update", order, recipient,
            f"Shipping Update - Order #{order.order_number}",
            lambda: render_shipping_update(order, recipient, update)
        )

    def _build(self, recipient: Recipient, subject: str, html: str) -> EmailMessage:
        message = EmailMessage()
        sender = self.smtp_settings.sender if self.smtp_settings else "no-reply@techstore.local"
        message["From"] = f"TechStore <{sender}>"
        message["To"] = recipient.email
        message["Subject"] = subject
        message.set_content("This message requires an HTML capable email client.")
        message.add_alternative(html, subtype="html")
        return message

    async def _dispatch(
        self,
        kind: str,
        order: Order,
        recipient: Recipient,
        subject: str,
        render: Callable[[], str]
    ) -> bool:
        try:
            await self._send(self._build(recipient, subject, render()))
        except Exception as e:
            notification_failures_counter.add(1, {"type": kind})
            logger.error("Email sending failed", extra={
                "email_type": kind,
                "order_number": order.order_number,
                "recipient": recipient.email,
                "error": str(e)
            })
            return False

        logger.info("Email sent", extra={
            "email_type": kind,
            "order_number": order.order_number,
            "recipient": recipient.email,
            "delivered": self.smtp_settings is not None
        })
        return True

    async def _send(self, message: EmailMessage) -> None:
        if self.smtp_settings is None:
            logger.info("SMTP not configured, email not delivered", extra={
                "to": message["To"],
                "subject": message["Subject"]
            })
            return
        await asyncio.to_thread(self._deliver, message)

    def _deliver(self, message: EmailMessage) -> None:
        settings = self.smtp_settings
        try:
            with smtplib.SMTP(settings.host, settings.port, timeout=30) as smtp:
                smtp.starttls()
                smtp.login(settings.user, settings.password)
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(f"SMTP delivery to {message['To']} failed: {e}") from e
