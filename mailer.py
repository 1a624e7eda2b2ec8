import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import config

logger = logging.getLogger(__name__)


def _send(msg):
    server = smtplib.SMTP(config.SMTP_SERVER, config.SMTP_PORT, timeout=15)
    try:
        server.starttls()
        server.login(config.EMAIL_USER, config.EMAIL_PASS)
        server.send_message(msg)
    finally:
        server.quit()


def mail_configured():
    return bool(config.EMAIL_USER and config.EMAIL_PASS)


def send_contact_email(contact):
    """Forward a contact form submission to the shop inbox."""
    if not mail_configured():
        logger.warning('EMAIL_USER/EMAIL_PASS not set; contact message from %s not mailed', contact['email'])
        return False

    msg = MIMEMultipart('alternative')
    msg['Subject'] = f"New Contact Form Submission from {contact['name']}"
    msg['From'] = config.EMAIL_USER
    msg['To'] = config.EMAIL_USER
    msg['Reply-To'] = contact['email']
    msg.attach(MIMEText(contact['message'], 'plain'))

    try:
        _send(msg)
    except (smtplib.SMTPException, OSError):
        logger.exception('Error sending contact email from %s', contact['email'])
        return False

    logger.info('Contact email sent from %s', contact['email'])
    return True


def send_order_notification(order):
    """Tell the shop about a new order; failures are logged, never raised."""
    if not mail_configured():
        logger.warning('EMAIL_USER/EMAIL_PASS not set; skipping notification for order #%s', order['id'])
        return False

    items_html = ''.join(
        f"<p><strong>{item['name']}</strong><br>Quantity: {item['qty']} × ₹{float(item['price']):.2f}</p>"
        for item in order['items']
    )
    html_content = f"""
    <html>
    <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
        <h2>New Order #{order['id']}</h2>
        <p><strong>Customer:</strong> {order.get('customer_name') or '-'} ({order.get('customer_phone') or '-'})</p>
        <p><strong>Event:</strong> {order.get('event_date')} {order.get('event_time')} at {order.get('event_place')}</p>
        <p><strong>Address:</strong> {order.get('address')} - {order.get('pincode')}</p>
        {items_html}
        <p><strong>Discount:</strong> ₹{float(order.get('discount_amount') or 0):.2f}</p>
        <p><strong>Total:</strong> ₹{float(order['final_total']):.2f}</p>
        <p><strong>Payment:</strong> {order['payment_method']} {order.get('payment_type') or ''}
           ({order['payment_status']}, paid ₹{float(order.get('amount_paid') or 0):.2f})</p>
        <p><a href="{config.PUBLIC_APP_URL}/orders">Open orders</a></p>
    </body>
    </html>
    """

    msg = MIMEMultipart('alternative')
    msg['Subject'] = f"{config.SHOP_NAME}: new order #{order['id']}"
    msg['From'] = config.EMAIL_USER
    msg['To'] = config.EMAIL_USER
    msg.attach(MIMEText(html_content, 'html'))

    try:
        _send(msg)
    except (smtplib.SMTPException, OSError):
        logger.exception('Error sending notification for order #%s', order['id'])
        return False

    logger.info('Order notification sent for order #%s', order['id'])
    return True
