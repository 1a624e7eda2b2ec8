"""Per-order invoice PDF."""
from io import BytesIO
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_RIGHT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

import config

BRAND_COLOR = colors.HexColor('#b9314f')
CONTACT_LINE = 'Phone: +91 95660 61075 | Email: klstall.decors@gmail.com'

STATUS_COLORS = {
    'cancelled': colors.red,
    'returned': colors.HexColor('#ff8000'),
    'completed': colors.HexColor('#009600'),
}


def status_color(status):
    return STATUS_COLORS.get((status or '').lower(), colors.black)


def _money(value):
    return f'INR {float(value or 0):,.2f}'


def invoice_filename(order):
    return f"Invoice_Order_{order['id']}.pdf"


def build_invoice(order, customer_email=None) -> bytes:
    buffer = BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=A4, rightMargin=30, leftMargin=30, topMargin=30, bottomMargin=30,
                            title=f"Invoice #{order['id']}")
    styles = getSampleStyleSheet()
    title_style = ParagraphStyle('InvoiceTitle', parent=styles['Heading1'], fontSize=22,
                                 textColor=BRAND_COLOR, alignment=TA_CENTER, spaceAfter=6)
    heading_style = ParagraphStyle('InvoiceHeading', parent=styles['Heading2'], fontSize=13, spaceAfter=8)
    status = order.get('status') or 'pending'

    elements = [
        Paragraph(f'<b>{escape(config.SHOP_NAME)}</b>', title_style),
        Paragraph('Your Event, Our Perfection!', ParagraphStyle('Tagline', parent=styles['Normal'],
                                                                 alignment=TA_CENTER)),
        Spacer(1, 20),
        Paragraph(f"<b>INVOICE #{order['id']}</b>", heading_style),
    ]

    details = Table([
        ['Customer:', order.get('customer_name') or 'Customer'],
        ['Email:', customer_email or 'Not provided'],
        ['Phone:', order.get('customer_phone') or '-'],
        ['Event:', f"{order.get('event_date') or ''} {order.get('event_time') or ''} at {order.get('event_place') or '-'}"],
        ['Order Date:', (order.get('created_at') or '')[:19].replace('T', ' ')],
        ['Payment:', f"{order.get('payment_method') or 'N/A'} ({order.get('payment_status') or 'pending'})"],
        ['Order Status:', status.capitalize()],
    ], colWidths=[1.6 * inch, 4.4 * inch])
    details.setStyle(TableStyle([
        ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), 10),
        ('TEXTCOLOR', (1, -1), (1, -1), status_color(status)),
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
    ]))
    elements += [details, Spacer(1, 18), Paragraph('<b>Items</b>', heading_style)]

    rows = [['Item', 'Qty', 'Price', 'Total']]
    for idx, item in enumerate(order.get('items') or [], start=1):
        qty = item.get('qty') or 1
        price = float(item.get('price') or 0)
        rows.append([item.get('name') or f'Item {idx}', str(qty), _money(price), _money(price * qty)])
    if order.get('discount_applied'):
        rows.append(['', '', 'Discount:', f"- {_money(order.get('discount_amount'))}"])
    rows.append(['', '', 'Grand Total:', _money(order.get('final_total'))])

    items = Table(rows, colWidths=[3 * inch, 0.7 * inch, 1.3 * inch, 1.3 * inch])
    items.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, 0), BRAND_COLOR),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('GRID', (0, 0), (-1, -2), 0.5, colors.grey),
        ('ALIGN', (1, 0), (-1, -1), 'RIGHT'),
        ('FONTNAME', (0, -1), (-1, -1), 'Helvetica-Bold'),
        ('TEXTCOLOR', (0, -1), (-1, -1), BRAND_COLOR),
    ]))
    elements += [items, Spacer(1, 30)]

    elements.append(Paragraph(
        f'<i>Thank you for choosing {escape(config.SHOP_NAME)}!<br/>{CONTACT_LINE}</i>',
        ParagraphStyle('Footer', parent=styles['Normal'], alignment=TA_RIGHT, fontSize=9, textColor=colors.grey),
    ))

    doc.build(elements)
    return buffer.getvalue()
