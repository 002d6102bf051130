"""
Receipt Service — receipt numbering and A4 PDF receipts for paid transactions.
"""
import io
import secrets
from datetime import datetime
from decimal import Decimal

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas
from sqlalchemy.orm import Session

from coursepay.config import get_settings
from coursepay.errors import ValidationError
from coursepay.models.transaction import Transaction
from coursepay.services.pricing import GST_RATE
from coursepay.services.transaction_state import SUCCESS


def generate_receipt_number(now: datetime = None) -> str:
    """Format: RCP-YYYYMMDD-NNNNN"""
    now = now or datetime.utcnow()
    return f"RCP-{now.strftime('%Y%m%d')}-{secrets.randbelow(100000):05d}"


def _money(currency: str, amount) -> str:
    return f"{currency} {Decimal(str(amount or 0)):,.2f}"


class ReceiptService:

    @staticmethod
    def assign_number(db: Session, txn: Transaction) -> str:
        """Give ``txn`` a receipt number once; collisions are retried."""
        if txn.receipt_number:
            return txn.receipt_number
        for _ in range(10):
            candidate = generate_receipt_number()
            if not db.query(Transaction).filter(Transaction.receipt_number == candidate).first():
                txn.receipt_number = candidate
                return candidate
        raise ValidationError("Could not allocate a receipt number")

    @staticmethod
    def render_pdf(txn: Transaction) -> bytes:
        """Render the receipt for a successful transaction as PDF bytes."""
        if txn.status != SUCCESS:
            raise ValidationError("Receipt is only available for successful payments")

        settings = get_settings()
        buffer = io.BytesIO()
        c = canvas.Canvas(buffer, pagesize=A4)
        width, height = A4
        margin = 20 * mm
        y = height - margin

        # Company header
        c.setFont("Helvetica-Bold", 16)
        c.drawString(margin, y, settings.COMPANY_NAME)
        c.setFont("Helvetica", 9)
        c.drawString(margin, y - 14, settings.COMPANY_ADDRESS)
        c.drawString(margin, y - 26, f"Email: {settings.COMPANY_EMAIL}")
        c.drawString(margin, y - 38, f"GSTIN: {settings.COMPANY_GSTIN}")

        c.setFont("Helvetica-Bold", 14)
        c.drawRightString(width - margin, y, "PAYMENT RECEIPT")
        c.setFont("Helvetica", 9)
        c.drawRightString(width - margin, y - 14, f"Receipt No: {txn.receipt_number or '-'}")
        paid_on = txn.completed_at or txn.initiated_at
        c.drawRightString(width - margin, y - 26, f"Date: {paid_on.strftime('%d %b %Y %H:%M') if paid_on else '-'}")

        y -= 55
        c.setStrokeColor(colors.grey)
        c.setLineWidth(0.5)
        c.line(margin, y, width - margin, y)

        # Parties
        y -= 20
        c.setFont("Helvetica-Bold", 10)
        c.drawString(margin, y, "Billed To")
        c.drawString(width / 2, y, "Transaction")
        c.setFont("Helvetica", 9)
        student = txn.user
        left = [
            student.name if student else "-",
            student.email if student else "-",
            (student.phone or "") if student else "",
        ]
        right = [
            f"Transaction ID: {txn.transaction_id}",
            f"Gateway Ref: {txn.gateway_transaction_id or '-'}",
            f"Payment Method: {txn.payment_method or 'N/A'}",
        ]
        for i, line in enumerate(left):
            c.drawString(margin, y - 14 * (i + 1), line)
        for i, line in enumerate(right):
            c.drawString(width / 2, y - 14 * (i + 1), line)

        # Amount table
        y -= 75
        c.setFont("Helvetica-Bold", 10)
        c.drawString(margin, y, "Description")
        c.drawRightString(width - margin, y, "Amount")
        y -= 6
        c.line(margin, y, width - margin, y)

        course_title = txn.course.title if txn.course else f"Course #{txn.course_id}"
        currency = txn.currency or settings.CURRENCY
        rows = [(f"{course_title} - Course Enrollment", _money(currency, txn.original_amount))]
        if txn.discount_amount and Decimal(str(txn.discount_amount)) > 0:
            label = f"Discount ({txn.discount_code})" if txn.discount_code else "Discount"
            rows.append((label, "- " + _money(currency, txn.discount_amount)))
        rows.append(("Subtotal", _money(currency, txn.subtotal_amount)))
        rows.append((f"GST @ {int(GST_RATE * 100)}%", _money(currency, txn.gst_amount)))

        c.setFont("Helvetica", 9)
        for label, amount in rows:
            y -= 16
            c.drawString(margin, y, label)
            c.drawRightString(width - margin, y, amount)

        y -= 10
        c.line(margin, y, width - margin, y)
        y -= 18
        c.setFont("Helvetica-Bold", 11)
        c.drawString(margin, y, "Total Paid")
        c.drawRightString(width - margin, y, _money(currency, txn.final_amount))

        c.setFont("Helvetica-Oblique", 8)
        c.setFillColor(colors.grey)
        c.drawString(margin, margin, "This is a computer generated receipt and does not require a signature.")

        c.showPage()
        c.save()
        return buffer.getvalue()
