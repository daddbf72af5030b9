# levies/notices.py
"""
Levy notices: the data behind a notice, its PDF rendering and delivery by
email to the lot's primary contact.
"""
import io
import logging
from decimal import Decimal
from typing import Any, Dict, List

from django.db.models import Sum
from django.utils import timezone
from django.utils.html import escape
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import mm
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer

from common.errors import CollaboratorError, NotFound, ValidationError, parse_id
from emails.models import EmailStatus
from emails.services import email_enabled, send_templated_email
from schemes.models import Lot, LotStatus
from .models import LevyItem, LevyItemStatus

logger = logging.getLogger(__name__)

ARREARS_STATUSES = (LevyItemStatus.SENT, LevyItemStatus.PARTIAL, LevyItemStatus.OVERDUE)


def _display_date(d) -> str:
    return d.strftime("%d/%m/%Y") if d else ""


def _currency(amount) -> str:
    return f"${Decimal(amount):,.2f}"


def get_levy_item(item_id, organisation) -> LevyItem:
    item_id = parse_id(item_id, NotFound("Levy item not found"))
    item = (
        LevyItem.objects.select_related("lot", "period", "scheme", "scheme__organisation")
        .filter(id=item_id, scheme__organisation=organisation)
        .first()
    )
    if item is None:
        raise NotFound("Levy item not found")
    return item


def primary_owner(lot: Lot):
    ownership = (
        lot.ownerships.select_related("owner")
        .filter(receive_levy_notices=True)
        .order_by("-is_primary_contact", "id")
        .first()
    )
    return ownership.owner if ownership else None


def arrears_for(item: LevyItem) -> Decimal:
    """Sum of positive unpaid balances on the lot's items from other periods."""
    total = Decimal("0.00")
    others = (
        LevyItem.objects.filter(lot_id=item.lot_id, status__in=ARREARS_STATUSES)
        .exclude(period_id=item.period_id)
        .only("total_levy_amount", "amount_paid")
    )
    for other in others:
        if other.balance > 0:
            total += other.balance
    return total


def entitlement_display(lot: Lot) -> str:
    total = (
        Lot.objects.filter(scheme_id=lot.scheme_id, status=LotStatus.ACTIVE).aggregate(t=Sum("unit_entitlement"))["t"]
        or Decimal("0")
    )
    pct = (lot.unit_entitlement / total * 100) if total > 0 else Decimal("0")
    return f"{lot.unit_entitlement.normalize():f}/{total.normalize():f} ({pct:.1f}%)"


def payment_reference(item: LevyItem) -> str:
    return f"LOT{item.lot.lot_number}-{''.join(item.period.period_name.split())}"


def build_notice_data(item: LevyItem) -> Dict[str, Any]:
    scheme = item.scheme
    org = scheme.organisation
    lot = item.lot
    owner = primary_owner(lot)
    lot_address = lot.street_address or (
        f"{lot.unit_number + '/' if lot.unit_number else ''}{scheme.address}"
    )
    return {
        "levy_item_id": item.id,
        "scheme_name": scheme.scheme_name,
        "scheme_number": scheme.scheme_number,
        "scheme_address": scheme.address,
        "abn": scheme.abn,
        "owner_name": owner.display_name if owner else "Owner",
        "owner_email": owner.email if owner else None,
        "lot_number": lot.lot_number,
        "lot_address": lot_address,
        "period_name": item.period.period_name,
        "period_start": item.period.period_start,
        "period_end": item.period.period_end,
        "admin_levy_amount": item.admin_levy_amount,
        "capital_levy_amount": item.capital_levy_amount,
        "total_levy_amount": item.total_levy_amount,
        "arrears_amount": arrears_for(item),
        "unit_entitlement": entitlement_display(lot),
        "due_date": item.due_date,
        "bsb": scheme.trust_bsb,
        "account_number": scheme.trust_account_number,
        "account_name": scheme.trust_account_name,
        "payment_reference": payment_reference(item),
        "manager_name": org.name,
        "manager_email": org.email,
        "manager_phone": org.phone,
        "notice_date": timezone.localdate(),
    }


def render_levy_notice_pdf(data: Dict[str, Any]) -> bytes:
    buf = io.BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=A4,
        leftMargin=18 * mm,
        rightMargin=18 * mm,
        topMargin=18 * mm,
        bottomMargin=18 * mm,
        title=f"Levy notice {data['payment_reference']}",
    )
    styles = getSampleStyleSheet()
    title_style = ParagraphStyle(
        "NoticeTitle",
        parent=styles["Title"],
        fontSize=18,
        textColor=colors.HexColor("#02667F"),
        spaceAfter=6,
    )
    heading_style = ParagraphStyle(
        "NoticeHeading",
        parent=styles["Heading3"],
        textColor=colors.HexColor("#334155"),
        spaceBefore=8,
        spaceAfter=4,
    )
    normal = styles["Normal"]

    story = [
        Paragraph("<b>Levy Notice</b>", title_style),
        Paragraph(f"<b>{escape(data['scheme_name'])}</b> ({data['scheme_number']})", normal),
        Paragraph(escape(data["scheme_address"]), normal),
    ]
    if data.get("abn"):
        story.append(Paragraph(f"ABN {data['abn']}", normal))
    story.append(Spacer(1, 6 * mm))

    story.append(Paragraph(f"To: <b>{escape(data['owner_name'])}</b>", normal))
    story.append(Paragraph(f"Lot {escape(data['lot_number'])}, {escape(data['lot_address'])}", normal))
    story.append(Paragraph(f"Unit entitlement: {data['unit_entitlement']}", normal))
    story.append(Paragraph(f"Notice date: {_display_date(data['notice_date'])}", normal))

    story.append(Paragraph("Levies for this period", heading_style))
    rows: List[List[str]] = [
        ["Period", f"{data['period_name']} ({_display_date(data['period_start'])} - {_display_date(data['period_end'])})"],
        ["Administrative fund", _currency(data["admin_levy_amount"])],
        ["Capital works fund", _currency(data["capital_levy_amount"])],
        ["Total this period", _currency(data["total_levy_amount"])],
    ]
    if data["arrears_amount"] > 0:
        rows.append(["Arrears from earlier periods", _currency(data["arrears_amount"])])
        rows.append(["Total now payable", _currency(data["total_levy_amount"] + data["arrears_amount"])])
    rows.append(["Due date", _display_date(data["due_date"])])

    table = Table(rows, colWidths=[70 * mm, 100 * mm])
    table.setStyle(TableStyle([
        ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 10),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
        ("ROWBACKGROUNDS", (0, 0), (-1, -1), [colors.white, colors.HexColor("#F8FAFC")]),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
    ]))
    story.append(table)

    story.append(Paragraph("How to pay", heading_style))
    if data.get("bsb") and data.get("account_number"):
        story.append(Paragraph(f"Account name: {escape(data.get('account_name') or data['scheme_name'])}", normal))
        story.append(Paragraph(f"BSB: {data['bsb']}  Account: {data['account_number']}", normal))
    story.append(Paragraph(f"Payment reference: <b>{data['payment_reference']}</b>", normal))

    story.append(Spacer(1, 8 * mm))
    contact = ", ".join(p for p in [data.get("manager_email"), data.get("manager_phone")] if p)
    story.append(Paragraph(escape(f"Issued by {data['manager_name']}" + (f" ({contact})" if contact else "")), normal))

    doc.build(story)
    return buf.getvalue()


def generate_levy_notice(item: LevyItem, data: Dict[str, Any] = None) -> bytes:
    """Render the notice PDF and stamp notice_generated_at."""
    pdf = render_levy_notice_pdf(data or build_notice_data(item))
    item.notice_generated_at = timezone.now()
    item.save(update_fields=["notice_generated_at", "updated_at"])
    return pdf


def send_levy_notice(item: LevyItem) -> LevyItem:
    """
    Email the notice PDF to the lot's primary contact. A pending item moves
    to sent; any other status is kept and only notice_sent_at is stamped.
    """
    if not email_enabled():
        raise CollaboratorError("Email service is not configured")
    owner = primary_owner(item.lot)
    if owner is None or not owner.email:
        raise ValidationError(f"No email address found for lot {item.lot.lot_number} owner")

    data = build_notice_data(item)
    pdf = generate_levy_notice(item, data)
    log = send_templated_email(
        "levy_notice",
        to=owner.email,
        context={
            "owner_name": data["owner_name"],
            "scheme_name": data["scheme_name"],
            "lot_number": data["lot_number"],
            "period_name": data["period_name"],
            "total_amount": f"{data['total_levy_amount']:,.2f}",
            "due_date": _display_date(data["due_date"]),
            "payment_reference": data["payment_reference"],
            "organisation_name": data["manager_name"],
        },
        attachments=[(f"levy-notice-{data['payment_reference']}.pdf", pdf, "application/pdf")],
        organisation=item.scheme.organisation,
    )
    if log.status != EmailStatus.SENT:
        raise CollaboratorError(log.error_message or f"Levy notice email {log.status}")

    item.notice_sent_at = timezone.now()
    fields = ["notice_sent_at", "updated_at"]
    if item.status == LevyItemStatus.PENDING:
        item.status = LevyItemStatus.SENT
        fields.append("status")
    item.save(update_fields=fields)
    return item


def _for_period(period_id, organisation, action) -> Dict[str, Any]:
    period_id = parse_id(period_id, NotFound("Levy period not found"))
    items = list(
        LevyItem.objects.select_related("lot", "period", "scheme", "scheme__organisation")
        .filter(period_id=period_id, scheme__organisation=organisation)
        .order_by("lot_id")
    )
    if not items:
        raise NotFound("No levy items found for this period")
    results = []
    for item in items:
        try:
            action(item)
            results.append({"id": item.id, "success": True})
        except (ValidationError, CollaboratorError) as exc:
            logger.warning("Levy notice for item %s failed: %s", item.id, exc.message)
            results.append({"id": item.id, "success": False, "error": exc.message})
    succeeded = sum(1 for r in results if r["success"])
    return {"total": len(items), "succeeded": succeeded, "failed": len(items) - succeeded, "results": results}


def generate_notices_for_period(period_id, organisation) -> Dict[str, Any]:
    return _for_period(period_id, organisation, generate_levy_notice)


def send_notices_for_period(period_id, organisation) -> Dict[str, Any]:
    if not email_enabled():
        raise CollaboratorError("Email service is not configured")
    return _for_period(period_id, organisation, send_levy_notice)
