"""
Printable EMI receipts and loan-closure (NOC) certificates.

Both documents share one A4 layout: branded header, navy heading bar,
two-column table on a light fill, centred notes, branded footer. Values come
from the reconciler, so partial packs render placeholders instead of failing.
"""

import io
import logging
from collections import namedtuple
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_JUSTIFY
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from reportlab.platypus.flowables import HRFlowable

from servicing.constants import BRAND, EmiStatus, PLACEHOLDER
from servicing.ordering import order_emis
from servicing.reconciler import (
    compute_remaining_balance,
    compute_totals,
    derive_installment_index,
    derive_tenure_months,
    explicit_remaining_balance,
    resolve_emi_amount,
    resolve_interest_rate,
    resolve_principal,
    safe_decimal,
)

logger = logging.getLogger(__name__)

RenderedDocument = namedtuple('RenderedDocument', ['filename', 'content'])

# Page geometry (mm): outer margin plus inner padding of the middle section
OUTER_MARGIN = 18
INNER_PAD = 6
CONTENT_WIDTH = A4[0] - 2 * (OUTER_MARGIN + INNER_PAD) * mm
LABEL_WIDTH = 80 * mm

TABLE_FILL = colors.Color(240 / 255, 243 / 255, 245 / 255)
TABLE_TEXT = colors.Color(31 / 255, 41 / 255, 55 / 255)
ROW_DIVIDER = colors.Color(235 / 255, 235 / 255, 235 / 255)
BAR_DIVIDER = colors.Color(215 / 255, 215 / 255, 215 / 255)
NOTE_GREY = colors.Color(90 / 255, 90 / 255, 90 / 255)
FOOTER_GREY = colors.Color(110 / 255, 110 / 255, 110 / 255)


def _rgb(triple):
    return colors.Color(*(channel / 255 for channel in triple))


# ============================================================================
# Formatting
# ============================================================================

def format_amount(value) -> str:
    """Indian digit grouping, at most two decimals: 120000 -> 1,20,000."""
    amount = safe_decimal(value)
    if amount is None:
        return PLACEHOLDER
    try:
        amount = amount.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
    except InvalidOperation:
        logger.warning(f"Amount {amount} is out of printable range")
        return PLACEHOLDER
    sign = '-' if amount < 0 else ''
    whole, _, fraction = f"{abs(amount):f}".partition('.')
    fraction = fraction.rstrip('0')
    if len(whole) > 3:
        head, tail = whole[:-3], whole[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        whole = ','.join(groups + [tail])
    return f"{sign}{whole}.{fraction}" if fraction else f"{sign}{whole}"


def format_rate(value) -> str:
    rate = safe_decimal(value)
    if rate is None:
        return PLACEHOLDER
    return f"{rate.normalize():f}%"


def format_long_date(value) -> str:
    """05 January 2025; anything unparseable renders as the placeholder."""
    if not value:
        return PLACEHOLDER
    try:
        if isinstance(value, (date, datetime)):
            parsed = value
        else:
            parsed = datetime.fromisoformat(str(value).strip().replace('Z', '+00:00'))
        return parsed.strftime('%d %B %Y')
    except (TypeError, ValueError):
        logger.warning(f"Unparseable document date {value!r}")
        return PLACEHOLDER


def format_tenure(months) -> str:
    return f"{months} months" if months is not None else PLACEHOLDER


def format_loan_id(loan_id) -> str:
    if loan_id is None:
        return PLACEHOLDER
    return f"LN{str(loan_id).zfill(5)}"


def format_installment(index, tenure_months) -> str:
    if index is not None and tenure_months is not None:
        return f"{index} / {tenure_months}"
    if index is not None:
        return str(index)
    if tenure_months is not None:
        return f"- / {tenure_months}"
    return PLACEHOLDER


def receipt_filename(emi_id) -> str:
    return f"RCPT-{str(emi_id if emi_id is not None else 0).zfill(6)}.pdf"


def noc_filename(loan_id) -> str:
    return f"NOC_{str(loan_id if loan_id is not None else 0).zfill(6)}.pdf"


def _borrower(loan, pack) -> str:
    return (loan or {}).get('customer_name') or (pack or {}).get('customer_name') or 'Customer'


def _loan_id(loan, pack):
    loan_id = (loan or {}).get('id')
    return loan_id if loan_id is not None else (pack or {}).get('id')


# ============================================================================
# Content builders (no drawing)
# ============================================================================

def build_receipt_rows(emi, loan, pack):
    """Label/value rows of an EMI payment receipt."""
    emi = emi or {}
    principal = resolve_principal(pack, loan)
    interest_rate = resolve_interest_rate(pack, loan)
    tenure_months = derive_tenure_months(pack, loan)
    installment = derive_installment_index(emi, pack, loan)
    emi_amount = safe_decimal(emi.get('amount'))

    totals = compute_totals(pack, emi_amount, tenure_months, principal)
    remaining = compute_remaining_balance(
        principal, interest_rate, tenure_months, installment,
        explicit_remaining_balance(emi, pack),
    )

    return [
        ('Receipt No.', receipt_filename(emi.get('id'))[:-len('.pdf')]),
        ('Transaction Ref ID', emi.get('transaction_ref') or PLACEHOLDER),
        ('Loan ID', format_loan_id(_loan_id(loan, pack))),
        ('EMI No.', format_installment(installment, tenure_months)),
        ('EMI Amount', format_amount(emi_amount)),
        ('Paid On', format_long_date(emi.get('payment_date'))),
        ('Status', str(emi.get('status') or PLACEHOLDER).upper()),
        ('Interest', format_rate(interest_rate)),
        ('Tenure', format_tenure(tenure_months)),
        ('Principal', format_amount(principal)),
        ('Interest amount', format_amount(totals['total_interest'])),
        ('Total repayable amount', format_amount(totals['total_repayable'])),
        ('Remaining balance after this payment', format_amount(remaining)),
    ]


def build_noc_content(loan, pack, emis=None) -> dict:
    """Certification paragraphs and summary rows of a closure certificate."""
    loan = loan or {}
    if emis is None:
        emis = (pack or {}).get('emis') or loan.get('emis') or []
    emis = order_emis(emis)

    borrower = _borrower(loan, pack)
    loan_ref = format_loan_id(_loan_id(loan, pack))
    principal = resolve_principal(pack, loan)

    start_date = loan.get('submitted_at') or (emis[0].get('due_date') if emis else None)
    payment_dates = sorted(str(e['payment_date']) for e in emis if e.get('payment_date'))
    closed_date = loan.get('closed_at') or (payment_dates[-1] if payment_dates else None) or date.today().isoformat()

    paid_count = sum(1 for e in emis if str(e.get('status') or '').upper() == EmiStatus.PAID.value)
    interest_rate = resolve_interest_rate(pack, loan)
    tenure_months = derive_tenure_months(pack, loan)
    totals = compute_totals(pack, resolve_emi_amount(pack, loan), tenure_months, principal)

    paragraphs = [
        f"This is to certify that {borrower}, holder of Loan ID {loan_ref}, has successfully repaid the "
        f"entire loan amount as per the scheduled EMI plan. The loan was initiated on "
        f"{format_long_date(start_date)} and closed on {format_long_date(closed_date)}. All dues are "
        f"cleared and there are no outstanding liabilities on this account.",
        "Accordingly, we issue this No Objection Certificate (NOC) confirming that we have no objection "
        "to the closure of the loan account and the borrower's disengagement from this contract.",
    ]
    rows = [
        ('Loan ID', loan_ref),
        ('Borrower Name', borrower),
        ('Loan Amount', format_amount(principal)),
        ('Loan Start Date', format_long_date(start_date)),
        ('Loan Closed Date', format_long_date(closed_date)),
        ('Total EMIs Paid', str(paid_count or len(emis))),
        ('Interest Rate', format_rate(interest_rate)),
        ('Tenure', format_tenure(tenure_months)),
        ('Total Paid Amount', format_amount(totals['total_repayable'])),
    ]
    return {'borrower': borrower, 'paragraphs': paragraphs, 'rows': rows}


# ============================================================================
# Layout
# ============================================================================

def _styles():
    base = getSampleStyleSheet()['Normal']
    return {
        'body': ParagraphStyle('body', parent=base, fontName='Helvetica', fontSize=11,
                               leading=15, textColor=colors.Color(33 / 255, 33 / 255, 33 / 255)),
        'justified': ParagraphStyle('justified', parent=base, fontName='Helvetica', fontSize=11,
                                    leading=15, alignment=TA_JUSTIFY,
                                    textColor=colors.Color(33 / 255, 33 / 255, 33 / 255)),
        'bar': ParagraphStyle('bar', parent=base, fontName='Helvetica-Bold', fontSize=13,
                              leading=16, alignment=TA_CENTER, textColor=colors.white),
        'label': ParagraphStyle('label', parent=base, fontName='Helvetica-Bold', fontSize=11,
                                leading=14, textColor=TABLE_TEXT),
        'note': ParagraphStyle('note', parent=base, fontName='Helvetica', fontSize=10.5,
                               leading=14, alignment=TA_CENTER, textColor=NOTE_GREY),
    }


def _page_decorations(subtitle):
    """Header and footer drawn straight on the canvas of every page."""
    def draw(canvas, doc):
        width, height = A4
        canvas.saveState()
        canvas.setFillColor(_rgb(BRAND['blue']))
        canvas.setFont('Helvetica-Bold', 25)
        canvas.drawCentredString(width / 2, height - 20 * mm, BRAND['name'])
        canvas.setFont('Helvetica', 15)
        canvas.drawCentredString(width / 2, height - 28 * mm, subtitle)
        canvas.setFont('Helvetica', 9)
        canvas.drawCentredString(
            width / 2, height - 36 * mm,
            f"{BRAND['address']} | Contact: {BRAND['contact']} | Email: {BRAND['email']}",
        )

        canvas.drawCentredString(width / 2, 16 * mm, f"Email: {BRAND['email']}  |  Contact: {BRAND['contact']}")
        canvas.setFillColor(FOOTER_GREY)
        canvas.drawCentredString(
            width / 2, 11 * mm,
            f"© {date.today().year} {BRAND['name']}. System-generated document.",
        )
        canvas.restoreState()
    return draw


def _heading_bar(title, styles):
    bar = Table([[Paragraph(escape(title), styles['bar'])]], colWidths=[CONTENT_WIDTH])
    bar.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, -1), _rgb(BRAND['navy'])),
        ('TOPPADDING', (0, 0), (-1, -1), 4),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 4),
    ]))
    return [bar, Spacer(1, 3 * mm), HRFlowable(width='100%', thickness=0.5, color=BAR_DIVIDER), Spacer(1, 6 * mm)]


def _details_table(rows, styles):
    data = [[Paragraph(escape(label), styles['label']), value] for label, value in rows]
    table = Table(data, colWidths=[LABEL_WIDTH, CONTENT_WIDTH - LABEL_WIDTH])
    table.setStyle(TableStyle([
        ('BACKGROUND', (0, 0), (-1, -1), TABLE_FILL),
        ('TEXTCOLOR', (0, 0), (-1, -1), TABLE_TEXT),
        ('FONTNAME', (1, 0), (1, -1), 'Helvetica'),
        ('FONTSIZE', (1, 0), (1, -1), 11),
        ('ALIGN', (1, 0), (1, -1), 'RIGHT'),
        ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
        ('TOPPADDING', (0, 0), (-1, -1), 6),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 6),
        ('LINEBELOW', (0, 0), (-1, -1), 0.5, ROW_DIVIDER),
    ]))
    return table


def _signature_block():
    block = Table(
        [['Authorized By:'], ['SmartLendOfficer'], ['Loan Officer / Administrator']],
        colWidths=[60 * mm],
        hAlign='RIGHT',
    )
    block.setStyle(TableStyle([
        ('TEXTCOLOR', (0, 0), (-1, -1), _rgb(BRAND['blue'])),
        ('FONTNAME', (0, 0), (0, 0), 'Helvetica'),
        ('FONTSIZE', (0, 0), (0, 0), 11),
        ('FONTNAME', (0, 1), (0, 1), 'Courier-Oblique'),
        ('FONTSIZE', (0, 1), (0, 1), 14),
        ('ALIGN', (0, 1), (0, 2), 'CENTER'),
        ('FONTNAME', (0, 2), (0, 2), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 2), (0, 2), 11),
        ('LINEABOVE', (0, 2), (0, 2), 0.5, colors.black),
        ('TOPPADDING', (0, 1), (0, 1), 10),
    ]))
    return block


def _build_pdf(title, subtitle, story) -> bytes:
    buffer = io.BytesIO()
    side = (OUTER_MARGIN + INNER_PAD) * mm
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=side,
        rightMargin=side,
        topMargin=52 * mm,
        bottomMargin=26 * mm,
        title=title,
        author=BRAND['name'],
    )
    decorate = _page_decorations(subtitle)
    doc.build(story, onFirstPage=decorate, onLaterPages=decorate)
    return buffer.getvalue()


# ============================================================================
# Public renderers
# ============================================================================

def render_receipt(emi, loan, pack) -> RenderedDocument:
    """EMI payment receipt as PDF bytes, named RCPT-{emi id}.pdf."""
    styles = _styles()
    emi = emi or {}
    story = _heading_bar('EMI Payment Receipt', styles)
    story += [
        Paragraph(f"Dear {escape(_borrower(loan, pack))},", styles['body']),
        Spacer(1, 2 * mm),
        Paragraph("Thank you for your EMI payment. Below are the transaction details:", styles['body']),
        Spacer(1, 4 * mm),
        _details_table(build_receipt_rows(emi, loan, pack), styles),
        Spacer(1, 8 * mm),
        Paragraph("This receipt has been recorded in your dashboard for future reference.", styles['note']),
        Paragraph("For any discrepancies, kindly contact support within 48 hours.", styles['note']),
    ]
    filename = receipt_filename(emi.get('id'))
    content = _build_pdf(filename, 'EMI Payment Receipt', story)
    logger.info(f"Rendered receipt {filename} ({len(content)} bytes)")
    return RenderedDocument(filename, content)


def render_noc(loan, pack, emis=None) -> RenderedDocument:
    """No Objection Certificate as PDF bytes, named NOC_{loan id}.pdf."""
    styles = _styles()
    content_parts = build_noc_content(loan, pack, emis)
    story = _heading_bar('No Objection Certificate', styles)
    for paragraph in content_parts['paragraphs']:
        story += [Paragraph(escape(paragraph), styles['justified']), Spacer(1, 4 * mm)]
    story += [
        _details_table(content_parts['rows'], styles),
        Spacer(1, 8 * mm),
        Paragraph("This NOC is issued after full and final settlement of the loan account.", styles['note']),
        Paragraph(
            "For any queries, please reach out to our support team within 15 days of issuance.",
            styles['note'],
        ),
        Spacer(1, 10 * mm),
        _signature_block(),
    ]
    filename = noc_filename(_loan_id(loan, pack))
    content = _build_pdf(filename, 'No Objection Certificate', story)
    logger.info(f"Rendered NOC {filename} ({len(content)} bytes)")
    return RenderedDocument(filename, content)
