import asyncio
import logging
from datetime import date
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Response

from servicing.constants import ALL, EmiStatus, HIDDEN_ON_EMI_VIEW, LOCKED_ROW_HINT, get_status_label
from servicing.documents import render_noc, render_receipt
from servicing.ordering import (
    ensure_payable,
    filter_rows,
    is_payable_now,
    next_payable,
    order_emis,
    window_rows,
)
from servicing.portfolio import (
    filter_loans,
    group_by_loan_type,
    group_pending_by_due_date,
    loan_ref,
    loan_type_name,
    loan_type_options,
)
from servicing.reconciler import derive_tenure_months, summarize_schedule
from servicing.utils.api_client import SmartLendClient
from .infrastructure import get_smartlend_client
from gateway.schemas import (
    AdminLoan,
    CalendarDay,
    CalendarEntry,
    EmiRow,
    EmiSchedule,
    LoanCard,
    LoanList,
    LoanStatusUpdate,
    LoanTypeData,
    LoanTypeUpdate,
    PaymentResult,
    ScheduleSummary,
)

logger = logging.getLogger(__name__)

router = APIRouter()

EmiStatusParam = Literal["ALL", "PENDING", "PAID", "LATE"]


def _float(value) -> Optional[float]:
    return float(value) if value is not None else None


def _emi_row(emi: dict, upcoming: Optional[dict] = None) -> EmiRow:
    payable = is_payable_now(emi, upcoming)
    locked = emi.get('status') == EmiStatus.PENDING.value and not payable
    return EmiRow(
        id=emi.get('id'),
        loan_id=emi.get('loan_id'),
        emi_number=emi.get('emi_number'),
        amount=_float(emi.get('amount')),
        due_date=emi.get('due_date'),
        status=emi.get('status'),
        status_label=get_status_label('status', emi.get('status')),
        payment_date=emi.get('payment_date'),
        transaction_ref=emi.get('transaction_ref'),
        remaining_balance=_float(emi.get('remaining_balance')),
        payable=payable,
        locked_hint=LOCKED_ROW_HINT if locked else None,
    )


def _loan_card_fields(loan: dict) -> dict:
    return dict(
        id=loan.get('id'),
        ref=loan_ref(loan.get('id')),
        loan_type_name=loan.get('loan_type_name'),
        customer_name=loan.get('customer_name'),
        purpose=loan.get('purpose'),
        amount=_float(loan.get('amount')),
        interest_rate=_float(loan.get('interest_rate')),
        tenure_months=_float(derive_tenure_months(None, loan)),
        loan_status=loan.get('loan_status'),
        status_label=get_status_label('loan_status', loan.get('loan_status')),
        submitted_at=loan.get('submitted_at'),
    )


def _schedule(loan_id: int, loan: dict, pack: dict, status: str = ALL,
              due_from: Optional[date] = None, due_to: Optional[date] = None,
              expanded: bool = False) -> EmiSchedule:
    ordered = order_emis(pack.get('emis'))
    upcoming = next_payable(ordered)
    summary = summarize_schedule(loan, pack, ordered)
    filtered = filter_rows(
        ordered,
        status=status,
        due_from=due_from.isoformat() if due_from else None,
        due_to=due_to.isoformat() if due_to else None,
    )
    window = window_rows(filtered, ordered, expanded=expanded)
    return EmiSchedule(
        loan_id=loan_id,
        summary=ScheduleSummary(
            paid_count=summary['paid_count'],
            emi_count=summary['emi_count'],
            last_paid_on=summary['last_paid_on'],
            principal=_float(summary['principal']),
            interest_rate=_float(summary['interest_rate']),
            tenure_months=_float(summary['tenure_months']),
            total_payable=_float(summary['total_payable']),
            total_interest=_float(summary['total_interest']),
            remaining_amount=_float(summary['remaining_amount']),
            remaining_emis=summary['remaining_emis'],
            is_cleared=summary['is_cleared'],
        ),
        next_payable_id=(upcoming or {}).get('id'),
        rows=[_emi_row(emi, upcoming) for emi in window['rows']],
        start=window['start'],
        end=window['end'],
        total_rows=len(filtered),
        can_expand=window['can_expand'],
    )


async def _load_loan(client: SmartLendClient, loan_id: int):
    """Customer loan record plus its EMI pack, fetched together."""
    loans, pack = await asyncio.gather(
        client.list_customer_loans(),
        client.get_loan_with_emis(loan_id),
    )
    loan = next((row for row in loans if row.get('id') == loan_id), {})
    return loan, pack


def _find_emi(pack: dict, emi_id: int) -> dict:
    emi = next((row for row in pack.get('emis') or [] if row.get('id') == emi_id), None)
    if emi is None:
        raise HTTPException(status_code=404, detail=f"EMI {emi_id} not found in loan {pack.get('id')}")
    return emi


def _pdf_response(document) -> Response:
    return Response(
        content=document.content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{document.filename}"'},
    )


# ===== Customer =====

@router.get("/loans", response_model=LoanList)
async def list_loans(
    loan_type: str = ALL,
    search: str = "",
    include_hidden: bool = False,
    client: SmartLendClient = Depends(get_smartlend_client),
):
    """
    Loan cards for the EMI payments page. Rejected and submitted loans are
    hidden unless include_hidden is set.
    """
    loans = await client.list_customer_loans()
    hidden = frozenset() if include_hidden else HIDDEN_ON_EMI_VIEW
    visible = filter_loans(loans, loan_type, search, hidden_statuses=hidden)
    return LoanList(
        loan_types=loan_type_options(loans),
        loans=[LoanCard(**_loan_card_fields(loan)) for loan in visible],
        groups={
            name: [loan.get('id') for loan in group]
            for name, group in group_by_loan_type(visible).items()
        },
    )


@router.get("/loans/calendar", response_model=List[CalendarDay])
async def emi_calendar(client: SmartLendClient = Depends(get_smartlend_client)):
    """Pending installments of every visible loan, grouped by due date."""
    loans = [loan for loan in filter_loans(await client.list_customer_loans()) if loan.get('id') is not None]
    packs = await asyncio.gather(*(client.get_loan_with_emis(loan['id']) for loan in loans))

    by_id = {loan['id']: loan for loan in loans}
    pending = [
        dict(emi, loan_id=loan['id'])
        for loan, pack in zip(loans, packs)
        for emi in pack.get('emis') or []
    ]

    return [
        CalendarDay(
            due_date=due_date,
            emis=[
                CalendarEntry(
                    loan_id=emi['loan_id'],
                    loan_ref=loan_ref(emi['loan_id']),
                    loan_type_name=loan_type_name(by_id.get(emi['loan_id'], {})),
                    emi_id=emi.get('id'),
                    amount=_float(emi.get('amount')),
                )
                for emi in emis
            ],
        )
        for due_date, emis in group_pending_by_due_date(pending).items()
    ]


@router.get("/loans/{loan_id}/emis", response_model=EmiSchedule)
async def get_emi_schedule(
    loan_id: int,
    status: EmiStatusParam = ALL,
    due_from: Optional[date] = None,
    due_to: Optional[date] = None,
    expanded: bool = False,
    client: SmartLendClient = Depends(get_smartlend_client),
):
    """
    Schedule summary plus the displayed rows. Filters narrow the display only;
    the payable installment is always taken from the full schedule.
    """
    loan, pack = await _load_loan(client, loan_id)
    return _schedule(loan_id, loan, pack, status, due_from, due_to, expanded)


@router.post("/loans/{loan_id}/emis/{emi_id}/pay", response_model=PaymentResult)
async def pay_emi(
    loan_id: int,
    emi_id: int,
    client: SmartLendClient = Depends(get_smartlend_client),
):
    """
    Pays one installment. Only the earliest unpaid installment is accepted;
    anything else is rejected with 409 before SmartLend is called.
    """
    loan, pack = await _load_loan(client, loan_id)
    emi = _find_emi(pack, emi_id)
    ensure_payable(emi, next_payable(order_emis(pack['emis'])))

    payment = await client.pay_emi(emi_id)
    refreshed = await client.get_loan_with_emis(loan_id)
    logger.info(f"Loan {loan_id}: EMI {emi_id} settled, schedule refreshed")
    return PaymentResult(
        message="EMI paid successfully",
        payment=_emi_row(dict(emi, **{k: v for k, v in payment.items() if v is not None})),
        schedule=_schedule(loan_id, loan, refreshed),
    )


@router.get("/loans/{loan_id}/emis/{emi_id}/receipt")
async def download_receipt(
    loan_id: int,
    emi_id: int,
    client: SmartLendClient = Depends(get_smartlend_client),
):
    loan, pack = await _load_loan(client, loan_id)
    emi = _find_emi(pack, emi_id)
    if emi.get('status') == EmiStatus.PENDING.value:
        raise HTTPException(status_code=409, detail="Receipt is available once the EMI is paid")
    return _pdf_response(render_receipt(emi, loan, pack))


@router.get("/loans/{loan_id}/noc")
async def download_noc(
    loan_id: int,
    client: SmartLendClient = Depends(get_smartlend_client),
):
    loan, pack = await _load_loan(client, loan_id)
    ordered = order_emis(pack.get('emis'))
    if not summarize_schedule(loan, pack, ordered)['is_cleared']:
        raise HTTPException(status_code=409, detail="NOC is available once the loan is fully repaid")
    return _pdf_response(render_noc(loan, pack, ordered))


# ===== Admin =====

@router.get("/admin/loan-types", response_model=List[LoanTypeData])
async def list_loan_types(client: SmartLendClient = Depends(get_smartlend_client)):
    rows = await client.list_loan_types()
    return [_loan_type(row) for row in rows]


@router.put("/admin/loan-types/{loan_type_id}", response_model=LoanTypeData)
async def update_loan_type(
    loan_type_id: int,
    payload: LoanTypeUpdate,
    client: SmartLendClient = Depends(get_smartlend_client),
):
    row = await client.update_loan_type(loan_type_id, payload.to_upstream())
    if row.get('id') is None:
        row['id'] = loan_type_id
    return _loan_type(row)


def _loan_type(row: dict) -> LoanTypeData:
    return LoanTypeData(
        id=row.get('id'),
        name=row.get('name'),
        interest_rate=_float(row.get('interest_rate')),
        penalty_rate_percent=_float(row.get('penalty_rate_percent')),
        max_tenure_years=row.get('max_tenure_years'),
        max_loan_amount=_float(row.get('max_loan_amount')),
        max_loans_per_customer=row.get('max_loans_per_customer'),
    )


def _admin_loan(loan: dict) -> AdminLoan:
    ordered = order_emis(loan.get('emis'))
    upcoming = next_payable(ordered)
    return AdminLoan(
        **_loan_card_fields(loan),
        closed_at=loan.get('closed_at'),
        status_history=loan.get('status_history') or [],
        emis=[_emi_row(emi, upcoming) for emi in ordered],
    )


@router.get("/admin/loans", response_model=List[AdminLoan])
async def list_admin_loans(client: SmartLendClient = Depends(get_smartlend_client)):
    return [_admin_loan(loan) for loan in await client.list_admin_loans()]


@router.get("/admin/loans/{loan_id}", response_model=AdminLoan)
async def get_admin_loan(loan_id: int, client: SmartLendClient = Depends(get_smartlend_client)):
    return _admin_loan(await client.get_admin_loan(loan_id))


@router.put("/admin/loans/{loan_id}/status", response_model=AdminLoan)
async def update_loan_status(
    loan_id: int,
    payload: LoanStatusUpdate,
    client: SmartLendClient = Depends(get_smartlend_client),
):
    loan = await client.update_loan_status(loan_id, payload.status, payload.comment)
    if loan.get('id') is None:
        loan['id'] = loan_id
    return _admin_loan(loan)


@router.delete("/admin/loans/{loan_id}", status_code=204)
async def delete_admin_loan(loan_id: int, client: SmartLendClient = Depends(get_smartlend_client)):
    await client.delete_admin_loan(loan_id)
    return Response(status_code=204)
