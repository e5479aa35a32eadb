"""
Loan-list views for the EMI payments page and the EMI calendar.
"""

from collections import OrderedDict
from typing import Dict, List

from servicing.constants import ALL, EmiStatus, HIDDEN_ON_EMI_VIEW

OTHER_LOAN_TYPE = 'Other'


def loan_ref(loan_id) -> str:
    """Short display reference, e.g. ln007."""
    return f"ln{str(loan_id if loan_id is not None else '').zfill(3)}"


def loan_type_name(loan: dict) -> str:
    return loan.get('loan_type_name') or OTHER_LOAN_TYPE


def loan_type_options(loans) -> List[str]:
    names = OrderedDict((loan_type_name(loan), None) for loan in loans or [])
    return [ALL, *names.keys()]


def filter_loans(loans, loan_type: str = ALL, search: str = '',
                 hidden_statuses=HIDDEN_ON_EMI_VIEW) -> List[dict]:
    """
    Which loan cards appear: hidden statuses dropped, then type and
    free-text (id or type name, case-insensitive) filters.
    """
    rows = [loan for loan in loans or [] if loan.get('loan_status') not in hidden_statuses]
    if loan_type and loan_type != ALL:
        rows = [loan for loan in rows if loan_type_name(loan) == loan_type]
    term = (search or '').strip().lower()
    if term:
        rows = [
            loan for loan in rows
            if term in str(loan.get('id')) or term in loan_type_name(loan).lower()
        ]
    return rows


def group_by_loan_type(loans) -> Dict[str, List[dict]]:
    grouped = OrderedDict()
    for loan in loans or []:
        grouped.setdefault(loan_type_name(loan), []).append(loan)
    return grouped


def group_pending_by_due_date(emis) -> Dict[str, List[dict]]:
    """PENDING installments keyed by ISO due date, dates ascending."""
    grouped = {}
    for emi in emis or []:
        if emi.get('status') == EmiStatus.PENDING.value and emi.get('due_date'):
            grouped.setdefault(emi['due_date'], []).append(emi)
    return OrderedDict(sorted(grouped.items()))
