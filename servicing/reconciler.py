"""
Financial reconciliation for loan / EMI-pack snapshots.

Each derived value (tenure, installment index, totals, remaining balance)
has an ordered fallback chain: explicit authoritative fields first,
formula-derived values second, None last. Nothing here raises on missing or
malformed data; callers render None as a placeholder.

All inputs are canonical dicts produced by DataNormalizer. Numbers are
coerced again through safe_decimal so raw ints, floats and strings are accepted too.
"""

import logging
from decimal import Decimal, InvalidOperation, Overflow
from typing import Any, Optional

from servicing.constants import EmiStatus, LoanStatus, SETTLED_EPSILON

logger = logging.getLogger(__name__)


def safe_decimal(value: Any) -> Optional[Decimal]:
    """Finite Decimal or None."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        d = value if isinstance(value, Decimal) else Decimal(str(value).replace(",", "").strip())
    except (InvalidOperation, ValueError):
        return None
    return d if d.is_finite() else None


def _first(*values):
    """First value that is not None (0 and '' count as present)."""
    for value in values:
        if value is not None:
            return value
    return None


def _get(record, key):
    return record.get(key) if isinstance(record, dict) else None


def _emis(record) -> Optional[list]:
    emis = _get(record, 'emis')
    return emis if isinstance(emis, list) else None


def _is_paid(emi) -> bool:
    return str(_get(emi, 'status') or '').upper() == EmiStatus.PAID.value


def _as_count(value: Decimal):
    """Whole month counts come back as int, fractional tenures stay Decimal."""
    return int(value) if value == value.to_integral_value() else value


# ============================================================================
# Field resolvers (pack first, loan second)
# ============================================================================

def resolve_principal(pack, loan) -> Optional[Decimal]:
    return _first(safe_decimal(_get(pack, 'amount')), safe_decimal(_get(loan, 'amount')))


def resolve_interest_rate(pack, loan) -> Optional[Decimal]:
    return _first(safe_decimal(_get(pack, 'interest_rate')), safe_decimal(_get(loan, 'interest_rate')))


def resolve_emi_amount(pack, loan) -> Optional[Decimal]:
    return _first(safe_decimal(_get(pack, 'emi_amount')), safe_decimal(_get(loan, 'emi_amount')))


def explicit_remaining_balance(emi, pack) -> Optional[Decimal]:
    """Server-provided balance after this installment, if any."""
    return _first(safe_decimal(_get(emi, 'remaining_balance')), safe_decimal(_get(pack, 'remaining_balance')))


# ============================================================================
# Derivations
# ============================================================================

def derive_tenure_months(pack, loan):
    """
    Tenure in months.

    Priority: explicit months -> years x 12 -> EMI rows in the pack ->
    explicit total_emis -> None.
    """
    months = _first(safe_decimal(_get(pack, 'tenure_months')), safe_decimal(_get(loan, 'tenure_months')))
    if months is not None:
        return _as_count(months)

    years = _first(safe_decimal(_get(pack, 'tenure_years')), safe_decimal(_get(loan, 'tenure_years')))
    if years is not None:
        return _as_count(years * 12)

    rows = _emis(pack)
    if rows:
        return len(rows)

    total = _first(safe_decimal(_get(pack, 'total_emis')), safe_decimal(_get(loan, 'total_emis')))
    if total is not None:
        return _as_count(total)
    return None


def derive_installment_index(emi, pack, loan) -> Optional[int]:
    """
    1-based position of an installment in its schedule.

    Priority: explicit ordinal -> id match (pack, then loan) -> due-date match
    (pack, then loan) -> paid count + 1 -> None.
    """
    ordinal = safe_decimal(_get(emi, 'emi_number'))
    if ordinal is not None:
        return int(ordinal)

    emi_id = _get(emi, 'id')
    if emi_id is not None:
        for rows in (_emis(pack), _emis(loan)):
            for position, row in enumerate(rows or [], start=1):
                if _get(row, 'id') == emi_id:
                    return position

    due_date = _get(emi, 'due_date')
    if due_date:
        for rows in (_emis(pack), _emis(loan)):
            for position, row in enumerate(rows or [], start=1):
                if _get(row, 'due_date') == due_date:
                    return position

    rows = _emis(pack)
    if rows:
        paid = sum(1 for row in rows if _is_paid(row))
        if paid > 0:
            return paid + 1
    return None


def compute_totals(pack, emi_amount, tenure_months, principal) -> dict:
    """
    Total repayable and total interest.

    Summing the schedule handles variable installments (e.g. a final balancing
    EMI); the flat emi_amount x tenure product is used only without a schedule.
    total_interest is not clamped: a negative value flags inconsistent data.
    """
    total_repayable = None
    rows = _emis(pack)
    if rows:
        total_repayable = sum((safe_decimal(_get(row, 'amount')) or Decimal(0) for row in rows), Decimal(0))
    else:
        emi = safe_decimal(emi_amount)
        n = safe_decimal(tenure_months)
        if emi is not None and n is not None:
            total_repayable = emi * n

    p = safe_decimal(principal)
    total_interest = None
    if total_repayable is not None and p is not None:
        total_interest = total_repayable - p
        if total_interest < 0:
            logger.warning(f"Schedule total {total_repayable} is below principal {p}")

    return {'total_repayable': total_repayable, 'total_interest': total_interest}


def compute_remaining_balance(principal, annual_rate_percent, tenure_months,
                              installment_index, explicit_fallback=None) -> Optional[Decimal]:
    """
    Outstanding balance after `installment_index` payments.

    An explicit server value wins unchanged. Otherwise the fixed-payment
    amortization balance P((1+r)^n - (1+r)^k) / ((1+r)^n - 1) with
    r = annual / 1200, or P(1 - k/n) when r is 0. Clamped at zero.
    """
    explicit = safe_decimal(explicit_fallback)
    if explicit is not None:
        return explicit

    p = safe_decimal(principal)
    n = safe_decimal(tenure_months)
    k = safe_decimal(installment_index)
    annual = safe_decimal(annual_rate_percent)
    if p is None or n is None or k is None or annual is None:
        return None
    if n <= 0:
        return None

    r = annual / 1200
    if r == 0:
        remaining = p * (1 - min(k, n) / n)
        return remaining if remaining > 0 else Decimal(0)

    try:
        growth_n = (1 + r) ** int(n) if n == n.to_integral_value() else (1 + r) ** n
        growth_k = (1 + r) ** int(k) if k == k.to_integral_value() else (1 + r) ** k
        denominator = growth_n - 1
        if denominator == 0:
            return None
        remaining = p * (growth_n - growth_k) / denominator
    except (InvalidOperation, Overflow):
        logger.warning(f"Remaining balance out of range for P={p}, rate={annual}, n={n}, k={k}")
        return None
    return remaining if remaining > 0 else Decimal(0)


# ============================================================================
# Schedule summary
# ============================================================================

def summarize_schedule(loan, pack, ordered_emis=None) -> dict:
    """
    Loan-level figures shown above an EMI schedule.

    `ordered_emis` defaults to the pack's rows in their received order; pass
    the ordering engine's output so last_paid_on follows schedule order.
    """
    rows = list(ordered_emis if ordered_emis is not None else (_emis(pack) or []))
    paid = [row for row in rows if _is_paid(row)]

    principal = resolve_principal(pack, loan)
    tenure_months = derive_tenure_months(pack, loan)
    totals = compute_totals(pack, resolve_emi_amount(pack, loan), tenure_months, principal)

    remaining = safe_decimal(_get(pack, 'remaining_amount'))
    if remaining is None:
        remaining = sum(
            (safe_decimal(_get(row, 'amount')) or Decimal(0) for row in rows if not _is_paid(row)),
            Decimal(0),
        )

    remaining_emis = safe_decimal(_get(pack, 'remaining_emis'))
    remaining_emis = int(remaining_emis) if remaining_emis is not None else len(rows) - len(paid)

    loan_status = _first(_get(loan, 'loan_status'), _get(pack, 'loan_status'))
    all_paid = bool(rows) and len(paid) == len(rows)
    is_cleared = (remaining <= Decimal(str(SETTLED_EPSILON)) and all_paid) or loan_status == LoanStatus.CLOSED.value

    return {
        'paid_count': len(paid),
        'emi_count': len(rows),
        'last_paid_on': _get(paid[-1], 'payment_date') if paid else None,
        'principal': principal,
        'interest_rate': resolve_interest_rate(pack, loan),
        'tenure_months': tenure_months,
        'total_payable': totals['total_repayable'],
        'total_interest': totals['total_interest'],
        'remaining_amount': remaining,
        'remaining_emis': remaining_emis,
        'is_cleared': is_cleared,
    }
