"""
EMI ordering and sequential-payment gating.

The full, unfiltered schedule decides which installment is payable; display
filters and windowing only narrow what is shown.
"""

from functools import cmp_to_key
from typing import List, Optional

from servicing.constants import ALL, EmiStatus, PAY_IN_ORDER_MESSAGE, WINDOW_SIZE


class PaymentOrderError(Exception):
    """Raised when a payment targets anything but the next payable installment."""

    def __init__(self, message=PAY_IN_ORDER_MESSAGE, emi_id=None, next_emi_id=None):
        super().__init__(message)
        self.emi_id = emi_id
        self.next_emi_id = next_emi_id


def _as_number(value):
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _compare(a: dict, b: dict) -> int:
    # 1) ordinal, 2) ISO due date, 3) numeric id
    if a.get('emi_number') is not None and b.get('emi_number') is not None:
        return (a['emi_number'] > b['emi_number']) - (a['emi_number'] < b['emi_number'])
    if a.get('due_date') and b.get('due_date'):
        left, right = str(a['due_date']), str(b['due_date'])
        return (left > right) - (left < right)
    left, right = _as_number(a.get('id')), _as_number(b.get('id'))
    if left is None or right is None:
        return 0
    return (left > right) - (left < right)


def order_emis(emis) -> List[dict]:
    """Return a new, stably sorted list; the input is left untouched."""
    return sorted(emis or [], key=cmp_to_key(_compare))


def next_payable(ordered_emis) -> Optional[dict]:
    """First installment that is not PAID, or None."""
    for emi in ordered_emis or []:
        if emi.get('status') != EmiStatus.PAID.value:
            return emi
    return None


def is_payable_now(emi, next_emi) -> bool:
    if not emi or not next_emi:
        return False
    if emi.get('status') != EmiStatus.PENDING.value:
        return False
    # id-less rows can only match themselves
    if next_emi.get('id') is None:
        return emi is next_emi
    return emi.get('id') == next_emi.get('id')


def ensure_payable(emi, next_emi):
    """Raise PaymentOrderError unless `emi` may be paid right now."""
    if not is_payable_now(emi, next_emi):
        raise PaymentOrderError(
            emi_id=(emi or {}).get('id'),
            next_emi_id=(next_emi or {}).get('id'),
        )


def filter_rows(emis, status: str = ALL, due_from: Optional[str] = None,
                due_to: Optional[str] = None) -> List[dict]:
    """
    Display filter over an ordered schedule.

    Date bounds are inclusive ISO dates; rows without a due date pass the
    date filters.
    """
    rows = list(emis or [])
    if status and status != ALL:
        rows = [row for row in rows if row.get('status') == status]
    if due_from:
        rows = [row for row in rows if not row.get('due_date') or row['due_date'] >= due_from]
    if due_to:
        rows = [row for row in rows if not row.get('due_date') or row['due_date'] <= due_to]
    return rows


def _index_of(rows, emi) -> int:
    for position, row in enumerate(rows):
        if row is emi or (emi.get('id') is not None and row.get('id') == emi.get('id')):
            return position
    return -1


def window_rows(filtered, ordered, expanded: bool = False) -> dict:
    """
    Compact view: WINDOW_SIZE rows starting one before the first unpaid row.

    The anchor is the next payable installment's position in the filtered
    rows. If a filter hid it, its position in the full schedule is used,
    clamped to the filtered bounds.
    """
    filtered = list(filtered or [])
    upcoming = next_payable(ordered)

    anchor = 0
    if upcoming is not None and filtered:
        anchor = _index_of(filtered, upcoming)
        if anchor == -1:
            anchor = min(max(_index_of(list(ordered), upcoming), 0), len(filtered) - 1)

    if expanded:
        start, end = 0, len(filtered)
    else:
        start = max(0, anchor - 1)
        end = min(len(filtered), start + WINDOW_SIZE)

    return {
        'rows': filtered[start:end],
        'start': start,
        'end': end,
        'anchor': anchor,
        'can_expand': len(filtered) > WINDOW_SIZE,
    }
