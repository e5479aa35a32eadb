"""
Boundary normalization layer for SmartLend API payloads.

Different SmartLend endpoints return the same financial concept under
different names (tenureYears vs tenureMonths, appliedInterestRate vs
interestRate, emiNumber vs installmentNumber) and in different types
(BigDecimal strings, floats, ISO datetimes). Everything is converted here
into one snake_case schema with Decimals, ISO dates and canonical enum codes,
so the ordering engine and reconciler never see raw shapes.
Raises NormalizationError on invalid data in strict mode; lenient mode nulls
the field and logs a warning.
"""

import logging
from decimal import Decimal, InvalidOperation
from datetime import datetime
from typing import Any, Optional, Type, Dict
from enum import Enum

from servicing.constants import (
    LoanStatus, EmiStatus,
    LOAN_STATUS_LABELS, EMI_STATUS_LABELS,
    LOAN_FIELD_ALIASES, PACK_FIELD_ALIASES,
    EMI_FIELD_ALIASES, LOAN_TYPE_FIELD_ALIASES,
)

logger = logging.getLogger(__name__)


class NormalizationError(Exception):
    """Raised when a field cannot be normalized; strict callers reject the payload."""


class DataNormalizer:
    """
    Centralized cleaning and type coercion for SmartLend payloads.
    """

    # Supported date formats, in order of expected frequency (ISO first).
    DATE_FORMATS = [
        "%Y-%m-%d",   # ISO: 2025-09-01
        "%Y%m%d",     # Compact: 20250901
        "%d.%m.%Y",   # Dotted: 01.09.2025
        "%d/%m/%Y",   # Slash: 01/09/2025
    ]

    @staticmethod
    def pick(row: Optional[dict], aliases) -> Any:
        """Return the first alias present with a non-null value, else None."""
        if not isinstance(row, dict):
            return None
        for name in aliases:
            value = row.get(name)
            if value is not None:
                return value
        return None

    @staticmethod
    def to_date(value: Any) -> Optional[str]:
        """
        Normalize date to ISO YYYY-MM-DD.
        Accepts ISO datetimes (time part dropped) and DATE_FORMATS;
        raises NormalizationError if none match.
        """
        if not value:
            return None
        if isinstance(value, datetime):
            return value.date().isoformat()
        value_str = str(value).strip()
        if not value_str:  # Whitespace-only after strip
            return None
        candidates = [value_str]
        if 'T' in value_str:
            candidates.append(value_str.split('T', 1)[0])
        for candidate in candidates:
            for fmt in DataNormalizer.DATE_FORMATS:
                try:
                    return datetime.strptime(candidate, fmt).date().isoformat()
                except ValueError:
                    continue
        raise NormalizationError(f"Invalid date format: {value}")

    @staticmethod
    def to_datetime(value: Any) -> Optional[str]:
        """
        Normalize a timestamp to ISO text (seconds precision).
        Plain dates are accepted and returned as midnight.
        """
        if not value:
            return None
        value_str = str(value).strip()
        if not value_str:
            return None
        try:
            parsed = datetime.fromisoformat(value_str.replace('Z', '+00:00'))
        except ValueError:
            return f"{DataNormalizer.to_date(value_str)}T00:00:00"
        return parsed.replace(microsecond=0).isoformat()

    @staticmethod
    def to_decimal(value: Any, precision: int = 2) -> Optional[Decimal]:
        """
        Normalize monetary amounts to Decimal with fixed precision.
        Strips commas; rejects NaN and infinities.
        """
        if value is None or value == "":
            return None
        if isinstance(value, bool):
            raise NormalizationError(f"Invalid money amount: {value}")
        try:
            val_str = str(value).replace(",", "").strip()
            d = Decimal(val_str)
        except InvalidOperation:
            raise NormalizationError(f"Invalid money amount: {value}")
        if not d.is_finite():
            raise NormalizationError(f"Invalid money amount: {value}")
        return d.quantize(Decimal(1).scaleb(-precision))

    @staticmethod
    def to_rate(value: Any) -> Optional[Decimal]:
        """
        Normalize an annual interest rate to a Decimal percent (12.5 means 12.5%).
        Strips a trailing % sign. No fraction heuristics: SmartLend always
        sends percents.
        """
        if value is None or value == "":
            return None
        val_str = str(value).strip().replace("%", "").replace(",", "")
        try:
            d = Decimal(val_str)
        except InvalidOperation:
            raise NormalizationError(f"Invalid rate: {value}")
        if not d.is_finite():
            raise NormalizationError(f"Invalid rate: {value}")
        return d

    @staticmethod
    def to_int(value: Any) -> Optional[int]:
        """Normalize ids, ordinals and counts. 0 is a valid value."""
        if value is None or value == "":
            return None
        try:
            d = Decimal(str(value).strip())
        except InvalidOperation:
            raise NormalizationError(f"Invalid integer: {value}")
        if not d.is_finite() or d != d.to_integral_value():
            raise NormalizationError(f"Invalid integer: {value}")
        return int(d)

    @staticmethod
    def to_enum(value: Any, enum_class: Type[Enum], label_map: Dict[str, str]) -> Any:
        """
        Map raw value to canonical enum code.
        Accepts the code (e.g. "PAID") or the label (e.g. "Paid"), case-insensitively.
        """
        if not value:
            return None
        val_str = str(value).strip()
        codes = {e.value for e in enum_class}
        if val_str.upper() in codes:
            return val_str.upper()
        reverse_map = {v.upper(): k for k, v in label_map.items()}
        if val_str.upper() in reverse_map:
            return reverse_map[val_str.upper()]
        raise NormalizationError(f"Unknown category for {enum_class.__name__}: {val_str}")

    @staticmethod
    def _safe_normalize(normalizer_func, value, *args, **kwargs):
        """
        Safely apply a normalizer function; return None instead of raising on failure.
        """
        try:
            return normalizer_func(value, *args, **kwargs)
        except (NormalizationError, ValueError, TypeError, InvalidOperation):
            if value not in (None, ""):
                logger.warning(f"Dropping unparseable value {value!r} via {normalizer_func.__name__}")
            return None

    @classmethod
    def _apply(cls, strict: bool, normalizer_func, value, *args):
        if strict:
            return normalizer_func(value, *args)
        return cls._safe_normalize(normalizer_func, value, *args)

    @classmethod
    def _customer_name(cls, row: dict) -> Optional[str]:
        customer = row.get('customer')
        if isinstance(customer, dict):
            name = customer.get('fullName') or customer.get('name')
            if name:
                return str(name)
        name = cls.pick(row, LOAN_FIELD_ALIASES['customer_name'])
        return str(name) if name else None

    @classmethod
    def _loan_type(cls, row: dict, strict: bool):
        """loanType arrives either as {loanTypeId, name} or as a bare name."""
        raw = row.get('loanType', row.get('loan_type'))
        if isinstance(raw, dict):
            name = raw.get('name')
            type_id = cls._apply(strict, cls.to_int, raw.get('loanTypeId', raw.get('id')))
            return (str(name) if name else None), type_id
        if raw not in (None, ''):
            return str(raw), cls._apply(strict, cls.to_int, row.get('loanTypeId'))
        return None, cls._apply(strict, cls.to_int, row.get('loanTypeId'))

    @classmethod
    def normalize_emi_row(cls, row: dict, strict: bool = False) -> dict:
        """
        Normalize a single EMI installment row.

        Args:
            row: Raw EMI payload (dict)
            strict: If True, raises NormalizationError on any failure.

        Returns:
            Cleaned dict with canonical fields; nullable fields may be None.
        """
        aliases = EMI_FIELD_ALIASES
        cleaned = {}
        try:
            # ===== Identity =====
            cleaned['id'] = cls._apply(strict, cls.to_int, cls.pick(row, aliases['id']))
            loan_id = cls.pick(row, aliases['loan_id'])
            if loan_id is None and isinstance(row.get('loan'), dict):
                loan_id = row['loan'].get('id')
            cleaned['loan_id'] = cls._apply(strict, cls.to_int, loan_id)
            cleaned['emi_number'] = cls._apply(strict, cls.to_int, cls.pick(row, aliases['emi_number']))

            # ===== Money =====
            cleaned['amount'] = cls._apply(strict, cls.to_decimal, cls.pick(row, aliases['amount']))
            cleaned['remaining_balance'] = cls._apply(
                strict, cls.to_decimal, cls.pick(row, aliases['remaining_balance'])
            )

            # ===== Dates =====
            cleaned['due_date'] = cls._apply(strict, cls.to_date, cls.pick(row, aliases['due_date']))
            cleaned['payment_date'] = cls._apply(strict, cls.to_date, cls.pick(row, aliases['payment_date']))

            # ===== Status =====
            cleaned['status'] = cls._apply(
                strict, cls.to_enum, cls.pick(row, aliases['status']), EmiStatus, EMI_STATUS_LABELS
            )

            ref = cls.pick(row, aliases['transaction_ref'])
            cleaned['transaction_ref'] = str(ref) if ref not in (None, '') else None
            return cleaned

        except Exception as e:
            if strict:
                raise NormalizationError(f"EMI {cls.pick(row, aliases['id']) or '?'}: {str(e)}")
            logger.warning(f"Partial normalization for EMI {cls.pick(row, aliases['id']) or '?'}: {str(e)}")
            return cleaned

    @classmethod
    def normalize_loan_row(cls, row: dict, strict: bool = False) -> dict:
        """
        Normalize a loan record (customer or admin view).

        Keeps every tenure/amount variant the payload offers; choosing between
        them is the reconciler's job.
        """
        aliases = LOAN_FIELD_ALIASES
        cleaned = {}
        try:
            # ===== Identity =====
            cleaned['id'] = cls._apply(strict, cls.to_int, cls.pick(row, aliases['id']))
            cleaned['loan_type_name'], cleaned['loan_type_id'] = cls._loan_type(row, strict)
            cleaned['customer_name'] = cls._customer_name(row)
            purpose = cls.pick(row, aliases['purpose'])
            cleaned['purpose'] = str(purpose) if purpose not in (None, '') else None

            # ===== Money & Rates =====
            cleaned['amount'] = cls._apply(strict, cls.to_decimal, cls.pick(row, aliases['amount']))
            cleaned['emi_amount'] = cls._apply(strict, cls.to_decimal, cls.pick(row, aliases['emi_amount']))
            cleaned['interest_rate'] = cls._apply(strict, cls.to_rate, cls.pick(row, aliases['interest_rate']))

            # ===== Tenure & Counts =====
            cleaned['tenure_months'] = cls._apply(strict, cls.to_int, cls.pick(row, aliases['tenure_months']))
            cleaned['tenure_years'] = cls._apply(strict, cls.to_rate, cls.pick(row, aliases['tenure_years']))
            cleaned['total_emis'] = cls._apply(strict, cls.to_int, cls.pick(row, aliases['total_emis']))

            # ===== Status & Timestamps =====
            cleaned['loan_status'] = cls._apply(
                strict, cls.to_enum, cls.pick(row, aliases['loan_status']), LoanStatus, LOAN_STATUS_LABELS
            )
            cleaned['submitted_at'] = cls._apply(strict, cls.to_datetime, cls.pick(row, aliases['submitted_at']))
            cleaned['closed_at'] = cls._apply(strict, cls.to_datetime, cls.pick(row, aliases['closed_at']))

            cleaned['status_history'] = [
                {
                    'status': cls._safe_normalize(
                        cls.to_enum, entry.get('status'), LoanStatus, LOAN_STATUS_LABELS
                    ),
                    'comment': entry.get('comments') or entry.get('comment'),
                    'timestamp': cls._safe_normalize(
                        cls.to_datetime, entry.get('changedAt') or entry.get('timestamp')
                    ),
                }
                for entry in (row.get('statusHistory') or row.get('status_history') or [])
                if isinstance(entry, dict)
            ]

            emis = row.get('emis')
            cleaned['emis'] = (
                [cls.normalize_emi_row(e, strict=strict) for e in emis if isinstance(e, dict)]
                if isinstance(emis, list) else None
            )
            return cleaned

        except Exception as e:
            if strict:
                raise NormalizationError(f"Loan {cls.pick(row, aliases['id']) or '?'}: {str(e)}")
            logger.warning(f"Partial normalization for loan {cls.pick(row, aliases['id']) or '?'}: {str(e)}")
            return cleaned

    @classmethod
    def normalize_pack(cls, row: dict, strict: bool = False) -> dict:
        """
        Normalize a loan-with-EMIs bundle (GET /customer/loans/emi/{loanId}).

        The aggregate totals are kept as hints; a missing EMI list becomes [].
        """
        cleaned = cls.normalize_loan_row(row, strict=strict)
        aliases = PACK_FIELD_ALIASES
        cleaned['remaining_emis'] = cls._apply(strict, cls.to_int, cls.pick(row, aliases['remaining_emis']))
        cleaned['remaining_amount'] = cls._apply(strict, cls.to_decimal, cls.pick(row, aliases['remaining_amount']))
        cleaned['remaining_balance'] = cls._apply(
            strict, cls.to_decimal, cls.pick(row, aliases['remaining_balance'])
        )
        if cleaned.get('emis') is None:
            cleaned['emis'] = []
        return cleaned

    @classmethod
    def normalize_loan_type_row(cls, row: dict, strict: bool = False) -> dict:
        """Normalize an admin loan-type configuration row."""
        aliases = LOAN_TYPE_FIELD_ALIASES
        cleaned = {}
        try:
            cleaned['id'] = cls._apply(strict, cls.to_int, cls.pick(row, aliases['id']))
            name = cls.pick(row, aliases['name'])
            cleaned['name'] = str(name) if name not in (None, '') else None
            cleaned['interest_rate'] = cls._apply(strict, cls.to_rate, cls.pick(row, aliases['interest_rate']))
            cleaned['penalty_rate_percent'] = cls._apply(
                strict, cls.to_rate, cls.pick(row, aliases['penalty_rate_percent'])
            )
            cleaned['max_tenure_years'] = cls._apply(strict, cls.to_int, cls.pick(row, aliases['max_tenure_years']))
            cleaned['max_loan_amount'] = cls._apply(
                strict, cls.to_decimal, cls.pick(row, aliases['max_loan_amount'])
            )
            cleaned['max_loans_per_customer'] = cls._apply(
                strict, cls.to_int, cls.pick(row, aliases['max_loans_per_customer'])
            )
            return cleaned

        except Exception as e:
            if strict:
                raise NormalizationError(f"Loan type {cls.pick(row, aliases['id']) or '?'}: {str(e)}")
            logger.warning(f"Partial normalization for loan type {cls.pick(row, aliases['id']) or '?'}: {str(e)}")
            return cleaned
