"""
Categorical field definitions and canonical field names for SmartLend data.

Used for:
- Boundary normalization of API payloads (enum codes, field aliases)
- EMI ordering and payment gating (installment statuses)
- Document rendering (brand block, placeholders)
- API responses (human-readable labels)

Uses Python Enums for type safety and better IDE support.
"""

from enum import Enum

# ============================================================================
# Loan Categories
# ============================================================================

class LoanStatus(str, Enum):
    """Loan lifecycle status, owned by the external approval workflow."""
    SUBMITTED = 'SUBMITTED'
    APPROVED = 'APPROVED'
    REJECTED = 'REJECTED'
    CLOSED = 'CLOSED'

    @property
    def label(self):
        return {
            'SUBMITTED': 'Submitted',
            'APPROVED': 'Approved',
            'REJECTED': 'Rejected',
            'CLOSED': 'Closed',
        }[self.value]

    @property
    def has_schedule(self):
        """Only approved or closed loans carry an EMI schedule."""
        return self.value in ('APPROVED', 'CLOSED')


# ============================================================================
# EMI Categories
# ============================================================================

class EmiStatus(str, Enum):
    """Installment payment status."""
    PENDING = 'PENDING'
    PAID = 'PAID'
    LATE = 'LATE'

    @property
    def label(self):
        return {
            'PENDING': 'Pending',
            'PAID': 'Paid',
            'LATE': 'Late',
        }[self.value]


# ============================================================================
# Display Mappings (code -> label)
# ============================================================================

LOAN_STATUS_LABELS = {e.value: e.label for e in LoanStatus}
EMI_STATUS_LABELS = {e.value: e.label for e in EmiStatus}

VALID_LOAN_STATUSES = {e.value for e in LoanStatus}

# Loans hidden from the EMI payments view (no schedule to pay against)
HIDDEN_ON_EMI_VIEW = frozenset(e.value for e in LoanStatus if not e.has_schedule)

# Status filter value meaning "no filter"
ALL = 'ALL'

# ============================================================================
# Field Aliases (canonical name -> raw names, first present wins)
# ============================================================================

LOAN_FIELD_ALIASES = {
    'id': ('id', 'loanId', 'loan_id'),
    'amount': ('amount', 'principal', 'loanAmount', 'loan_amount'),
    'tenure_months': ('tenureMonths', 'tenure_months'),
    'tenure_years': ('tenureYears', 'tenure_years', 'tenure'),
    'interest_rate': ('appliedInterestRate', 'applied_interest_rate', 'interestRate', 'interest_rate'),
    'total_emis': ('totalEmis', 'total_emis'),
    'emi_amount': ('emiAmount', 'emi_amount'),
    'loan_status': ('loanStatus', 'loan_status', 'status'),
    'submitted_at': ('submittedAt', 'submitted_at'),
    'closed_at': ('closedAt', 'closed_at'),
    'purpose': ('purpose',),
    'customer_name': ('customerName', 'customer_name'),
}

PACK_FIELD_ALIASES = {
    'remaining_emis': ('remainingEmis', 'remaining_emis'),
    'remaining_amount': ('remainingAmount', 'remaining_amount'),
    'remaining_balance': ('remainingBalance', 'remaining_balance'),
}

EMI_FIELD_ALIASES = {
    'id': ('id', 'emiId', 'emi_id'),
    'loan_id': ('loanId', 'loan_id'),
    'emi_number': ('emiNumber', 'emi_number', 'installmentNumber', 'installment_number', 'index', 'seq'),
    'amount': ('amount', 'emiAmount', 'emi_amount'),
    'due_date': ('dueDate', 'due_date'),
    'status': ('status',),
    'payment_date': ('paymentDate', 'payment_date'),
    'transaction_ref': ('transactionRef', 'transaction_ref', 'transactionReference'),
    'remaining_balance': ('remainingBalance', 'remaining_balance', 'balanceAfter', 'balance_after'),
}

LOAN_TYPE_FIELD_ALIASES = {
    'id': ('loanTypeId', 'loan_type_id', 'id'),
    'name': ('name',),
    'interest_rate': ('interestRate', 'interest_rate'),
    'penalty_rate_percent': ('penaltyRatePercent', 'penalty_rate_percent'),
    'max_tenure_years': ('maxTenureYears', 'max_tenure_years'),
    'max_loan_amount': ('maxLoanAmount', 'max_loan_amount'),
    'max_loans_per_customer': ('maxLoansPerCustomerPerLoanType', 'max_loans_per_customer'),
}

# ============================================================================
# Payment Policy
# ============================================================================

PAY_IN_ORDER_MESSAGE = "Please pay EMIs in order. Pay the earliest pending EMI first."
LOCKED_ROW_HINT = "Pay EMIs sequentially. Settle the earliest pending EMI first."

# Rows shown in the compact (not expanded) schedule view
WINDOW_SIZE = 3

# Remaining amounts at or below this are treated as settled
SETTLED_EPSILON = 0.000001

# Admin guard on loan-type interest configuration
MIN_LOAN_TYPE_INTEREST_RATE = 6.5

# ============================================================================
# Documents
# ============================================================================

PLACEHOLDER = '-'

BRAND = {
    'name': 'SmartLend',
    'email': 'SmartLendLms1@gmail.com',
    'contact': '+91 98765 43210',
    'address': 'No. 42, Tech Park Lane, Chennai - 600096',
    'blue': (3, 61, 107),
    'navy': (21, 62, 117),
}


def get_status_label(field_name, value):
    """
    Get human-readable label for a status value.

    Returns the original value if the field or code is unknown.
    """
    label_maps = {
        'loan_status': LOAN_STATUS_LABELS,
        'status': EMI_STATUS_LABELS,
    }
    label_map = label_maps.get(field_name, {})
    return label_map.get(value, value)
