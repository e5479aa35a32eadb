from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from servicing.constants import MIN_LOAN_TYPE_INTEREST_RATE, VALID_LOAN_STATUSES


# --- Request Models ---
class LoanTypeUpdate(BaseModel):
    name: str = Field(..., examples=["Home Loan"])
    interest_rate: float = Field(..., examples=[8.5])
    penalty_rate_percent: Optional[float] = None
    max_tenure_years: Optional[int] = None
    max_loan_amount: float = Field(..., examples=[5000000])
    max_loans_per_customer: Optional[int] = None

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Loan type name is required")
        return value.strip()

    @field_validator("interest_rate")
    @classmethod
    def rate_floor(cls, value: float) -> float:
        if value < MIN_LOAN_TYPE_INTEREST_RATE:
            raise ValueError(f"Interest rate must be at least {MIN_LOAN_TYPE_INTEREST_RATE}%")
        return value

    @field_validator("max_loan_amount")
    @classmethod
    def positive_amount(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("Max loan amount must be greater than zero")
        return value

    def to_upstream(self) -> dict:
        """SmartLend wire names."""
        body = {
            "name": self.name,
            "interestRate": self.interest_rate,
            "maxLoanAmount": self.max_loan_amount,
        }
        if self.penalty_rate_percent is not None:
            body["penaltyRatePercent"] = self.penalty_rate_percent
        if self.max_tenure_years is not None:
            body["maxTenureYears"] = self.max_tenure_years
        if self.max_loans_per_customer is not None:
            body["maxLoansPerCustomerPerLoanType"] = self.max_loans_per_customer
        return body


class LoanStatusUpdate(BaseModel):
    status: str = Field(..., examples=["APPROVED"])
    comment: str = Field(..., examples=["Documents verified"])

    @field_validator("status")
    @classmethod
    def known_status(cls, value: str) -> str:
        code = value.strip().upper()
        if code not in VALID_LOAN_STATUSES:
            raise ValueError(f"Unknown loan status: {value}")
        return code

    @field_validator("comment")
    @classmethod
    def comment_required(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("A comment is required for status changes")
        return value.strip()


# --- Response Models ---
class EmiRow(BaseModel):
    id: Optional[int]
    loan_id: Optional[int] = None
    emi_number: Optional[int] = None
    amount: Optional[float]
    due_date: Optional[str]
    status: Optional[str]
    status_label: Optional[str] = None
    payment_date: Optional[str] = None
    transaction_ref: Optional[str] = None
    remaining_balance: Optional[float] = None
    payable: bool = False
    locked_hint: Optional[str] = None


class LoanCard(BaseModel):
    id: Optional[int]
    ref: str
    loan_type_name: Optional[str]
    customer_name: Optional[str] = None
    purpose: Optional[str] = None
    amount: Optional[float]
    interest_rate: Optional[float]
    tenure_months: Optional[float]
    loan_status: Optional[str]
    status_label: Optional[str] = None
    submitted_at: Optional[str] = None


class LoanList(BaseModel):
    loan_types: List[str]
    loans: List[LoanCard]
    # loan ids per type name, in card order
    groups: Dict[str, List[Optional[int]]] = {}


class StatusHistoryEntry(BaseModel):
    status: Optional[str]
    comment: Optional[str]
    timestamp: Optional[str]


class AdminLoan(LoanCard):
    closed_at: Optional[str] = None
    status_history: List[StatusHistoryEntry] = []
    emis: List[EmiRow] = []


class ScheduleSummary(BaseModel):
    paid_count: int
    emi_count: int
    last_paid_on: Optional[str]
    principal: Optional[float]
    interest_rate: Optional[float]
    tenure_months: Optional[float]
    total_payable: Optional[float]
    total_interest: Optional[float]
    remaining_amount: Optional[float]
    remaining_emis: int
    is_cleared: bool


class EmiSchedule(BaseModel):
    loan_id: int
    summary: ScheduleSummary
    next_payable_id: Optional[int]
    rows: List[EmiRow]
    start: int
    end: int
    total_rows: int
    can_expand: bool


class PaymentResult(BaseModel):
    message: str
    payment: EmiRow
    schedule: EmiSchedule


class CalendarEntry(BaseModel):
    loan_id: Optional[int]
    loan_ref: str
    loan_type_name: Optional[str]
    emi_id: Optional[int]
    amount: Optional[float]


class CalendarDay(BaseModel):
    due_date: str
    emis: List[CalendarEntry]


class LoanTypeData(BaseModel):
    id: Optional[int]
    name: Optional[str]
    interest_rate: Optional[float]
    penalty_rate_percent: Optional[float] = None
    max_tenure_years: Optional[int] = None
    max_loan_amount: Optional[float]
    max_loans_per_customer: Optional[int] = None
