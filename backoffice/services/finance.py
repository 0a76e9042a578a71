# backoffice/services/finance.py - Pure money computations for enrollments
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Iterable, Optional

from backoffice.core.config import settings
from backoffice.core.exceptions import ValidationError
from backoffice.schemas.payment import FinancialSummary, PaymentStatus, StudentBalance

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Any) -> Decimal:
    """Coerce an int, str, float or Decimal into a two-place Decimal"""
    if value is None:
        return ZERO
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"Invalid amount: {value!r}") from e
    return amount.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def ensure_non_negative(**amounts: Any) -> None:
    """Raise ValidationError naming the first negative amount"""
    for name, value in amounts.items():
        if value is not None and to_money(value) < 0:
            raise ValidationError(f"{name} cannot be negative", field=name)


def amount_due(registration_fee: Any, tuition_fee: Any, discount: Any = ZERO) -> Decimal:
    # Never clamped; a negative total is reported to the caller as is
    return to_money(registration_fee) + to_money(tuition_fee) - to_money(discount)


def amount_paid(payments: Iterable[Any]) -> Decimal:
    """Sum payment records, or bare amounts"""
    total = ZERO
    for payment in payments:
        total += to_money(getattr(payment, "amount", payment))
    return total


def balance(due: Any, paid: Any) -> Decimal:
    return to_money(due) - to_money(paid)


def is_overpaid(due: Any, paid: Any) -> bool:
    return balance(due, paid) < 0


def payment_status(due: Any, paid: Any) -> PaymentStatus:
    """Any payment below the amount due is partial; nothing due and nothing paid counts as paid"""
    due, paid = to_money(due), to_money(paid)
    if paid > due:
        return PaymentStatus.OVERPAID
    if paid == due:
        return PaymentStatus.PAID
    if paid <= 0:
        return PaymentStatus.UNPAID
    return PaymentStatus.PARTIAL


def monthly_estimate(tuition_fee: Any, months: Optional[int] = None) -> Decimal:
    """Tuition spread over the school year; display only"""
    months = settings.MONTHS_IN_SCHOOL_YEAR if months is None else months
    if months <= 0:
        raise ValidationError("months must be positive", months=months)
    return (to_money(tuition_fee) / Decimal(months)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def summarize(
    registration_fee: Any,
    tuition_fee: Any,
    discount: Any = ZERO,
    payments: Iterable[Any] = (),
    months: Optional[int] = None,
) -> FinancialSummary:
    due = amount_due(registration_fee, tuition_fee, discount)
    paid = amount_paid(payments)
    remaining = balance(due, paid)
    return FinancialSummary(
        registration_fee=to_money(registration_fee),
        tuition_fee=to_money(tuition_fee),
        discount=to_money(discount),
        amount_due=due,
        amount_paid=paid,
        balance=remaining,
        monthly_estimate=monthly_estimate(tuition_fee, months),
        payment_status=payment_status(due, paid),
        overpaid=remaining < 0,
        currency=settings.CURRENCY,
    )


def summarize_enrollment(enrollment: Any, payments: Optional[Iterable[Any]] = None) -> FinancialSummary:
    """Summary for a stored enrollment; uses its amount_paid when payments are not given"""
    if payments is None:
        payments = [enrollment.amount_paid]
    return summarize(enrollment.registration_fee, enrollment.tuition_fee, enrollment.discount, payments)


def student_balance(student_id: int, year_id: int, enrollments: Iterable[Any]) -> StudentBalance:
    """Totals over every enrollment of the student in the year, closed ones included"""
    enrollments = [
        e for e in enrollments if e.student_id == student_id and e.academic_year_id == year_id
    ]
    due = sum((to_money(e.amount_due) for e in enrollments), ZERO)
    paid = sum((to_money(e.amount_paid) for e in enrollments), ZERO)
    return StudentBalance(
        student_id=student_id,
        academic_year_id=year_id,
        enrollment_ids=[e.id for e in enrollments],
        amount_due=due,
        amount_paid=paid,
        balance=balance(due, paid),
        payment_status=payment_status(due, paid),
        currency=settings.CURRENCY,
    )
