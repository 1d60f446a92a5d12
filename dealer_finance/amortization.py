"""
Amortization Module

Loan payment calculator and amortization schedule generator for vehicle
financing. Everything here is pure: no storage, no clock, no global state.
Callers (the calculator screen, the HTTP API) may invoke compute_payment on
every parameter change; each call is O(term).

Compounding is always monthly. Payment frequency only rescales the displayed
payment amount, and the schedule keeps one row per month of the term. A
"true frequency" mode, off by default, instead amortizes over the real number
of weekly or biweekly periods.
"""

from decimal import Decimal, ROUND_HALF_UP
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional
import logging

from .currency import Money, Currency, to_decimal


logger = logging.getLogger(__name__)


class PaymentFrequency(Enum):
    """Payment frequency options"""
    MONTHLY = "monthly"      # 12 payments per year
    BIWEEKLY = "biweekly"    # 26 payments per year
    WEEKLY = "weekly"        # 52 payments per year

    @property
    def periods_per_year(self) -> int:
        return {
            PaymentFrequency.MONTHLY: 12,
            PaymentFrequency.BIWEEKLY: 26,
            PaymentFrequency.WEEKLY: 52
        }[self]

    @property
    def multiplier(self) -> Decimal:
        """Factor applied to a monthly payment to express it per period"""
        return Decimal('12') / Decimal(self.periods_per_year)


class PrepaymentRecurrence(Enum):
    """How often an extra principal payment repeats"""
    ONE_TIME = "one_time"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUALLY = "annually"

    @property
    def interval(self) -> Optional[int]:
        """Periods between prepayments, None for a single prepayment"""
        return {
            PrepaymentRecurrence.ONE_TIME: None,
            PrepaymentRecurrence.MONTHLY: 1,
            PrepaymentRecurrence.QUARTERLY: 3,
            PrepaymentRecurrence.ANNUALLY: 12
        }[self]


@dataclass
class LoanParameters:
    """Inputs of the loan calculator"""
    vehicle_price: Decimal
    down_payment: Decimal = Decimal('0')
    annual_rate_percent: Decimal = Decimal('0')   # e.g. 6.99 for 6.99% APR
    term_periods: int = 60                        # Term in months
    payment_frequency: PaymentFrequency = PaymentFrequency.MONTHLY
    include_insurance: bool = False
    insurance_amount: Decimal = Decimal('0')      # Flat monthly add-on
    include_tax: bool = False
    tax_rate_percent: Decimal = Decimal('0')      # Applied to the base payment
    currency: Currency = Currency.USD

    def __post_init__(self):
        for name in ('vehicle_price', 'down_payment', 'annual_rate_percent',
                     'insurance_amount', 'tax_rate_percent'):
            setattr(self, name, to_decimal(getattr(self, name)))
        if isinstance(self.payment_frequency, str):
            self.payment_frequency = PaymentFrequency(self.payment_frequency)

    @property
    def principal(self) -> Money:
        """Amount financed: price less down payment"""
        return Money(self.vehicle_price - self.down_payment, self.currency)

    def validate(self, max_term: Optional[int] = None) -> None:
        """
        Reject nonsensical entries at the caller boundary.

        compute_payment never raises; this is what a form or API handler
        calls before it.

        Raises:
            ValueError: naming the first offending field
        """
        if self.vehicle_price < 0:
            raise ValueError("vehicle_price must not be negative")
        if self.down_payment < 0:
            raise ValueError("down_payment must not be negative")
        if self.down_payment > self.vehicle_price:
            raise ValueError("down_payment must not exceed vehicle_price")
        if self.annual_rate_percent < 0:
            raise ValueError("annual_rate_percent must not be negative")
        if self.term_periods < 1:
            raise ValueError("term_periods must be at least 1")
        if max_term is not None and self.term_periods > max_term:
            raise ValueError(f"term_periods must not exceed {max_term}")
        if self.include_insurance and self.insurance_amount < 0:
            raise ValueError("insurance_amount must not be negative")
        if self.include_tax and self.tax_rate_percent < 0:
            raise ValueError("tax_rate_percent must not be negative")


@dataclass
class AmortizationEntry:
    """Single row of an amortization schedule"""
    period: int
    payment: Money
    principal: Money
    interest: Money
    additional_costs: Money
    balance: Money
    total_interest_paid: Money
    prepayment: Optional[Money] = None   # Extra principal included in `principal`

    def __post_init__(self):
        if self.prepayment is None:
            self.prepayment = Money.zero(self.payment.currency)

    def to_dict(self) -> Dict[str, object]:
        return {
            'period': self.period,
            'payment': str(self.payment.amount),
            'principal': str(self.principal.amount),
            'interest': str(self.interest.amount),
            'additional_costs': str(self.additional_costs.amount),
            'balance': str(self.balance.amount),
            'total_interest_paid': str(self.total_interest_paid.amount),
            'prepayment': str(self.prepayment.amount)
        }


@dataclass
class AmortizationResult:
    """Payment amount and full schedule for a set of loan parameters"""
    principal: Money
    base_payment: Money          # Monthly (or per-period) principal + interest
    additional_costs: Money      # Pass-through insurance and tax per row
    periodic_payment: Money      # What the customer is quoted per period
    total_interest: Money
    total_cost: Money
    payment_frequency: PaymentFrequency
    true_frequency: bool = False
    schedule: List[AmortizationEntry] = field(default_factory=list)

    @property
    def number_of_payments(self) -> int:
        return len(self.schedule)

    @property
    def total_paid(self) -> Money:
        return Money.sum((entry.payment for entry in self.schedule), self.principal.currency)

    def to_dict(self) -> Dict[str, object]:
        return {
            'principal': str(self.principal.amount),
            'base_payment': str(self.base_payment.amount),
            'additional_costs': str(self.additional_costs.amount),
            'periodic_payment': str(self.periodic_payment.amount),
            'total_interest': str(self.total_interest.amount),
            'total_cost': str(self.total_cost.amount),
            'payment_frequency': self.payment_frequency.value,
            'true_frequency': self.true_frequency,
            'number_of_payments': self.number_of_payments,
            'schedule': [entry.to_dict() for entry in self.schedule]
        }


@dataclass
class PrepaymentPlan:
    """Extra principal payments applied on top of the regular schedule"""
    amount: Decimal
    start_period: int = 1
    recurrence: PrepaymentRecurrence = PrepaymentRecurrence.ONE_TIME

    def __post_init__(self):
        self.amount = to_decimal(self.amount)
        if isinstance(self.recurrence, str):
            self.recurrence = PrepaymentRecurrence(self.recurrence)
        if self.amount <= 0:
            raise ValueError("Prepayment amount must be positive")
        if self.start_period < 1:
            raise ValueError("Prepayment start_period must be at least 1")

    def periods(self, term: int) -> List[int]:
        """Schedule periods that receive a prepayment"""
        if self.start_period > term:
            return []
        interval = self.recurrence.interval
        if interval is None:
            return [self.start_period]
        return list(range(self.start_period, term + 1, interval))


@dataclass
class PrepaymentResult:
    """Effect of a prepayment plan against the regular schedule"""
    original: AmortizationResult
    new_term: int
    total_interest: Money
    interest_saved: Money
    payments_saved: Money
    schedule: List[AmortizationEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            'original_term': self.original.number_of_payments,
            'new_term': self.new_term,
            'original_total_interest': str(self.original.total_interest.amount),
            'total_interest': str(self.total_interest.amount),
            'interest_saved': str(self.interest_saved.amount),
            'payments_saved': str(self.payments_saved.amount),
            'schedule': [entry.to_dict() for entry in self.schedule]
        }


def annuity_payment(principal: Decimal, periodic_rate: Decimal, periods: int) -> Decimal:
    """
    Level payment that amortizes `principal` over `periods`.

    payment = P * r / (1 - (1 + r)^-n), or P / n when r is zero.
    Returned unrounded.
    """
    if periodic_rate == 0:
        return principal / Decimal(periods)
    factor = (Decimal('1') + periodic_rate) ** periods
    return principal * periodic_rate * factor / (factor - Decimal('1'))


def true_period_count(term_months: int, frequency: PaymentFrequency) -> int:
    """Number of real payment periods in a term given in months"""
    count = (Decimal(term_months) * Decimal(frequency.periods_per_year) / Decimal('12')).quantize(
        Decimal('1'), rounding=ROUND_HALF_UP
    )
    return max(1, int(count))


def build_schedule(
    principal: Money,
    periodic_rate: Decimal,
    periods: int,
    base_payment: Money,
    additional_costs: Money,
    prepayments: Optional[Dict[int, Money]] = None
) -> List[AmortizationEntry]:
    """
    Generate schedule rows until the balance is paid off or `periods` is reached.

    Principal is clamped to the remaining balance, and the final period pays
    off exactly what is left, so the balance ends at zero.
    """
    currency = principal.currency
    zero = Money.zero(currency)
    prepayments = prepayments or {}

    schedule = []
    balance = principal
    total_interest_paid = zero

    for period in range(1, periods + 1):
        interest = balance * periodic_rate
        principal_portion = base_payment - interest

        if principal_portion.is_negative():
            principal_portion = zero
        if principal_portion > balance or period == periods:
            principal_portion = balance

        extra = zero
        requested = prepayments.get(period)
        if requested is not None:
            extra = min(requested, balance - principal_portion)

        principal_portion = principal_portion + extra
        balance = balance - principal_portion
        total_interest_paid = total_interest_paid + interest

        schedule.append(AmortizationEntry(
            period=period,
            payment=principal_portion + interest + additional_costs,
            principal=principal_portion,
            interest=interest,
            additional_costs=additional_costs,
            balance=balance,
            total_interest_paid=total_interest_paid,
            prepayment=extra
        ))

        if balance.is_zero():
            break

    return schedule


def _zero_result(params: LoanParameters, true_frequency: bool) -> AmortizationResult:
    zero = Money.zero(params.currency)
    return AmortizationResult(
        principal=max(params.principal, zero),
        base_payment=zero,
        additional_costs=zero,
        periodic_payment=zero,
        total_interest=zero,
        total_cost=zero,
        payment_frequency=params.payment_frequency,
        true_frequency=true_frequency,
        schedule=[]
    )


def _rate_and_periods(params: LoanParameters, true_frequency: bool):
    """Periodic rate, period count and periods per year for the schedule"""
    if true_frequency:
        periods_per_year = params.payment_frequency.periods_per_year
        periods = true_period_count(params.term_periods, params.payment_frequency)
    else:
        periods_per_year = 12
        periods = params.term_periods
    periodic_rate = params.annual_rate_percent / Decimal('100') / Decimal(periods_per_year)
    return periodic_rate, periods, periods_per_year


def compute_payment(params: LoanParameters, true_frequency: bool = False) -> AmortizationResult:
    """
    Compute the payment amount and full amortization schedule.

    Never raises for degenerate inputs: a non-positive principal, a term
    below one period or a negative rate yields a zero payment with an empty
    schedule.

    Args:
        params: Loan calculator inputs
        true_frequency: Amortize over real weekly/biweekly periods instead of
            rescaling a monthly schedule

    Returns:
        AmortizationResult
    """
    principal = params.principal
    if not principal.is_positive() or params.term_periods < 1:
        return _zero_result(params, true_frequency)
    if params.annual_rate_percent < 0:
        logger.warning("Negative annual rate %s ignored, returning zero result", params.annual_rate_percent)
        return _zero_result(params, true_frequency)

    currency = params.currency
    periodic_rate, periods, periods_per_year = _rate_and_periods(params, true_frequency)
    base_payment = Money(annuity_payment(principal.amount, periodic_rate, periods), currency)

    additional_costs = Money.zero(currency)
    if params.include_insurance:
        insurance = Money(params.insurance_amount, currency)
        if periods_per_year != 12:
            insurance = insurance * (Decimal('12') / Decimal(periods_per_year))
        additional_costs = additional_costs + insurance
    if params.include_tax:
        additional_costs = additional_costs + base_payment * (params.tax_rate_percent / Decimal('100'))

    schedule = build_schedule(principal, periodic_rate, periods, base_payment, additional_costs)

    if true_frequency:
        periodic_payment = base_payment + additional_costs
    else:
        periodic_payment = (base_payment + additional_costs) * params.payment_frequency.multiplier

    total_interest = Money.sum((entry.interest for entry in schedule), currency)
    total_cost = principal + total_interest + additional_costs * len(schedule)

    logger.debug(
        "Computed %d-period schedule: payment=%s total_interest=%s",
        len(schedule), periodic_payment.to_plain(), total_interest.to_plain()
    )

    return AmortizationResult(
        principal=principal,
        base_payment=base_payment,
        additional_costs=additional_costs,
        periodic_payment=periodic_payment,
        total_interest=total_interest,
        total_cost=total_cost,
        payment_frequency=params.payment_frequency,
        true_frequency=true_frequency,
        schedule=schedule
    )


def simulate_prepayment(
    params: LoanParameters,
    plan: PrepaymentPlan,
    true_frequency: bool = False
) -> PrepaymentResult:
    """
    Apply extra principal payments and measure the savings.

    The regular payment stays fixed, so prepayments shorten the loan rather
    than lowering later payments.
    """
    original = compute_payment(params, true_frequency=true_frequency)
    currency = params.currency
    zero = Money.zero(currency)

    if not original.schedule:
        return PrepaymentResult(
            original=original,
            new_term=0,
            total_interest=zero,
            interest_saved=zero,
            payments_saved=zero,
            schedule=[]
        )

    periodic_rate, periods, _ = _rate_and_periods(params, true_frequency)
    extra = Money(plan.amount, currency)
    prepayments = {period: extra for period in plan.periods(periods)}

    schedule = build_schedule(
        original.principal, periodic_rate, periods,
        original.base_payment, original.additional_costs, prepayments
    )
    total_interest = Money.sum((entry.interest for entry in schedule), currency)
    total_paid = Money.sum((entry.payment for entry in schedule), currency)

    return PrepaymentResult(
        original=original,
        new_term=len(schedule),
        total_interest=total_interest,
        interest_saved=original.total_interest - total_interest,
        payments_saved=original.total_paid - total_paid,
        schedule=schedule
    )
