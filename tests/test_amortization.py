"""
Test suite for amortization module

Tests payment calculation, schedule generation, frequency handling and
prepayment simulation. All financial math must be exact to the cent.
"""

import pytest
from decimal import Decimal

from dealer_finance.currency import Money, Currency
from dealer_finance.amortization import (
    LoanParameters, PaymentFrequency, PrepaymentPlan, PrepaymentRecurrence,
    compute_payment, simulate_prepayment, annuity_payment, true_period_count
)


def usd(amount: str) -> Money:
    return Money(Decimal(amount), Currency.USD)


class TestLoanParameters:
    """Test loan parameter handling and validation"""

    def test_principal_is_price_less_down_payment(self):
        params = LoanParameters(
            vehicle_price=Decimal('35000'),
            down_payment=Decimal('5000'),
            annual_rate_percent=Decimal('4.5'),
            term_periods=60
        )
        assert params.principal == usd('30000')

    def test_string_inputs_are_coerced(self):
        params = LoanParameters(
            vehicle_price='25000.00',
            annual_rate_percent='6.99',
            term_periods=48,
            payment_frequency='biweekly'
        )
        assert params.vehicle_price == Decimal('25000.00')
        assert params.annual_rate_percent == Decimal('6.99')
        assert params.payment_frequency == PaymentFrequency.BIWEEKLY

    def test_validate_accepts_sane_parameters(self):
        params = LoanParameters(vehicle_price=Decimal('20000'), annual_rate_percent=Decimal('5'), term_periods=36)
        params.validate(max_term=84)

    def test_validate_rejects_negative_rate(self):
        params = LoanParameters(vehicle_price=Decimal('20000'), annual_rate_percent=Decimal('-1'), term_periods=36)
        with pytest.raises(ValueError, match="annual_rate_percent"):
            params.validate()

    def test_validate_rejects_zero_term(self):
        params = LoanParameters(vehicle_price=Decimal('20000'), term_periods=0)
        with pytest.raises(ValueError, match="term_periods"):
            params.validate()

    def test_validate_rejects_term_above_maximum(self):
        params = LoanParameters(vehicle_price=Decimal('20000'), term_periods=96)
        with pytest.raises(ValueError, match="must not exceed 84"):
            params.validate(max_term=84)

    def test_validate_rejects_down_payment_above_price(self):
        params = LoanParameters(
            vehicle_price=Decimal('20000'), down_payment=Decimal('25000'), term_periods=36
        )
        with pytest.raises(ValueError, match="down_payment"):
            params.validate()

    def test_frequency_multipliers(self):
        assert PaymentFrequency.MONTHLY.multiplier == Decimal('1')
        assert PaymentFrequency.BIWEEKLY.multiplier == Decimal('12') / Decimal('26')
        assert PaymentFrequency.WEEKLY.multiplier == Decimal('12') / Decimal('52')


class TestComputePayment:
    """Test payment amount and schedule generation"""

    def test_standard_auto_loan(self):
        """80,000 at 6.99% over 60 months by the annuity formula"""
        params = LoanParameters(
            vehicle_price=Decimal('80000'),
            annual_rate_percent=Decimal('6.99'),
            term_periods=60
        )
        result = compute_payment(params)

        assert result.periodic_payment == usd('1583.72')
        assert result.base_payment == usd('1583.72')
        assert abs(result.total_interest.amount - Decimal('15023.08')) <= Decimal('0.05')
        assert len(result.schedule) == 60
        assert result.schedule[-1].balance.is_zero()

    def test_first_row_split(self):
        params = LoanParameters(
            vehicle_price=Decimal('80000'),
            annual_rate_percent=Decimal('6.99'),
            term_periods=60
        )
        first = compute_payment(params).schedule[0]

        assert first.period == 1
        assert first.interest == usd('466.00')
        assert first.principal == usd('1117.72')
        assert first.balance == usd('78882.28')
        assert first.total_interest_paid == usd('466.00')

    def test_principal_portions_sum_to_principal(self):
        params = LoanParameters(
            vehicle_price=Decimal('23500'),
            down_payment=Decimal('3500'),
            annual_rate_percent=Decimal('5'),
            term_periods=36
        )
        result = compute_payment(params)

        assert Money.sum(entry.principal for entry in result.schedule) == usd('20000')
        assert result.base_payment == usd('599.42')
        assert abs(result.total_interest.amount - Decimal('1579.03')) <= Decimal('0.05')

    def test_rows_split_base_payment_except_final(self):
        params = LoanParameters(vehicle_price=Decimal('20000'), annual_rate_percent=Decimal('5'), term_periods=36)
        result = compute_payment(params)

        for entry in result.schedule[:-1]:
            assert entry.principal + entry.interest == result.base_payment
        last = result.schedule[-1]
        assert last.principal == result.schedule[-2].balance

    def test_balance_is_non_increasing(self):
        params = LoanParameters(vehicle_price=Decimal('15000'), annual_rate_percent=Decimal('9.9'), term_periods=72)
        schedule = compute_payment(params).schedule

        balances = [entry.balance for entry in schedule]
        assert all(later <= earlier for earlier, later in zip(balances, balances[1:]))
        assert [entry.period for entry in schedule] == list(range(1, len(schedule) + 1))

    def test_zero_rate_loan(self):
        """100,000 at 0% over 12 months"""
        params = LoanParameters(vehicle_price=Decimal('100000'), annual_rate_percent=Decimal('0'), term_periods=12)
        result = compute_payment(params)

        assert result.periodic_payment == usd('8333.33')
        assert len(result.schedule) == 12
        assert all(entry.interest.is_zero() for entry in result.schedule)
        assert all(entry.principal == usd('8333.33') for entry in result.schedule[:-1])
        # Final period absorbs the rounding remainder
        assert result.schedule[-1].principal == usd('8333.37')
        assert result.schedule[-1].balance.is_zero()
        assert result.total_interest.is_zero()

    def test_zero_principal_returns_empty_result(self):
        params = LoanParameters(
            vehicle_price=Decimal('20000'), down_payment=Decimal('20000'),
            annual_rate_percent=Decimal('5'), term_periods=36
        )
        result = compute_payment(params)

        assert result.periodic_payment.is_zero()
        assert result.total_interest.is_zero()
        assert result.total_cost.is_zero()
        assert result.schedule == []

    def test_negative_principal_returns_empty_result(self):
        params = LoanParameters(
            vehicle_price=Decimal('10000'), down_payment=Decimal('12000'), term_periods=36
        )
        result = compute_payment(params)

        assert result.periodic_payment.is_zero()
        assert result.schedule == []

    def test_degenerate_term_and_rate_never_raise(self):
        no_term = LoanParameters(vehicle_price=Decimal('10000'), term_periods=0)
        negative_rate = LoanParameters(
            vehicle_price=Decimal('10000'), annual_rate_percent=Decimal('-2'), term_periods=12
        )

        assert compute_payment(no_term).schedule == []
        assert compute_payment(negative_rate).periodic_payment.is_zero()

    def test_schedule_never_exceeds_term(self):
        for term in (1, 7, 24, 84):
            params = LoanParameters(vehicle_price=Decimal('9999.99'), annual_rate_percent=Decimal('3.25'), term_periods=term)
            result = compute_payment(params)
            assert len(result.schedule) <= term
            assert result.schedule[-1].balance.is_zero()

    def test_single_period_loan(self):
        params = LoanParameters(vehicle_price=Decimal('1200'), annual_rate_percent=Decimal('12'), term_periods=1)
        result = compute_payment(params)

        assert len(result.schedule) == 1
        assert result.schedule[0].interest == usd('12.00')
        assert result.schedule[0].principal == usd('1200')
        assert result.periodic_payment == usd('1212.00')

    def test_insurance_and_tax_are_pass_through(self):
        params = LoanParameters(
            vehicle_price=Decimal('20000'),
            annual_rate_percent=Decimal('5'),
            term_periods=36,
            include_insurance=True,
            insurance_amount=Decimal('100'),
            include_tax=True,
            tax_rate_percent=Decimal('10')
        )
        result = compute_payment(params)

        assert result.base_payment == usd('599.42')
        assert result.additional_costs == usd('159.94')
        assert result.periodic_payment == usd('759.36')
        # Additional costs are not amortized
        assert Money.sum(entry.principal for entry in result.schedule) == usd('20000')
        assert all(entry.additional_costs == usd('159.94') for entry in result.schedule)
        assert result.total_cost == usd('20000') + result.total_interest + usd('159.94') * 36

    def test_disabled_add_ons_are_ignored(self):
        params = LoanParameters(
            vehicle_price=Decimal('20000'),
            annual_rate_percent=Decimal('5'),
            term_periods=36,
            insurance_amount=Decimal('100'),
            tax_rate_percent=Decimal('10')
        )
        result = compute_payment(params)

        assert result.additional_costs.is_zero()
        assert result.periodic_payment == usd('599.42')


class TestPaymentFrequency:
    """Test frequency rescaling and true-frequency schedules"""

    def test_biweekly_rescales_payment_but_keeps_monthly_rows(self):
        params = LoanParameters(
            vehicle_price=Decimal('80000'),
            annual_rate_percent=Decimal('6.99'),
            term_periods=60,
            payment_frequency=PaymentFrequency.BIWEEKLY
        )
        result = compute_payment(params)

        assert result.base_payment == usd('1583.72')
        assert result.periodic_payment == usd('730.95')
        assert len(result.schedule) == 60

    def test_weekly_rescales_payment(self):
        params = LoanParameters(
            vehicle_price=Decimal('80000'),
            annual_rate_percent=Decimal('6.99'),
            term_periods=60,
            payment_frequency=PaymentFrequency.WEEKLY
        )
        result = compute_payment(params)

        assert result.periodic_payment == usd('365.47')
        assert len(result.schedule) == 60

    def test_true_frequency_biweekly_schedule(self):
        params = LoanParameters(
            vehicle_price=Decimal('20000'),
            annual_rate_percent=Decimal('5'),
            term_periods=60,
            payment_frequency=PaymentFrequency.BIWEEKLY
        )
        result = compute_payment(params, true_frequency=True)

        assert result.true_frequency
        assert len(result.schedule) == 130
        assert result.base_payment == usd('174.02')
        assert result.periodic_payment == usd('174.02')
        assert result.schedule[-1].balance.is_zero()

    def test_true_frequency_monthly_matches_default(self):
        params = LoanParameters(vehicle_price=Decimal('20000'), annual_rate_percent=Decimal('5'), term_periods=36)

        default = compute_payment(params)
        true_mode = compute_payment(params, true_frequency=True)

        assert default.periodic_payment == true_mode.periodic_payment
        assert default.total_interest == true_mode.total_interest

    def test_true_period_count(self):
        assert true_period_count(60, PaymentFrequency.MONTHLY) == 60
        assert true_period_count(60, PaymentFrequency.BIWEEKLY) == 130
        assert true_period_count(36, PaymentFrequency.WEEKLY) == 156
        assert true_period_count(1, PaymentFrequency.WEEKLY) == 4

    def test_annuity_payment_zero_rate(self):
        assert annuity_payment(Decimal('1200'), Decimal('0'), 12) == Decimal('100')


class TestPrepayment:
    """Test prepayment simulation"""

    def setup_method(self):
        self.params = LoanParameters(
            vehicle_price=Decimal('20000'),
            annual_rate_percent=Decimal('5'),
            term_periods=36
        )

    def test_plan_periods(self):
        assert PrepaymentPlan(amount=Decimal('100'), start_period=3).periods(36) == [3]
        assert PrepaymentPlan(
            amount=Decimal('100'), start_period=1, recurrence=PrepaymentRecurrence.QUARTERLY
        ).periods(12) == [1, 4, 7, 10]
        assert PrepaymentPlan(amount=Decimal('100'), start_period=40).periods(36) == []

    def test_plan_rejects_non_positive_amount(self):
        with pytest.raises(ValueError, match="amount must be positive"):
            PrepaymentPlan(amount=Decimal('0'))

    def test_plan_rejects_start_before_first_period(self):
        with pytest.raises(ValueError, match="start_period"):
            PrepaymentPlan(amount=Decimal('100'), start_period=0)

    def test_one_time_prepayment_shortens_loan(self):
        plan = PrepaymentPlan(amount=Decimal('5000'), start_period=1)
        result = simulate_prepayment(self.params, plan)

        assert result.new_term < 36
        assert result.interest_saved.is_positive()
        assert result.payments_saved.is_positive()
        assert result.schedule[0].prepayment == usd('5000')
        assert result.schedule[-1].balance.is_zero()
        assert Money.sum(entry.principal for entry in result.schedule) == usd('20000')
        assert result.total_interest + result.interest_saved == result.original.total_interest

    def test_regular_payment_stays_fixed(self):
        plan = PrepaymentPlan(amount=Decimal('200'), start_period=1, recurrence=PrepaymentRecurrence.MONTHLY)
        result = simulate_prepayment(self.params, plan)

        for entry in result.schedule[:-1]:
            assert entry.principal - entry.prepayment + entry.interest == usd('599.42')

    def test_prepayment_clearing_balance_ends_schedule(self):
        plan = PrepaymentPlan(amount=Decimal('50000'), start_period=1)
        result = simulate_prepayment(self.params, plan)

        assert result.new_term == 1
        assert result.schedule[0].principal == usd('20000')
        assert result.schedule[0].balance.is_zero()

    def test_prepayment_on_empty_loan(self):
        params = LoanParameters(vehicle_price=Decimal('0'), term_periods=36)
        result = simulate_prepayment(params, PrepaymentPlan(amount=Decimal('100')))

        assert result.new_term == 0
        assert result.interest_saved.is_zero()
        assert result.schedule == []

    def test_result_serialization(self):
        plan = PrepaymentPlan(amount=Decimal('1000'), start_period=12, recurrence='annually')
        data = simulate_prepayment(self.params, plan).to_dict()

        assert data['original_term'] == 36
        assert data['new_term'] < 36
        assert Decimal(data['interest_saved']) > 0
