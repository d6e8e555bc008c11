from decimal import Decimal

import pytest

from conftest import make_charge, make_job
from app.services.invoicing.field_resolver import JobFieldSnapshot
from app.services.invoicing.pricing_engine import (
    FORMULA_TABLE,
    PricingFormula,
    price_job,
    select_formula,
)

# claim amount 10000 -> 2% = 200, 5% = 500; quantity 5
FIELDS = {"Claim Amount after Finalization": "10000", "Quantity": "5"}


@pytest.mark.parametrize(
    "charge, formula, expected",
    [
        (dict(fixed=500), PricingFormula.FIXED, "500.00"),
        (dict(in_percentage=2), PricingFormula.PERCENTAGE, "200.00"),
        (dict(in_percentage=2, min=300), PricingFormula.PERCENTAGE_OR_MIN, "300.00"),
        (dict(in_percentage=2, max=150), PricingFormula.PERCENTAGE_OR_MAX, "150.00"),
        (dict(in_percentage=5, min=100, max=400), PricingFormula.PERCENTAGE_MIN_MAX, "400.00"),
        (dict(per_shb=20), PricingFormula.PER_UNIT, "100.00"),
        (dict(fixed=500, in_percentage=2), PricingFormula.FIXED_PLUS_PERCENTAGE, "700.00"),
        (dict(fixed=500, in_percentage=2, min=300), PricingFormula.FIXED_PLUS_PERCENTAGE_OR_MIN, "800.00"),
        (dict(fixed=500, in_percentage=2, max=150), PricingFormula.FIXED_PLUS_PERCENTAGE_OR_MAX, "650.00"),
        (
            dict(fixed=500, in_percentage=5, min=100, max=400),
            PricingFormula.FIXED_PLUS_PERCENTAGE_MIN_MAX,
            "900.00",
        ),
        (dict(in_percentage=2, per_shb=20), PricingFormula.PERCENTAGE_PER_UNIT, "200.00"),
        (
            dict(in_percentage=2, per_shb=20, percentage_per_shb=True),
            PricingFormula.PERCENTAGE_PER_UNIT,
            "300.00",
        ),
        (dict(fixed=500, in_percentage=2, per_shb=20), PricingFormula.FIXED_PERCENTAGE_PER_UNIT, "700.00"),
        (
            dict(fixed=500, in_percentage=2, per_shb=20, fixed_percentage_per_shb=True),
            PricingFormula.FIXED_PERCENTAGE_PER_UNIT,
            "800.00",
        ),
    ],
)
def test_formulas(charge, formula, expected):
    priced = price_job(make_job(), make_charge(**charge), FIELDS)
    assert priced.formula == formula
    assert priced.amount == Decimal(expected)


def test_fixed_plus_bounded_percentage():
    priced = price_job(
        make_job(),
        make_charge(fixed=500, in_percentage=10, min=100, max=1000),
        {"claim_amount_after_finalization": "8000"},
    )
    assert priced.percentage_amount == Decimal("800.00")
    assert priced.formula == PricingFormula.FIXED_PLUS_PERCENTAGE_MIN_MAX
    assert priced.amount == Decimal("1300.00")


def test_twelve_formulas_in_table():
    assert len(FORMULA_TABLE) == 12
    assert PricingFormula.FIXED_FALLBACK not in FORMULA_TABLE.values()


@pytest.mark.parametrize(
    "charge, expected",
    [
        (dict(fixed=500, min=300), "500.00"),
        (dict(fixed=500, per_shb=20), "500.00"),
        (dict(min=300, max=900), "0.00"),
        (dict(), "0.00"),
    ],
)
def test_unmatched_combinations_fall_back_to_fixed(charge, expected):
    priced = price_job(make_job(), make_charge(**charge), FIELDS)
    assert priced.formula == PricingFormula.FIXED_FALLBACK
    assert priced.amount == Decimal(expected)


def test_select_formula_fallback():
    assert select_formula(False, False, True, True, True) == PricingFormula.FIXED_FALLBACK
    assert select_formula(True, False, False, False, False) == PricingFormula.FIXED


def test_missing_job_or_charge_prices_zero():
    assert price_job(None, make_charge(fixed=500)).amount == Decimal("0")
    assert price_job(make_job(), None).amount == Decimal("0")


def test_negative_inputs_treated_as_absent():
    priced = price_job(make_job(), make_charge(fixed=500, in_percentage=-2), FIELDS)
    assert priced.formula == PricingFormula.FIXED
    assert priced.amount == Decimal("500.00")


def test_quantity_falls_back_to_job_column():
    priced = price_job(make_job(quantity="4"), make_charge(per_shb=25), {})
    assert priced.quantity == Decimal("4")
    assert priced.amount == Decimal("100.00")


def test_accepts_snapshot():
    snapshot = JobFieldSnapshot.from_values(FIELDS)
    priced = price_job(make_job(), make_charge(in_percentage=2), snapshot)
    assert priced.amount == Decimal("200.00")


def test_rounds_half_up():
    priced = price_job(make_job(), make_charge(in_percentage=Decimal("0.125")), {"claim_amount": "1004"})
    # 1004 * 0.125% = 1.255
    assert priced.amount == Decimal("1.26")


def test_oversized_claim_amount_still_prices():
    # 31-digit claim amount: 1% is 1E+28, wider than the default decimal precision once in cents
    priced = price_job(make_job(1), make_charge(in_percentage=1), {"Claim Amount after Finalization": "1" + "0" * 30})
    assert priced.formula == PricingFormula.PERCENTAGE
    assert priced.amount == Decimal("1" + "0" * 28)
    assert priced.amount.as_tuple().exponent == -2
