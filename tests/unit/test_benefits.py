import pytest

from invoice_tax.core.benefits import (
    PurchaseInvoiceTaxResult,
    compute_car_cost_limit,
    compute_car_cost_proportion,
    compute_purchase_invoice_tax_benefit,
)
from invoice_tax.core.models import PurchaseInvoiceTaxInput, VatDeduction
from tests.fixtures.invoices import make_car, make_config, make_standard_input


def _vehicle_input(car, **overrides) -> dict:
    payload = {"grossAmount": 12300, "netAmount": 10000, "vatAmount": 2300, "car": car}
    payload.update(overrides)
    return payload


def test_standard_invoice_end_to_end():
    result = compute_purchase_invoice_tax_benefit(make_standard_input(), make_config())
    assert result == PurchaseInvoiceTaxResult(
        vat_recovered=230.0,
        cost_base=1000.0,
        income_tax_saving=120.0,
        health_saving=90.0,
        total_tax_benefit=440.0,
        real_cost=790.0,
    )


def test_vehicle_half_vat_end_to_end():
    result = compute_purchase_invoice_tax_benefit(_vehicle_input(make_car()), make_config())
    assert result.vat_recovered == 1150.0
    assert result.cost_base == 11150.0
    assert result.income_tax_saving == 1338.0
    assert result.health_saving == 1003.5
    assert result.total_tax_benefit == 3491.5
    assert result.real_cost == 8808.5


def test_vehicle_cost_scaled_by_limit_proportion():
    car = make_car(value=117000, limit_150k=100000)
    result = compute_purchase_invoice_tax_benefit(_vehicle_input(car), make_config())
    # (10000 + 1150) * 100000 / 117000
    assert result.cost_base == 9529.91
    assert result.vat_recovered == 1150.0
    assert result.income_tax_saving == 1143.59
    assert result.health_saving == 857.69
    assert result.total_tax_benefit == 3151.28
    assert result.real_cost == 9148.72


def test_vehicle_full_vat_keeps_cost_at_net():
    car = make_car(vat_deduction=VatDeduction.FULL)
    result = compute_purchase_invoice_tax_benefit(_vehicle_input(car), make_config())
    assert result.vat_recovered == 2300.0
    assert result.cost_base == 10000.0


def test_vehicle_branch_ignores_invoice_percentages():
    car = make_car()
    plain = compute_purchase_invoice_tax_benefit(_vehicle_input(car), make_config())
    overridden = compute_purchase_invoice_tax_benefit(
        _vehicle_input(car, vatDeductionPercent=1, costDeductionPercent=0.2), make_config()
    )
    assert overridden == plain


def test_included_in_costs_short_circuits():
    payload = make_standard_input(grossAmount=1230.456, includedInCosts=True, car=make_car())
    result = compute_purchase_invoice_tax_benefit(payload, make_config())
    assert result.as_dict() == {
        "vat_recovered": 0.0,
        "cost_base": 0.0,
        "income_tax_saving": 0.0,
        "health_saving": 0.0,
        "total_tax_benefit": 0.0,
        "real_cost": 1230.46,
    }


def test_included_in_costs_requires_a_real_true():
    result = compute_purchase_invoice_tax_benefit(
        make_standard_input(includedInCosts="yes"), make_config()
    )
    assert result.total_tax_benefit == 440.0


def test_non_vat_payer_recovers_nothing():
    result = compute_purchase_invoice_tax_benefit(
        make_standard_input(), make_config(is_vat_payer=False)
    )
    assert result.vat_recovered == 0.0
    assert result.cost_base == 1000.0
    assert result.total_tax_benefit == 210.0
    assert result.real_cost == 1020.0


def test_non_vat_payer_vehicle_with_full_deduction():
    car = make_car(vat_deduction=VatDeduction.FULL)
    result = compute_purchase_invoice_tax_benefit(_vehicle_input(car), make_config(is_vat_payer=False))
    assert result.vat_recovered == 0.0
    assert result.cost_base == 10000.0
    assert result.total_tax_benefit == 2100.0
    assert result.real_cost == 10200.0


@pytest.mark.parametrize("field", ["vatDeductionPercent", "costDeductionPercent"])
@pytest.mark.parametrize("unset", [0, -0.5, -3, None, float("nan")])
def test_unset_percentages_mean_full_deduction(field, unset):
    baseline = compute_purchase_invoice_tax_benefit(make_standard_input(), make_config())
    result = compute_purchase_invoice_tax_benefit(make_standard_input(**{field: unset}), make_config())
    assert result == baseline


@pytest.mark.parametrize("field", ["vatDeductionPercent", "costDeductionPercent"])
def test_missing_percentages_mean_full_deduction(field):
    payload = make_standard_input()
    del payload[field]
    baseline = compute_purchase_invoice_tax_benefit(make_standard_input(), make_config())
    assert compute_purchase_invoice_tax_benefit(payload, make_config()) == baseline


def test_percentages_above_one_are_clamped():
    baseline = compute_purchase_invoice_tax_benefit(make_standard_input(), make_config())
    assert compute_purchase_invoice_tax_benefit(make_standard_input(vatDeductionPercent=1.5), make_config()) == baseline
    assert compute_purchase_invoice_tax_benefit(make_standard_input(costDeductionPercent=2), make_config()) == baseline


def test_partial_percentages():
    result = compute_purchase_invoice_tax_benefit(
        make_standard_input(vatDeductionPercent=0.5, costDeductionPercent=0.75), make_config()
    )
    assert result.vat_recovered == 115.0
    assert result.cost_base == 750.0
    assert result.income_tax_saving == 90.0
    assert result.health_saving == 67.5
    assert result.total_tax_benefit == 272.5
    assert result.real_cost == 957.5


@pytest.mark.parametrize(
    "raw,expected_vat",
    [(1, 2300.0), (1.0, 2300.0), (0, 1150.0), (0.5, 1150.0), (0.73, 1150.0), (2, 1150.0), (None, 1150.0)],
)
def test_vehicle_vat_deduction_is_binary(raw, expected_vat):
    car = {"value": 90000, "limit100k": 100000, "vatDeductionPercent": raw}
    result = compute_purchase_invoice_tax_benefit(_vehicle_input(car), make_config())
    assert result.vat_recovered == expected_vat


@pytest.mark.parametrize(
    "value,expected",
    [
        (50000, 111.0),
        (100000, 111.0),
        (100000.01, 222.0),
        (150000, 222.0),
        (150000.01, 333.0),
        (400000, 333.0),
    ],
)
def test_car_limit_tiers_are_half_open(value, expected):
    car = make_car(value=value, limit_100k=111, limit_150k=222, limit_200k=333)
    assert compute_car_cost_limit(car) == expected


@pytest.mark.parametrize(
    "value,expected",
    [(80000, 100000.0), (120000, 150000.0), (180000, 200000.0)],
)
def test_car_limit_falls_back_to_tier_amount(value, expected):
    car = make_car(value=value, limit_100k=0, limit_150k=0, limit_200k=0)
    assert compute_car_cost_limit(car) == expected


def test_car_proportion_is_capped_at_one():
    car = make_car(value=50000, limit_100k=100000)
    assert compute_car_cost_proportion(car) == 1.0


def test_car_proportion_below_one():
    car = make_car(value=250000, limit_200k=150000)
    assert compute_car_cost_proportion(car) == pytest.approx(0.6)


@pytest.mark.parametrize("value", [0, -1000, None])
def test_valueless_car_has_no_restriction(value):
    car = make_car(value=value)
    assert compute_car_cost_proportion(car) == 1.0


def test_savings_use_the_rounded_cost_base():
    payload = {"grossAmount": 1000.144, "netAmount": 1000.144, "vatAmount": 0}
    config = make_config(pit_rate=0.32, health_rate=0)
    result = compute_purchase_invoice_tax_benefit(payload, config)
    assert result.cost_base == 1000.14
    assert result.income_tax_saving == 320.04
    # Multiplying the raw cost first would give 320.05.
    assert result.income_tax_saving != round(1000.144 * 0.32, 2)


def test_missing_amounts_are_zero():
    payload = {"grossAmount": None, "netAmount": float("nan"), "vatAmount": "not a number"}
    result = compute_purchase_invoice_tax_benefit(payload, make_config())
    assert result == PurchaseInvoiceTaxResult(0.0, 0.0, 0.0, 0.0, 0.0, 0.0)


def test_real_cost_is_not_clamped():
    payload = make_standard_input(grossAmount=0)
    result = compute_purchase_invoice_tax_benefit(payload, make_config())
    assert result.total_tax_benefit == 440.0
    assert result.real_cost == -440.0


def test_rates_are_taken_as_given():
    result = compute_purchase_invoice_tax_benefit(
        make_standard_input(), {"pitRate": 0.19, "healthRate": None, "isVatPayer": True}
    )
    assert result.income_tax_saving == 190.0
    assert result.health_saving == 0.0


def test_model_and_mapping_inputs_agree():
    payload = make_standard_input(car=make_car().model_dump())
    model = PurchaseInvoiceTaxInput.model_validate(payload)
    config = make_config()
    assert compute_purchase_invoice_tax_benefit(model, config) == compute_purchase_invoice_tax_benefit(payload, config)


def test_repeated_calls_are_identical():
    payload = _vehicle_input(make_car(value=117000, limit_150k=100000))
    snapshot = dict(payload)
    first = compute_purchase_invoice_tax_benefit(payload, make_config())
    second = compute_purchase_invoice_tax_benefit(payload, make_config())
    assert first == second
    assert payload == snapshot


def test_config_without_vat_flag_is_not_a_vat_payer():
    result = compute_purchase_invoice_tax_benefit(make_standard_input(), {"pitRate": 0.12, "healthRate": 0.09})
    assert result.vat_recovered == 0.0
    assert result.total_tax_benefit == 210.0
    assert result.real_cost == 1020.0


def test_empty_config_gives_no_savings():
    result = compute_purchase_invoice_tax_benefit(make_standard_input(), {})
    assert result.cost_base == 1000.0
    assert result.total_tax_benefit == 0.0
    assert result.real_cost == 1230.0


def test_amount_too_large_for_float_reads_as_zero():
    result = compute_purchase_invoice_tax_benefit(make_standard_input(grossAmount=10**400), make_config())
    assert result.total_tax_benefit == 440.0
    assert result.real_cost == -440.0


@pytest.mark.parametrize("car", [42, "car-1", [1, 2], True])
def test_unusable_car_value_is_ignored(car):
    included = compute_purchase_invoice_tax_benefit(
        make_standard_input(includedInCosts=True, car=car), make_config()
    )
    assert included.real_cost == 1230.0
    standard = compute_purchase_invoice_tax_benefit(make_standard_input(car=car), make_config())
    assert standard.total_tax_benefit == 440.0


@pytest.mark.parametrize("invoice,config", [(None, None), ("invoice", 3), ([], [])])
def test_non_mapping_inputs_yield_zeros(invoice, config):
    result = compute_purchase_invoice_tax_benefit(invoice, config)
    assert result == PurchaseInvoiceTaxResult(0.0, 0.0, 0.0, 0.0, 0.0, 0.0)
