"""Tax benefit of a purchase invoice under the progressive (scale) PIT regime.

Every figure is rounded to cents with :func:`round2`; the savings are taken
from the already rounded cost base so results match the ledger to the cent.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Mapping

from .amounts import deduction_fraction, round2
from .models import CarTaxContext, CompanyTaxConfig, PurchaseInvoiceTaxInput

CAR_TIER_100K = 100_000.0
CAR_TIER_150K = 150_000.0
CAR_TIER_200K = 200_000.0


@dataclass(frozen=True)
class PurchaseInvoiceTaxResult:
    vat_recovered: float
    cost_base: float
    income_tax_saving: float
    health_saving: float
    total_tax_benefit: float
    real_cost: float

    def as_dict(self) -> dict[str, float]:
        return asdict(self)


def compute_car_cost_limit(car: CarTaxContext) -> float:
    """Deductible cost ceiling for the tier the vehicle value falls into."""
    if car.value <= CAR_TIER_100K:
        limit, fallback = car.limit_100k, CAR_TIER_100K
    elif car.value <= CAR_TIER_150K:
        limit, fallback = car.limit_150k, CAR_TIER_150K
    else:
        limit, fallback = car.limit_200k, CAR_TIER_200K
    return limit if limit > 0 else fallback


def compute_car_cost_proportion(car: CarTaxContext) -> float:
    """Share of a vehicle expense that counts as cost: limit / value, at most 1.

    A vehicle without a value imposes no restriction.
    """
    if car.value <= 0:
        return 1.0
    return min(1.0, compute_car_cost_limit(car) / car.value)


def _as_input(value: PurchaseInvoiceTaxInput | Mapping[str, Any]) -> PurchaseInvoiceTaxInput:
    if isinstance(value, PurchaseInvoiceTaxInput):
        return value
    return PurchaseInvoiceTaxInput.model_validate(dict(value) if isinstance(value, Mapping) else {})


def _as_config(value: CompanyTaxConfig | Mapping[str, Any]) -> CompanyTaxConfig:
    if isinstance(value, CompanyTaxConfig):
        return value
    return CompanyTaxConfig.model_validate(dict(value) if isinstance(value, Mapping) else {})


def compute_purchase_invoice_tax_benefit(
    invoice: PurchaseInvoiceTaxInput | Mapping[str, Any],
    config: CompanyTaxConfig | Mapping[str, Any],
) -> PurchaseInvoiceTaxResult:
    """Break a purchase invoice down into recovered VAT, PIT and health savings.

    Invoices already included in costs yield no benefit and cost their gross
    amount. With ``invoice.car`` set, the vehicle rules apply: VAT is deducted
    in full or in half, the unrecovered VAT joins the cost, and the cost is
    scaled by :func:`compute_car_cost_proportion`.
    """
    inv = _as_input(invoice)
    cfg = _as_config(config)

    if inv.included_in_costs:
        return PurchaseInvoiceTaxResult(
            vat_recovered=0.0,
            cost_base=0.0,
            income_tax_saving=0.0,
            health_saving=0.0,
            total_tax_benefit=0.0,
            real_cost=round2(inv.gross_amount),
        )

    gross = inv.gross_amount
    net = inv.net_amount
    vat = inv.vat_amount
    cost_pct = deduction_fraction(inv.cost_deduction_percent)

    if inv.car is not None:
        vat_pct = inv.car.vat_deduction.fraction
        cost_before_proportion = net + vat * (1 - vat_pct)
        cost_raw = cost_before_proportion * compute_car_cost_proportion(inv.car)
    else:
        vat_pct = deduction_fraction(inv.vat_deduction_percent)
        cost_raw = net * cost_pct

    vat_recovered = round2(vat * vat_pct) if cfg.is_vat_payer else 0.0
    cost_base = round2(cost_raw)
    income_tax_saving = round2(cost_base * cfg.pit_rate)
    health_saving = round2(cost_base * cfg.health_rate)
    total_tax_benefit = round2(vat_recovered + income_tax_saving + health_saving)

    return PurchaseInvoiceTaxResult(
        vat_recovered=vat_recovered,
        cost_base=cost_base,
        income_tax_saving=income_tax_saving,
        health_saving=health_saving,
        total_tax_benefit=total_tax_benefit,
        real_cost=round2(gross - total_tax_benefit),
    )


__all__ = [
    "CAR_TIER_100K",
    "CAR_TIER_150K",
    "CAR_TIER_200K",
    "PurchaseInvoiceTaxResult",
    "compute_car_cost_limit",
    "compute_car_cost_proportion",
    "compute_purchase_invoice_tax_benefit",
]
