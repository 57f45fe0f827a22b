from __future__ import annotations

from invoice_tax.core.amounts import deduction_fraction, round2, to_amount
from invoice_tax.core.benefits import (
    PurchaseInvoiceTaxResult,
    compute_car_cost_limit,
    compute_car_cost_proportion,
    compute_purchase_invoice_tax_benefit,
)
from invoice_tax.core.models import (
    CarTaxContext,
    CompanyTaxConfig,
    PurchaseInvoiceTaxInput,
    VatDeduction,
)

__all__ = [
    "CarTaxContext",
    "CompanyTaxConfig",
    "PurchaseInvoiceTaxInput",
    "PurchaseInvoiceTaxResult",
    "VatDeduction",
    "compute_car_cost_limit",
    "compute_car_cost_proportion",
    "compute_purchase_invoice_tax_benefit",
    "deduction_fraction",
    "round2",
    "to_amount",
]
