from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable, Literal, Mapping, Sequence

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from invoice_tax.core.amounts import round2, to_amount
from invoice_tax.core.benefits import PurchaseInvoiceTaxResult, compute_purchase_invoice_tax_benefit
from invoice_tax.core.cars import CarRecord
from invoice_tax.core.models import CarTaxContext, CompanyTaxConfig, PurchaseInvoiceTaxInput

logger = logging.getLogger("invoice_tax.reports")

TOTAL_FIELDS = (
    "gross_amount",
    "vat_recovered",
    "income_tax_saving",
    "health_saving",
    "total_tax_benefit",
    "real_cost",
)


def _coerce_amount(value: Any) -> float:
    return to_amount(value)


class InvoiceRecord(BaseModel):
    id: str | None = None
    number: str = ""
    issue_date: date = Field(validation_alias=AliasChoices("issue_date", "issueDate"))
    seller_name: str = Field("", validation_alias=AliasChoices("seller_name", "sellerName"))
    net_amount: float = Field(0.0, validation_alias=AliasChoices("net_amount", "netAmount"))
    vat_amount: float = Field(0.0, validation_alias=AliasChoices("vat_amount", "vatAmount"))
    gross_amount: float = Field(0.0, validation_alias=AliasChoices("gross_amount", "grossAmount"))
    currency: str = "PLN"
    vat_deduction_percent: float = Field(
        0.0, validation_alias=AliasChoices("vat_deduction_percent", "vatDeductionPercent")
    )
    cost_deduction_percent: float = Field(
        0.0, validation_alias=AliasChoices("cost_deduction_percent", "costDeductionPercent")
    )
    included_in_costs: bool = Field(
        False, validation_alias=AliasChoices("included_in_costs", "includedInCosts")
    )
    car_id: str | None = Field(None, validation_alias=AliasChoices("car_id", "carId"))
    car: CarTaxContext | None = None
    kind: Literal["cost", "sales"] = Field("cost", validation_alias=AliasChoices("kind", "type"))

    model_config = ConfigDict(populate_by_name=True)

    _coerce_amounts = field_validator(
        "net_amount",
        "vat_amount",
        "gross_amount",
        "vat_deduction_percent",
        "cost_deduction_percent",
        mode="before",
    )(_coerce_amount)

    @field_validator("currency", mode="before")
    @classmethod
    def _normalize_currency(cls, value: Any) -> str:
        return str(value or "PLN").strip().upper()

    @field_validator("id", "car_id", mode="before")
    @classmethod
    def _stringify_ids(cls, value: Any) -> str | None:
        return None if value is None else str(value)

    def tax_input(self, car: CarTaxContext | None = None) -> PurchaseInvoiceTaxInput:
        return PurchaseInvoiceTaxInput(
            gross_amount=self.gross_amount,
            net_amount=self.net_amount,
            vat_amount=self.vat_amount,
            vat_deduction_percent=self.vat_deduction_percent,
            cost_deduction_percent=self.cost_deduction_percent,
            car=car,
            included_in_costs=self.included_in_costs,
        )


@dataclass(frozen=True)
class BenefitRow:
    invoice: InvoiceRecord
    result: PurchaseInvoiceTaxResult
    car_name: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.invoice.id,
            "number": self.invoice.number,
            "issue_date": self.invoice.issue_date.isoformat(),
            "seller_name": self.invoice.seller_name,
            "currency": self.invoice.currency,
            "gross_amount": self.invoice.gross_amount,
            "car_name": self.car_name,
            **self.result.as_dict(),
        }


@dataclass
class BenefitTotals:
    gross_amount: float = 0.0
    vat_recovered: float = 0.0
    income_tax_saving: float = 0.0
    health_saving: float = 0.0
    total_tax_benefit: float = 0.0
    real_cost: float = 0.0
    count: int = 0

    def add(self, gross_amount: float, result: PurchaseInvoiceTaxResult) -> None:
        self.gross_amount = round2(self.gross_amount + gross_amount)
        self.vat_recovered = round2(self.vat_recovered + result.vat_recovered)
        self.income_tax_saving = round2(self.income_tax_saving + result.income_tax_saving)
        self.health_saving = round2(self.health_saving + result.health_saving)
        self.total_tax_benefit = round2(self.total_tax_benefit + result.total_tax_benefit)
        self.real_cost = round2(self.real_cost + result.real_cost)
        self.count += 1

    def as_dict(self) -> dict[str, float | int]:
        payload: dict[str, float | int] = {name: getattr(self, name) for name in TOTAL_FIELDS}
        payload["count"] = self.count
        return payload


@dataclass
class BenefitReport:
    month: int | None
    year: int | None
    rows: list[BenefitRow] = field(default_factory=list)
    totals: dict[str, BenefitTotals] = field(default_factory=dict)
    monthly: dict[str, dict[str, BenefitTotals]] = field(default_factory=dict)

    @property
    def period_label(self) -> str:
        if self.month is not None and self.year is not None:
            return f"{self.year}-{self.month:02d}"
        if self.year is not None:
            return str(self.year)
        return "all"

    def as_dict(self) -> dict[str, Any]:
        return {
            "period": self.period_label,
            "rows": [row.as_dict() for row in self.rows],
            "totals": {currency: totals.as_dict() for currency, totals in self.totals.items()},
            "monthly": {
                key: {currency: totals.as_dict() for currency, totals in by_currency.items()}
                for key, by_currency in self.monthly.items()
            },
        }


def _validate_period(month: int | None, year: int | None) -> None:
    if month is not None and not 1 <= month <= 12:
        raise ValueError(f"Month must be between 1 and 12, got {month}")
    if month is not None and year is None:
        raise ValueError("Month filter requires a year")


def filter_by_period(
    invoices: Iterable[InvoiceRecord],
    month: int | None = None,
    year: int | None = None,
) -> list[InvoiceRecord]:
    _validate_period(month, year)
    selected = []
    for invoice in invoices:
        if year is not None and invoice.issue_date.year != year:
            continue
        if month is not None and invoice.issue_date.month != month:
            continue
        selected.append(invoice)
    return selected


def _as_invoice(value: InvoiceRecord | Mapping[str, Any]) -> InvoiceRecord:
    if isinstance(value, InvoiceRecord):
        return value
    return InvoiceRecord.model_validate(value)


def build_benefit_report(
    invoices: Sequence[InvoiceRecord | Mapping[str, Any]],
    config: CompanyTaxConfig,
    *,
    cars: Iterable[CarRecord] = (),
    month: int | None = None,
    year: int | None = None,
) -> BenefitReport:
    """Compute the tax benefit of every cost invoice in the period and sum it per currency."""
    records = [_as_invoice(item) for item in invoices]
    cars_by_id = {car.id: car for car in cars if car.id is not None}
    report = BenefitReport(month=month, year=year)

    for invoice in filter_by_period(records, month, year):
        if invoice.kind != "cost":
            continue
        car_context = invoice.car
        car_name = None
        if car_context is None and invoice.car_id is not None:
            car = cars_by_id.get(invoice.car_id)
            if car is None:
                logger.warning(
                    "Invoice %s references unknown car %s; using standard deduction",
                    invoice.number or invoice.id,
                    invoice.car_id,
                )
            else:
                car_context = car.tax_context()
                car_name = car.name

        result = compute_purchase_invoice_tax_benefit(invoice.tax_input(car_context), config)
        report.rows.append(BenefitRow(invoice=invoice, result=result, car_name=car_name))

        report.totals.setdefault(invoice.currency, BenefitTotals()).add(invoice.gross_amount, result)
        month_key = invoice.issue_date.strftime("%Y-%m")
        by_currency = report.monthly.setdefault(month_key, {})
        by_currency.setdefault(invoice.currency, BenefitTotals()).add(invoice.gross_amount, result)

    logger.info(
        "Tax benefit report for %s: %s invoices, currencies=%s",
        report.period_label,
        len(report.rows),
        sorted(report.totals),
    )
    return report


__all__ = [
    "BenefitReport",
    "BenefitRow",
    "BenefitTotals",
    "InvoiceRecord",
    "TOTAL_FIELDS",
    "build_benefit_report",
    "filter_by_period",
]
