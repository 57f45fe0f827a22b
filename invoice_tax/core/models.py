from __future__ import annotations

from enum import Enum
from typing import Any, Mapping

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .amounts import to_amount


def _coerce_amount(value: Any) -> float:
    return to_amount(value)


def _exactly_true(value: Any) -> bool:
    return value is True


def _car_or_none(value: Any) -> Any:
    if isinstance(value, (CarTaxContext, Mapping)):
        return value
    if isinstance(value, BaseModel):
        return value.model_dump()
    return None


class VatDeduction(str, Enum):
    """VAT deduction available for a mixed-use vehicle: 100% or 50%."""

    FULL = "full"
    HALF = "half"

    @property
    def fraction(self) -> float:
        return 1.0 if self is VatDeduction.FULL else 0.5

    @classmethod
    def from_stored(cls, raw: Any) -> "VatDeduction":
        if isinstance(raw, cls):
            return raw
        if isinstance(raw, str) and raw.strip().lower() in {"full", "half"}:
            return cls(raw.strip().lower())
        # Only the number 1 means full; "1", True and fractions read as half.
        if isinstance(raw, bool) or not isinstance(raw, (int, float)):
            return cls.HALF
        return cls.FULL if raw == 1 else cls.HALF


class CompanyTaxConfig(BaseModel):
    pit_rate: float = Field(0.0, validation_alias=AliasChoices("pit_rate", "pitRate"))
    health_rate: float = Field(0.0, validation_alias=AliasChoices("health_rate", "healthRate"))
    is_vat_payer: bool = Field(False, validation_alias=AliasChoices("is_vat_payer", "isVatPayer"))

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    _coerce_rates = field_validator("pit_rate", "health_rate", mode="before")(_coerce_amount)
    _coerce_vat_payer = field_validator("is_vat_payer", mode="before")(_exactly_true)


class CarTaxContext(BaseModel):
    value: float = 0.0
    limit_100k: float = Field(0.0, validation_alias=AliasChoices("limit_100k", "limit100k"))
    limit_150k: float = Field(0.0, validation_alias=AliasChoices("limit_150k", "limit150k"))
    limit_200k: float = Field(0.0, validation_alias=AliasChoices("limit_200k", "limit200k"))
    vat_deduction: VatDeduction = Field(
        VatDeduction.HALF,
        validation_alias=AliasChoices("vat_deduction", "vatDeductionPercent", "vat_deduction_percent"),
    )

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    _coerce_amounts = field_validator(
        "value",
        "limit_100k",
        "limit_150k",
        "limit_200k",
        mode="before",
    )(_coerce_amount)

    @field_validator("vat_deduction", mode="before")
    @classmethod
    def _load_vat_deduction(cls, value: Any) -> VatDeduction:
        return VatDeduction.from_stored(value)


class PurchaseInvoiceTaxInput(BaseModel):
    gross_amount: float = Field(0.0, validation_alias=AliasChoices("gross_amount", "grossAmount"))
    net_amount: float = Field(0.0, validation_alias=AliasChoices("net_amount", "netAmount"))
    vat_amount: float = Field(0.0, validation_alias=AliasChoices("vat_amount", "vatAmount"))
    # Zero or below means "not set" and is read as a full deduction.
    vat_deduction_percent: float = Field(
        0.0, validation_alias=AliasChoices("vat_deduction_percent", "vatDeductionPercent")
    )
    cost_deduction_percent: float = Field(
        0.0, validation_alias=AliasChoices("cost_deduction_percent", "costDeductionPercent")
    )
    car: CarTaxContext | None = None
    included_in_costs: bool = Field(
        False, validation_alias=AliasChoices("included_in_costs", "includedInCosts")
    )

    model_config = ConfigDict(populate_by_name=True)

    _coerce_amounts = field_validator(
        "gross_amount",
        "net_amount",
        "vat_amount",
        "vat_deduction_percent",
        "cost_deduction_percent",
        mode="before",
    )(_coerce_amount)

    _coerce_included = field_validator("included_in_costs", mode="before")(_exactly_true)
    _drop_unusable_car = field_validator("car", mode="before")(_car_or_none)


__all__ = [
    "CarTaxContext",
    "CompanyTaxConfig",
    "PurchaseInvoiceTaxInput",
    "VatDeduction",
]
