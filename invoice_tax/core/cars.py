from __future__ import annotations

import math
from typing import Any, Iterable, Mapping

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .benefits import CAR_TIER_100K, CAR_TIER_150K, CAR_TIER_200K
from .models import CarTaxContext, VatDeduction

_LIMIT_FIELDS = (
    ("limit_100k", "limit100k", CAR_TIER_100K),
    ("limit_150k", "limit150k", CAR_TIER_150K),
    ("limit_200k", "limit200k", CAR_TIER_200K),
)


class CarValidationError(ValueError):
    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class CarRecord(BaseModel):
    id: str | None = None
    name: str
    value: float = 0.0
    limit_100k: float = Field(CAR_TIER_100K, validation_alias=AliasChoices("limit_100k", "limit100k"))
    limit_150k: float = Field(CAR_TIER_150K, validation_alias=AliasChoices("limit_150k", "limit150k"))
    limit_200k: float = Field(CAR_TIER_200K, validation_alias=AliasChoices("limit_200k", "limit200k"))
    vat_deduction: VatDeduction = Field(
        VatDeduction.HALF,
        validation_alias=AliasChoices("vat_deduction", "vatDeductionPercent", "vat_deduction_percent"),
    )
    sort_order: int = Field(0, validation_alias=AliasChoices("sort_order", "sortOrder"))

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("vat_deduction", mode="before")
    @classmethod
    def _load_vat_deduction(cls, value: Any) -> VatDeduction:
        return VatDeduction.from_stored(value)

    def tax_context(self) -> CarTaxContext:
        return CarTaxContext(
            value=self.value,
            limit_100k=self.limit_100k,
            limit_150k=self.limit_150k,
            limit_200k=self.limit_200k,
            vat_deduction=self.vat_deduction,
        )


def _pick(body: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in body:
            return body[key]
    return None


def _has_any(body: Mapping[str, Any], *keys: str) -> bool:
    return any(key in body for key in keys)


def _parse_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _plain_non_negative(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value) or value < 0:
        return None
    return float(value)


def _vat_from_request(raw: Any) -> VatDeduction:
    # Request bodies may carry the flag as a numeric string.
    number = _parse_number(raw)
    return VatDeduction.from_stored(raw if number is None else number)


def car_from_payload(body: Mapping[str, Any], *, sort_order: int = 0) -> CarRecord:
    """Build a vehicle record from a create request."""
    name = str(body.get("name") or "").strip()
    if not name:
        raise CarValidationError("Car name is required", field="name")

    value = _parse_number(body.get("value"))
    if value is None or value < 0:
        raise CarValidationError("Car value must be a non-negative number", field="value")

    limits: dict[str, float] = {}
    for field, camel, default in _LIMIT_FIELDS:
        parsed = _parse_number(_pick(body, field, camel))
        limits[field] = default if parsed is None else parsed

    raw_vat = _pick(body, "vat_deduction", "vatDeductionPercent", "vat_deduction_percent")
    vat_deduction = VatDeduction.HALF if raw_vat is None else _vat_from_request(raw_vat)

    return CarRecord(
        id=None if body.get("id") is None else str(body.get("id")),
        name=name,
        value=value,
        vat_deduction=vat_deduction,
        sort_order=sort_order,
        **limits,
    )


def apply_car_update(car: CarRecord, body: Mapping[str, Any]) -> CarRecord:
    """Apply a partial update; values that are not usable are ignored."""
    update: dict[str, Any] = {}

    if "name" in body:
        name = str(body.get("name") or "").strip()
        if not name:
            raise CarValidationError("Car name cannot be empty", field="name")
        update["name"] = name

    value = _plain_non_negative(body.get("value"))
    if value is not None:
        update["value"] = value

    for field, camel, _default in _LIMIT_FIELDS:
        limit = _plain_non_negative(_pick(body, field, camel))
        if limit is not None:
            update[field] = limit

    if _has_any(body, "vat_deduction", "vatDeductionPercent", "vat_deduction_percent"):
        raw_vat = _pick(body, "vat_deduction", "vatDeductionPercent", "vat_deduction_percent")
        update["vat_deduction"] = _vat_from_request(raw_vat)

    sort_order = _pick(body, "sort_order", "sortOrder")
    if isinstance(sort_order, int) and not isinstance(sort_order, bool):
        update["sort_order"] = sort_order

    if not update:
        raise CarValidationError("No fields to update")
    return car.model_copy(update=update)


def next_sort_order(cars: Iterable[CarRecord]) -> int:
    orders = [car.sort_order for car in cars]
    return max(orders) + 1 if orders else 0


__all__ = [
    "CarRecord",
    "CarValidationError",
    "apply_car_update",
    "car_from_payload",
    "next_sort_order",
]
