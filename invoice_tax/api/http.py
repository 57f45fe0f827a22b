import logging
from typing import Any

from fastapi import APIRouter, FastAPI, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field

from invoice_tax.config import get_settings
from invoice_tax.lifespan import build_application_lifespan
from invoice_tax.settings_store import SettingsStore, SettingsStoreError, build_settings_store
from ..core.benefits import (
    compute_car_cost_limit,
    compute_car_cost_proportion,
    compute_purchase_invoice_tax_benefit,
)
from ..core.cars import CarRecord, CarValidationError, apply_car_update, car_from_payload, next_sort_order
from ..core.models import CarTaxContext, CompanyTaxConfig, PurchaseInvoiceTaxInput
from ..printout.benefits_render import render_benefit_report_pdf
from ..reports.benefits import BenefitReport, InvoiceRecord, build_benefit_report

logger = logging.getLogger("invoice_tax")


async def _announce_startup(app: FastAPI) -> None:
    settings = app.state.settings
    logger.info(
        "Invoice tax API ready; build=%s sha=%s currency=%s",
        settings.build_version,
        settings.build_sha,
        settings.default_currency,
    )


app = FastAPI(
    title="Invoice Tax Benefits",
    description="Tax benefit of purchase invoices: recovered VAT, PIT and health contribution savings, real cost.",
    lifespan=build_application_lifespan("api", startup_hook=_announce_startup),
)
router = APIRouter()


class ComputeRequest(BaseModel):
    invoice: PurchaseInvoiceTaxInput
    config: CompanyTaxConfig | None = None


class CarLimitRequest(BaseModel):
    car: CarTaxContext


class ReportRequest(BaseModel):
    invoices: list[InvoiceRecord] = Field(default_factory=list)
    cars: list[CarRecord] = Field(default_factory=list)
    month: int | None = None
    year: int | None = None
    config: CompanyTaxConfig | None = None


class ReportPdfRequest(ReportRequest):
    out_path: str = "."


class CarCreateRequest(BaseModel):
    payload: dict[str, Any]
    existing: list[CarRecord] = Field(default_factory=list)


class CarUpdateRequest(BaseModel):
    car: CarRecord
    changes: dict[str, Any]

    model_config = ConfigDict(extra="forbid")


def _store(request: Request) -> SettingsStore:
    store = getattr(request.app.state, "settings_store", None)
    if store is None:
        settings = get_settings()
        store = build_settings_store(settings.settings_path, settings.settings_cache_ttl)
    return store


def _resolve_config(request: Request, config: CompanyTaxConfig | None) -> CompanyTaxConfig:
    if config is not None:
        return config
    try:
        return _store(request).get_company_settings().tax_config()
    except SettingsStoreError as exc:
        logger.error("Company settings unavailable: %s", exc)
        raise HTTPException(status_code=500, detail="Company settings unavailable") from exc


def _build_report(request: Request, req: ReportRequest) -> BenefitReport:
    config = _resolve_config(request, req.config)
    try:
        return build_benefit_report(req.invoices, config, cars=req.cars, month=req.month, year=req.year)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/health")
def health(request: Request):
    settings = getattr(request.app.state, "settings", None) or get_settings()
    return {
        "status": "ok",
        "build": {
            "version": settings.build_version,
            "sha": settings.build_sha,
        },
        "settings_path": settings.settings_path,
        "default_currency": settings.default_currency,
    }


@router.post("/tax-benefits/compute")
def compute(req: ComputeRequest, request: Request):
    config = _resolve_config(request, req.config)
    result = compute_purchase_invoice_tax_benefit(req.invoice, config)
    return {"config": config.model_dump(), "result": result.as_dict()}


@router.post("/tax-benefits/car-limit")
def car_limit(req: CarLimitRequest):
    return {
        "limit": compute_car_cost_limit(req.car),
        "proportion": compute_car_cost_proportion(req.car),
    }


@router.post("/tax-benefits/report")
def report(req: ReportRequest, request: Request):
    return _build_report(request, req).as_dict()


@router.post("/tax-benefits/report/pdf")
def report_pdf(req: ReportPdfRequest, request: Request):
    built = _build_report(request, req)
    company = None
    try:
        company = _store(request).get_company_settings()
    except SettingsStoreError as exc:
        logger.warning("Rendering report without company header: %s", exc)
    path = render_benefit_report_pdf(req.out_path, built, company)
    return {"pdf": path}


@router.get("/settings/company")
def get_company(request: Request):
    try:
        return _store(request).get_company_settings().model_dump()
    except SettingsStoreError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc


@router.put("/settings/company")
def put_company(body: dict[str, Any], request: Request):
    try:
        company = _store(request).set_company_settings(body)
    except SettingsStoreError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return {"ok": True, "company": company.model_dump()}


@router.post("/cars")
def create_car(req: CarCreateRequest):
    try:
        car = car_from_payload(req.payload, sort_order=next_sort_order(req.existing))
    except CarValidationError as exc:
        raise HTTPException(status_code=400, detail={"field": exc.field, "message": str(exc)}) from exc
    return car.model_dump(mode="json")


@router.post("/cars/update")
def update_car(req: CarUpdateRequest):
    try:
        car = apply_car_update(req.car, req.changes)
    except CarValidationError as exc:
        raise HTTPException(status_code=400, detail={"field": exc.field, "message": str(exc)}) from exc
    return car.model_dump(mode="json")


app.include_router(router)
