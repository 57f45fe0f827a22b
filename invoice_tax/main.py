import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Sequence

from pydantic import ValidationError

from invoice_tax.config import get_settings
from invoice_tax.core.benefits import PurchaseInvoiceTaxResult, compute_purchase_invoice_tax_benefit
from invoice_tax.core.cars import CarRecord
from invoice_tax.core.models import CompanyTaxConfig
from invoice_tax.printout.benefits_render import format_amount, render_benefit_report_pdf
from invoice_tax.reports.benefits import BenefitReport, InvoiceRecord, build_benefit_report
from invoice_tax.settings_store import SettingsStore, SettingsStoreError, build_settings_store

logger = logging.getLogger("invoice_tax.cli")

EXIT_INPUT_ERROR = 2

BREAKDOWN_ROWS = (
    ("vat_recovered", "VAT recovered"),
    ("cost_base", "Cost base"),
    ("income_tax_saving", "Income tax saving"),
    ("health_saving", "Health contribution saving"),
    ("total_tax_benefit", "Total tax benefit"),
    ("real_cost", "Real cost"),
)


class CliInputError(Exception):
    pass


def _load_json(path: str) -> Any:
    file_path = Path(path)
    try:
        return json.loads(file_path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise CliInputError(f"Cannot read {file_path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise CliInputError(f"{file_path} is not valid JSON: {exc}") from exc


def _resolve_config(raw: Any, store: SettingsStore) -> CompanyTaxConfig:
    if raw is None:
        return store.get_company_settings().tax_config()
    return CompanyTaxConfig.model_validate(raw)


def _print_breakdown(result: PurchaseInvoiceTaxResult, currency: str) -> None:
    width = max(len(label) for _, label in BREAKDOWN_ROWS)
    for key, label in BREAKDOWN_ROWS:
        print(f"{label:<{width}}  {format_amount(getattr(result, key), currency):>18}")


def _print_report(report: BenefitReport) -> None:
    print(f"Tax benefits - {report.period_label}")
    if not report.rows:
        print("No purchase invoices in this period.")
        return
    header = f"{'Number':<18} {'Date':<10} {'Seller':<28} {'Gross':>14} {'Benefit':>14} {'Real cost':>14}"
    print(header)
    print("-" * len(header))
    for row in report.rows:
        invoice = row.invoice
        print(
            f"{invoice.number[:18]:<18} {invoice.issue_date.isoformat():<10} {invoice.seller_name[:28]:<28} "
            f"{format_amount(invoice.gross_amount):>14} {format_amount(row.result.total_tax_benefit):>14} "
            f"{format_amount(row.result.real_cost):>14}"
        )
    for currency, totals in sorted(report.totals.items()):
        print()
        print(f"Totals {currency} ({totals.count} invoices)")
        print(f"  Total tax benefit  {format_amount(totals.total_tax_benefit, currency)}")
        print(f"  Real cost          {format_amount(totals.real_cost, currency)}")


def _cmd_compute(args: argparse.Namespace, store: SettingsStore) -> int:
    data = _load_json(args.data)
    if not isinstance(data, dict):
        raise CliInputError("compute expects a JSON object")
    invoice = data.get("invoice", data)
    config = _resolve_config(data.get("config"), store)
    result = compute_purchase_invoice_tax_benefit(invoice, config)
    if args.json:
        print(json.dumps(result.as_dict(), indent=2))
    else:
        _print_breakdown(result, args.currency or get_settings().default_currency)
    return 0


def _cmd_report(args: argparse.Namespace, store: SettingsStore) -> int:
    data = _load_json(args.data)
    if isinstance(data, list):
        data = {"invoices": data}
    if not isinstance(data, dict):
        raise CliInputError("report expects a JSON list of invoices or an object with 'invoices'")
    config = _resolve_config(data.get("config"), store)
    cars = [CarRecord.model_validate(item) for item in data.get("cars") or []]
    invoices = [InvoiceRecord.model_validate(item) for item in data.get("invoices") or []]
    try:
        report = build_benefit_report(invoices, config, cars=cars, month=args.month, year=args.year)
    except ValueError as exc:
        raise CliInputError(str(exc)) from exc
    if args.json:
        print(json.dumps(report.as_dict(), indent=2))
    else:
        _print_report(report)
    if args.pdf:
        path = render_benefit_report_pdf(args.pdf, report, store.get_company_settings())
        print(f"PDF written to {path}")
    return 0


def _cmd_settings(args: argparse.Namespace, store: SettingsStore) -> int:
    action = args.subargs[0] if args.subargs else "show"
    if action == "show":
        print(json.dumps(store.get_company_settings().model_dump(), indent=2, ensure_ascii=False))
        return 0
    if action == "set":
        update: dict[str, str] = {}
        for pair in args.subargs[1:]:
            key, sep, value = pair.partition("=")
            if not sep or not key.strip():
                raise CliInputError(f"Expected KEY=VALUE, got {pair!r}")
            update[key.strip()] = value
        if not update:
            raise CliInputError("settings set needs at least one KEY=VALUE pair")
        company = store.set_company_settings(update)
        print(json.dumps(company.model_dump(), indent=2, ensure_ascii=False))
        return 0
    raise CliInputError(f"Unknown settings action {action!r}; use 'show' or 'set'")


def _cmd_serve(args: argparse.Namespace, store: SettingsStore) -> int:
    import uvicorn

    if args.settings_path:
        os.environ["SETTINGS_PATH"] = args.settings_path
        get_settings.cache_clear()
    logger.info("Serving API on %s:%s (settings %s)", args.host, args.port, store.path)
    uvicorn.run("invoice_tax.api.http:app", host=args.host, port=args.port)
    return 0


COMMANDS = {
    "compute": _cmd_compute,
    "report": _cmd_report,
    "settings": _cmd_settings,
    "serve": _cmd_serve,
}


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="invoice-tax",
        description="Tax benefit of purchase invoices (VAT, PIT and health contribution savings).",
    )
    parser.add_argument("command", choices=sorted(COMMANDS), help="Action to perform.")
    parser.add_argument("subargs", nargs="*", help="Additional arguments for the chosen command.")
    parser.add_argument("--data", help="Path to a JSON file with the invoice(s).")
    parser.add_argument("--month", type=int, help="Report month (1-12); requires --year.")
    parser.add_argument("--year", type=int, help="Report year.")
    parser.add_argument("--pdf", help="Also render the report to this PDF path or directory.")
    parser.add_argument("--json", action="store_true", help="Print JSON instead of a table.")
    parser.add_argument("--currency", help="Currency label for the compute breakdown.")
    parser.add_argument("--settings-path", help="Override SETTINGS_PATH for this run.")
    parser.add_argument("--host", default="127.0.0.1", help="Bind address for serve.")
    parser.add_argument("--port", type=int, default=8000, help="Port for serve.")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )
    if args.command in {"compute", "report"} and not args.data:
        print(f"{args.command} requires --data", file=sys.stderr)
        return EXIT_INPUT_ERROR

    store = build_settings_store(args.settings_path or settings.settings_path, settings.settings_cache_ttl)
    try:
        return COMMANDS[args.command](args, store)
    except (CliInputError, SettingsStoreError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_INPUT_ERROR
    except ValidationError as exc:
        print(f"error: invalid input\n{exc}", file=sys.stderr)
        return EXIT_INPUT_ERROR


if __name__ == "__main__":
    sys.exit(main())
