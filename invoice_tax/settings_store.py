"""Company settings kept as a flat key/value JSON document.

Reads go through a :class:`SettingsCache` owned by the caller; writes refresh
the cached entry so a reader never sees a value older than the last write made
through the same store.
"""
from __future__ import annotations

import json
import logging
import math
import os
import tempfile
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Mapping

from pydantic import BaseModel, ConfigDict

from invoice_tax.core.amounts import to_amount
from invoice_tax.core.models import CompanyTaxConfig

logger = logging.getLogger("invoice_tax.settings")

PIT_RATE_LOW = 0.12
PIT_RATE_HIGH = 0.32
DEFAULT_HEALTH_RATE = 0.09
_FALSE_WORDS = {"false", "0", "no", "off", "nie"}

KEY_NAME = "company_name"
KEY_NIP = "company_nip"
KEY_ADDRESS = "company_address"
KEY_POSTAL_CODE = "company_postal_code"
KEY_CITY = "company_city"
KEY_PIT_RATE = "company_pit_rate"
KEY_HEALTH_RATE = "company_health_rate"
KEY_VAT_PAYER = "company_is_vat_payer"

_TEXT_KEYS = {
    "name": KEY_NAME,
    "nip": KEY_NIP,
    "address": KEY_ADDRESS,
    "postal_code": KEY_POSTAL_CODE,
    "city": KEY_CITY,
}
_CAMEL_KEYS = {
    "postalCode": "postal_code",
    "pitRate": "pit_rate",
    "healthRate": "health_rate",
    "isVatPayer": "is_vat_payer",
}


class SettingsStoreError(RuntimeError):
    pass


@dataclass
class _CacheEntry:
    value: str | None
    stored_at: float


class SettingsCache:
    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, _CacheEntry] = {}
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0

    def get(self, key: str) -> tuple[bool, str | None]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False, None
            if self._clock() - entry.stored_at >= self.ttl_seconds:
                self._entries.pop(key, None)
                return False, None
            return True, entry.value

    def put(self, key: str, value: str | None) -> None:
        if not self.enabled:
            return
        with self._lock:
            self._entries[key] = _CacheEntry(value=value, stored_at=self._clock())

    def invalidate(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)


def normalize_pit_rate(raw: Any) -> float:
    """Only the two scale rates exist; anything but 32% reads as 12%."""
    rate = to_amount(raw)
    if rate > 1:
        rate = rate / 100
    return PIT_RATE_HIGH if abs(rate - PIT_RATE_HIGH) < 1e-9 else PIT_RATE_LOW


def normalize_health_rate(raw: Any) -> float:
    if isinstance(raw, bool):
        return DEFAULT_HEALTH_RATE
    try:
        rate = float(raw)
    except (TypeError, ValueError, OverflowError):
        return DEFAULT_HEALTH_RATE
    if not math.isfinite(rate):
        return DEFAULT_HEALTH_RATE
    return min(1.0, max(0.0, rate))


def normalize_vat_payer(raw: Any) -> bool:
    if raw is None:
        return True
    if isinstance(raw, bool):
        return raw
    return str(raw).strip().lower() not in _FALSE_WORDS


class CompanySettings(BaseModel):
    name: str = ""
    nip: str = ""
    address: str = ""
    postal_code: str = ""
    city: str = ""
    pit_rate: float = PIT_RATE_LOW
    health_rate: float = DEFAULT_HEALTH_RATE
    is_vat_payer: bool = True

    model_config = ConfigDict(frozen=True)

    def tax_config(self) -> CompanyTaxConfig:
        return CompanyTaxConfig(
            pit_rate=self.pit_rate,
            health_rate=self.health_rate,
            is_vat_payer=self.is_vat_payer,
        )


class SettingsStore:
    def __init__(self, path: str | Path, cache: SettingsCache) -> None:
        self.path = Path(path)
        self.cache = cache
        self._write_lock = threading.Lock()

    def _read_document(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError as exc:
            raise SettingsStoreError(f"{self.path} is not valid JSON: {exc}") from exc
        if not isinstance(raw, dict):
            raise SettingsStoreError(f"{self.path} must contain a JSON object")
        return {str(key): "" if value is None else str(value) for key, value in raw.items()}

    def _write_document(self, document: Mapping[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".settings-", suffix=".json", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(dict(document), handle, ensure_ascii=False, indent=2, sort_keys=True)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def get_setting(self, key: str) -> str | None:
        hit, value = self.cache.get(key)
        if hit:
            return value
        logger.debug("Settings cache miss for %s", key)
        value = self._read_document().get(key)
        self.cache.put(key, value)
        return value

    def set_many(self, values: Mapping[str, str]) -> None:
        if not values:
            return
        with self._write_lock:
            document = self._read_document()
            document.update({key: str(value) for key, value in values.items()})
            self._write_document(document)
            for key, value in values.items():
                self.cache.invalidate(key)
                self.cache.put(key, str(value))
        logger.info("Stored settings: %s", ", ".join(sorted(values)))

    def set_setting(self, key: str, value: str) -> None:
        self.set_many({key: value})

    def all_settings(self) -> dict[str, str]:
        return self._read_document()

    def get_company_settings(self) -> CompanySettings:
        return CompanySettings(
            name=(self.get_setting(KEY_NAME) or "").strip(),
            nip=(self.get_setting(KEY_NIP) or "").strip(),
            address=(self.get_setting(KEY_ADDRESS) or "").strip(),
            postal_code=(self.get_setting(KEY_POSTAL_CODE) or "").strip(),
            city=(self.get_setting(KEY_CITY) or "").strip(),
            pit_rate=normalize_pit_rate(self.get_setting(KEY_PIT_RATE)),
            health_rate=normalize_health_rate(self.get_setting(KEY_HEALTH_RATE)),
            is_vat_payer=normalize_vat_payer(self.get_setting(KEY_VAT_PAYER)),
        )

    def set_company_settings(self, update: Mapping[str, Any]) -> CompanySettings:
        """Persist the supplied company fields; unknown keys are ignored."""
        fields = {_CAMEL_KEYS.get(key, key): value for key, value in update.items()}
        values: dict[str, str] = {}
        for field, key in _TEXT_KEYS.items():
            if field not in fields:
                continue
            text = str(fields[field] if fields[field] is not None else "").strip()
            if field == "nip":
                text = "".join(text.split())
            values[key] = text
        if "pit_rate" in fields:
            values[KEY_PIT_RATE] = repr(normalize_pit_rate(fields["pit_rate"]))
        if "health_rate" in fields:
            values[KEY_HEALTH_RATE] = repr(normalize_health_rate(fields["health_rate"]))
        if "is_vat_payer" in fields:
            values[KEY_VAT_PAYER] = "true" if normalize_vat_payer(fields["is_vat_payer"]) else "false"
        self.set_many(values)
        return self.get_company_settings()


def build_settings_store(path: str | Path, ttl_seconds: float) -> SettingsStore:
    return SettingsStore(path, SettingsCache(ttl_seconds))


__all__ = [
    "CompanySettings",
    "DEFAULT_HEALTH_RATE",
    "PIT_RATE_HIGH",
    "PIT_RATE_LOW",
    "SettingsCache",
    "SettingsStore",
    "SettingsStoreError",
    "build_settings_store",
    "normalize_health_rate",
    "normalize_pit_rate",
    "normalize_vat_payer",
]
