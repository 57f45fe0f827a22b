"""Tax benefit calculations for purchase invoices of a small Polish business.

The calculator lives in :mod:`invoice_tax.core`; the HTTP API, command line,
settings store and PDF printout sit around it.
"""
from __future__ import annotations

__version__ = "0.1.0"
