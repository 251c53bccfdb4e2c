"""
Supported Nigerian banks and their Paystack bank codes.

Lookups are case-insensitive and accept the bank's name, its display
label, or the name with a trailing Bank/Limited/Ltd/Plc/Nigeria removed.
"""
import re
from dataclasses import dataclass


@dataclass(frozen=True)
class Bank:
    name: str
    label: str
    code: str


SUPPORTED_BANKS: tuple[Bank, ...] = (
    Bank("Access Bank", "Access Bank", "access-bank"),
    Bank("Fidelity Bank", "Fidelity Bank", "fidelity-bank"),
    Bank("First Bank of Nigeria", "First Bank of Nigeria", "first-bank-of-nigeria"),
    Bank("Guaranty Trust Bank", "Guaranty Trust Bank (GTBank)", "guaranty-trust-bank"),
    Bank("United Bank for Africa", "United Bank for Africa (UBA)", "united-bank-for-africa"),
    Bank("Zenith Bank", "Zenith Bank", "zenith-bank"),
    Bank("Ecobank Nigeria", "Ecobank Nigeria", "ecobank-nigeria"),
    Bank("Union Bank of Nigeria", "Union Bank of Nigeria", "union-bank-of-nigeria"),
    Bank("Stanbic IBTC Bank", "Stanbic IBTC Bank", "stanbic-ibtc-bank"),
    Bank("Sterling Bank", "Sterling Bank", "sterling-bank"),
    Bank("Wema Bank", "Wema Bank", "wema-bank"),
    Bank("Polaris Bank", "Polaris Bank", "polaris-bank"),
    Bank("Kuda Bank", "Kuda Bank", "kuda-bank"),
    Bank("VFD Microfinance Bank", "VFD Microfinance Bank", "vfd"),
    Bank("Opay", "Opay", "paycom"),
    Bank("PalmPay", "PalmPay", "palmpay"),
    Bank("Moniepoint", "Moniepoint", "moniepoint-mfb-ng"),
)

_SUFFIX = re.compile(r"\s+(Bank|Limited|Ltd|Plc|Nigeria)$", re.IGNORECASE)


def _build_lookup() -> dict[str, str]:
    lookup = {}
    for bank in SUPPORTED_BANKS:
        lookup[bank.name.lower()] = bank.code
        lookup[bank.label.lower()] = bank.code
        short_name = _SUFFIX.sub("", bank.name).lower()
        lookup.setdefault(short_name, bank.code)
    return lookup


_BANK_CODES = _build_lookup()


def get_bank_code(bank_name) -> str | None:
    if not bank_name or not isinstance(bank_name, str):
        return None
    return _BANK_CODES.get(bank_name.strip().lower())


def supported_banks() -> list[dict]:
    return [{"name": b.name, "label": b.label, "bankCode": b.code} for b in SUPPORTED_BANKS]


def _text(value) -> str:
    return value.strip() if isinstance(value, str) else ""


def validate_payment_info(payment_info: dict | None) -> dict:
    """
    Check a worker's payment details for a Paystack transfer.

    Returns:
        ``{"isValid": bool, "errors": [str], "bankCode": str | None}``
    """
    result = {"isValid": True, "errors": [], "bankCode": None}

    if not payment_info:
        result["isValid"] = False
        result["errors"].append("Payment info is required")
        return result

    if not _text(payment_info.get("account_name")):
        result["isValid"] = False
        result["errors"].append("Account name is required")

    if not _text(payment_info.get("account_number")):
        result["isValid"] = False
        result["errors"].append("Account number is required")

    bank_name = _text(payment_info.get("bank_name"))
    if not bank_name:
        result["isValid"] = False
        result["errors"].append("Bank name is required")
    else:
        bank_code = get_bank_code(bank_name)
        if bank_code is None:
            result["isValid"] = False
            result["errors"].append(f"Unsupported bank: {bank_name}")
        else:
            result["bankCode"] = bank_code

    return result
