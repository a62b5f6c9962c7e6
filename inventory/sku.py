"""Deterministic SKU derivation for device records.

A SKU is `model-storage-color-carrier` with empty parts left out. The model
keeps its full name with whitespace removed (`iPhone 14 Pro` -> `iPhone14Pro`);
storage keeps only its digits; color and carrier collapse to three-letter
codes. Any record missing one of those parts gets a `PARTIAL-` prefix so
operators can find degraded SKUs for review.
"""

import re

PARTIAL_PREFIX = "PARTIAL-"
UNKNOWN_SKU = "PARTIAL-UNKNOWN"

PLACEHOLDER_VALUES = {"", "unknown", "n/a", "na", "none", "null", "-"}

COLOR_CODES = (
    ("black", "BLK"),
    ("blue", "BLU"),
    ("white", "WHT"),
    ("red", "RED"),
    ("green", "GRN"),
    ("purple", "PUR"),
    ("pink", "PNK"),
    ("gold", "GLD"),
    ("silver", "SLV"),
    ("gray", "GRY"),
    ("grey", "GRY"),
    ("yellow", "YLW"),
    ("orange", "ORG"),
)

CARRIER_CODES = (
    ("unlocked", "UNL"),
    ("at&t", "ATT"),
    ("att", "ATT"),
    ("t-mobile", "TMO"),
    ("tmobile", "TMO"),
    ("verizon", "VZW"),
    ("vzw", "VZW"),
    ("sprint", "SPR"),
)


def _clean(value):
    if value is None:
        return ""
    text = str(value).strip()
    if text.lower() in PLACEHOLDER_VALUES:
        return ""
    return text


def model_component(model):
    return re.sub(r"\s+", "", _clean(model))


def storage_component(storage):
    return re.sub(r"\D", "", _clean(storage))


def color_component(color):
    text = _clean(color)
    if not text:
        return ""
    lowered = text.lower()
    for name, code in COLOR_CODES:
        if name in lowered:
            return code
    letters = re.sub(r"[^A-Za-z]", "", text)
    return letters[:3].upper()


def carrier_component(carrier):
    text = _clean(carrier)
    if not text:
        return ""
    lowered = text.lower()
    for name, code in CARRIER_CODES:
        if name in lowered:
            return code
    return re.sub(r"[^A-Za-z0-9]", "", text)[:3].upper()


def generate_sku(brand, model, storage, color, carrier):
    # Brand is not a SKU component: the model name already identifies it.
    parts = [
        model_component(model),
        storage_component(storage),
        color_component(color),
        carrier_component(carrier),
    ]
    present = [part for part in parts if part]
    if not present:
        return UNKNOWN_SKU
    sku = "-".join(present)
    if len(present) < len(parts):
        return f"{PARTIAL_PREFIX}{sku}"
    return sku


def is_partial_sku(sku):
    return bool(sku) and str(sku).startswith(PARTIAL_PREFIX)
