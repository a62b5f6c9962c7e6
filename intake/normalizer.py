"""Map heterogeneous intake payloads onto one canonical record.

Inputs come from bulk spreadsheets (free-form headers typed by people) and
from the inspection provider (PascalCase keys such as `Make`, `Model#` or
`BatteryHealthPercentage`). Each canonical field has an ordered alias list;
the first alias with a non-empty value wins.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from typing import Any

from django.conf import settings

from common.errors import RecordValidationError
from inventory.models import Product, Working

UNKNOWN = "Unknown"
DEVICE_ID_MAX_LENGTH = Product._meta.get_field("device_id").max_length

FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "device_id": (
        "imei",
        "IMEI",
        "deviceImei",
        "device_imei",
        "Imei",
        "DeviceIMEI",
        "device_id",
        "deviceId",
        "serialNumber",
        "serial_number",
        "Serial",
        "serial",
    ),
    "display_name": ("display_name", "displayName", "name", "deviceName", "device_name", "Name"),
    "brand": ("brand", "Brand", "make", "Make", "manufacturer", "Manufacturer"),
    "model": ("model", "Model", "modelName", "model_name", "ModelName"),
    "model_number": ("model_number", "modelNumber", "Model#", "ModelNumber", "model_no"),
    "storage": ("storage", "Storage", "capacity", "Capacity", "memory", "Memory"),
    "color": ("color", "Color", "colour", "Colour"),
    "carrier": ("carrier", "Carrier", "network", "Network", "lock_status"),
    "location_name": ("location", "Location", "location_name", "locationName", "warehouse", "bin"),
    "working": ("working", "Working", "test_result", "testResult", "status", "Status"),
    "battery_health": (
        "battery_health",
        "batteryHealth",
        "BatteryHealthPercentage",
        "battery_percentage",
        "BatteryHealth",
    ),
    "battery_cycle_count": ("battery_cycle_count", "batteryCycleCount", "BatteryCycle", "battery_count", "battery_cycles"),
    "defect_text": ("defects", "Defects", "failed", "Failed", "failed_tests", "failedTests", "defect_text"),
    "notes": ("notes", "Notes", "device_notes", "deviceNotes", "comments", "Comments"),
    "quantity": ("quantity", "Quantity", "qty", "Qty", "count"),
}

TRUE_TOKENS = {"yes", "true", "pass", "passed"}
FALSE_TOKENS = {"no", "false", "fail", "failed"}

BRAND_HINTS = (
    ("galaxy", "Samsung"),
    ("iphone", "Apple"),
    ("ipad", "Apple"),
    ("pixel", "Google"),
)


@dataclass
class NormalizedRecord:
    device_id: str
    display_name: str
    brand: str
    model: str
    model_number: str
    storage: str
    color: str
    carrier: str
    location_name: str
    working: str
    battery_health: int | None
    battery_cycle_count: int | None
    defect_text: str
    notes: str
    quantity: int = 1

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict, set)):
        return not value
    return False


def first_present(raw: Mapping[str, Any], aliases: tuple[str, ...]) -> Any:
    for alias in aliases:
        value = raw.get(alias)
        if not _is_empty(value):
            return value
    return None


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple, set)):
        return ", ".join(str(item).strip() for item in value if not _is_empty(item))
    return str(value).strip()


def coerce_tristate(value: Any) -> str:
    """Collapse booleans and yes/no style strings to yes, no or pending. Never raises."""
    if isinstance(value, bool):
        return Working.YES if value else Working.NO
    if isinstance(value, str):
        token = value.strip().lower()
        if token in TRUE_TOKENS:
            return Working.YES
        if token in FALSE_TOKENS:
            return Working.NO
    return Working.PENDING


def parse_optional_int(value: Any) -> int | None:
    """Return the leading number of values such as "95%" or "812 cycles"; None when absent or negative."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if value >= 0 else None
    match = re.search(r"-?\d+(?:\.\d+)?", str(value))
    if match is None:
        return None
    number = float(match.group())
    return int(number) if number >= 0 else None


def parse_quantity(value: Any) -> int:
    parsed = parse_optional_int(value)
    if not parsed or parsed < 1:
        return 1
    return parsed


def infer_brand(model: str) -> str:
    lowered = model.lower()
    for hint, brand in BRAND_HINTS:
        if hint in lowered:
            return brand
    return UNKNOWN


def normalize_device_id(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        # Spreadsheet exports turn IMEIs into floats.
        value = int(value)
    return re.sub(r"\s+", "", _text(value))


def normalize_record(raw: Any) -> NormalizedRecord:
    if not isinstance(raw, Mapping):
        raise RecordValidationError(
            "Record must be a JSON object.",
            {"type": type(raw).__name__},
        )

    device_id = normalize_device_id(first_present(raw, FIELD_ALIASES["device_id"]))
    if not device_id:
        raise RecordValidationError(
            "Record has no device identifier.",
            {"device_id": f"One of {', '.join(FIELD_ALIASES['device_id'])} is required."},
        )
    if len(device_id) > DEVICE_ID_MAX_LENGTH:
        raise RecordValidationError(
            f"Device identifier is longer than {DEVICE_ID_MAX_LENGTH} characters.",
            {"device_id": device_id[:DEVICE_ID_MAX_LENGTH] + "..."},
        )

    def field(name: str, default: str = "") -> str:
        return _text(first_present(raw, FIELD_ALIASES[name])) or default

    model = field("model", UNKNOWN)
    brand = field("brand") or infer_brand(model)
    display_name = field("display_name") or " ".join(part for part in (brand, model) if part != UNKNOWN) or device_id

    return NormalizedRecord(
        device_id=device_id,
        display_name=display_name,
        brand=brand,
        model=model,
        model_number=field("model_number"),
        storage=field("storage", UNKNOWN),
        color=field("color", UNKNOWN),
        carrier=field("carrier", UNKNOWN),
        location_name=field("location_name", settings.INTAKE_DEFAULT_LOCATION),
        working=coerce_tristate(first_present(raw, FIELD_ALIASES["working"])),
        battery_health=parse_optional_int(first_present(raw, FIELD_ALIASES["battery_health"])),
        battery_cycle_count=parse_optional_int(first_present(raw, FIELD_ALIASES["battery_cycle_count"])),
        defect_text=field("defect_text"),
        notes=field("notes"),
        quantity=parse_quantity(first_present(raw, FIELD_ALIASES["quantity"])),
    )
