# gst_compliance/domain/services/gstin_pan_validation.py

import re

PAN_REGEX = re.compile(r"^[A-Z]{5}[0-9]{4}[A-Z]$")
GSTIN_REGEX = re.compile(r"^[0-9]{2}[A-Z]{5}[0-9]{4}[A-Z][1-9A-Z]Z[0-9A-Z]$")

# Unregistered person marker accepted by the e-way bill portal
UNREGISTERED_GSTIN = "URP"

STATE_CODES: dict[str, str] = {
    "Jammu and Kashmir": "01",
    "Himachal Pradesh": "02",
    "Punjab": "03",
    "Chandigarh": "04",
    "Uttarakhand": "05",
    "Haryana": "06",
    "Delhi": "07",
    "Rajasthan": "08",
    "Uttar Pradesh": "09",
    "Bihar": "10",
    "Sikkim": "11",
    "Arunachal Pradesh": "12",
    "Nagaland": "13",
    "Manipur": "14",
    "Mizoram": "15",
    "Tripura": "16",
    "Meghalaya": "17",
    "Assam": "18",
    "West Bengal": "19",
    "Jharkhand": "20",
    "Odisha": "21",
    "Chhattisgarh": "22",
    "Madhya Pradesh": "23",
    "Gujarat": "24",
    "Dadra and Nagar Haveli and Daman and Diu": "26",
    "Maharashtra": "27",
    "Karnataka": "29",
    "Goa": "30",
    "Lakshadweep": "31",
    "Kerala": "32",
    "Tamil Nadu": "33",
    "Puducherry": "34",
    "Andaman and Nicobar Islands": "35",
    "Telangana": "36",
    "Andhra Pradesh": "37",
    "Ladakh": "38",
}

_CODE_TO_STATE = {code: name for name, code in STATE_CODES.items()}


def state_code_for(state_name: str | None) -> str:
    if not state_name:
        return ""
    target = state_name.strip().lower()
    for name, code in STATE_CODES.items():
        if name.lower() == target:
            return code
    return ""


def state_name_for(state_code: str | None) -> str:
    if not state_code:
        return ""
    return _CODE_TO_STATE.get(state_code.strip().zfill(2), "")


def is_valid_pan(pan: str | None) -> bool:
    if not pan:
        return False
    pan = pan.strip().upper()
    return bool(PAN_REGEX.match(pan))


def is_valid_gstin(gstin: str | None) -> bool:
    if not gstin:
        return False
    gstin = gstin.strip().upper()
    if not GSTIN_REGEX.match(gstin):
        return False

    # Extra: check PAN part inside GSTIN
    pan_part = gstin[2:12]  # chars 3–12
    return is_valid_pan(pan_part)


def validate_gstin(gstin: str | None) -> tuple[bool, str]:
    """Validate an optional GSTIN field.

    Returns ``(valid, message)``; an empty value is valid because the
    buyer GSTIN is optional on retail documents.
    """
    if not gstin or not gstin.strip():
        return True, ""

    gstin = gstin.strip().upper()
    if len(gstin) != 15:
        return False, "GSTIN must be 15 characters"
    if not is_valid_gstin(gstin):
        return False, "Invalid GSTIN format"
    if gstin[:2] not in _CODE_TO_STATE:
        return False, "Invalid state code in GSTIN"
    return True, ""


def is_valid_ewaybill_gstin(gstin: str | None) -> bool:
    """GSTIN check for e-way bill parties, where ``URP`` is allowed."""
    if not gstin:
        return False
    if gstin.strip().upper() == UNREGISTERED_GSTIN:
        return True
    return is_valid_gstin(gstin)
