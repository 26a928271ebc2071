"""
Compact location codes ("plus codes").

A code is a base-20 grid reference: symbol pairs before and immediately after
the '+' refine latitude/longitude from the south-west corner of the globe
(20°, 1°, 0.05°, 0.0025°, 0.000125° per pair), and any further symbols each
pick one cell of a 5-row x 4-column sub-grid. Codes with fewer than eight
symbols before the '+' are "short" and only meaningful next to a locality.
"""
from __future__ import annotations

import math
import re
from typing import Dict, Optional, Tuple

from .errors import InvalidPlusCodeError, MissingLocalityContextError
from .models import Coordinate

ALPHABET = "23456789CFGHJMPQRVWX"
BASE = len(ALPHABET)
SEPARATOR = "+"
PAIR_CODE_LENGTH = 8
PAIR_PRECISIONS = (20.0, 1.0, 0.05, 0.0025, 0.000125)
GRID_ROWS = 5
GRID_COLS = 4
MAX_GRID_DIGITS = 5

# offsets applied per symbol when a short code is anchored on a locality centre
SHORT_PAIR_STEP = 0.0025
SHORT_GRID_STEP = 0.000125

# integer units per degree at full pair + grid precision
_FINAL_LAT_UNITS = 8000 * GRID_ROWS ** MAX_GRID_DIGITS
_FINAL_LNG_UNITS = 8000 * GRID_COLS ** MAX_GRID_DIGITS

PLUS_CODE_RE = re.compile(
    r"([23456789CFGHJMPQRVWX]{2,8}\+[23456789CFGHJMPQRVWX]{2,3})",
    re.IGNORECASE,
)

LOCALITY_CENTERS: Dict[str, Tuple[float, float]] = {
    "windsor, ontario": (42.3149, -83.0364),
    "windsor": (42.3149, -83.0364),
    "toronto, ontario": (43.6532, -79.3832),
    "toronto": (43.6532, -79.3832),
    "new york, ny": (40.7128, -74.0060),
    "new york": (40.7128, -74.0060),
    "ontario": (44.2619, -78.2957),
    "ny": (43.2994, -74.2179),
}


def _index(ch: str) -> int:
    i = ALPHABET.find(ch)
    if i < 0:
        raise InvalidPlusCodeError(f"Invalid location code character: {ch!r}")
    return i


def _split(code: str) -> Tuple[str, str]:
    code = re.sub(r"\s", "", code).upper()
    if code.count(SEPARATOR) != 1:
        raise InvalidPlusCodeError(f"Location code {code!r} must contain exactly one '+'")
    prefix, suffix = code.split(SEPARATOR)
    for ch in prefix + suffix:
        _index(ch)
    return prefix, suffix


def find_plus_code(text: str) -> Optional[Tuple[str, str]]:
    """
    Find a code inside free text. Returns (CODE, locality) where locality is
    whatever text remains once the code and surrounding commas are stripped.
    """
    m = PLUS_CODE_RE.search(text or "")
    if not m:
        return None
    code = m.group(1).upper()
    rest = (text[:m.start()] + text[m.end():]).strip()
    rest = re.sub(r"^,\s*", "", rest)
    rest = re.sub(r"\s*,$", "", rest)
    return code, rest.strip()


def is_full(code: str) -> bool:
    prefix, _ = _split(code)
    return len(prefix) == PAIR_CODE_LENGTH


def decode(code: str, reference: Optional[Coordinate] = None) -> Coordinate:
    """
    Decode to the centre of the code's cell. Short codes need `reference`
    (the locality centre) and raise MissingLocalityContextError without it.
    """
    prefix, suffix = _split(code)
    if len(prefix) > PAIR_CODE_LENGTH:
        raise InvalidPlusCodeError(f"Location code {code!r} has too many symbols before '+'")
    if len(prefix) < PAIR_CODE_LENGTH:
        if reference is None:
            raise MissingLocalityContextError(code)
        return decode_short(code, reference)
    return _decode_full(prefix, suffix)


def _decode_full(prefix: str, suffix: str) -> Coordinate:
    if len(suffix) == 1:
        raise InvalidPlusCodeError("A single symbol after '+' is not a valid location code")
    if len(suffix) > 2 + MAX_GRID_DIGITS:
        raise InvalidPlusCodeError("Location code is longer than the supported precision")

    pairs = prefix + suffix[:2]
    lat = -90.0
    lng = -180.0
    lat_prec = lng_prec = PAIR_PRECISIONS[0]
    for i in range(0, len(pairs), 2):
        lat_prec = lng_prec = PAIR_PRECISIONS[i // 2]
        lat += _index(pairs[i]) * lat_prec
        lng += _index(pairs[i + 1]) * lng_prec

    for ch in suffix[2:]:
        row, col = divmod(_index(ch), GRID_COLS)
        lat_prec /= GRID_ROWS
        lng_prec /= GRID_COLS
        lat += row * lat_prec
        lng += col * lng_prec

    lat += lat_prec / 2
    lng += lng_prec / 2
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0):
        raise InvalidPlusCodeError(f"Location code {prefix}+{suffix} is outside the globe")
    return Coordinate(lat=lat, lng=lng)


def decode_short(code: str, reference: Coordinate) -> Coordinate:
    """Approximate a short code as a small offset from the locality centre."""
    prefix, suffix = _split(code)
    lat_off = 0.0
    lng_off = 0.0
    for i in range(0, len(prefix) - 1, 2):
        lat_off += _index(prefix[i]) * SHORT_PAIR_STEP
        lng_off += _index(prefix[i + 1]) * SHORT_PAIR_STEP
    if suffix:
        row, col = divmod(_index(suffix[0]), GRID_COLS)
        lat_off += row * SHORT_GRID_STEP
        lng_off += col * SHORT_GRID_STEP
    lat = min(90.0, max(-90.0, reference.lat + lat_off))
    lng = reference.lng + lng_off
    if lng >= 180.0:
        lng -= 360.0
    return Coordinate(lat=lat, lng=lng)


def encode(lat: float, lng: float, code_length: int = 10) -> str:
    """Encode a coordinate; code_length counts symbols, excluding the '+'."""
    if code_length != PAIR_CODE_LENGTH and not (10 <= code_length <= 10 + MAX_GRID_DIGITS):
        raise InvalidPlusCodeError(f"Unsupported code length {code_length}")

    lat_val = int(math.floor(round((lat + 90.0) * _FINAL_LAT_UNITS, 6)))
    lng_val = int(math.floor(round((lng + 180.0) * _FINAL_LNG_UNITS, 6)))
    lat_val = min(max(lat_val, 0), 180 * _FINAL_LAT_UNITS - 1)
    lng_val %= 360 * _FINAL_LNG_UNITS

    grid = ""
    for _ in range(MAX_GRID_DIGITS):
        grid = ALPHABET[(lat_val % GRID_ROWS) * GRID_COLS + lng_val % GRID_COLS] + grid
        lat_val //= GRID_ROWS
        lng_val //= GRID_COLS

    pairs = ""
    for _ in range(len(PAIR_PRECISIONS)):
        pairs = ALPHABET[lat_val % BASE] + ALPHABET[lng_val % BASE] + pairs
        lat_val //= BASE
        lng_val //= BASE

    code = pairs[:PAIR_CODE_LENGTH] + SEPARATOR + pairs[PAIR_CODE_LENGTH:] + grid
    return code[: code_length + 1]


def locality_center(locality: str) -> Optional[Coordinate]:
    """Exact match on the normalised locality, then the longest known name it contains."""
    key = (locality or "").strip().lower().strip(",").strip()
    if not key:
        return None
    if key in LOCALITY_CENTERS:
        lat, lng = LOCALITY_CENTERS[key]
        return Coordinate(lat=lat, lng=lng)
    contained = [name for name in LOCALITY_CENTERS if name in key]
    if not contained:
        return None
    lat, lng = LOCALITY_CENTERS[max(contained, key=len)]
    return Coordinate(lat=lat, lng=lng)
