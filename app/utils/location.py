import json
import math
from typing import Any, Dict, Mapping, Optional, Tuple

from app.core.exceptions import ValidationError

# Latitude/longitude key spellings accepted from clients
LATITUDE_KEYS = ("latitude", "lat")
LONGITUDE_KEYS = ("longitude", "lng", "lon")


def format_coordinates(latitude: float, longitude: float) -> str:
    """Fallback address: the raw coordinate pair"""
    return f"{latitude}, {longitude}"


def _pick(source: Mapping[str, Any], keys: Tuple[str, ...]) -> Optional[Any]:
    for key in keys:
        value = source.get(key)
        if value is not None and value != "":
            return value
    return None


def _to_float(value: Any, field: str, errors: Dict[str, str]) -> Optional[float]:
    if isinstance(value, bool):
        errors[field] = f"{field.capitalize()} must be a number"
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        errors[field] = f"{field.capitalize()} must be a number"
        return None
    if not math.isfinite(number):
        errors[field] = f"{field.capitalize()} must be a finite number"
        return None
    return number


def parse_raw_location(raw: Any) -> Tuple[float, float]:
    """
    Extract (latitude, longitude) from a client-supplied location payload

    Accepts:
        {"coordinates": {"latitude": .., "longitude": ..}, ...}
        {"latitude": .., "longitude": ..}
        {"lat": .., "lng": ..}
        a JSON string of any of the above

    Raises:
        ValidationError naming the missing or invalid coordinate
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError:
            raise ValidationError({"location": "Location must be valid JSON"})

    if not isinstance(raw, Mapping):
        raise ValidationError({
            "location": "Location is required",
            "latitude": "Latitude is required",
            "longitude": "Longitude is required"
        })

    source = raw.get("coordinates")
    if not isinstance(source, Mapping):
        source = raw

    errors: Dict[str, str] = {}
    raw_lat = _pick(source, LATITUDE_KEYS)
    raw_lon = _pick(source, LONGITUDE_KEYS)

    latitude = longitude = None
    if raw_lat is None:
        errors["latitude"] = "Latitude is required"
    else:
        latitude = _to_float(raw_lat, "latitude", errors)
    if raw_lon is None:
        errors["longitude"] = "Longitude is required"
    else:
        longitude = _to_float(raw_lon, "longitude", errors)

    if latitude is not None and not -90 <= latitude <= 90:
        errors["latitude"] = "Latitude must be between -90 and 90"
    if longitude is not None and not -180 <= longitude <= 180:
        errors["longitude"] = "Longitude must be between -180 and 180"

    if errors:
        raise ValidationError(errors)
    return latitude, longitude
