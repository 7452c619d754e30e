import math

EARTH_RADIUS_KM = 6371


def round_half_up(value: float, places: int = 2) -> float:
    """Halves round up; the builtin round() would go to even."""
    if not math.isfinite(value):
        return value
    factor = 10 ** places
    return math.floor(value * factor + 0.5) / factor


def distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Great-circle distance between two points, in kilometers rounded to 2 decimals.
    Out-of-range coordinates are not rejected; they just produce a number.
    Non-finite input gives NaN, which no distance bound admits.
    """
    if not all(math.isfinite(v) for v in (lat1, lon1, lat2, lon2)):
        return math.nan

    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(d_lon / 2) ** 2
    )

    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return round_half_up(EARTH_RADIUS_KM * c)
