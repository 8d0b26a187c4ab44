"""Nine-cell zone grid over percentage coordinates."""

ROWS = ("top", "middle", "bottom")
COLUMNS = ("left", "center", "right")

ZONES = tuple(f"{row}-{col}" for row in ROWS for col in COLUMNS)

_FIRST_CUT = 100.0 / 3
_SECOND_CUT = 200.0 / 3


def clamp_percent(value: float) -> float:
    value = float(value)
    if value != value:  # NaN
        return 0.0
    return max(0.0, min(100.0, value))


def _bucket(value: float) -> int:
    value = clamp_percent(value)
    if value < _FIRST_CUT:
        return 0
    if value < _SECOND_CUT:
        return 1
    return 2


def zone_for(x: float, y: float) -> str:
    return f"{ROWS[_bucket(y)]}-{COLUMNS[_bucket(x)]}"
