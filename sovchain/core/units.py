"""Human-readable byte sizes."""

_UNITS = ("B", "K", "M", "G", "T", "P")


def human_size(num_bytes: int) -> str:
    """
    Format a byte count using IEC powers of 1024 (``631M``, ``1.5G``).

    Values below 10 in their unit keep one decimal place.
    """
    value = float(num_bytes)
    for unit in _UNITS:
        if value < 1024 or unit == _UNITS[-1]:
            if unit == "B":
                return f"{int(value)}B"
            if value < 10:
                return f"{value:.1f}{unit}"
            return f"{value:.0f}{unit}"
        value /= 1024
    return f"{num_bytes}B"
