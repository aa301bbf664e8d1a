"""
Conversion between CSS hex colours and OKLCH strings.

Uses the OKLab matrices published by Björn Ottosson with sRGB transfer
functions. Out-of-gamut OKLCH values are clamped per channel when written as hex.
"""
import math
import re
from dataclasses import dataclass
from typing import Optional, Tuple

HEX_PATTERN = re.compile(r"^#([A-Fa-f0-9]{3}|[A-Fa-f0-9]{6}|[A-Fa-f0-9]{8})$")
OKLCH_PATTERN = re.compile(
    r"^oklch\(\s*(?P<l>[^\s/()]+)\s+(?P<c>[^\s/()]+)\s+(?P<h>[^\s/()]+)\s*(?:/\s*(?P<alpha>[^\s/()]+)\s*)?\)$",
    re.IGNORECASE,
)
NUMBER_PATTERN = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)(e[+-]?\d+)?$", re.IGNORECASE)

# below this chroma the hue is meaningless
ACHROMATIC_THRESHOLD = 1e-4


@dataclass
class OklchComponents:
    l: float
    c: float
    h: float
    alpha: Optional[float] = None


def _parse_number(token: str, percent_scale: float = 1.0) -> Optional[float]:
    if token.lower() == "none":
        return 0.0
    if token.endswith("%"):
        value = _parse_number(token[:-1])
        return None if value is None else value / 100 * percent_scale
    if token.lower().endswith("deg"):
        token = token[:-3]
    if not NUMBER_PATTERN.match(token):
        return None
    return float(token)


def _round3(value: float) -> str:
    text = f"{round(value, 3):.3f}".rstrip("0").rstrip(".")
    return "0" if text in ("-0", "") else text


def parse_oklch(value: str) -> Optional[OklchComponents]:
    """Parses ``oklch(L C H)`` or ``oklch(L C H / A)``; returns None when malformed."""
    if not value or not value.startswith("oklch("):
        return None
    match = OKLCH_PATTERN.match(value.strip())
    if not match:
        return None

    l = _parse_number(match.group("l"))
    c = _parse_number(match.group("c"), percent_scale=0.4)
    h = _parse_number(match.group("h"))
    if l is None or c is None or h is None:
        return None

    alpha = None
    if match.group("alpha") is not None:
        alpha = _parse_number(match.group("alpha"))
        if alpha is None:
            return None
    return OklchComponents(l=l, c=c, h=h, alpha=alpha)


def format_oklch(components: OklchComponents) -> str:
    base = f"{_round3(components.l)} {_round3(components.c)} {_round3(components.h)}"
    if components.alpha is not None and components.alpha < 1:
        return f"oklch({base} / {int(components.alpha * 100 + 0.5)}%)"
    return f"oklch({base})"


def is_valid_hex(value: str) -> bool:
    if not value:
        return False
    normalized = value if value.startswith("#") else f"#{value}"
    return bool(HEX_PATTERN.match(normalized))


def is_valid_oklch(value: str) -> bool:
    return bool(value) and value.startswith("oklch(") and parse_oklch(value) is not None


def _hex_to_rgb(value: str) -> Optional[Tuple[float, float, float]]:
    if not is_valid_hex(value):
        return None
    digits = value.lstrip("#")
    if len(digits) == 3:
        digits = "".join(ch * 2 for ch in digits)
    return tuple(int(digits[i:i + 2], 16) / 255 for i in (0, 2, 4))


def _srgb_to_linear(x: float) -> float:
    if abs(x) <= 0.04045:
        return x / 12.92
    return math.copysign(((abs(x) + 0.055) / 1.055) ** 2.4, x)


def _linear_to_srgb(x: float) -> float:
    if abs(x) <= 0.0031308:
        return 12.92 * x
    return math.copysign(1.055 * abs(x) ** (1 / 2.4) - 0.055, x)


def _rgb_to_oklch(r: float, g: float, b: float) -> OklchComponents:
    r, g, b = _srgb_to_linear(r), _srgb_to_linear(g), _srgb_to_linear(b)

    l = 0.4122214708 * r + 0.5363325363 * g + 0.0514459929 * b
    m = 0.2119034982 * r + 0.6806995451 * g + 0.1073969566 * b
    s = 0.0883024619 * r + 0.2817188376 * g + 0.6299787005 * b
    l, m, s = (math.copysign(abs(x) ** (1 / 3), x) for x in (l, m, s))

    lightness = 0.2104542553 * l + 0.7936177850 * m - 0.0040720468 * s
    a = 1.9779984951 * l - 2.4285922050 * m + 0.4505937099 * s
    bb = 0.0259040371 * l + 0.7827717662 * m - 0.8086757660 * s

    chroma = math.hypot(a, bb)
    hue = math.degrees(math.atan2(bb, a)) % 360 if chroma >= ACHROMATIC_THRESHOLD else 0.0
    return OklchComponents(l=lightness, c=chroma, h=hue)


def _oklch_to_rgb(components: OklchComponents) -> Tuple[float, float, float]:
    hue = math.radians(components.h)
    a = components.c * math.cos(hue)
    b = components.c * math.sin(hue)

    l = (components.l + 0.3963377774 * a + 0.2158037573 * b) ** 3
    m = (components.l - 0.1055613458 * a - 0.0638541728 * b) ** 3
    s = (components.l - 0.0894841775 * a - 1.2914855480 * b) ** 3

    r = 4.0767416621 * l - 3.3077115913 * m + 0.2309699292 * s
    g = -1.2684380046 * l + 2.6097574011 * m - 0.3413193965 * s
    bl = -0.0041960863 * l - 0.7034186147 * m + 1.7076147010 * s
    return _linear_to_srgb(r), _linear_to_srgb(g), _linear_to_srgb(bl)


def hex_to_oklch(value: str) -> Optional[str]:
    """``#3b82f6`` or ``3b82f6`` to an OKLCH CSS string; alpha digits are ignored."""
    if not value:
        return None
    normalized = value if value.startswith("#") else f"#{value}"
    rgb = _hex_to_rgb(normalized)
    if rgb is None:
        return None
    return format_oklch(_rgb_to_oklch(*rgb))


def oklch_to_hex(value: str) -> Optional[str]:
    """OKLCH (or hex) CSS string to a lowercase ``#rrggbb``; None when unparseable."""
    if not value:
        return None
    if is_valid_hex(value) and value.startswith("#"):
        rgb = _hex_to_rgb(value)
    else:
        components = parse_oklch(value)
        if components is None:
            return None
        rgb = _oklch_to_rgb(components)
    channels = (int(min(max(ch, 0.0), 1.0) * 255 + 0.5) for ch in rgb)
    return "#" + "".join(f"{ch:02x}" for ch in channels)
