import logging
from typing import Dict, Optional, Tuple

from printmeta.utils.color_math import calculate_delta_e, normalize_hex

logger = logging.getLogger("ColorNamer")

# Common filament colors. Order matters only for exact ties.
NAMED_COLORS: Dict[str, str] = {
    "#FFFFFF": "White",
    "#000000": "Black",
    "#808080": "Gray",
    "#C0C0C0": "Silver",
    "#FF0000": "Red",
    "#FF6600": "Orange",
    "#FFFF00": "Yellow",
    "#FFD700": "Gold",
    "#00FF00": "Green",
    "#00AE42": "Bambu Green",
    "#00FFFF": "Cyan",
    "#0000FF": "Blue",
    "#000080": "Navy",
    "#800080": "Purple",
    "#FF00FF": "Magenta",
    "#FFC0CB": "Pink",
    "#964B00": "Brown",
    "#F5F5DC": "Beige",
}


class ColorNamer:
    """
    Gives extracted color codes a human-readable label using CIEDE2000 (Delta E)
    against a small palette of common filament colors.
    """

    def __init__(self, max_delta_e: float = 12.0, palette: Optional[Dict[str, str]] = None):
        self.max_delta_e = max_delta_e
        self.palette = palette or NAMED_COLORS

    def nearest(self, hex_color: str) -> Optional[Tuple[str, float]]:
        """Closest palette entry as (name, delta_e), or None if the input is not hex."""
        normalized = normalize_hex(hex_color)
        if normalized is None:
            return None

        best_name, best_distance = None, float("inf")
        for palette_hex, name in self.palette.items():
            distance = calculate_delta_e(normalized, palette_hex)
            if distance < best_distance:
                best_name, best_distance = name, distance
                if distance == 0.0:
                    break
        return best_name, best_distance

    def label_for(self, hex_color: str) -> Optional[str]:
        """
        Palette name when the color is within max_delta_e of it,
        otherwise the normalized hex itself. None for non-hex input.
        """
        normalized = normalize_hex(hex_color)
        if normalized is None:
            return None

        match = self.nearest(normalized)
        if match is not None and match[1] <= self.max_delta_e:
            logger.debug(f"Color {normalized} named '{match[0]}' (dE={match[1]:.2f})")
            return match[0]
        return normalized
