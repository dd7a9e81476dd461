"""Cargo volume and weight helpers used by RFQ ticket data."""

from __future__ import annotations

# 1 CBM counts as 167 kg (air freight standard).
VOLUMETRIC_FACTOR = 167.0


def volume_per_unit(length_cm: float, width_cm: float, height_cm: float) -> float:
    """Volume of one unit in cubic metres, rounded to six decimals."""

    volume = (length_cm / 100) * (width_cm / 100) * (height_cm / 100)
    return round(volume, 6)


def total_volume(per_unit_cbm: float, quantity: int) -> float:
    return round(per_unit_cbm * quantity, 6)


def total_weight(weight_per_unit_kg: float, quantity: int) -> float:
    return round(weight_per_unit_kg * quantity, 2)


def chargeable_weight(actual_weight_kg: float, volume_cbm: float, factor: float = VOLUMETRIC_FACTOR) -> float:
    """Greater of the actual weight and the volumetric weight."""

    return max(actual_weight_kg, round(volume_cbm * factor, 2))
