"""
School closure prediction.
"""

from prediction.closure import (
    ClosurePredictor,
    estimate_ice,
    estimate_snowfall,
    probability_category,
)
from prediction.regions import REGION_PROFILES, RegionContext, regional_adjustments

__all__ = [
    "ClosurePredictor",
    "estimate_ice",
    "estimate_snowfall",
    "probability_category",
    "REGION_PROFILES",
    "RegionContext",
    "regional_adjustments",
]
