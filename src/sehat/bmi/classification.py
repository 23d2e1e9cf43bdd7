from __future__ import annotations

from enum import Enum


class BmiStatus(str, Enum):
    UNDERWEIGHT = "Underweight"
    NORMAL = "Normal"
    OVERWEIGHT = "Overweight"
    OBESE = "Obese"


UNDERWEIGHT_BELOW = 18.5
NORMAL_BELOW = 24.9
OVERWEIGHT_FROM = 25.0
OVERWEIGHT_BELOW = 29.9


def classify_bmi(bmi: float) -> BmiStatus:
    # Values in [24.9, 25.0) match no band and fall through to OBESE.
    if bmi < UNDERWEIGHT_BELOW:
        return BmiStatus.UNDERWEIGHT
    if bmi < NORMAL_BELOW:
        return BmiStatus.NORMAL
    if OVERWEIGHT_FROM <= bmi < OVERWEIGHT_BELOW:
        return BmiStatus.OVERWEIGHT
    return BmiStatus.OBESE
