"""
Item Adjustment Calculator - pure arithmetic on version item amounts

Fun fact: a -100% adjustment and an absolute adjustment of minus the whole
amount land on the same number - zero. Everything below that is clamped.
"""

from decimal import Decimal

from budget_versioning.kernel.errors import AdjustmentBelowFloor
from budget_versioning.versions.models import AdjustmentType

ZERO = Decimal("0")
HUNDRED = Decimal("100")
PERCENTAGE_FLOOR = Decimal("-100")


def validate_adjustment(adjustment_type: AdjustmentType, value: Decimal) -> None:
    """
    Reject percentage adjustments below -100%

    Absolute adjustments have no lower bound; clamping handles them.

    Raises:
        AdjustmentBelowFloor: If type is percentage and value < -100
    """
    if adjustment_type == AdjustmentType.PERCENTAGE and value < PERCENTAGE_FLOOR:
        raise AdjustmentBelowFloor(value)


def compute_adjusted_amount(
    original: Decimal, adjustment_type: AdjustmentType, value: Decimal
) -> Decimal:
    """
    Compute the adjusted amount of a version item

    percentage: original * (1 + value / 100)
    absolute:   original + value
    The result is never negative.

    Args:
        original: Snapshot amount the adjustment applies to
        adjustment_type: How to interpret value
        value: Signed adjustment

    Returns:
        Adjusted amount, clamped at zero

    Raises:
        AdjustmentBelowFloor: If a percentage value is below -100
    """
    validate_adjustment(adjustment_type, value)

    if adjustment_type == AdjustmentType.PERCENTAGE:
        adjusted = original * (1 + value / HUNDRED)
    else:
        adjusted = original + value

    return max(ZERO, adjusted)


def convert_adjustment_type(
    original: Decimal,
    from_type: AdjustmentType,
    to_type: AdjustmentType,
    from_value: Decimal,
) -> Decimal:
    """
    Express an adjustment in the other representation

    absolute → percentage: from_value / original * 100 (0 when original is 0)
    percentage → absolute: original * from_value / 100

    Args:
        original: Snapshot amount the adjustment applies to
        from_type: Current representation
        to_type: Wanted representation
        from_value: Current adjustment value

    Returns:
        The equivalent adjustment value in to_type
    """
    if from_type == to_type:
        return from_value

    if to_type == AdjustmentType.PERCENTAGE:
        if original > ZERO:
            return from_value / original * HUNDRED
        return ZERO

    return original * (from_value / HUNDRED)


def factor_to_percentage(adjustment_factor: Decimal) -> Decimal:
    """Express a multiplicative factor (0.9) as a percentage adjustment (-10)"""
    return (adjustment_factor - 1) * HUNDRED
