"""Straight-line depreciation of asset book value."""
from decimal import Decimal, ROUND_HALF_UP

from asset_tracker.clock import as_datetime, utcnow

DAYS_PER_YEAR = Decimal(365)
SECONDS_PER_DAY = Decimal(86400)
CENT = Decimal('0.01')


def _decimal(value):
    if value is None:
        return None
    return value if isinstance(value, Decimal) else Decimal(str(value))


def years_owned(purchase_date, now=None):
    if purchase_date is None:
        return Decimal(0)
    elapsed = (now or utcnow()) - as_datetime(purchase_date)
    return Decimal(str(elapsed.total_seconds())) / SECONDS_PER_DAY / DAYS_PER_YEAR


def straight_line_value(purchase_cost, purchase_date, depreciation_rate=None,
                        useful_life_years=None, salvage_value=None, now=None):
    """Book value after linear depreciation, floored at salvage.

    The cost is returned untouched when the rate or useful life is missing,
    or when the purchase date is not in the past.
    """
    cost = _decimal(purchase_cost) or Decimal(0)
    rate = _decimal(depreciation_rate)
    if not rate or not useful_life_years:
        return cost.quantize(CENT, rounding=ROUND_HALF_UP)

    years = years_owned(purchase_date, now)
    if years <= 0:
        return cost.quantize(CENT, rounding=ROUND_HALF_UP)

    depreciated = cost - cost * (rate / Decimal(100)) * years
    floor = _decimal(salvage_value) or Decimal(0)
    return max(depreciated, floor).quantize(CENT, rounding=ROUND_HALF_UP)


def value_for(asset, category=None, now=None):
    salvage = asset.salvage_value
    if salvage is None and category is not None:
        salvage = category.salvage_value
    return straight_line_value(
        asset.purchase_cost,
        asset.purchase_date,
        category.depreciation_rate if category is not None else None,
        category.useful_life_years if category is not None else None,
        salvage,
        now,
    )
