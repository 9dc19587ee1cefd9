import calendar
from datetime import date


def add_one_month(start: date) -> date:
    """
    Same day next month, clamped to the last day of that month.

    Jan 31 -> Feb 28 (Feb 29 in leap years); Dec 15 -> Jan 15 of next year.
    """
    year = start.year + (1 if start.month == 12 else 0)
    month = 1 if start.month == 12 else start.month + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(start.day, last_day))
