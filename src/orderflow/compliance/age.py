"""Age arithmetic for the age gate."""

from datetime import date


def calculate_age(date_of_birth: date, today: date) -> int:
    """
    Whole years between ``date_of_birth`` and ``today``.

    The birthday itself counts: someone born 2000-06-15 is 21 on 2021-06-15.
    A Feb 29 birthday is reached on Mar 1 in non-leap years.
    """
    age = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        age -= 1
    return age


__all__ = ["calculate_age"]
