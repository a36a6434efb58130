"""Accrual arithmetic for investment positions"""

from datetime import date


def days_elapsed(purchase_date: date, on_date: date) -> int:
    """Whole platform days between purchase and on_date (0 on the purchase day)"""
    return (on_date - purchase_date).days


def is_active(purchase_date: date, duration_days: int, on_date: date) -> bool:
    """
    An investment earns from its purchase day until durationDays have elapsed.

    A position bought today is active today (day 1); one with
    daysElapsed >= durationDays has expired and never earns again.
    """
    elapsed = days_elapsed(purchase_date, on_date)
    return 0 <= elapsed < duration_days


def day_number(purchase_date: date, on_date: date) -> int:
    """1-based day of the payout schedule that on_date falls on"""
    return days_elapsed(purchase_date, on_date) + 1
