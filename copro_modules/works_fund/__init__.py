"""
Works Fund module (``copro_modules.works_fund``).

The reserve for major works each residence must hold: a balance, a
minimum percentage of the latest voted budget (never below the legal
floor), and the reporting that compares the two.
"""

from copro_modules.works_fund.config import WorksFundConfig
from copro_modules.works_fund.models import WorksFund, WorksFundStatus

__all__ = [
    "WorksFund",
    "WorksFundConfig",
    "WorksFundStatus",
]
