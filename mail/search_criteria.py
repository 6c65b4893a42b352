from datetime import date, timedelta
from typing import Optional

from mail.senders import KNOWN_SENDERS, TRANSACTION_KEYWORDS

# IMAP wants English month abbreviations whatever the process locale is
_IMAP_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
                "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def imap_date(value: date) -> str:
    """Format a date the way SEARCH SINCE/BEFORE expect it, e.g. 01-Aug-2025."""
    return f"{value.day:02d}-{_IMAP_MONTHS[value.month - 1]}-{value.year}"


class SearchCriteriaBuilder:
    """Builds one IMAP SEARCH query per known sender and per subject keyword.

    The sender and keyword lists are passed in, so tests and callers can
    narrow them without touching module state.
    """

    def __init__(
        self,
        senders: tuple[str, ...] = KNOWN_SENDERS,
        keywords: tuple[str, ...] = TRANSACTION_KEYWORDS,
    ):
        self.senders = tuple(senders)
        self.keywords = tuple(keywords)

    def build(self, since: date, until: Optional[date] = None) -> list[list[str]]:
        """Return the list of criteria to run, each a list of SEARCH tokens.

        Args:
            since: First day to include.
            until: Last day to include. BEFORE is exclusive on the server,
                   so the query uses the day after.
        """
        if until is not None and until < since:
            raise ValueError(f"until ({until}) is before since ({since})")

        date_filter = ["SINCE", imap_date(since)]
        if until is not None:
            date_filter += ["BEFORE", imap_date(until + timedelta(days=1))]

        criteria = []
        for sender in self.senders:
            criteria.append(date_filter + ["FROM", sender])
        for keyword in self.keywords:
            criteria.append(date_filter + ["SUBJECT", keyword])
        return criteria
