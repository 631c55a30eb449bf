"""Account Scanner: token account discovery, classification and burn selection."""

from solbeck.scanner.account_scanner import AccountScanner
from solbeck.scanner.models import ActivityStatus, ScanResult, TokenAccountRecord
from solbeck.scanner.selection import BurnSelection, SelectionItem, SelectionPage

__all__ = [
    "AccountScanner",
    "ActivityStatus",
    "BurnSelection",
    "ScanResult",
    "SelectionItem",
    "SelectionPage",
    "TokenAccountRecord",
]
