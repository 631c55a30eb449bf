"""
Burn selection over balance-bearing accounts.

Candidates are listed inactive first, then active, in fixed-size pages.
Nothing is selected until the user asks: the external UI toggles by index
or calls select_all_inactive() when the user picks "burn all inactive".
"""

from __future__ import annotations

from dataclasses import dataclass

from solbeck.scanner.models import ActivityStatus, ScanResult, TokenAccountRecord


@dataclass(frozen=True)
class SelectionItem:
    index: int
    record: TokenAccountRecord
    selected: bool


@dataclass(frozen=True)
class SelectionPage:
    page: int
    total_pages: int
    items: list[SelectionItem]

    @property
    def has_previous(self) -> bool:
        return self.page > 0

    @property
    def has_next(self) -> bool:
        return self.page + 1 < self.total_pages


class BurnSelection:
    def __init__(self, scan: ScanResult, page_size: int = 8) -> None:
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        self.candidates: list[TokenAccountRecord] = scan.balance_bearing
        self.page_size = page_size
        self._selected: set[str] = set()

    @property
    def total_pages(self) -> int:
        return max(1, -(-len(self.candidates) // self.page_size))

    def page(self, number: int) -> SelectionPage:
        number = min(max(0, number), self.total_pages - 1)
        start = number * self.page_size
        items = [
            SelectionItem(index=i, record=r, selected=r.address in self._selected)
            for i, r in enumerate(self.candidates[start : start + self.page_size], start=start)
        ]
        return SelectionPage(page=number, total_pages=self.total_pages, items=items)

    def toggle(self, index: int) -> bool:
        """Flip selection of the candidate at index; returns the new state."""
        if not 0 <= index < len(self.candidates):
            raise IndexError(f"selection index {index} out of range")
        address = self.candidates[index].address
        if address in self._selected:
            self._selected.discard(address)
            return False
        self._selected.add(address)
        return True

    def select_all_inactive(self) -> int:
        for r in self.candidates:
            if r.activity is ActivityStatus.INACTIVE:
                self._selected.add(r.address)
        return len(self._selected)

    def select_all(self) -> int:
        self._selected.update(r.address for r in self.candidates)
        return len(self._selected)

    def clear(self) -> None:
        self._selected.clear()

    def selected_records(self) -> list[TokenAccountRecord]:
        return [r for r in self.candidates if r.address in self._selected]

    def summary(self) -> dict[str, int]:
        inactive = sum(1 for r in self.candidates if r.activity is ActivityStatus.INACTIVE)
        return {
            "candidates": len(self.candidates),
            "inactive": inactive,
            "active": len(self.candidates) - inactive,
            "selected": len(self._selected),
        }
