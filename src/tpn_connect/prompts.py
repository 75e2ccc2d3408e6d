# prompts.py — interactive choices for validator, exit region and lease time.
# License: MIT
from __future__ import annotations

from typing import Callable, List, Optional, Sequence, TypeVar

from .config import DEFAULT_LEASE_MINUTES
from .models import Validator

T = TypeVar("T")


class ConsolePrompter:
    def __init__(self, input_fn: Callable[[str], str] = input, print_fn: Callable[..., None] = print):
        self.input = input_fn
        self.print = print_fn

    def _pick(self, title: str, labels: List[str], items: Sequence[T]) -> T:
        self.print(title)
        for i, label in enumerate(labels, 1):
            self.print(f"  {i:>3}) {label}")
        while True:
            raw = self.input(f"Choice [1-{len(items)}]: ").strip()
            if raw.isdigit() and 1 <= int(raw) <= len(items):
                return items[int(raw) - 1]
            self.print("Please enter a number from the list")

    def choose_validator(self, validators: Sequence[Validator]) -> Validator:
        labels = [f"UID {v.id} - {v.endpoint_address} ({v.location_label})" for v in validators]
        return self._pick("Select a TPN validator:", labels, validators)

    def choose_region(self, catalog: Sequence[str]) -> str:
        return self._pick("Select exit region:", list(catalog), catalog)

    def ask_duration(self, default: int = DEFAULT_LEASE_MINUTES) -> int:
        while True:
            raw = self.input(f"Connection time (minutes) [{default}]: ").strip() or str(default)
            value: Optional[int] = int(raw) if raw.isdigit() else None
            if value:
                return value
            self.print("Please enter a positive number")
