"""Chat-log phrasing for assignment changes.

Other parts of the service match on these strings, so the wording is fixed.
"""

from __future__ import annotations

from collections.abc import Sequence

NO_CHANGES_MESSAGE = "No assignments were changed."


def join_names(names: Sequence[str]) -> str:
	if len(names) <= 2:
		return " and ".join(names)
	return f"{', '.join(names[:-1])}, and {names[-1]}"


def format_assignment_message(item_name: str, names: Sequence[str]) -> str:
	if not names:
		return f"{item_name} is now unassigned."
	return f"{item_name} is now assigned to {join_names(names)}."


def format_assignment_update_message(changed_item_names: Sequence[str]) -> str:
	if not changed_item_names:
		return NO_CHANGES_MESSAGE
	return f"Assignments updated for: {', '.join(changed_item_names)}."


def format_quantity_split_message(item_name: str, quantities: dict[str, int]) -> str:
	if not quantities:
		return f"Cleared quantity split for {item_name}."
	parts = ", ".join(f"{name} x{count}" for name, count in quantities.items())
	return f"{item_name} split by quantity: {parts}."
