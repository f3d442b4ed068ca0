"""Turns item assignments into a per-person bill.

Amounts are left unrounded; rounding is a display concern.
"""

from __future__ import annotations

import logging
from typing import Optional

from .schemas import (
	Assignments,
	BillSummary,
	LineShare,
	ParsedReceipt,
	PersonTotal,
	QuantityAssignments,
)

log = logging.getLogger(__name__)


def _roster(people: list[str], assignments: Assignments) -> list[str]:
	seen: dict[str, None] = dict.fromkeys(people)
	for names in assignments.values():
		seen.update(dict.fromkeys(names))
	return list(seen)


def calculate_bill_summary(
	receipt: Optional[ParsedReceipt],
	assignments: Assignments,
	quantity_assignments: Optional[QuantityAssignments] = None,
	people: Optional[list[str]] = None,
) -> BillSummary:
	if receipt is None:
		return []

	quantity_assignments = quantity_assignments or {}
	roster = _roster(people or [], assignments)
	totals: dict[str, PersonTotal] = {name: PersonTotal(name=name) for name in roster}

	def charge(name: str, label: str, amount: float) -> None:
		person = totals.setdefault(name, PersonTotal(name=name))
		person.subtotal += amount
		person.items.append(LineShare(name=label, price=amount))

	for item in receipt.items:
		split = {n: q for n, q in quantity_assignments.get(item.id, {}).items() if q > 0}
		names = assignments.get(item.id) or []

		if split:
			basis = item.quantity if item.quantity > 0 else sum(split.values())
			unit_price = item.price / basis
			for name, qty in split.items():
				charge(name, f"{item.name} (x{qty})", unit_price * qty)
		elif names:
			share = item.price / len(names)
			for name in names:
				charge(name, item.name, share)

	assigned_total = sum(p.subtotal for p in totals.values())
	if assigned_total == 0:
		# nothing assigned yet: everybody carries an equal slice of tax and tip
		ways = max(len(totals), 1)
		for person in totals.values():
			person.tax = receipt.tax / ways
			person.tip = receipt.tip / ways
	else:
		for person in totals.values():
			proportion = person.subtotal / assigned_total
			person.tax = receipt.tax * proportion
			person.tip = receipt.tip * proportion

	for person in totals.values():
		person.total = person.subtotal + person.tax + person.tip

	log.debug(
		"bill summary computed",
		extra={"people": len(totals), "assigned_total": assigned_total},
	)
	return sorted(totals.values(), key=lambda p: p.name)
