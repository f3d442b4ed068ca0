from __future__ import annotations

import re
from typing import Optional

from .schemas import BillSummary, ParsedReceipt

RULE = "=" * 36


def format_currency(amount: float) -> str:
	sign = "-" if amount < 0 else ""
	return f"{sign}${abs(amount):,.2f}"


def format_summary_text(
	summary: BillSummary, receipt: Optional[ParsedReceipt], receipt_name: str
) -> str:
	lines = [f"Bill Summary for [{receipt_name}]", RULE, ""]

	for person in summary:
		lines.append(f"--- {person.name} --- Total: {format_currency(person.total)} ---")
		if person.items:
			for share in person.items:
				lines.append(f"  - {share.name}: {format_currency(share.price)}")
		else:
			lines.append("  - No items assigned.")
		lines.append(
			f"  (Subtotal: {format_currency(person.subtotal)}, "
			f"Tax: {format_currency(person.tax)}, Tip: {format_currency(person.tip)})"
		)
		lines.append("")

	if receipt is not None:
		grand_total = receipt.subtotal + receipt.tax + receipt.tip
		lines += [
			RULE,
			"Receipt Totals:",
			f"Subtotal: {format_currency(receipt.subtotal)}",
			f"Tax: {format_currency(receipt.tax)}",
			f"Tip: {format_currency(receipt.tip)}",
			f"GRAND TOTAL: {format_currency(grand_total)}",
			RULE,
		]

	return "\n".join(lines) + "\n"


def export_filename(receipt_name: str) -> str:
	safe = re.sub(r"[^a-z0-9]", "_", receipt_name, flags=re.IGNORECASE).lower()
	return f"bill_summary_{safe}.txt"
