from .allocation import calculate_bill_summary
from .container import reduce_app
from .machine import parse_names, reduce_session
from .schemas import AppState, ParsedReceipt, ReceiptItem, ReceiptSession, Status

__all__ = [
	"AppState",
	"ParsedReceipt",
	"ReceiptItem",
	"ReceiptSession",
	"Status",
	"calculate_bill_summary",
	"parse_names",
	"reduce_app",
	"reduce_session",
]
