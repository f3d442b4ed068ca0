from __future__ import annotations


class SplitError(Exception):
	"""Base class for errors raised to callers of the split service."""


class ProviderError(SplitError):
	"""The external model service is unavailable or returned garbage."""


class ReceiptParseError(ProviderError):
	pass


class AssignmentUpdateError(ProviderError):
	pass


class ValidationError(SplitError):
	pass


class SessionNotFoundError(SplitError, KeyError):
	def __str__(self) -> str:
		return f"session {self.args[0]!r} not found" if self.args else "session not found"


class SessionBusyError(SplitError):
	pass


NOT_A_RECEIPT_MESSAGE = (
	"This doesn't look like a receipt, or it's too blurry to read. "
	"Please upload a clear picture of a receipt."
)
