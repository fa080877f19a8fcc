"""
Error taxonomy for the ingestion core.
Transport errors are retried inside a tier, row errors drop a single row,
schema errors abort one source, exhaustion switches to the fallback dataset.
"""

from typing import Iterable, Optional


class RipdbError(Exception):
	"""Base class for every error raised by the ingestion core."""


class TransportError(RipdbError):
	"""Network failure, timeout, empty body or non-2xx HTTP status."""

	def __init__(self, message: str, url: Optional[str] = None, status: Optional[int] = None):
		super().__init__(message)
		self.url = url
		self.status = status


class FetchTimeoutError(TransportError):
	"""A single attempt exceeded its time budget."""


class AccessRestrictedError(TransportError):
	"""The origin refused to serve us directly (401/403/407/451 or a cross-origin refusal)."""


class FetchExhaustedError(RipdbError):
	"""Every transport tier failed for one source."""

	def __init__(self, source: str, last_error: Optional[BaseException], attempts: int = 0):
		detail = f": {last_error}" if last_error else ""
		super().__init__(f"All fetch methods failed for {source} after {attempts} attempts{detail}")
		self.source = source
		self.last_error = last_error
		self.attempts = attempts


class MissingRequiredFieldError(RipdbError):
	"""A row lacks an actor name or a movie title."""

	def __init__(self, field: str, row_number: Optional[int] = None):
		where = f" (row {row_number})" if row_number is not None else ""
		super().__init__(f"Missing required field '{field}'{where}")
		self.field = field
		self.row_number = row_number


class InvalidSchemaError(RipdbError):
	"""The source has no column that could hold a mandatory field."""

	def __init__(self, missing: Iterable[str], headers: Optional[Iterable[str]] = None):
		self.missing = list(missing)
		self.headers = list(headers or [])
		super().__init__(
			f"No column found for required field(s) {', '.join(self.missing)}; headers={self.headers}"
		)


class EmptyDatasetError(RipdbError):
	"""A source answered, but not a single row survived normalization."""

	def __init__(self, source: str, rejected: int = 0):
		super().__init__(f"No usable records from {source} ({rejected} rows rejected)")
		self.source = source
		self.rejected = rejected
