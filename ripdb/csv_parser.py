"""
CSV parsing module.
Tolerant, line-oriented tokenizer for CSV text coming from untrusted sources.
"""

from dataclasses import dataclass, field  # table container
from typing import Dict, List, Sequence  # type hints

from loguru import logger  # console logging

from .errors import InvalidSchemaError


@dataclass
class RawTable:
	"""
	Header row plus data rows keyed by the original header text.
	The same shape is produced from CSV text and from the Sheets values API.
	"""
	headers: List[str]
	rows: List[Dict[str, str]] = field(default_factory=list)
	skipped_blank: int = 0  # rows dropped because every cell was empty

	@classmethod
	def from_values(cls, values: Sequence[Sequence]) -> "RawTable":
		"""Build a table from a 2-D values matrix whose first row holds the headers."""
		if not values:
			raise InvalidSchemaError(['actor_name', 'movie_title'])
		headers = [str(h).strip() for h in values[0]]
		cells = [[('' if c is None else str(c)) for c in row] for row in values[1:]]
		return cls._build(headers, cells)

	@classmethod
	def _build(cls, headers: List[str], cells: List[List[str]]) -> "RawTable":
		table = cls(headers=headers)
		for row in cells:
			# Entirely blank rows carry nothing worth normalizing
			if not any(cell.strip() for cell in row):
				table.skipped_blank += 1
				continue
			# Missing trailing cells become "", extra cells are ignored
			table.rows.append({h: (row[i] if i < len(row) else '') for i, h in enumerate(headers)})
		return table


def parse_row(line: str) -> List[str]:
	"""
	Split one CSV line into trimmed fields.

	A double quote toggles the quoted state, except that `""` inside quotes
	yields a literal quote. Commas only separate fields outside quotes. The
	last field is always emitted, so a trailing comma yields an empty field.
	An unterminated quote swallows the rest of the line instead of failing.
	"""
	fields: List[str] = []
	current: List[str] = []
	in_quotes = False
	i = 0
	n = len(line)

	while i < n:
		char = line[i]
		if char == '"':
			if in_quotes and i + 1 < n and line[i + 1] == '"':
				current.append('"')  # escaped quote
				i += 2
				continue
			in_quotes = not in_quotes
		elif char == ',' and not in_quotes:
			fields.append(''.join(current).strip())
			current = []
		else:
			current.append(char)
		i += 1

	fields.append(''.join(current).strip())
	return fields


def split_lines(text: str) -> List[str]:
	"""Split a document into non-blank lines, tolerating CRLF endings."""
	lines = []
	for raw in text.split('\n'):
		line = raw.rstrip('\r')
		if line.strip():
			lines.append(line)
	return lines


def parse_table(text: str) -> RawTable:
	"""
	Parse a whole CSV document. The first non-blank line is the header row.
	Raises InvalidSchemaError when the document has no header at all.
	"""
	lines = split_lines(text or '')
	if not lines:
		raise InvalidSchemaError(['actor_name', 'movie_title'])

	headers = parse_row(lines[0])
	logger.debug(f"[CSV] Found {len(headers)} columns: {headers}")

	table = RawTable._build(headers, [parse_row(line) for line in lines[1:]])
	logger.info(
		f"[CSV] Parsed {len(table.rows)} rows from {len(lines) - 1} lines"
		f" ({table.skipped_blank} blank rows skipped)"
	)
	return table
