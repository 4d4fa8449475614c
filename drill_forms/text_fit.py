"""
Glyph-width text measurement, wrapping, truncation, and auto-fit.
"""

# Standard Library
import dataclasses
import math

# PIP3 modules
import reportlab.pdfbase.pdfmetrics

# local repo modules
import drill_forms.config


DEFAULT_FONT = drill_forms.config.DEFAULT_FONT
ELLIPSIS = drill_forms.config.ELLIPSIS
BLOCK_LINE_HEIGHT_FACTOR = drill_forms.config.BLOCK_LINE_HEIGHT_FACTOR
MIN_BLOCK_LINE_HEIGHT = drill_forms.config.MIN_BLOCK_LINE_HEIGHT
SHRINK_STEP = drill_forms.config.SHRINK_STEP


@dataclasses.dataclass(frozen=True)
class BlockLayout:
	lines: list[str]
	font_size: float
	line_height: float
	truncated: bool


#============================================
def measure(text: str, font_size: float, font_name: str = DEFAULT_FONT) -> float:
	"""
	Measure the rendered width of a string in points.

	Args:
		text: Text to measure.
		font_size: Font size in points.
		font_name: ReportLab font name.

	Returns:
		Width in points.
	"""
	if not text:
		return 0.0
	return reportlab.pdfbase.pdfmetrics.stringWidth(text, font_name, font_size)


#============================================
def block_line_height(font_size: float, min_line_height: float = MIN_BLOCK_LINE_HEIGHT) -> float:
	return max(min_line_height, round(font_size * BLOCK_LINE_HEIGHT_FACTOR))


#============================================
def split_long_word(word: str, max_width: float, font_size: float, font_name: str = DEFAULT_FONT) -> list[str]:
	"""
	Hard-split a word that is wider than the line into character chunks.

	A single character wider than max_width still gets its own chunk.

	Args:
		word: Word to split.
		max_width: Maximum line width in points.
		font_size: Font size in points.
		font_name: ReportLab font name.

	Returns:
		List of chunks, each within max_width unless a single character.
	"""
	chunks: list[str] = []
	chunk = ""
	for char in word:
		candidate = chunk + char
		if not chunk or measure(candidate, font_size, font_name) <= max_width:
			chunk = candidate
			continue
		chunks.append(chunk)
		chunk = char
	if chunk:
		chunks.append(chunk)
	# the first char of a chunk is accepted unconditionally; re-check it alone
	fixed: list[str] = []
	for piece in chunks:
		if len(piece) > 1 and measure(piece, font_size, font_name) > max_width:
			fixed.extend(piece)
		else:
			fixed.append(piece)
	return fixed


#============================================
def wrap_paragraph(paragraph: str, max_width: float, font_size: float, font_name: str = DEFAULT_FONT) -> list[str]:
	"""
	Greedy word wrap for one paragraph without newlines.

	Args:
		paragraph: Paragraph text.
		max_width: Maximum line width in points.
		font_size: Font size in points.
		font_name: ReportLab font name.

	Returns:
		Wrapped lines.
	"""
	lines: list[str] = []
	current = ""
	for word in paragraph.split():
		candidate = f"{current} {word}" if current else word
		if measure(candidate, font_size, font_name) <= max_width:
			current = candidate
			continue
		if current:
			lines.append(current)
			current = ""
		if measure(word, font_size, font_name) > max_width:
			lines.extend(split_long_word(word, max_width, font_size, font_name))
		else:
			current = word
	if current:
		lines.append(current)
	return lines


#============================================
def wrap(text: str, max_width: float, font_size: float, font_name: str = DEFAULT_FONT) -> list[str]:
	"""
	Wrap text to a maximum width, honouring explicit newlines.

	Each blank paragraph produces one empty line.

	Args:
		text: Text to wrap.
		max_width: Maximum line width in points.
		font_size: Font size in points.
		font_name: ReportLab font name.

	Returns:
		Wrapped lines.
	"""
	lines: list[str] = []
	normalized = (text or "").replace("\r\n", "\n").replace("\r", "\n")
	for paragraph in normalized.split("\n"):
		if not paragraph.strip():
			lines.append("")
			continue
		lines.extend(wrap_paragraph(paragraph, max_width, font_size, font_name))
	return lines


#============================================
def first_line(text: str, max_width: float, font_size: float, font_name: str = DEFAULT_FONT) -> str:
	"""
	Return only the first wrapped line of a value.
	"""
	lines = wrap(text, max_width, font_size, font_name)
	if not lines:
		return ""
	return lines[0]


#============================================
def fit_ellipsis(line: str, max_width: float, font_size: float, font_name: str = DEFAULT_FONT) -> str:
	"""
	Trim a line until it fits with a trailing ellipsis.

	Args:
		line: Line text.
		max_width: Maximum width in points.
		font_size: Font size in points.
		font_name: ReportLab font name.

	Returns:
		Trimmed line ending in an ellipsis, or "" when max_width is
		narrower than the ellipsis itself.
	"""
	if measure(ELLIPSIS, font_size, font_name) > max_width:
		return ""
	trimmed = line.rstrip()
	while trimmed and measure(trimmed + ELLIPSIS, font_size, font_name) > max_width:
		trimmed = trimmed[:-1]
	return trimmed.rstrip() + ELLIPSIS


#============================================
def line_budget(max_height: float, line_height: float) -> int:
	if line_height <= 0:
		return 0
	return max(0, int(math.floor(max_height / line_height)))


#============================================
def layout_block(
	text: str,
	max_width: float,
	max_height: float,
	font_size: float,
	font_name: str = DEFAULT_FONT,
	min_line_height: float = MIN_BLOCK_LINE_HEIGHT,
) -> BlockLayout:
	"""
	Wrap text into a box and cut it to the box's line budget.

	When lines are cut, the last kept line ends in an ellipsis that fits
	max_width.

	Args:
		text: Text to place.
		max_width: Box width in points.
		max_height: Box height in points.
		font_size: Font size in points.
		font_name: ReportLab font name.
		min_line_height: Lower bound for the line pitch.

	Returns:
		BlockLayout.
	"""
	line_height = block_line_height(font_size, min_line_height)
	lines = wrap(text, max_width, font_size, font_name)
	budget = line_budget(max_height, line_height)
	truncated = len(lines) > budget
	kept = lines[:budget]
	if truncated and kept:
		kept[-1] = fit_ellipsis(kept[-1], max_width, font_size, font_name)
	return BlockLayout(lines=kept, font_size=font_size, line_height=line_height, truncated=truncated)


#============================================
def candidate_sizes(base_size: float, steps: int = 2, step: float = 1.0) -> list[float]:
	return [base_size - index * step for index in range(steps + 1) if base_size - index * step > 0]


#============================================
def choose_font_size(
	text: str,
	max_width: float,
	max_height: float,
	base_size: float,
	candidates: list[float] | None = None,
	font_name: str = DEFAULT_FONT,
	min_line_height: float = MIN_BLOCK_LINE_HEIGHT,
) -> float:
	"""
	Pick the first candidate size whose full wrap fits the line budget.

	Args:
		text: Text to place.
		max_width: Box width in points.
		max_height: Box height in points.
		base_size: Preferred font size.
		candidates: Descending sizes to try; defaults to base, base-1, base-2.
		font_name: ReportLab font name.
		min_line_height: Lower bound for the line pitch.

	Returns:
		Chosen font size; base_size when nothing fits.
	"""
	if candidates is None:
		candidates = candidate_sizes(base_size)
	for size in candidates:
		lines = wrap(text, max_width, size, font_name)
		budget = line_budget(max_height, block_line_height(size, min_line_height))
		if len(lines) <= budget:
			return size
	return base_size


#============================================
def shrink_to_width(
	text: str,
	max_width: float,
	base_size: float,
	min_size: float,
	font_name: str = DEFAULT_FONT,
) -> tuple[str, float]:
	"""
	Shrink a single line until it fits, then ellipsize at the minimum size.

	Args:
		text: Text to place.
		max_width: Maximum width in points.
		base_size: Preferred font size.
		min_size: Smallest allowed font size.
		font_name: ReportLab font name.

	Returns:
		Tuple of (text, font_size).
	"""
	size = base_size
	while size >= min_size:
		if measure(text, size, font_name) <= max_width:
			return (text, size)
		size -= SHRINK_STEP
	size = min(base_size, min_size)
	if measure(text, size, font_name) <= max_width:
		return (text, size)
	return (fit_ellipsis(text, max_width, size, font_name), size)


#============================================
def fit_lines(
	text: str,
	max_width: float,
	preferred_size: float,
	min_size: float,
	max_lines: int = 2,
	font_name: str = DEFAULT_FONT,
) -> tuple[list[str], float]:
	"""
	Shrink text until it wraps into at most max_lines lines.

	At the minimum size the overflow is folded into the last line and
	ellipsized.

	Args:
		text: Text to place.
		max_width: Maximum line width in points.
		preferred_size: Starting font size.
		min_size: Smallest allowed font size.
		max_lines: Line limit.
		font_name: ReportLab font name.

	Returns:
		Tuple of (lines, font_size).
	"""
	size = preferred_size
	while size >= min_size:
		lines = wrap(text, max_width, size, font_name)
		if len(lines) <= max_lines:
			return (lines, size)
		size -= SHRINK_STEP
	size = min(preferred_size, min_size)
	lines = wrap(text, max_width, size, font_name)
	if len(lines) <= max_lines:
		return (lines, size)
	kept = lines[:max_lines - 1]
	rest = " ".join(lines[max_lines - 1:])
	kept.append(fit_ellipsis(rest, max_width, size, font_name))
	return (kept, size)


#============================================
def truncate_chars(text: str, max_chars: int | None) -> str:
	"""
	Cut text to a character budget.
	"""
	if max_chars is None or max_chars < 0:
		return text
	return text[:max_chars]


#============================================
def estimate_wrapped_lines(text: str, chars_per_line: int = 20, max_lines: int = 8) -> int:
	"""
	Estimate visual line count for a wrapped spreadsheet cell.

	Spreadsheet cells have no glyph metrics at write time, so this counts
	characters. Tokens longer than a line occupy several lines.

	Args:
		text: Cell text.
		chars_per_line: Approximate characters per visual line.
		max_lines: Upper bound on the result.

	Returns:
		Line count between 1 and max_lines.
	"""
	normalized = (text or "").replace("\r\n", "\n").strip()
	if not normalized:
		return 1
	total = 0
	for paragraph in normalized.split("\n"):
		words = paragraph.split()
		if not words:
			total += 1
			continue
		lines = 1
		current = 0
		for word in words:
			length = len(word)
			if current and current + 1 + length <= chars_per_line:
				current += 1 + length
				continue
			if current:
				lines += 1
			lines += (length - 1) // chars_per_line
			current = (length - 1) % chars_per_line + 1
		total += lines
	return max(1, min(max_lines, total))


#============================================
def wrap_chars(text: str, max_chars: int = 34) -> list[str]:
	"""
	Greedy word wrap by character count; long words stay whole.
	"""
	lines: list[str] = []
	current = ""
	for word in (text or "").split():
		if not current:
			current = word
		elif len(current) + 1 + len(word) <= max_chars:
			current += " " + word
		else:
			lines.append(current)
			current = word
	if current:
		lines.append(current)
	return lines
