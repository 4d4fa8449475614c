"""
Derived marks: small predicates computed from record data.

The predicates never raise on bad input. An unparseable date or number
resolves to None, which callers treat as "draw nothing".
"""

# Standard Library
import collections.abc
import datetime
import decimal
import re

# local repo modules
import drill_forms.config


Rect = drill_forms.config.Rect

# Monday first, matching datetime.date.weekday()
WEEKDAY_KEYS = ("mo", "di", "mi", "do", "fr", "sa", "so")

TRUTHY_VALUES = ("x", "1", "true", "ja", "yes", "on")

DECIMAL_PATTERN = re.compile(r"^[+-]?(\d{1,3}(\.\d{3})+|\d+)(,\d+)?$|^[+-]?\d*\.\d+$|^[+-]?,\d+$")
DOTTED_DATE_PATTERN = re.compile(r"^(\d{1,2})\.(\d{1,2})\.(\d{4})$")
FLAG_SPLIT_PATTERN = re.compile(r"[,|;]")


#============================================
def parse_date(date_text) -> datetime.date | None:
	"""
	Parse an ISO date, ISO datetime or DD.MM.YYYY string.

	Args:
		date_text: Date value from a record.

	Returns:
		datetime.date, or None when the text is not a valid date.
	"""
	if isinstance(date_text, datetime.datetime):
		return date_text.date()
	if isinstance(date_text, datetime.date):
		return date_text
	if not isinstance(date_text, str):
		return None
	text = date_text.strip()
	match = DOTTED_DATE_PATTERN.match(text)
	try:
		if match:
			day, month, year = (int(part) for part in match.groups())
			return datetime.date(year, month, day)
		# datetimes are cut to the calendar date to avoid any timezone shift
		return datetime.date.fromisoformat(text[:10])
	except ValueError:
		return None


#============================================
def weekday_of(date_text) -> int | None:
	"""
	Weekday index for a date, Monday=0 through Sunday=6.
	"""
	day = parse_date(date_text)
	if day is None:
		return None
	return day.weekday()


#============================================
def weekday_mark(date_text, table: collections.abc.Mapping) -> tuple[float, float] | None:
	"""
	Look up the checkbox position for a date's weekday.

	Args:
		date_text: Date value.
		table: Mapping of weekday key ("mo".."so") to {x, y}.

	Returns:
		(x, y) tuple, or None when the date is invalid or the day has no box.
	"""
	weekday = weekday_of(date_text)
	if weekday is None:
		return None
	position = table.get(WEEKDAY_KEYS[weekday])
	if not position:
		return None
	return (float(position["x"]), float(position["y"]))


#============================================
def parse_decimal(value) -> decimal.Decimal | None:
	"""
	Parse a locale decimal string ("4,55", "1.234,5") into a Decimal.

	Plain dot decimals ("4.55") are accepted as well. Text containing
	letters or other symbols is rejected.

	Args:
		value: Number or string.

	Returns:
		Decimal, or None when the value does not parse.
	"""
	if value is None or isinstance(value, bool):
		return None
	if isinstance(value, int):
		return decimal.Decimal(value)
	if isinstance(value, float):
		return decimal.Decimal(str(value))
	text = str(value).strip().replace(" ", "")
	if not text or not DECIMAL_PATTERN.match(text):
		return None
	if "," in text:
		text = text.replace(".", "").replace(",", ".")
	elif text.count(".") > 1:
		# dotted thousands without a decimal part; a single dot is a decimal point
		text = text.replace(".", "")
	try:
		return decimal.Decimal(text)
	except decimal.InvalidOperation:
		return None


#============================================
def format_decimal(value, places: int | None = None) -> str:
	"""
	Format a number with a decimal comma and without trailing zeros.

	Args:
		value: Number or Decimal.
		places: Optional rounding to a fixed number of places before trimming.

	Returns:
		Formatted string; empty for None.
	"""
	if value is None:
		return ""
	number = value if isinstance(value, decimal.Decimal) else decimal.Decimal(str(value))
	if places is not None:
		number = number.quantize(decimal.Decimal(1).scaleb(-places), rounding=decimal.ROUND_HALF_UP)
	text = format(number, "f")
	if "." in text:
		text = text.rstrip("0").rstrip(".")
	if text in ("-0", ""):
		text = "0"
	return text.replace(".", ",")


#============================================
def numeric_delta(a_text, b_text) -> decimal.Decimal | None:
	"""
	Return b - a for two locale decimal strings when b >= a.

	Args:
		a_text: Start value, e.g. "4,00".
		b_text: End value, e.g. "4,55".

	Returns:
		Decimal difference, or None when a value fails to parse or b < a.
	"""
	a_value = parse_decimal(a_text)
	b_value = parse_decimal(b_text)
	if a_value is None or b_value is None:
		return None
	if b_value < a_value:
		return None
	return b_value - a_value


#============================================
def is_checked(value) -> bool:
	"""
	Interpret checkbox-like record values.
	"""
	if value is True:
		return True
	if value is None or value is False:
		return False
	if isinstance(value, (int, float)):
		return value == 1
	return str(value).strip().lower() in TRUTHY_VALUES


#============================================
def split_flags(value) -> list[str]:
	"""
	Normalize a flag value into a list of non-empty flag names.

	Accepts a list, a dict of {flag: checked}, or comma/pipe separated text.
	"""
	if value is None:
		return []
	if isinstance(value, collections.abc.Mapping):
		return [str(key) for key, checked in value.items() if is_checked(checked)]
	if isinstance(value, str):
		parts = FLAG_SPLIT_PATTERN.split(value)
	elif isinstance(value, collections.abc.Iterable):
		parts = [str(item) for item in value if item is not None]
	else:
		return []
	return [part.strip() for part in parts if part.strip()]


#============================================
def _rect_from_entry(entry) -> Rect:
	if isinstance(entry, Rect):
		return entry
	if isinstance(entry, collections.abc.Mapping):
		return Rect(
			x=float(entry["x"]),
			y=float(entry["y"]),
			width=float(entry.get("w", entry.get("width", 0))),
			height=float(entry.get("h", entry.get("height", 0))),
		)
	x, y, width, height = entry
	return Rect(float(x), float(y), float(width), float(height))


#============================================
def flags_to_highlights(selected_flags, position_table: collections.abc.Mapping) -> list[Rect]:
	"""
	Map selected flags to highlight rectangles.

	Rectangles come out in table order; flags missing from the table are
	ignored.

	Args:
		selected_flags: Iterable, mapping or text of selected flag names.
		position_table: Mapping of flag name to rectangle.

	Returns:
		List of Rect.
	"""
	selected = {flag.lower() for flag in split_flags(selected_flags)}
	rects: list[Rect] = []
	for flag, entry in position_table.items():
		if str(flag).lower() in selected:
			rects.append(_rect_from_entry(entry))
	return rects


#============================================
def flags_to_checkmarks(selected_flags, position_table: collections.abc.Mapping) -> list[tuple[float, float]]:
	"""
	Map selected flags to check mark positions, in table order.

	Table values are {x, y} mappings or (x, y) pairs.
	"""
	selected = {flag.lower() for flag in split_flags(selected_flags)}
	positions: list[tuple[float, float]] = []
	for flag, entry in position_table.items():
		if str(flag).lower() not in selected:
			continue
		if isinstance(entry, collections.abc.Mapping):
			positions.append((float(entry["x"]), float(entry["y"])))
		else:
			positions.append((float(entry[0]), float(entry[1])))
	return positions
