"""
Spreadsheet templates: sheet cloning, name de-duplication and row writing.
"""

# Standard Library
import copy
import io
import logging
import pathlib
import re
import zipfile

# PIP3 modules
import openpyxl
import openpyxl.cell.cell
import openpyxl.drawing.image
import openpyxl.utils.exceptions
import openpyxl.worksheet.worksheet

# local repo modules
import drill_forms.config
import drill_forms.text_fit


LayoutConfigError = drill_forms.config.LayoutConfigError
TemplateNotFoundError = drill_forms.config.TemplateNotFoundError
EXCEL_SHEET_NAME_LIMIT = drill_forms.config.EXCEL_SHEET_NAME_LIMIT
EXCEL_INVALID_SHEET_CHARS = drill_forms.config.EXCEL_INVALID_SHEET_CHARS

Worksheet = openpyxl.worksheet.worksheet.Worksheet

INVALID_SHEET_CHAR_PATTERN = re.compile("[" + re.escape(EXCEL_INVALID_SHEET_CHARS) + "]")

logger = logging.getLogger(__name__)


#============================================
def load_template_workbook(path: pathlib.Path | str) -> openpyxl.Workbook:
	"""
	Load a template workbook.

	Args:
		path: Workbook path.

	Returns:
		Workbook instance owned by the caller.

	Raises:
		TemplateNotFoundError: When the file is missing or unreadable.
	"""
	path = pathlib.Path(path)
	if not path.is_file():
		raise TemplateNotFoundError(f"Template workbook not found: {path}")
	try:
		return openpyxl.load_workbook(path)
	except (OSError, KeyError, zipfile.BadZipFile, openpyxl.utils.exceptions.InvalidFileException) as exc:
		raise TemplateNotFoundError(f"Template workbook {path} is unreadable: {exc}") from exc


#============================================
def get_template_sheet(workbook: openpyxl.Workbook, name: str) -> Worksheet:
	if name not in workbook.sheetnames:
		raise LayoutConfigError(f"Template sheet '{name}' not found")
	return workbook[name]


#============================================
def sanitize_sheet_name(name) -> str:
	"""
	Replace characters Excel rejects in sheet names.
	"""
	text = INVALID_SHEET_CHAR_PATTERN.sub("-", str(name or "")).strip()
	# a sheet name must not start or end with an apostrophe
	text = text.strip("'").strip()
	return text or "Sheet"


#============================================
def unique_sheet_name(
	desired,
	taken,
	reserved=(),
	limit: int = EXCEL_SHEET_NAME_LIMIT,
) -> str:
	"""
	Pick a sheet name that collides with neither taken nor reserved names.

	Names compare case-insensitively, like Excel does. Collisions get a
	" (n)" suffix and the base is truncated so the result stays within limit.

	Args:
		desired: Requested name.
		taken: Names already used in the workbook or supplied by the caller.
		reserved: Internal names that must stay free.
		limit: Maximum name length.

	Returns:
		Unique sheet name.
	"""
	base = sanitize_sheet_name(desired)[:limit].rstrip()
	used = {str(name).lower() for name in taken}
	used.update(str(name).lower() for name in reserved)
	if base.lower() not in used:
		return base
	counter = 2
	while True:
		suffix = f" ({counter})"
		candidate = base[: max(0, limit - len(suffix))].rstrip() + suffix
		if candidate.lower() not in used:
			return candidate
		counter += 1


#============================================
def _image_bytes(image: openpyxl.drawing.image.Image) -> bytes:
	# read the stored stream directly, Image._data() closes it
	ref = image.ref
	if isinstance(ref, (str, pathlib.Path)):
		return pathlib.Path(ref).read_bytes()
	if hasattr(ref, "getvalue"):
		return ref.getvalue()
	return image._data()


#============================================
def _print_ranges(value) -> list[str]:
	if not value:
		return []
	return [part.split("!")[-1] for part in str(value).split(",") if part]


#============================================
def clone_template_unit(workbook: openpyxl.Workbook, source: Worksheet, title: str) -> Worksheet:
	"""
	Copy a template sheet with its formatting into a new sheet.

	Cell values, styles, row and column dimensions, merged ranges and page
	setup come from openpyxl's worksheet copy. Freeze panes, print titles,
	print area and embedded images are copied here; every image is a new
	object with its own data and anchor.

	Args:
		workbook: Workbook that owns source.
		source: Pristine template sheet; it is not modified.
		title: Title for the new sheet, already unique.

	Returns:
		New worksheet.
	"""
	clone = workbook.copy_worksheet(source)
	clone.title = title
	clone.freeze_panes = source.freeze_panes
	if source.print_title_rows:
		clone.print_title_rows = source.print_title_rows
	if source.print_title_cols:
		clone.print_title_cols = source.print_title_cols
	print_area = _print_ranges(source.print_area)
	if print_area:
		clone.print_area = print_area
	for image in source._images:
		copied = openpyxl.drawing.image.Image(io.BytesIO(_image_bytes(image)))
		copied.width = image.width
		copied.height = image.height
		copied.anchor = copy.deepcopy(image.anchor)
		clone.add_image(copied)
	return clone


#============================================
def set_if_present(sheet: Worksheet, cell_ref: str, value) -> bool:
	"""
	Write a trimmed text value, leaving the cell alone when blank.
	"""
	if value is None:
		return False
	text = str(value).strip()
	if not text:
		return False
	sheet[cell_ref].value = text
	return True


#============================================
def clear_rows(sheet: Worksheet, start_row: int, count: int, columns) -> None:
	"""
	Blank the given columns of a row range; merged non-anchor cells are skipped.
	"""
	for row in range(start_row, start_row + count):
		for column in columns:
			cell = sheet[f"{column}{row}"]
			if isinstance(cell, openpyxl.cell.cell.MergedCell):
				continue
			cell.value = None


#============================================
def ensure_row_style(sheet: Worksheet, template_row: int, target_row: int, columns) -> None:
	"""
	Give an injected row the formatting of a template row.

	Cells that already carry a style keep it.

	Args:
		sheet: Worksheet.
		template_row: Row whose styles are copied.
		target_row: Row to format.
		columns: Column letters to copy.
	"""
	if target_row == template_row:
		return
	for column in columns:
		source = sheet[f"{column}{template_row}"]
		target = sheet[f"{column}{target_row}"]
		if isinstance(target, openpyxl.cell.cell.MergedCell) or target.has_style:
			continue
		if source.has_style:
			target._style = copy.copy(source._style)
	template_height = sheet.row_dimensions[template_row].height
	if template_height is not None and sheet.row_dimensions[target_row].height is None:
		sheet.row_dimensions[target_row].height = template_height


#============================================
def apply_wrapped_row_height(
	sheet: Worksheet,
	row: int,
	column: str,
	text,
	chars_per_line: int = 20,
	max_lines: int = 8,
	base_height: float = 18.0,
	line_height: float = 15.0,
) -> int:
	"""
	Turn on wrapping for a cell and grow its row to fit the text.

	Args:
		sheet: Worksheet.
		row: Row number.
		column: Column letter of the wrapped cell.
		text: Cell text used for the line estimate.
		chars_per_line: Approximate characters per visual line.
		max_lines: Upper bound on the estimate.
		base_height: Height of a one-line row in points.
		line_height: Extra height per additional line.

	Returns:
		Estimated line count.
	"""
	cell = sheet[f"{column}{row}"]
	alignment = copy.copy(cell.alignment)
	alignment.wrap_text = True
	alignment.vertical = "top"
	cell.alignment = alignment
	lines = drill_forms.text_fit.estimate_wrapped_lines(
		"" if text is None else str(text),
		chars_per_line,
		max_lines,
	)
	sheet.row_dimensions[row].height = base_height + (lines - 1) * line_height
	return lines


#============================================
def workbook_to_bytes(workbook: openpyxl.Workbook) -> bytes:
	buffer = io.BytesIO()
	workbook.save(buffer)
	return buffer.getvalue()
