"""
PDF template loading, overlay surfaces, drawing helpers and assembly.

Templates are never drawn on. Every output page is a fresh blank page
onto which the template page and a reportlab overlay are merged.
"""

# Standard Library
import base64
import collections.abc
import dataclasses
import io
import logging
import os
import pathlib

# PIP3 modules
import PIL.Image
import pypdf
import pypdf.errors
import reportlab.lib.utils
import reportlab.pdfgen.canvas

# local repo modules
import drill_forms.config
import drill_forms.offsets
import drill_forms.registry
import drill_forms.text_fit


Rect = drill_forms.config.Rect
RenderedMark = drill_forms.config.RenderedMark
FieldRegistry = drill_forms.registry.FieldRegistry
OffsetConfig = drill_forms.offsets.OffsetConfig
LayoutConfigError = drill_forms.config.LayoutConfigError
TemplateNotFoundError = drill_forms.config.TemplateNotFoundError

DEFAULT_FONT = drill_forms.config.DEFAULT_FONT
DEFAULT_FONT_SIZE = drill_forms.config.DEFAULT_FONT_SIZE
VALUE_COLOR = drill_forms.config.VALUE_COLOR
STATIC_COLOR = drill_forms.config.STATIC_COLOR
MARKER_COLOR = drill_forms.config.MARKER_COLOR
HIGHLIGHT_COLOR = drill_forms.config.HIGHLIGHT_COLOR
HIGHLIGHT_OPACITY = drill_forms.config.HIGHLIGHT_OPACITY
GRID_COLOR = drill_forms.config.GRID_COLOR
GRID_LABEL_COLOR = drill_forms.config.GRID_LABEL_COLOR
CHECK_MARK = drill_forms.config.CHECK_MARK
CHECK_MARK_SIZE = drill_forms.config.CHECK_MARK_SIZE
STACKED_LINE_HEIGHT_FACTOR = drill_forms.config.STACKED_LINE_HEIGHT_FACTOR
MIN_BLOCK_LINE_HEIGHT = drill_forms.config.MIN_BLOCK_LINE_HEIGHT

SUPPORTED_ROTATIONS = (0, 90)

logger = logging.getLogger(__name__)


#============================================
def note_warning(warnings: list[str] | None, message: str) -> None:
	"""
	Report dropped content or skipped values through the optional
	warnings channel.

	Args:
		warnings: Caller-supplied list, or None for a silent drop.
		message: Human readable notice.
	"""
	logger.info(message)
	if warnings is not None:
		warnings.append(message)


@dataclasses.dataclass(frozen=True)
class TemplateSource:
	"""
	One loaded template page and the size of the page it produces.

	Attributes:
		name: Logical template name from the layout table.
		file_name: Template file name; "" for a blank page.
		page: Source page object, read-only; None for a blank page.
		width: Output page width (swapped for a 90 degree rotation).
		height: Output page height.
		rotate: 0 or 90.
	"""
	name: str
	file_name: str
	page: pypdf.PageObject | None
	width: float
	height: float
	rotate: int = 0

	#============================================
	@property
	def is_blank(self) -> bool:
		return self.page is None

	#============================================
	def clone_page(self) -> pypdf.PageObject:
		"""
		Copy the template content onto a new blank output page.

		Returns:
			New page object; the template page is left untouched.
		"""
		blank = pypdf.PageObject.create_blank_page(width=self.width, height=self.height)
		if self.page is None:
			return blank
		if self.rotate == 90:
			# rotate about the origin, then shift back into the landscape sheet
			transform = pypdf.Transformation().rotate(90).translate(self.width, 0)
			blank.merge_transformed_page(self.page, transform)
		else:
			blank.merge_page(self.page)
		return blank


@dataclasses.dataclass(frozen=True)
class TemplateDocument:
	"""
	Ordered template pages of one form; only the required ones are loaded.
	"""
	names: tuple[str, ...]
	sources: collections.abc.Mapping[int, TemplateSource]

	#============================================
	@property
	def page_count(self) -> int:
		return len(self.names)

	#============================================
	def index_of(self, name: str) -> int:
		if name not in self.names:
			raise LayoutConfigError(f"Unknown template name: {name}")
		return self.names.index(name)

	#============================================
	def source(self, index: int) -> TemplateSource:
		source = self.sources.get(index)
		if source is None:
			raise LayoutConfigError(f"Template page {index + 1} was not loaded")
		return source


class TemplateStore:
	"""
	Loads template files by name from one directory.
	"""

	def __init__(self, base_dir: pathlib.Path | str | None = None):
		if base_dir is None:
			env_dir = os.environ.get(drill_forms.config.TEMPLATE_DIR_ENV)
			base_dir = env_dir if env_dir else pathlib.Path.cwd() / "templates"
		self.base_dir = pathlib.Path(base_dir)

	#============================================
	def resolve(self, file_name: str) -> pathlib.Path:
		"""
		Find a template file.

		Args:
			file_name: File name relative to the template directory.

		Returns:
			Existing path.

		Raises:
			TemplateNotFoundError: When the file does not exist.
		"""
		path = self.base_dir / file_name
		if not path.is_file():
			raise TemplateNotFoundError(f"Template not found at: {path}")
		return path

	#============================================
	def find(self, file_names: collections.abc.Iterable[str]) -> str | None:
		"""
		Return the first of several candidate file names that exists.
		"""
		for file_name in file_names:
			if (self.base_dir / file_name).is_file():
				return file_name
		return None

	#============================================
	def read_pdf_page(self, file_name: str, page_number: int = 1) -> pypdf.PageObject:
		path = self.resolve(file_name)
		try:
			reader = pypdf.PdfReader(str(path))
			return reader.pages[page_number - 1]
		except (pypdf.errors.PdfReadError, IndexError, OSError) as exc:
			raise TemplateNotFoundError(f"Template {path} is unreadable: {exc}") from exc

	#============================================
	def load_document(self, layout: dict, required: collections.abc.Iterable[int] | None = None) -> TemplateDocument:
		"""
		Load the template pages a render needs.

		An entry may list fallback_files tried after file, and a blank
		[width, height] page used when none of the files exists.

		Args:
			layout: Layout table with a templates list.
			required: Template indices to load; all when None.

		Returns:
			TemplateDocument.

		Raises:
			TemplateNotFoundError: When no candidate exists and no blank
				page is declared.
		"""
		entries = layout.get("templates") or []
		names = tuple(str(entry["name"]) for entry in entries)
		indices = range(len(entries)) if required is None else sorted(set(required))
		sources: dict[int, TemplateSource] = {}
		for index in indices:
			if index < 0 or index >= len(entries):
				raise LayoutConfigError(f"Template index {index} out of range")
			entry = entries[index]
			rotate = int(entry.get("rotate", 0))
			if rotate not in SUPPORTED_ROTATIONS:
				raise LayoutConfigError(f"Unsupported template rotation: {rotate}")
			candidates = [str(entry["file"])] + [str(name) for name in entry.get("fallback_files") or []]
			file_name = self.find(candidates)
			if file_name is None and entry.get("blank"):
				width, height = (float(value) for value in entry["blank"])
				sources[index] = TemplateSource(
					name=names[index], file_name="", page=None, width=width, height=height,
				)
				logger.info("Template %s not found, using a blank %gx%g page", entry["file"], width, height)
				continue
			if file_name is None and len(candidates) > 1:
				raise TemplateNotFoundError(
					f"Template {names[index]} not found in {self.base_dir}. Tried: {', '.join(candidates)}"
				)
			if file_name is None:
				# resolve() raises with the full path
				file_name = candidates[0]
			page = self.read_pdf_page(file_name, int(entry.get("page", 1)))
			width = float(page.mediabox.width)
			height = float(page.mediabox.height)
			if rotate == 90:
				width, height = height, width
			sources[index] = TemplateSource(
				name=names[index],
				file_name=file_name,
				page=page,
				width=width,
				height=height,
				rotate=rotate,
			)
			logger.debug("Loaded template %s (%s)", names[index], file_name)
		return TemplateDocument(names=names, sources=sources)


class PageSurface:
	"""
	Overlay canvas for one output page that records what was drawn.
	"""

	def __init__(self, page_index: int, template_index: int, width: float, height: float):
		self.page_index = page_index
		self.template_index = template_index
		self.width = width
		self.height = height
		self.marks: list[RenderedMark] = []
		self._buffer = io.BytesIO()
		self.canvas = reportlab.pdfgen.canvas.Canvas(self._buffer, pagesize=(width, height))

	#============================================
	def record(self, kind: str, x: float, y: float, text: str = "", font_size: float = 0.0,
			width: float = 0.0, height: float = 0.0) -> None:
		self.marks.append(
			RenderedMark(
				kind=kind,
				page_index=self.page_index,
				x=x,
				y=y,
				text=text,
				font_size=font_size,
				width=width,
				height=height,
			)
		)

	#============================================
	def overlay_page(self) -> pypdf.PageObject:
		"""
		Finish the canvas and return it as a pypdf page.
		"""
		self.canvas.showPage()
		self.canvas.save()
		self._buffer.seek(0)
		reader = pypdf.PdfReader(self._buffer)
		return reader.pages[0]


@dataclasses.dataclass
class RenderContext:
	"""
	Per-render state handed to every section.
	"""
	document: TemplateDocument
	pages: list[PageSurface]
	registry: FieldRegistry
	offsets: OffsetConfig
	warnings: list[str] | None = None

	#============================================
	def page(self, index: int) -> PageSurface | None:
		if 0 <= index < len(self.pages):
			return self.pages[index]
		return None

	#============================================
	def first_page_for(self, template_index: int) -> PageSurface | None:
		for surface in self.pages:
			if surface.template_index == template_index:
				return surface
		return None

	#============================================
	def pages_for(self, template_index: int) -> list[PageSurface]:
		return [surface for surface in self.pages if surface.template_index == template_index]

	#============================================
	def warn(self, message: str) -> None:
		note_warning(self.warnings, message)

	#============================================
	@property
	def marks(self) -> list[RenderedMark]:
		collected: list[RenderedMark] = []
		for surface in self.pages:
			collected.extend(surface.marks)
		return collected


@dataclasses.dataclass(frozen=True)
class RenderResult:
	pdf_bytes: bytes
	page_count: int
	marks: list[RenderedMark]
	warnings: list[str]


#============================================
def draw_text(
	surface: PageSurface,
	x: float,
	y: float,
	text,
	font_size: float = DEFAULT_FONT_SIZE,
	color: tuple[float, float, float] = VALUE_COLOR,
	font_name: str = DEFAULT_FONT,
	horizontal_scale: float = 100.0,
	kind: str = "text",
) -> bool:
	"""
	Draw one line of text at a baseline position.

	Args:
		surface: Target page surface.
		x: Left edge.
		y: Baseline.
		text: Value to draw; None and blank strings draw nothing.
		font_size: Font size in points.
		color: RGB fill color.
		font_name: ReportLab font name.
		horizontal_scale: Character squeeze in percent.
		kind: Mark kind recorded for inspection.

	Returns:
		True when something was drawn.
	"""
	if text is None:
		return False
	text = str(text)
	if not text.strip():
		return False
	pdf = surface.canvas
	pdf.setFillColorRGB(color[0], color[1], color[2])
	if horizontal_scale != 100.0:
		text_object = pdf.beginText(x, y)
		text_object.setFont(font_name, font_size)
		text_object.setHorizScale(horizontal_scale)
		text_object.textOut(text)
		pdf.drawText(text_object)
	else:
		pdf.setFont(font_name, font_size)
		pdf.drawString(x, y, text)
	width = drill_forms.text_fit.measure(text, font_size, font_name) * horizontal_scale / 100.0
	surface.record(kind, x, y, text=text, font_size=font_size, width=width, height=font_size)
	return True


#============================================
def draw_static_text(surface: PageSurface, x: float, y: float, text: str, font_size: float = DEFAULT_FONT_SIZE) -> bool:
	"""
	Draw printed-form text (labels) in black.
	"""
	return draw_text(surface, x, y, text, font_size, color=STATIC_COLOR, kind="static")


#============================================
def draw_checkmark(surface: PageSurface, x: float, y: float, font_size: float = CHECK_MARK_SIZE) -> bool:
	return draw_text(surface, x, y, CHECK_MARK, font_size, kind="check")


#============================================
def draw_wrapped_block(
	surface: PageSurface,
	text,
	x: float,
	y_top: float,
	max_width: float,
	max_height: float,
	font_size: float = DEFAULT_FONT_SIZE,
	min_line_height: float = MIN_BLOCK_LINE_HEIGHT,
	warnings: list[str] | None = None,
) -> drill_forms.text_fit.BlockLayout:
	"""
	Draw wrapped text inside a box, truncating with an ellipsis.

	Args:
		surface: Target page surface.
		text: Text to draw.
		x: Left edge.
		y_top: Baseline of the first line.
		max_width: Box width.
		max_height: Box height, converted into a line budget.
		font_size: Font size.
		min_line_height: Lower bound for the line pitch.
		warnings: Optional overflow channel.

	Returns:
		BlockLayout that was drawn.
	"""
	block = drill_forms.text_fit.layout_block(
		"" if text is None else str(text),
		max_width,
		max_height,
		font_size,
		min_line_height=min_line_height,
	)
	for index, line in enumerate(block.lines):
		draw_text(surface, x, y_top - index * block.line_height, line, block.font_size)
	if block.truncated:
		note_warning(warnings, f"Text block at ({x:.0f}, {y_top:.0f}) on page {surface.page_index + 1} was truncated")
	return block


#============================================
def fit_and_draw(
	surface: PageSurface,
	text,
	x: float,
	y_top: float,
	max_width: float,
	max_height: float,
	base_size: float = DEFAULT_FONT_SIZE,
	candidates: list[float] | None = None,
	min_line_height: float = MIN_BLOCK_LINE_HEIGHT,
	warnings: list[str] | None = None,
) -> drill_forms.text_fit.BlockLayout:
	"""
	Auto-fit a text block by trying descending font sizes, then draw it.
	"""
	text = "" if text is None else str(text)
	size = drill_forms.text_fit.choose_font_size(
		text,
		max_width,
		max_height,
		base_size,
		candidates=candidates,
		min_line_height=min_line_height,
	)
	return draw_wrapped_block(
		surface, text, x, y_top, max_width, max_height, size,
		min_line_height=min_line_height, warnings=warnings,
	)


#============================================
def draw_stacked_list(
	surface: PageSurface,
	values: collections.abc.Iterable,
	x: float,
	y_top: float,
	max_width: float,
	max_height: float,
	font_size: float = DEFAULT_FONT_SIZE,
	line_height: float | None = None,
	warnings: list[str] | None = None,
) -> int:
	"""
	Stack short values in one cell, one line each.

	Each value keeps only its first wrapped line. Values beyond the
	height budget are dropped.

	Args:
		surface: Target page surface.
		values: Values to stack; blanks are skipped.
		x: Left edge.
		y_top: Baseline of the first value.
		max_width: Cell width.
		max_height: Cell height.
		font_size: Font size.
		line_height: Line pitch; defaults to 1.2 x font size.
		warnings: Optional overflow channel.

	Returns:
		Number of values drawn.
	"""
	if line_height is None:
		line_height = font_size * STACKED_LINE_HEIGHT_FACTOR
	items = [str(value).strip() for value in values if value is not None and str(value).strip()]
	budget = drill_forms.text_fit.line_budget(max_height, line_height)
	drawn = 0
	for index, value in enumerate(items[:budget]):
		line = drill_forms.text_fit.first_line(value, max_width, font_size)
		if draw_text(surface, x, y_top - index * line_height, line, font_size):
			drawn += 1
	if len(items) > budget:
		note_warning(
			warnings,
			f"{len(items) - budget} value(s) at ({x:.0f}, {y_top:.0f}) on page {surface.page_index + 1} dropped",
		)
	return drawn


#============================================
def draw_highlight(
	surface: PageSurface,
	rect: Rect,
	color: tuple[float, float, float] = HIGHLIGHT_COLOR,
	opacity: float = HIGHLIGHT_OPACITY,
) -> None:
	"""
	Draw a translucent marker-pen rectangle.
	"""
	pdf = surface.canvas
	pdf.saveState()
	pdf.setFillColorRGB(color[0], color[1], color[2])
	pdf.setFillAlpha(opacity)
	pdf.rect(rect.x, rect.y, rect.width, rect.height, stroke=0, fill=1)
	pdf.restoreState()
	surface.record("highlight", rect.x, rect.y, width=rect.width, height=rect.height)


#============================================
def draw_mask(surface: PageSurface, rect: Rect) -> None:
	pdf = surface.canvas
	pdf.saveState()
	pdf.setFillColorRGB(1, 1, 1)
	pdf.rect(rect.x, rect.y, rect.width, rect.height, stroke=0, fill=1)
	pdf.restoreState()
	surface.record("mask", rect.x, rect.y, width=rect.width, height=rect.height)


#============================================
def draw_rule(surface: PageSurface, x0: float, y0: float, x1: float, y1: float, line_width: float = 1.0) -> None:
	"""
	Draw one black form line.
	"""
	pdf = surface.canvas
	pdf.saveState()
	pdf.setStrokeColorRGB(*STATIC_COLOR)
	pdf.setLineWidth(line_width)
	pdf.line(x0, y0, x1, y1)
	pdf.restoreState()
	surface.record("rule", x0, y0, width=x1 - x0, height=y1 - y0)


#============================================
def draw_box(surface: PageSurface, rect: Rect, line_width: float = 1.0) -> None:
	pdf = surface.canvas
	pdf.saveState()
	pdf.setStrokeColorRGB(*STATIC_COLOR)
	pdf.setLineWidth(line_width)
	pdf.rect(rect.x, rect.y, rect.width, rect.height, stroke=1, fill=0)
	pdf.restoreState()
	surface.record("box", rect.x, rect.y, width=rect.width, height=rect.height)


#============================================
def draw_circle_marker(
	surface: PageSurface,
	x: float,
	y: float,
	radius: float = 5.2,
	line_width: float = 1.2,
	color: tuple[float, float, float] = VALUE_COLOR,
) -> None:
	"""
	Circle a pre-printed letter.
	"""
	pdf = surface.canvas
	pdf.saveState()
	pdf.setStrokeColorRGB(color[0], color[1], color[2])
	pdf.setLineWidth(line_width)
	pdf.circle(x, y, radius, stroke=1, fill=0)
	pdf.restoreState()
	surface.record("circle", x, y, width=radius * 2, height=radius * 2)


#============================================
def decode_data_url(data_url) -> bytes | None:
	"""
	Decode a base64 image data URL.

	Args:
		data_url: Value such as "data:image/png;base64,....".

	Returns:
		Raw bytes, or None when the value is not an image data URL.
	"""
	if not isinstance(data_url, str) or not data_url.startswith("data:image/"):
		return None
	header, _, payload = data_url.partition(",")
	if not header.endswith(";base64") or not payload:
		return None
	# binascii.Error is a ValueError
	try:
		return base64.b64decode(payload, validate=True)
	except ValueError:
		return None


#============================================
def draw_signature(
	surface: PageSurface,
	data_url,
	box: Rect,
	warnings: list[str] | None = None,
) -> bool:
	"""
	Draw a signature image scaled into a box.

	Args:
		surface: Target page surface.
		data_url: PNG or JPEG data URL.
		box: Target box; the aspect ratio is preserved.
		warnings: Optional channel for skipped images.

	Returns:
		True when the image was drawn.
	"""
	payload = decode_data_url(data_url)
	if payload is None:
		if data_url:
			note_warning(warnings, "Signature skipped: not an image data URL")
		return False
	try:
		image = PIL.Image.open(io.BytesIO(payload))
		image.load()
	except (OSError, ValueError) as exc:
		logger.warning("Signature image could not be decoded: %s", exc)
		note_warning(warnings, "Signature skipped: image could not be decoded")
		return False
	if image.mode not in ("RGB", "RGBA"):
		image = image.convert("RGBA")
	reader = reportlab.lib.utils.ImageReader(image)
	surface.canvas.drawImage(
		reader,
		box.x,
		box.y,
		width=box.width,
		height=box.height,
		mask="auto",
		preserveAspectRatio=True,
		anchor="sw",
	)
	surface.record("image", box.x, box.y, width=box.width, height=box.height)
	return True


#============================================
def draw_debug_grid(surface: PageSurface, step: float = 50) -> None:
	"""
	Draw a labelled coordinate grid for calibrating field positions.
	"""
	if step <= 0:
		return
	pdf = surface.canvas
	pdf.saveState()
	pdf.setLineWidth(0.5)
	pdf.setFont(DEFAULT_FONT, 6)
	x = 0.0
	while x <= surface.width:
		pdf.setStrokeColorRGB(*GRID_COLOR)
		pdf.line(x, 0, x, surface.height)
		pdf.setFillColorRGB(*GRID_LABEL_COLOR)
		pdf.drawString(x + 2, surface.height - 10, f"{x:g}")
		x += step
	y = 0.0
	while y <= surface.height:
		pdf.setStrokeColorRGB(*GRID_COLOR)
		pdf.line(0, y, surface.width, y)
		pdf.setFillColorRGB(*GRID_LABEL_COLOR)
		pdf.drawString(2, y + 2, f"{y:g}")
		y += step
	pdf.restoreState()
	surface.record("grid", 0, 0, width=step, height=step)


#============================================
def draw_markers(context: RenderContext, markers: collections.abc.Iterable[dict]) -> int:
	"""
	Draw red calibration markers; pages are 1-based and clamped.

	Returns:
		Number of markers drawn.
	"""
	drawn = 0
	if not context.pages:
		return drawn
	for marker in markers:
		if not isinstance(marker, collections.abc.Mapping):
			context.warn(f"Skipped malformed marker {marker!r}")
			continue
		text = marker.get("text")
		if not text:
			continue
		x = drill_forms.offsets.to_float(marker.get("x"))
		y = drill_forms.offsets.to_float(marker.get("y"))
		page_number = drill_forms.offsets.to_float(marker.get("page", 1))
		if x is None or y is None or page_number is None:
			context.warn(f"Skipped malformed marker {marker!r}")
			continue
		index = max(0, min(len(context.pages) - 1, int(page_number) - 1))
		size = drill_forms.offsets.to_float(marker.get("size"))
		if size is None or size <= 0:
			size = DEFAULT_FONT_SIZE
		if draw_text(context.pages[index], x, y, str(text), size, color=MARKER_COLOR, kind="marker"):
			drawn += 1
	return drawn


#============================================
def draw_page_number(surface: PageSurface, number: int, mask_y: float = 28.0, font_size: float = 10.0) -> None:
	"""
	Replace the printed page number with a running number.

	A white mask covers the template's own number before the new one is
	drawn centred on the page.
	"""
	text = str(number)
	text_width = drill_forms.text_fit.measure(text, font_size)
	text_x = (surface.width - text_width) / 2.0
	mask_width = max(26.0, text_width + 12.0)
	mask_x = text_x - (mask_width - text_width) / 2.0
	draw_mask(surface, Rect(mask_x, mask_y, mask_width, 22.0))
	draw_static_text(surface, text_x, mask_y + 3, text, font_size)


#============================================
def draw_field(
	context: RenderContext,
	key: str,
	value,
	row_index: int | None = None,
	anchor_y: float | None = None,
	shift_x: float = 0.0,
	shift_y: float = 0.0,
	surface: PageSurface | None = None,
	font_size: float | None = None,
	apply_offsets: bool = True,
) -> bool:
	"""
	Draw a registered field at its resolved coordinates.

	The field's descriptor supplies the anchor, font size, character
	budget and optional width/height box. With a box the text is
	auto-fitted; with only a width it is shrunk (when a minimum size is
	set) or ellipsized.

	Args:
		context: Render context.
		key: Registered field key.
		value: Value to draw; blanks draw nothing.
		row_index: Row index for row-level offsets.
		anchor_y: Replaces the descriptor y, used for flowed rows.
		shift_x: Extra horizontal shift.
		shift_y: Extra vertical shift.
		surface: Target page; defaults to the first page of the field's template.
		font_size: Replaces the descriptor font size.
		apply_offsets: False skips the offset tiers (continuation pages).

	Returns:
		True when something was drawn.
	"""
	field = context.registry.get(key)
	if value is None:
		return False
	text = str(value)
	if not text.strip():
		return False
	if surface is None:
		surface = context.first_page_for(field.page_index)
		if surface is None:
			return False
	text = drill_forms.text_fit.truncate_chars(text, field.max_chars)
	x = field.x + shift_x
	y = (field.y if anchor_y is None else anchor_y) + shift_y
	if apply_offsets:
		x += context.offsets.offset(key, "x", row_index)
		y += context.offsets.offset(key, "y", row_index)
	size = field.font_size if font_size is None else font_size
	if field.max_width is not None and field.max_height is not None:
		block = fit_and_draw(
			surface, text, x, y, field.max_width, field.max_height, size,
			warnings=context.warnings,
		)
		return bool(block.lines)
	if field.max_width is not None:
		if field.min_font_size is not None:
			text, size = drill_forms.text_fit.shrink_to_width(text, field.max_width, size, field.min_font_size)
		elif drill_forms.text_fit.measure(text, size) > field.max_width:
			text = drill_forms.text_fit.fit_ellipsis(text, field.max_width, size)
	return draw_text(surface, x, y, text, size)


#============================================
def draw_row_fields(
	context: RenderContext,
	surface: PageSurface,
	slot,
	row: collections.abc.Mapping,
	columns: collections.abc.Mapping[str, str],
	row_index: int | None = None,
) -> int:
	"""
	Draw one flowed row: each row key goes to its registered column field.

	Args:
		context: Render context.
		surface: Page the row landed on.
		slot: RowSlot from the flow plan.
		row: Row record.
		columns: Mapping of row key to field key.
		row_index: Row index for row-level offsets.

	Returns:
		Number of values drawn.
	"""
	drawn = 0
	for row_key, field_key in columns.items():
		if draw_field(
			context,
			field_key,
			row.get(row_key),
			row_index=row_index,
			anchor_y=slot.y_offset,
			shift_x=slot.x_offset,
			surface=surface,
		):
			drawn += 1
	return drawn


#============================================
def flow_rows(
	context: RenderContext,
	plan,
	rows: collections.abc.Sequence,
	draw_row: collections.abc.Callable,
	page_map: collections.abc.Sequence[int] | None = None,
	label: str = "rows",
) -> int:
	"""
	Place each row through a flow plan and hand it to a row painter.

	Rows beyond the plan's capacity, or on pages missing from the output,
	are dropped and reported through the warnings channel.

	Args:
		context: Render context.
		plan: PageFlowPlan.
		rows: Row records in render order.
		draw_row: Called as draw_row(surface, slot, row, index).
		page_map: Output page index for each plan page; identity when None.
		label: Name used in overflow notices.

	Returns:
		Number of rows placed.
	"""
	placed = 0
	for index, row in enumerate(rows):
		slot = plan.locate(index)
		if slot is None:
			break
		page_index = slot.page_index
		if page_map is not None:
			page_index = page_map[slot.page_index] if slot.page_index < len(page_map) else -1
		surface = context.page(page_index)
		if surface is None:
			break
		draw_row(surface, slot, row, index)
		placed += 1
	if placed < len(rows):
		context.warn(f"{len(rows) - placed} {label} did not fit the form and were dropped")
	return placed


#============================================
def render_document(
	document: TemplateDocument,
	sections: collections.abc.Iterable[collections.abc.Callable[[RenderContext], None]],
	registry: FieldRegistry,
	offsets: OffsetConfig | None = None,
	page_templates: collections.abc.Sequence[int] | None = None,
	warnings: list[str] | None = None,
	title: str | None = None,
	debug_grid_step: float | None = None,
	debug_grid_page: int | None = None,
	markers: collections.abc.Iterable[dict] | None = None,
) -> RenderResult:
	"""
	Stamp sections onto cloned template pages and serialize the PDF.

	Args:
		document: Loaded templates.
		sections: Callables run in order against the render context.
		registry: Field registry.
		offsets: Offset tiers; empty when None.
		page_templates: Template index for each output page; defaults to
			one page per loaded template.
		warnings: Optional overflow channel.
		title: Optional PDF title metadata.
		debug_grid_step: Draw a calibration grid when set.
		debug_grid_page: Limit the grid to one 1-based page (clamped).
		markers: Optional calibration markers.

	Returns:
		RenderResult.
	"""
	if offsets is None:
		offsets = OffsetConfig()
	if page_templates is None:
		page_templates = sorted(document.sources)
	pages: list[PageSurface] = []
	for page_index, template_index in enumerate(page_templates):
		source = document.source(template_index)
		pages.append(PageSurface(page_index, template_index, source.width, source.height))
	context = RenderContext(
		document=document,
		pages=pages,
		registry=registry,
		offsets=offsets,
		warnings=warnings,
	)
	if debug_grid_step:
		grid_pages = pages
		if debug_grid_page is not None and pages:
			grid_pages = [pages[max(0, min(len(pages) - 1, debug_grid_page - 1))]]
		for surface in grid_pages:
			draw_debug_grid(surface, debug_grid_step)
	if isinstance(markers, (list, tuple)):
		draw_markers(context, markers)
	elif markers:
		context.warn(f"Skipped debug markers: expected a list, got {type(markers).__name__}")
	for section in sections:
		logger.debug("Running section %s", getattr(section, "__name__", section))
		section(context)

	writer = pypdf.PdfWriter()
	for surface in pages:
		page = document.source(surface.template_index).clone_page()
		page.merge_page(surface.overlay_page())
		writer.add_page(page)
	if title:
		writer.add_metadata({"/Title": title})
	buffer = io.BytesIO()
	writer.write(buffer)
	return RenderResult(
		pdf_bytes=buffer.getvalue(),
		page_count=len(pages),
		marks=context.marks,
		warnings=list(warnings or []),
	)


#============================================
def assemble_pdf(
	document: TemplateDocument,
	sections: collections.abc.Iterable[collections.abc.Callable[[RenderContext], None]],
	registry: FieldRegistry,
	warnings: list[str] | None = None,
	**kwargs,
) -> bytes:
	"""
	Render a document and return only the PDF bytes.
	"""
	result = render_document(document, sections, registry, warnings=warnings, **kwargs)
	return result.pdf_bytes
