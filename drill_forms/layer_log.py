"""
Borehole layer log: first sheet, as many continuation sheets as the
layer table needs, and a groundwater supplement for long readings lists.
"""

# Standard Library
import dataclasses
import decimal
import logging
import math

# local repo modules
import drill_forms.config
import drill_forms.marks
import drill_forms.offsets
import drill_forms.pagination
import drill_forms.registry
import drill_forms.render
import drill_forms.text_fit


Rect = drill_forms.config.Rect
FieldRegistry = drill_forms.registry.FieldRegistry
OffsetConfig = drill_forms.offsets.OffsetConfig
PageFlowPlan = drill_forms.pagination.PageFlowPlan
TemplateStore = drill_forms.render.TemplateStore

LAYOUT_NAME = "layer_log"

FIRST_PAGE_TEMPLATE = 0
CONTINUATION_TEMPLATE = 1
GROUNDWATER_TEMPLATE = 2

SAMPLE_TYPES = ("EP", "UP", "BG", "GP")
# counter field per sample type; everything else counts as GP
SAMPLE_COUNTERS = {
	"EP": "count_kp",
	"UP": "count_sp",
	"BG": "count_bg",
}
CONDENSED_DEPTH_CHARS = 9
CONDENSED_SCALE = 90.0
END_DEPTH_LABEL = "ET"

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class SampleEntry:
	kind: str
	depth: str
	number: int


@dataclasses.dataclass(frozen=True)
class SptEntry:
	"""
	One standard penetration test run.

	Attributes:
		top: Start depth text.
		bottom: End depth text, given or derived from the blow counts.
		blows: Filled blow counts in order.
	"""
	top: str
	bottom: str
	blows: tuple[str, ...]

	#============================================
	@property
	def heading(self) -> str:
		return f"SPT von {self.top} bis {self.bottom} m"

	#============================================
	@property
	def blow_text(self) -> str:
		return " / ".join(self.blows)


@dataclasses.dataclass(frozen=True)
class LayerLogPages:
	"""
	Page plan of one layer log render.

	Attributes:
		layers: Flow plan of the layer table over page 1 and continuation sheets.
		groundwater_first: Flow plan of the groundwater rows printed on page 1.
		groundwater_supplement: Flow plan of the remaining groundwater rows.
		continuation_pages: Number of continuation sheets.
		groundwater_pages: Number of groundwater supplement sheets.
		samples_per_row: Sample lines that fit one layer row.
		sample_line_height: Pitch of the sample lines.
		sample_font_size: Font size of the sample lines.
	"""
	layers: PageFlowPlan
	groundwater_first: PageFlowPlan
	groundwater_supplement: PageFlowPlan
	continuation_pages: int
	groundwater_pages: int
	samples_per_row: int
	sample_line_height: float
	sample_font_size: float

	#============================================
	@property
	def page_templates(self) -> list[int]:
		return (
			[FIRST_PAGE_TEMPLATE]
			+ [CONTINUATION_TEMPLATE] * self.continuation_pages
			+ [GROUNDWATER_TEMPLATE] * self.groundwater_pages
		)

	#============================================
	@property
	def groundwater_start(self) -> int:
		return 1 + self.continuation_pages


#============================================
def _text(value) -> str:
	if value is None:
		return ""
	return str(value).strip()


#============================================
def _filled(value) -> bool:
	if isinstance(value, bool):
		return value
	return bool(_text(value))


#============================================
def _as_list(value) -> list:
	if value is None:
		return []
	if isinstance(value, (list, tuple)):
		return [item for item in value if _filled(item)]
	return [value] if _filled(value) else []


#============================================
def normalize_sample_type(value) -> str:
	"""
	Map a sample type spelling onto EP, UP, BG or GP.
	"""
	text = _text(value).upper()
	if text in SAMPLE_TYPES:
		return text
	return "GP"


#============================================
def layer_rows(record: dict) -> list[dict]:
	return drill_forms.pagination.record_rows(record, "layers", "schicht_rows", "schichtRows")


#============================================
def sample_entries(record: dict) -> list[SampleEntry]:
	"""
	Collect the samples of a record in print order.

	Samples come from a record-level list ("samples") or, when that is
	absent, from the "samples" list of each layer. A record with only a
	single proben_tiefe value yields one sample.

	Args:
		record: Input record.

	Returns:
		SampleEntry list, numbered per counter bucket.
	"""
	raw = drill_forms.pagination.record_rows(record, "samples", "proben_rows", "probenRows")
	if not raw:
		for layer in layer_rows(record):
			raw.extend(drill_forms.pagination.record_rows(layer, "samples", "proben"))
	if not raw and _filled(record.get("proben_tiefe")):
		raw = [{"type": record.get("proben_art"), "depth": record.get("proben_tiefe")}]
	entries: list[SampleEntry] = []
	counts: dict[str, int] = {}
	for item in raw:
		depth = _text(item.get("depth", item.get("tiefe")))
		if not depth:
			continue
		kind = normalize_sample_type(item.get("type", item.get("art", item.get("typ"))))
		bucket = SAMPLE_COUNTERS.get(kind, "count_gp")
		counts[bucket] = counts.get(bucket, 0) + 1
		entries.append(SampleEntry(kind=kind, depth=depth, number=counts[bucket]))
	return entries


#============================================
def spt_bottom(top, blows: list, segment_m: float = 0.15) -> str:
	"""
	Derive the end depth of an SPT run from its filled blow counts.

	Args:
		top: Start depth.
		blows: Blow counts; each filled one stands for one segment.
		segment_m: Segment length in metres.

	Returns:
		Formatted end depth, or "" when the start depth is not numeric.
	"""
	start = drill_forms.marks.parse_decimal(top)
	if start is None:
		return ""
	filled = sum(1 for value in blows if _filled(value))
	bottom = start + decimal.Decimal(str(segment_m)) * filled
	return drill_forms.marks.format_decimal(bottom, places=2)


#============================================
def spt_entries(record: dict, segment_m: float = 0.15) -> list[SptEntry]:
	raw = drill_forms.pagination.record_rows(record, "spt", "spt_rows", "sptRows")
	if not raw:
		for layer in layer_rows(record):
			raw.extend(drill_forms.pagination.record_rows(layer, "spt"))
	entries: list[SptEntry] = []
	for item in raw:
		top = _text(item.get("from", item.get("von")))
		if not top:
			continue
		blows = [_text(value) for value in _as_list(item.get("blows", item.get("schlaege")))]
		bottom = _text(item.get("to", item.get("bis"))) or spt_bottom(top, blows, segment_m)
		entries.append(SptEntry(top=top, bottom=bottom, blows=tuple(blows)))
	return entries


#============================================
def sample_counts(samples: list[SampleEntry], spt_count: int = 0) -> dict[str, int]:
	"""
	Count samples per counter field.
	"""
	counts = {"count_gp": 0, "count_kp": 0, "count_sp": 0, "count_bg": 0, "count_spt": spt_count}
	for sample in samples:
		counts[SAMPLE_COUNTERS.get(sample.kind, "count_gp")] += 1
	return counts


#============================================
def borehole_rows(record: dict, labels: dict, max_rows: int = 6) -> list[dict]:
	"""
	Order the drilling methods for the borehole block.

	Full-face drilling goes last; the others are sorted by diameter.

	Args:
		record: Input record.
		labels: Method key to printed label.
		max_rows: Printed row limit.

	Returns:
		Row dicts with label, depth, cased_depth and diameter.
	"""
	rows = []
	for item in drill_forms.pagination.record_rows(record, "boreholes", "bohrungen"):
		method = _text(item.get("method", item.get("verfahren")))
		if not method:
			continue
		diameter = drill_forms.marks.parse_decimal(item.get("diameter", item.get("durchmesser")))
		rows.append({
			"method": method,
			"label": labels.get(method, method),
			"depth": _text(item.get("depth", item.get("bis"))),
			"cased_depth": _text(item.get("cased_depth", item.get("verrohrt_bis"))),
			"diameter": _text(item.get("diameter", item.get("durchmesser"))),
			"sort_diameter": diameter if diameter is not None else decimal.Decimal("Infinity"),
		})
	rows.sort(key=lambda row: (row["method"] == "voll", row["sort_diameter"]))
	return rows[:max_rows]


#============================================
def _tuned_values(value, count: int | None) -> list | None:
	if not isinstance(value, (list, tuple)):
		return None
	return list(value)[:count]


#============================================
def _tuned_numbers(
	value,
	fallback: tuple[float, ...],
	name: str,
	warnings: list[str] | None,
	count: int | None = None,
) -> list[float] | None:
	"""
	Parse a caller-tuned number list.

	A value that is not a number keeps the calibrated value at the same
	position (0 past its end) and is reported as a warning.

	Returns:
		Parsed numbers, or None when no list was given.
	"""
	values = _tuned_values(value, count)
	if values is None:
		return None
	numbers = []
	for index, item in enumerate(values):
		number = drill_forms.offsets.to_float(item)
		if number is None:
			number = float(fallback[index]) if index < len(fallback) else 0.0
			drill_forms.render.note_warning(warnings, f"Ignored non-numeric layer_flow {name} value {item!r}")
		numbers.append(number)
	return numbers


#============================================
def plan_pages(record: dict, layout: dict, warnings: list[str] | None = None) -> LayerLogPages:
	"""
	Work out how many sheets a layer log needs and where rows land.

	Callers may tune the layer table through record["layer_flow"] with
	rows_per_page, base_y, row_height, x_offset and row_offsets; the row
	capacities are clamped to the printed rows.

	Args:
		record: Input record.
		layout: Layer log layout table.
		warnings: Optional channel for skipped tuning values.

	Returns:
		LayerLogPages.
	"""
	flows = layout.get("flows") or {}
	tuning = record.get("layer_flow") if isinstance(record.get("layer_flow"), dict) else {}
	base = PageFlowPlan.from_layout(
		flows["layers"],
		{
			"rows_per_page": _tuned_values(tuning.get("rows_per_page"), 2),
			"base_y": _tuned_values(tuning.get("base_y"), 2),
			"pitch": tuning.get("row_height"),
		},
	)
	first_rows = base.rows_per_page[0]
	continuation_rows = max(1, base.rows_per_page[1])

	registry_fields = {entry["key"]: entry for entry in layout.get("fields") or []}
	depth_size = float(registry_fields.get("proben_tiefe", {}).get("size", 6))
	sample_size = max(7.0, depth_size + 1)
	sample_line_height = max(8.0, float(round(sample_size * 1.2)))
	samples_per_row = max(1, math.floor(max(20.0, base.row_pitch - 10) / sample_line_height))
	spt_per_row = max(1, int(layout.get("spt_per_row", 2)))

	samples = sample_entries(record)
	spt = spt_entries(record, float(layout.get("spt_segment_m", 0.15)))[: int(layout.get("spt_max_entries", 10))]
	table_rows = max(
		len(layer_rows(record)),
		math.ceil(len(samples) / samples_per_row),
		math.ceil(len(spt) / spt_per_row),
	)
	continuation_pages = 0
	if table_rows > first_rows:
		continuation_pages = math.ceil((table_rows - first_rows) / continuation_rows)
	limit = int(layout.get("max_continuation_pages", 12))
	if continuation_pages > limit:
		logger.info("Layer log needs %d continuation sheets, capped at %d", continuation_pages, limit)
		continuation_pages = limit

	x_offset = _tuned_numbers(tuning.get("x_offset"), base.x_offset, "x_offset", warnings, 2) or list(base.x_offset)
	x_offset += [0.0] * (2 - len(x_offset))
	non_uniform = base.non_uniform_row_offsets
	tuned_rows = _tuned_numbers(tuning.get("row_offsets"), non_uniform, "row_offsets", warnings)
	if tuned_rows is not None:
		non_uniform = tuple(tuned_rows)
	layers = PageFlowPlan(
		rows_per_page=(first_rows,) + (continuation_rows,) * continuation_pages,
		base_y_offset=(base.base_y_offset[0],) + (base.base_y_offset[1],) * continuation_pages,
		row_pitch=base.row_pitch,
		non_uniform_row_offsets=non_uniform,
		non_uniform_pages=frozenset(range(1, continuation_pages + 1)),
		x_offset=(x_offset[0],) + (x_offset[1],) * continuation_pages,
	)

	groundwater_first = PageFlowPlan.from_layout(flows["groundwater_first_page"])
	supplement = PageFlowPlan.from_layout(flows["groundwater_supplement"])
	groundwater = drill_forms.pagination.record_rows(record, "groundwater", "grundwasser_rows", "grundwasserRows")
	remaining = max(0, len(groundwater) - groundwater_first.capacity)
	per_sheet = max(1, supplement.rows_per_page[0])
	groundwater_pages = math.ceil(remaining / per_sheet)
	supplement = dataclasses.replace(
		supplement,
		rows_per_page=(per_sheet,) * groundwater_pages,
		base_y_offset=(supplement.base_y_offset[0],) * groundwater_pages,
	)
	return LayerLogPages(
		layers=layers,
		groundwater_first=groundwater_first,
		groundwater_supplement=supplement,
		continuation_pages=continuation_pages,
		groundwater_pages=groundwater_pages,
		samples_per_row=samples_per_row,
		sample_line_height=sample_line_height,
		sample_font_size=sample_size,
	)


#============================================
def shared_small_size(entries: list[tuple[str, float]], preferred: float, min_size: float, max_lines: int = 2) -> float:
	"""
	Pick one font size for the short layer columns of a row.

	Args:
		entries: (text, max_width) pairs of the filled columns.
		preferred: Size used when every value fits on one line.
		min_size: Smallest size tried.
		max_lines: Line limit per value.

	Returns:
		Font size shared by the row.
	"""
	filled = [(text, width) for text, width in entries if text]
	if all(drill_forms.text_fit.measure(text, preferred) <= width for text, width in filled):
		return preferred
	size = preferred
	while size >= min_size:
		if all(len(drill_forms.text_fit.wrap(text, width, size)) <= max_lines for text, width in filled):
			return size
		size -= drill_forms.config.SHRINK_STEP
	return min_size


#============================================
def build_sections(record: dict, layout: dict, pages: LayerLogPages) -> list:
	"""
	Build the ordered section painters for one layer log.

	Args:
		record: Input record.
		layout: Layer log layout table.
		pages: Page plan from plan_pages().

	Returns:
		List of callables taking a RenderContext.
	"""
	marks = layout.get("marks") or {}
	hidden = set(layout.get("hidden_fields") or [])
	layers = layer_rows(record)
	samples = sample_entries(record)
	spt_limit = int(layout.get("spt_max_entries", 10))
	all_spt = spt_entries(record, float(layout.get("spt_segment_m", 0.15)))
	spt = all_spt[:spt_limit]
	spt_per_row = max(1, int(layout.get("spt_per_row", 2)))
	spt_table_rows = {index // spt_per_row for index in range(len(spt))}
	small_fit = layout.get("small_fit") or {}
	findings = layout.get("findings") or {}

	def anchor(context, key, slot=None, row_index=None):
		field = context.registry.get(key)
		x = field.x
		y = field.y
		if slot is not None:
			x += slot.x_offset
			y += slot.y_offset
		if slot is None or slot.page_index == 0:
			x += context.offsets.offset(key, "x", row_index)
			y += context.offsets.offset(key, "y", row_index)
		return (x, y)

	def draw_header(context):
		for key in layout.get("header_fields") or []:
			if key in hidden:
				continue
			drill_forms.render.draw_field(context, key, context.registry.value_for(record, key))

	def draw_two_line_fields(context):
		surface = context.pages[0]
		for key in layout.get("two_line_fields") or []:
			text = _text(context.registry.value_for(record, key))
			if not text:
				continue
			field = context.registry.get(key)
			x, y = anchor(context, key)
			max_width = field.max_width or 40.0
			if drill_forms.text_fit.measure(text, field.font_size) <= max_width:
				drill_forms.render.draw_text(surface, x, y, text, field.font_size)
				continue
			lines, size = drill_forms.text_fit.fit_lines(
				text, max_width, field.font_size, field.min_font_size or field.font_size
			)
			line_height = max(7.0, float(round(size * 1.15)))
			start = y + (5 if len(lines) > 1 else 2)
			for index, line in enumerate(lines):
				drill_forms.render.draw_text(surface, x, start - index * line_height, line, size)

	def draw_filters(context):
		surface = context.pages[0]
		for key in layout.get("filter_fields") or []:
			values = _as_list(context.registry.value_for(record, key))
			if len(values) <= 1:
				drill_forms.render.draw_field(context, key, values[0] if values else None)
				continue
			x, y = anchor(context, key)
			start = y + 7 - (2 if key.startswith("tondichtung") else 0)
			drill_forms.render.draw_stacked_list(
				surface, values, x, start, max_width=38.0, max_height=12.0,
				font_size=6.5, line_height=6.0, warnings=context.warnings,
			)

	def draw_counters(context):
		counts = sample_counts(samples, len(spt))
		for key, count in counts.items():
			drill_forms.render.draw_field(context, key, str(count) if count else None)
		if counts["count_bg"]:
			x, y = anchor(context, "count_bg")
			drill_forms.render.draw_static_text(context.pages[0], x + 15, y, "BG", context.registry.get("count_bg").font_size)
		core_box = marks.get("core_box") or {}
		choice = _text(record.get("core_boxes", record.get("kernkisten"))).lower()
		for name in ("liefern", "vorhalten"):
			if choice == name or drill_forms.marks.is_checked(record.get(f"kernkisten_{name}")):
				x, y = anchor(context, "count_gp")
				drill_forms.render.draw_circle_marker(
					context.pages[0],
					float(core_box[name]["x"]),
					y + float(core_box.get("lift", 3)),
					radius=float(core_box.get("radius", 5.2)),
				)
				break

	def draw_fittings(context):
		table = marks.get("highlights") or {}
		selected = [name for name in table if _filled(record.get(name))]
		for rect in drill_forms.marks.flags_to_highlights(selected, table):
			drill_forms.render.draw_highlight(context.pages[0], rect)
		for label in marks.get("static_labels") or []:
			drill_forms.render.draw_static_text(
				context.pages[0], float(label["x"]), float(label["y"]), label["text"], float(label.get("size", 9))
			)

	def draw_boreholes(context):
		block = marks.get("borehole_block") or {}
		max_rows = int(block.get("max_rows", 6))
		everything = drill_forms.pagination.record_rows(record, "boreholes", "bohrungen")
		rows = borehole_rows(record, block.get("labels") or {}, max_rows)
		if len(everything) > max_rows:
			context.warn(f"{len(everything) - max_rows} borehole method(s) did not fit the form and were dropped")
		surface = context.pages[0]
		label_size = float(block.get("label_size", 8.5))
		value_size = float(block.get("value_size", 9))
		for index, row in enumerate(rows):
			y = float(block.get("start_y", 756)) - index * float(block.get("step", 13))
			drill_forms.render.draw_static_text(surface, float(block["label_x"]), y, row["label"], label_size)
			if row["depth"]:
				drill_forms.render.draw_static_text(surface, float(block["unit_label_x"]), y, "bis", label_size)
				drill_forms.render.draw_text(surface, float(block["value_x"]), y, row["depth"], value_size)
			if row["cased_depth"]:
				drill_forms.render.draw_static_text(surface, float(block["cased_label_x"]), y, "Verrohrt bis", label_size)
				drill_forms.render.draw_text(surface, float(block["cased_value_x"]), y, row["cased_depth"], value_size)
			if row["diameter"]:
				drill_forms.render.draw_static_text(surface, float(block["diameter_label_x"]), y, "Ø", label_size)
				drill_forms.render.draw_text(surface, float(block["diameter_value_x"]), y, row["diameter"], value_size)

	def draw_layers(context):
		columns = layout.get("layer_columns") or {}
		small_columns = layout.get("small_columns") or {}
		preferred = float(small_fit.get("preferred_size", 10))
		min_size = float(small_fit.get("min_size", 6.5))
		max_lines = int(small_fit.get("max_lines", 2))
		findings_field = context.registry.get("feststellungen")
		samples_x = context.registry.get("proben_art").x

		def draw_row(surface, slot, row, index):
			first_page = slot.page_index == 0
			row_index = index if first_page else None
			common = {
				"row_index": row_index,
				"shift_x": slot.x_offset,
				"shift_y": slot.y_offset,
				"surface": surface,
				"apply_offsets": first_page,
			}
			depth = row.get("to", row.get("ansatzpunkt_bis", row.get("bis")))
			drill_forms.render.draw_field(context, "schicht_ansatzpunkt_bis", depth, **common)
			for row_key, field_key in columns.items():
				drill_forms.render.draw_field(context, field_key, row.get(row_key), **common)

			small = []
			for row_key, field_key in small_columns.items():
				field = context.registry.get(field_key)
				small.append((field_key, _text(row.get(row_key)), max(28.0, field.max_width or 28.0)))
			size = shared_small_size([(text, width) for _, text, width in small], preferred, min_size, max_lines)
			for field_key, text, width in small:
				if not text:
					continue
				x, y = anchor(context, field_key, slot, row_index)
				if drill_forms.text_fit.measure(text, size) <= width:
					drill_forms.render.draw_text(surface, x, y, text, size)
					continue
				lines, fitted = drill_forms.text_fit.fit_lines(text, width, size, size, max_lines)
				line_height = max(6.0, float(round(fitted * 1.1)))
				start = y + max(2.0, float(round(fitted * 0.45)))
				for line_index, line in enumerate(lines):
					drill_forms.render.draw_text(surface, x, start - line_index * line_height, line, fitted)

			text = _text(row.get("findings", row.get("feststellungen")))
			if text:
				x, y = anchor(context, "feststellungen", slot, row_index)
				max_height = max(
					float(findings.get("min_height", 40)),
					min(pages.layers.row_pitch - 8, float(findings.get("max_height", 160))),
				)
				if index in spt_table_rows:
					# leave room for the SPT lines under the first findings line
					max_height = 18.0
				drill_forms.render.draw_wrapped_block(
					surface,
					text,
					x,
					y - 4,
					max(float(findings.get("min_width", 40)), samples_x - findings_field.x - 6),
					max_height,
					max(7.0, findings_field.font_size - 2),
					min_line_height=float(findings.get("min_line_height", 9)),
					warnings=context.warnings,
				)

			if index == len(layers) - 1:
				x, y = anchor(context, "schicht_ansatzpunkt_bis", slot, row_index)
				size = context.registry.get("schicht_ansatzpunkt_bis").font_size + 3
				drill_forms.render.draw_text(surface, x, y - 40, END_DEPTH_LABEL, size)

		drill_forms.render.flow_rows(context, pages.layers, layers, draw_row, label="layer rows")

	def table_slot(context, table_row):
		slot = pages.layers.locate(table_row)
		if slot is None:
			return (None, None)
		return (slot, context.page(slot.page_index))

	def draw_samples(context):
		dropped = 0
		for index, sample in enumerate(samples):
			table_row, line = drill_forms.pagination.locate_sub_entry(index, pages.samples_per_row)
			slot, surface = table_slot(context, table_row)
			if surface is None:
				dropped += 1
				continue
			row_index = table_row if slot.page_index == 0 else None
			y_shift = -line * pages.sample_line_height
			x, y = anchor(context, "proben_art", slot, row_index)
			drill_forms.render.draw_text(surface, x, y + y_shift, sample.kind, pages.sample_font_size)
			x, y = anchor(context, "proben_nr", slot, row_index)
			drill_forms.render.draw_text(surface, x, y + y_shift, str(sample.number), pages.sample_font_size)
			x, y = anchor(context, "proben_tiefe", slot, row_index)
			scale = CONDENSED_SCALE if len(sample.depth) >= CONDENSED_DEPTH_CHARS else 100.0
			drill_forms.render.draw_text(
				surface, x, y + y_shift, sample.depth, pages.sample_font_size, horizontal_scale=scale
			)
		if dropped:
			context.warn(f"{dropped} sample(s) did not fit the form and were dropped")

	def draw_spt(context):
		if len(all_spt) > spt_limit:
			context.warn(f"{len(all_spt) - spt_limit} SPT run(s) beyond {spt_limit} were dropped")
		dropped = 0
		for index, entry in enumerate(spt):
			table_row, line = drill_forms.pagination.locate_sub_entry(index, spt_per_row)
			slot, surface = table_slot(context, table_row)
			if surface is None:
				dropped += 1
				continue
			row_index = table_row if slot.page_index == 0 else None
			x, y = anchor(context, "feststellungen", slot, row_index)
			top = y - 24 - line * 20
			drill_forms.render.draw_text(surface, x, top, entry.heading, 7)
			drill_forms.render.draw_text(surface, x, top - 8, entry.blow_text, 7)
		if dropped:
			context.warn(f"{dropped} SPT run(s) did not fit the form and were dropped")

	def draw_groundwater(context):
		rows = drill_forms.pagination.record_rows(record, "groundwater", "grundwasser_rows", "grundwasserRows")
		columns = layout.get("groundwater_columns") or {}
		first = rows[: pages.groundwater_first.capacity]
		rest = rows[pages.groundwater_first.capacity:]

		def draw_first(surface, slot, row, index):
			for row_key, field_key in columns.items():
				drill_forms.render.draw_field(
					context, field_key, row.get(row_key), shift_y=slot.y_offset, surface=surface
				)

		def draw_supplement(surface, slot, row, index):
			for row_key, field_key in columns.items():
				drill_forms.render.draw_field(
					context, f"gw_{field_key}", row.get(row_key),
					shift_y=slot.y_offset, surface=surface, apply_offsets=False,
				)

		drill_forms.render.flow_rows(context, pages.groundwater_first, first, draw_first, label="groundwater rows")
		page_map = [pages.groundwater_start + index for index in range(pages.groundwater_pages)]
		drill_forms.render.flow_rows(
			context, pages.groundwater_supplement, rest, draw_supplement,
			page_map=page_map, label="groundwater supplement rows",
		)
		for surface in context.pages_for(GROUNDWATER_TEMPLATE):
			for base_key, field_key in (layout.get("groundwater_header") or {}).items():
				drill_forms.render.draw_field(
					context, field_key, context.registry.value_for(record, base_key),
					surface=surface, apply_offsets=False,
				)

	def draw_page_numbers(context):
		number_mark = marks.get("page_number") or {}
		for surface in context.pages[1:]:
			number = surface.page_index + 1
			drill_forms.render.draw_static_text(
				surface, float(number_mark.get("x", 488)), float(number_mark.get("y", 790)), str(number), float(number_mark.get("size", 10))
			)
			drill_forms.render.draw_page_number(
				surface, number, mask_y=float(number_mark.get("mask_y", 28)), font_size=float(number_mark.get("size", 10))
			)

	return [
		draw_header,
		draw_boreholes,
		draw_two_line_fields,
		draw_filters,
		draw_fittings,
		draw_counters,
		draw_layers,
		draw_samples,
		draw_spt,
		draw_groundwater,
		draw_page_numbers,
	]


#============================================
def render_layer_log(
	record: dict,
	store: TemplateStore | None = None,
	layout: dict | None = None,
	warnings: list[str] | None = None,
	title: str | None = None,
	debug_grid_step: float | None = None,
	debug_grid_page: int | None = None,
	markers: list[dict] | None = None,
) -> drill_forms.render.RenderResult:
	"""
	Render a layer log.

	Args:
		record: Input record.
		store: Template store; defaults to the configured template directory.
		layout: Layout table; defaults to the packaged layer_log table.
		warnings: Optional overflow channel.
		title: Optional PDF title.
		debug_grid_step: Draw a calibration grid when set.
		debug_grid_page: Limit the grid to one 1-based page.
		markers: Optional calibration markers.

	Returns:
		RenderResult.
	"""
	if layout is None:
		layout = drill_forms.config.load_layout(LAYOUT_NAME)
	if store is None:
		store = TemplateStore()
	registry = FieldRegistry.from_layout(layout)
	offsets = OffsetConfig.from_record(record, OffsetConfig.from_layout(layout, registry), registry)
	pages = plan_pages(record, layout, warnings)
	page_templates = pages.page_templates
	document = store.load_document(layout, required=page_templates)
	registry.validate_pages(document.page_count)
	logger.info(
		"Layer log: %d continuation sheet(s), %d groundwater sheet(s)",
		pages.continuation_pages,
		pages.groundwater_pages,
	)
	return drill_forms.render.render_document(
		document,
		build_sections(record, layout, pages),
		registry,
		offsets=offsets,
		page_templates=page_templates,
		warnings=warnings,
		title=title,
		debug_grid_step=debug_grid_step,
		debug_grid_page=debug_grid_page,
		markers=markers,
	)


#============================================
def build_layer_log_pdf(record: dict, **kwargs) -> bytes:
	return render_layer_log(record, **kwargs).pdf_bytes
