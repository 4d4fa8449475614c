"""
Daily drilling report: one rotated template page filled from a record.
"""

# Standard Library
import logging

# local repo modules
import drill_forms.config
import drill_forms.marks
import drill_forms.offsets
import drill_forms.pagination
import drill_forms.registry
import drill_forms.render


Rect = drill_forms.config.Rect
FieldRegistry = drill_forms.registry.FieldRegistry
OffsetConfig = drill_forms.offsets.OffsetConfig
PageFlowPlan = drill_forms.pagination.PageFlowPlan
TemplateStore = drill_forms.render.TemplateStore

LAYOUT_NAME = "daily_report"

HEADER_FIELDS = (
	"date",
	"project",
	"client",
	"vehicles",
	"a_nr",
	"device",
	"resting_water_m",
	"caravan_distance_km",
	"caravan_distance_time",
)

# record spellings of the sample flags mapped to the printed column names
SAMPLE_FLAG_NAMES = {
	"gp": "GP",
	"kp": "KP",
	"sp": "SP",
	"wp": "WP",
	"bkb": "BKB",
	"kklv": "KK-LV",
}

logger = logging.getLogger(__name__)


#============================================
def sample_flags(row: dict) -> list[str]:
	"""
	Collect the sample flags of a drilling row.

	Rows either carry a ready list ("sample_flags") or a mapping of
	checkbox values ("samples").

	Args:
		row: Drilling table row.

	Returns:
		Printed flag names.
	"""
	explicit = row.get("sample_flags", row.get("probenFlags"))
	if explicit is not None:
		return drill_forms.marks.split_flags(explicit)
	samples = row.get("samples", row.get("proben"))
	if not isinstance(samples, dict):
		return []
	flags: list[str] = []
	for key, checked in samples.items():
		name = SAMPLE_FLAG_NAMES.get(str(key).replace("-", "").replace("_", "").lower())
		if name and drill_forms.marks.is_checked(checked) and name not in flags:
			flags.append(name)
	return flags


#============================================
def drilled_metres(row: dict) -> str:
	"""
	Metres drilled in a row, taken from the row or derived from its depths.
	"""
	explicit = row.get("metres")
	if explicit is not None and str(explicit).strip():
		return str(explicit).strip()
	delta = drill_forms.marks.numeric_delta(row.get("drilled_from"), row.get("drilled_to"))
	if delta is None:
		return ""
	return drill_forms.marks.format_decimal(delta, places=2)


#============================================
def _row_marks(surface, slot, positions, size) -> None:
	for x, dy in positions:
		drill_forms.render.draw_checkmark(surface, x + slot.x_offset, slot.y_offset + dy, size)


#============================================
def record_signatures(record: dict) -> dict:
	signatures = record.get("signatures")
	return signatures if isinstance(signatures, dict) else {}


#============================================
def row_section(name: str, record: dict, plan: PageFlowPlan, columns: dict, *record_keys: str):
	"""
	Section painter that flows plain record rows into column fields.

	Args:
		name: Section name, used in overflow notices.
		record: Input record.
		plan: Flow plan for the rows.
		columns: Mapping of row key to field key.
		record_keys: Record keys tried in order for the row list.

	Returns:
		Callable taking a RenderContext.
	"""
	def draw_section(context):
		rows = drill_forms.pagination.record_rows(record, *record_keys)

		def draw_row(surface, slot, row, index):
			drill_forms.render.draw_row_fields(context, surface, slot, row, columns, row_index=index)

		drill_forms.render.flow_rows(context, plan, rows, draw_row, label=f"{name} rows")
	draw_section.__name__ = f"draw_{name}"
	return draw_section


#============================================
def weekday_section(record: dict, table: dict):
	def draw_weekday(context):
		position = drill_forms.marks.weekday_mark(record.get("date"), table)
		if position is None:
			if record.get("date"):
				logger.info("No weekday mark for date %r", record.get("date"))
			return
		drill_forms.render.draw_checkmark(context.pages[0], position[0], position[1])
	return draw_weekday


#============================================
def signature_section(record: dict, boxes: dict):
	"""
	Section painter placing the driller and client signature images.
	"""
	signatures = record_signatures(record)

	def draw_signatures(context):
		sources = {
			"driller": signatures.get("driller_signature", signatures.get("drillerSigPng")),
			"client": signatures.get("client_signature", signatures.get("clientOrManagerSigPng")),
		}
		for name, data_url in sources.items():
			box = boxes.get(name)
			if not box or not data_url:
				continue
			rect = Rect(float(box["x"]), float(box["y"]), float(box["w"]), float(box["h"]))
			drill_forms.render.draw_signature(context.pages[0], data_url, rect, context.warnings)
	return draw_signatures


#============================================
def build_sections(record: dict, layout: dict) -> list:
	"""
	Build the ordered section painters for one daily report.

	Args:
		record: Input record.
		layout: Daily report layout table.

	Returns:
		List of callables taking a RenderContext.
	"""
	flows = layout.get("flows") or {}
	columns = layout.get("columns") or {}
	marks = layout.get("marks") or {}
	weather = record.get("weather") if isinstance(record.get("weather"), dict) else {}
	signatures = record_signatures(record)
	plans = {name: PageFlowPlan.from_layout(entry) for name, entry in flows.items()}
	row_check_size = float(marks.get("row_check_size", 8))

	def draw_header(context):
		for key in HEADER_FIELDS:
			drill_forms.render.draw_field(context, key, context.registry.value_for(record, key))
		for key in ("temp_max", "temp_min"):
			value = context.registry.value_for(record, key)
			if value is None:
				value = context.registry.value_for(weather, key)
			drill_forms.render.draw_field(context, key, value)

	def draw_weather(context):
		conditions = weather.get("conditions", record.get("weather_conditions"))
		positions = drill_forms.marks.flags_to_checkmarks(conditions, marks.get("weather") or {})
		for x, y in positions:
			drill_forms.render.draw_checkmark(context.pages[0], x, y)

	def simple_rows(name, *record_keys):
		return row_section(name, record, plans[name], columns[name], *record_keys)

	def draw_workers(context):
		rows = drill_forms.pagination.record_rows(record, "workers")
		boxes = marks.get("hour_boxes") or {}
		box_x = float(boxes.get("x", 290))
		box_step = float(boxes.get("step", 18))
		box_count = int(boxes.get("count", 15))
		box_size = float(boxes.get("size", 7))
		allowance_size = float(marks.get("allowance_check_size", 10))

		def draw_row(surface, slot, row, index):
			drill_forms.render.draw_row_fields(context, surface, slot, row, columns["workers"], row_index=index)
			selected = [name for name in ("day", "night") if drill_forms.marks.is_checked(row.get(f"allowance_{name}"))]
			positions = drill_forms.marks.flags_to_checkmarks(selected, marks.get("allowance") or {})
			_row_marks(surface, slot, positions, allowance_size)
			hours = row.get("hours") if isinstance(row.get("hours"), list) else []
			for box_index, value in enumerate(hours[:box_count]):
				drill_forms.render.draw_text(
					surface,
					box_x + box_index * box_step + slot.x_offset,
					slot.y_offset,
					value,
					box_size,
				)
			if len(hours) > box_count:
				context.warn(f"Worker row {index + 1}: {len(hours) - box_count} hour value(s) dropped")

		drill_forms.render.flow_rows(context, plans["workers"], rows, draw_row, label="worker rows")

	def draw_drilling(context):
		rows = drill_forms.pagination.record_rows(record, "drilling_rows", "tableRows")

		def draw_row(surface, slot, row, index):
			backfill = row.get("backfill")
			if isinstance(backfill, dict):
				row = {**row, **backfill}
			row = {**row, "metres": drilled_metres(row)}
			drill_forms.render.draw_row_fields(context, surface, slot, row, columns["drilling"], row_index=index)
			drill_forms.render.draw_field(
				context, "table_metres", row["metres"], row_index=index,
				anchor_y=slot.y_offset, shift_x=slot.x_offset, surface=surface,
			)
			casing = drill_forms.marks.flags_to_checkmarks(
				row.get("casing_flags", row.get("verrohrtFlags")), marks.get("casing_flags") or {}
			)
			_row_marks(surface, slot, casing, row_check_size)
			samples = drill_forms.marks.flags_to_checkmarks(sample_flags(row), marks.get("sample_flags") or {})
			_row_marks(surface, slot, samples, row_check_size)

		drill_forms.render.flow_rows(context, plans["drilling"], rows, draw_row, label="drilling rows")

	def draw_well_construction(context):
		rows = drill_forms.pagination.record_rows(record, "well_construction_rows", "pegelAusbauRows")
		fittings = marks.get("well_fittings") or {}
		size = float(marks.get("fitting_check_size", 10))

		def draw_row(surface, slot, row, index):
			drill_forms.render.draw_row_fields(
				context, surface, slot, row, columns["well_construction"], row_index=index
			)
			selected = [name for name in fittings if drill_forms.marks.is_checked(row.get(name))]
			_row_marks(surface, slot, drill_forms.marks.flags_to_checkmarks(selected, fittings), size)

		drill_forms.render.flow_rows(
			context, plans["well_construction"], rows, draw_row, label="well construction rows"
		)

	def draw_bottom(context):
		for key in ("other_work", "remarks"):
			drill_forms.render.draw_field(context, key, context.registry.value_for(record, key))
		for key in ("client_signer", "driller_signer"):
			drill_forms.render.draw_field(context, key, context.registry.value_for(signatures, key))

	return [
		draw_header,
		weekday_section(record, marks.get("weekday") or {}),
		draw_weather,
		simple_rows("work_times", "work_times", "workTimeRows"),
		simple_rows("breaks", "breaks", "breakRows"),
		simple_rows("transport", "transport_rows", "transportRows"),
		draw_workers,
		draw_drilling,
		simple_rows("relocation", "relocation_rows", "umsetzenRows"),
		draw_well_construction,
		draw_bottom,
		signature_section(record, marks.get("signatures") or {}),
	]


#============================================
def render_daily_report(
	record: dict,
	store: TemplateStore | None = None,
	layout: dict | None = None,
	warnings: list[str] | None = None,
	title: str | None = None,
	debug_grid_step: float | None = None,
	markers: list[dict] | None = None,
	builder=None,
) -> drill_forms.render.RenderResult:
	"""
	Render a daily report.

	Args:
		record: Input record.
		store: Template store; defaults to the configured template directory.
		layout: Layout table; defaults to the packaged daily_report table.
		warnings: Optional overflow channel.
		title: Optional PDF title.
		debug_grid_step: Draw a calibration grid when set.
		markers: Optional calibration markers.
		builder: Section builder taking (record, layout); build_sections when None.

	Returns:
		RenderResult.
	"""
	if layout is None:
		layout = drill_forms.config.load_layout(LAYOUT_NAME)
	if store is None:
		store = TemplateStore()
	registry = FieldRegistry.from_layout(layout)
	offsets = OffsetConfig.from_record(record, OffsetConfig.from_layout(layout, registry), registry)
	document = store.load_document(layout)
	registry.validate_pages(document.page_count)
	return drill_forms.render.render_document(
		document,
		(builder or build_sections)(record, layout),
		registry,
		offsets=offsets,
		page_templates=[0],
		warnings=warnings,
		title=title,
		debug_grid_step=debug_grid_step,
		markers=markers,
	)


#============================================
def build_daily_report_pdf(record: dict, **kwargs) -> bytes:
	return render_daily_report(record, **kwargs).pdf_bytes
