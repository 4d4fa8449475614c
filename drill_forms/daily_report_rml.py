"""
Rhein-Main-Link daily report: the project's own portrait Tagesbericht.

Shares the row, weekday and signature sections of the standard daily
report; the rest of the sheet is laid out differently.
"""

# Standard Library
import logging

# local repo modules
import drill_forms.config
import drill_forms.daily_report
import drill_forms.marks
import drill_forms.pagination
import drill_forms.render
import drill_forms.text_fit


PageFlowPlan = drill_forms.pagination.PageFlowPlan
TemplateStore = drill_forms.render.TemplateStore

LAYOUT_NAME = "daily_report_rml"

HEADER_FIELDS = ("date", "device", "postal_code", "place", "report_nr")
FOOTER_FIELDS = ("visitors", "she_incidents")
CORE_METHOD = "Rammkernbohrung"
SHAFT_LABEL = "Schappe"
SPT_PARTS = ("a", "b", "c")

logger = logging.getLogger(__name__)


#============================================
def first_value(sources, *keys):
	"""
	First non-blank value found under any key in any of the mappings.
	"""
	for source in sources:
		for key in keys:
			value = source.get(key)
			if value is not None and str(value).strip():
				return value
	return None


#============================================
def method_label(row: dict, labels: dict, default: str) -> str:
	"""
	Short drilling method label for the narrow method column.

	Unknown methods fall back to the row's casing flags, then to the
	default label.
	"""
	method = str(row.get("method", row.get("bohrverfahren")) or "").strip()
	if method in labels:
		return str(labels[method])
	flags = drill_forms.marks.split_flags(row.get("casing_flags", row.get("verrohrtFlags")))
	if flags:
		return ", ".join(flags)
	return default


#============================================
def installation_label(row: dict) -> str:
	"""
	Pipe text of a well installation row; filter pipes carry their slot width.
	"""
	pipe = str(row.get("pipe", row.get("ausbauRohr")) or "").strip()
	kind = str(row.get("kind", row.get("ausbauArt")) or "").strip()
	slot_width = row.get("slot_width", row.get("schlitzweite"))
	label = pipe or kind
	if kind.lower().startswith("filter") and slot_width is not None and str(slot_width).strip():
		return f"{label} SW: {str(slot_width).strip()} mm"
	return label


#============================================
def split_spt(value) -> dict:
	"""
	Split an "a/b/c" blow count into its three columns.
	"""
	parts = [part.strip() for part in str(value or "").split("/")]
	return {name: (parts[index] if index < len(parts) else "") for index, name in enumerate(SPT_PARTS)}


#============================================
def casing_rows(record: dict, drilling: list[dict]) -> list[dict]:
	"""
	Casing rows from the record, or derived from the drilling table.
	"""
	rows = drill_forms.pagination.record_rows(record, "casing_rows", "verrohrungRows")
	if rows:
		return rows
	derived = []
	for row in drilling:
		metres = first_value([row], "cased_to", "verrohrtBis", "cased_from", "verrohrtVon")
		if metres is not None:
			derived.append({"diameter": row.get("casing_diameter"), "metres": metres})
	if derived:
		logger.info("No casing rows, took %d from the drilling table", len(derived))
	return derived


#============================================
def water_level_rows(record: dict) -> list[dict]:
	rows = drill_forms.pagination.record_rows(record, "water_level_rows", "wasserspiegelRows")
	if rows:
		return rows
	resting = first_value([record], "resting_water_m", "ruhewasserVorArbeitsbeginnM")
	return [{"metres": resting}] if resting is not None else []


#============================================
def spt_rows(record: dict, drilling: list[dict]) -> list[dict]:
	rows = drill_forms.pagination.record_rows(record, "spt_rows", "sptRows")
	if not rows:
		rows = [row for row in drilling if first_value([row], "spt")]
	return [
		{
			"from": first_value([row], "from", "spt_from", "drilled_from"),
			"to": first_value([row], "to", "spt_to", "drilled_to"),
			**split_spt(row.get("spt")),
		}
		for row in rows
	]


#============================================
def build_sections(record: dict, layout: dict) -> list:
	"""
	Build the ordered section painters for one Rhein-Main-Link report.

	Args:
		record: Input record.
		layout: daily_report_rml layout table.

	Returns:
		List of callables taking a RenderContext.
	"""
	flows = layout.get("flows") or {}
	columns = layout.get("columns") or {}
	marks = layout.get("marks") or {}
	blocks = layout.get("blocks") or {}
	weather = record.get("weather") if isinstance(record.get("weather"), dict) else {}
	plans = {name: PageFlowPlan.from_layout(entry) for name, entry in flows.items()}
	drilling = drill_forms.pagination.record_rows(record, "drilling_rows", "tableRows")
	workers = drill_forms.pagination.record_rows(record, "workers")
	check_size = float(marks.get("check_size", drill_forms.config.CHECK_MARK_SIZE))

	def draw_header(context):
		for key in HEADER_FIELDS:
			drill_forms.render.draw_field(context, key, context.registry.value_for(record, key))
		bohrung_nr = context.registry.value_for(record, "bohrung_nr")
		if bohrung_nr is None and drilling:
			bohrung_nr = first_value(drilling[:1], "bo_nr", "boNr")
		drill_forms.render.draw_field(context, "bohrung_nr", bohrung_nr)

	def draw_direction(context):
		direction = first_value([record], "drilling_direction", "bohrrichtung")
		for rect in drill_forms.marks.flags_to_highlights(direction, marks.get("direction") or {}):
			drill_forms.render.draw_highlight(context.pages[0], rect)

	def flow_columns(context, name, rows):
		def draw_row(surface, slot, row, index):
			drill_forms.render.draw_row_fields(context, surface, slot, row, columns[name], row_index=index)

		label = name.replace("_", " ") + " rows"
		return drill_forms.render.flow_rows(context, plans[name], rows, draw_row, label=label)

	def record_section(name, *record_keys):
		return drill_forms.daily_report.row_section(name, record, plans[name], columns[name], *record_keys)

	def draw_casing(context):
		rows = casing_rows(record, drilling)
		flow_columns(context, "casing", rows)
		if not rows:
			value = context.registry.value_for(record, "casing_from_gok")
			drill_forms.render.draw_field(context, "casing_from_gok", value)

	def draw_water_levels(context):
		flow_columns(context, "water_levels", water_level_rows(record))

	def draw_temperature(context):
		entry = marks.get("temperature") or {}
		low = first_value([record, weather], "temp_min", "tempMinC")
		high = first_value([record, weather], "temp_max", "tempMaxC")
		if low is None and high is None:
			return
		surface = context.pages[0]
		size = float(entry.get("size", 7))
		x = float(entry.get("x", 0))
		y = float(entry.get("y", 0))
		# values in blue, printed units in black
		parts = ((low, False), (" °C min", True), (" / ", True), (high, False), (" °C max", True))
		for text, static in parts:
			if text is None:
				continue
			text = str(text)
			if static:
				drill_forms.render.draw_static_text(surface, x, y, text, size)
			else:
				drill_forms.render.draw_text(surface, x, y, text, size)
			x += drill_forms.text_fit.measure(text, size)

	def draw_weather(context):
		conditions = first_value([weather, record], "conditions", "weather_conditions")
		text = "/".join(drill_forms.marks.split_flags(conditions))
		drill_forms.render.draw_field(context, "weather_text", text)

	def draw_crew(context):
		if workers:
			drill_forms.render.draw_field(context, "driller_name", first_value(workers[:1], "name"))
		flow_columns(context, "helpers", workers[1:])

	def draw_equipment(context):
		selected = drill_forms.marks.split_flags(first_value([record], "vehicles", "fahrzeuge"))
		selected += drill_forms.marks.split_flags(first_value([record], "devices", "geraete"))
		positions = drill_forms.marks.flags_to_checkmarks(selected, marks.get("equipment") or {})
		# Radlader and Dumper share one box
		for x, y in dict.fromkeys(positions):
			drill_forms.render.draw_checkmark(context.pages[0], x, y, check_size)

	def draw_drilling(context):
		labels = marks.get("method_labels") or {}
		default = str(marks.get("default_method", ""))
		shaft = marks.get("shaft_lines") or {}
		method_field = context.registry.get("table_method")
		crown_field = context.registry.get("table_crown")

		def draw_row(surface, slot, row, index):
			label = method_label(row, labels, default)
			method = str(row.get("method", row.get("bohrverfahren")) or "").strip()
			shaft_diameter = first_value([row], "shaft_diameter", "schappeDurchmesser")
			if method != CORE_METHOD or shaft_diameter is None:
				drill_forms.render.draw_row_fields(context, surface, slot, row, columns["drilling"], row_index=index)
				drill_forms.render.draw_field(
					context, "table_method", label, row_index=index,
					anchor_y=slot.y_offset, shift_x=slot.x_offset, surface=surface,
				)
				return
			# the crown cell holds the bore number and shaft diameter instead
			depth_columns = {key: value for key, value in columns["drilling"].items() if value != crown_field.key}
			drill_forms.render.draw_row_fields(context, surface, slot, row, depth_columns, row_index=index)
			top = slot.y_offset + float(shaft.get("top", 6))
			pitch = float(shaft.get("pitch", 8))
			size = float(shaft.get("size", 6.5))
			stacks = (
				(method_field, [label, SHAFT_LABEL]),
				(crown_field, [first_value([row], "bo_nr", "boNr"), shaft_diameter]),
			)
			for field, values in stacks:
				drill_forms.render.draw_stacked_list(
					surface, values, field.x + slot.x_offset, top,
					field.max_width or float(shaft.get("width", 45)), 2 * pitch,
					font_size=size, line_height=pitch, warnings=context.warnings,
				)

		drill_forms.render.flow_rows(context, plans["drilling"], drilling, draw_row, label="drilling rows")

	def block_section(name, *record_keys):
		def draw_block(context):
			entry = blocks.get(name) or {}
			text = first_value([record], *record_keys)
			if text is None or not entry:
				return
			drill_forms.render.fit_and_draw(
				context.pages[0],
				text,
				float(entry["x"]),
				float(entry["y"]),
				float(entry["w"]),
				float(entry["h"]),
				float(entry.get("size", drill_forms.config.DEFAULT_FONT_SIZE)),
				min_line_height=float(entry.get("line_height", drill_forms.config.MIN_BLOCK_LINE_HEIGHT)),
				warnings=context.warnings,
			)
		draw_block.__name__ = f"draw_{name}"
		return draw_block

	def draw_installation(context):
		rows = drill_forms.pagination.record_rows(record, "installation_rows", "ausbauRows")
		rows = [{**row, "pipe": installation_label(row)} for row in rows]
		diameter = context.registry.value_for(record, "well_diameter")
		if diameter is None:
			diameter = first_value(rows[:1], "diameter")
		drill_forms.render.draw_field(context, "well_diameter", diameter)
		flow_columns(context, "installation", rows)

	def draw_spt(context):
		flow_columns(context, "spt", spt_rows(record, drilling))

	def draw_footer(context):
		for key in FOOTER_FIELDS:
			drill_forms.render.draw_field(context, key, context.registry.value_for(record, key))
		selected = drill_forms.marks.split_flags(first_value([record], "bg_checks", "bgChecks"))
		positions = drill_forms.marks.flags_to_checkmarks(selected, marks.get("bg_checks") or {})
		# Bolzen and Lager share one box
		for x, y in dict.fromkeys(positions):
			drill_forms.render.draw_checkmark(context.pages[0], x, y, check_size)

	return [
		draw_header,
		drill_forms.daily_report.weekday_section(record, marks.get("weekday") or {}),
		record_section("work_times", "work_times", "workTimeRows"),
		record_section("breaks", "breaks", "breakRows"),
		draw_direction,
		draw_casing,
		draw_water_levels,
		draw_temperature,
		draw_weather,
		draw_crew,
		draw_equipment,
		draw_drilling,
		block_section("other_work", "other_work", "otherWork"),
		draw_installation,
		record_section("backfill", "backfill_rows", "verfuellungRows"),
		draw_spt,
		draw_footer,
		block_section("tool_box_talks", "tool_box_talks", "toolBoxTalks"),
		drill_forms.daily_report.signature_section(record, marks.get("signatures") or {}),
	]


#============================================
def render_daily_report_rml(
	record: dict,
	store: TemplateStore | None = None,
	layout: dict | None = None,
	**kwargs,
) -> drill_forms.render.RenderResult:
	"""
	Render a Rhein-Main-Link daily report.

	Takes the same options as render_daily_report. The template is the
	first of the layout's candidate file names found in the store.
	"""
	if layout is None:
		layout = drill_forms.config.load_layout(LAYOUT_NAME)
	return drill_forms.daily_report.render_daily_report(
		record, store=store, layout=layout, builder=build_sections, **kwargs
	)


#============================================
def build_daily_report_rml_pdf(record: dict, **kwargs) -> bytes:
	return render_daily_report_rml(record, **kwargs).pdf_bytes
