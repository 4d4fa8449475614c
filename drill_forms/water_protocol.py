"""
Flushing and pump test protocols.

Both forms share one layout: a header block, the groundwater readings,
two blank rows, a recovery marker row and the recovery readings. The
spreadsheet gets one cloned sheet per measurement run, the PDF one page.
"""

# Standard Library
import dataclasses
import logging

# PIP3 modules
import openpyxl
import openpyxl.cell.cell

# local repo modules
import drill_forms.config
import drill_forms.pagination
import drill_forms.registry
import drill_forms.render
import drill_forms.sheets
import drill_forms.text_fit


Rect = drill_forms.config.Rect
LayoutConfigError = drill_forms.config.LayoutConfigError
FieldRegistry = drill_forms.registry.FieldRegistry
PageFlowPlan = drill_forms.pagination.PageFlowPlan
TemplateStore = drill_forms.render.TemplateStore

LAYOUT_NAME = "water_protocol"
FORMS = ("pump_test", "flushing")
DEFAULT_RUN_NAME = "Messung"

# record spellings of the measurement row columns
ROW_KEYS = {
	"uhrzeit": ("uhrzeit", "time", "dauer"),
	"abstichmass_ab_gok": ("abstichmass_ab_gok", "abstichmassAbGok", "depth"),
	"flow": ("i_per_sec", "iPerSec", "flow"),
	"bemerkungen": ("bemerkungen", "remarks"),
}

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class ProtocolLine:
	"""
	One printed table line of a protocol page.

	Attributes:
		kind: "row", "blank" or "marker".
		row: Normalized measurement row for kind "row".
		write_flow: Whether this row prints the flow rate of its block.
	"""
	kind: str
	row: dict | None = None
	write_flow: bool = False


#============================================
def _text(value) -> str:
	if value is None:
		return ""
	return str(value).strip()


#============================================
def normalize_row(row: dict) -> dict:
	"""
	Map a measurement row onto uhrzeit, abstichmass_ab_gok, flow and bemerkungen.
	"""
	normalized = {}
	for name, keys in ROW_KEYS.items():
		value = ""
		for key in keys:
			value = _text(row.get(key))
			if value:
				break
		normalized[name] = value
	return normalized


#============================================
def _block_rows(source: dict, *keys: str) -> list[dict] | None:
	for key in keys:
		if isinstance(source.get(key), list):
			return [normalize_row(row) for row in source[key] if isinstance(row, dict)]
	return None


#============================================
def resolve_runs(record: dict) -> list[dict]:
	"""
	Expand a record into its measurement runs.

	Each entry of record["runs"] (or "messungen") overrides the shared
	header values of the record. A record without runs is one run.

	Args:
		record: Input record.

	Returns:
		List of run dicts with normalized "groundwater" and "recovery" rows.
	"""
	base = {key: value for key, value in record.items() if key not in ("runs", "messungen")}
	base_groundwater = _block_rows(record, "groundwater", "grundwasserRows", "grundwasser_rows") or []
	base_recovery = _block_rows(record, "recovery", "wiederanstiegRows", "wiederanstieg_rows") or []
	runs = record.get("runs", record.get("messungen"))
	if not isinstance(runs, list) or not runs:
		return [{**base, "groundwater": base_groundwater, "recovery": base_recovery}]
	resolved = []
	for run in runs:
		if not isinstance(run, dict):
			continue
		groundwater = _block_rows(run, "groundwater", "grundwasserRows", "grundwasser_rows")
		recovery = _block_rows(run, "recovery", "wiederanstiegRows", "wiederanstieg_rows")
		resolved.append({
			**base,
			**run,
			"groundwater": base_groundwater if groundwater is None else groundwater,
			"recovery": base_recovery if recovery is None else recovery,
		})
	return resolved or [{**base, "groundwater": base_groundwater, "recovery": base_recovery}]


#============================================
def flow_unit_label(unit, units: dict) -> str:
	key = _text(unit).lower()
	if key and key in units and key != "default":
		return str(units[key])
	return str(units.get("default", "l/s"))


#============================================
def form_settings(layout: dict, form: str) -> dict:
	forms = layout.get("forms") or {}
	if form not in forms:
		raise LayoutConfigError(f"Unknown protocol form '{form}', expected one of {sorted(forms)}")
	return forms[form]


#============================================
def protocol_lines(run: dict, marker: str) -> list[ProtocolLine]:
	"""
	Lay out the table lines of one run: readings, a spacer, the marker, recovery.

	Only the first filled flow rate of each block is printed.
	"""
	lines: list[ProtocolLine] = []
	for block_index, block in enumerate((run.get("groundwater") or [], run.get("recovery") or [])):
		if block_index == 1:
			lines.append(ProtocolLine(kind="blank"))
			lines.append(ProtocolLine(kind="marker", row={"text": marker}))
		wrote_flow = False
		for row in block:
			write_flow = not wrote_flow and bool(row["flow"])
			wrote_flow = wrote_flow or write_flow
			lines.append(ProtocolLine(kind="row", row=row, write_flow=write_flow))
	return lines


#============================================
def write_measurement_rows(
	sheet,
	rows: list[dict],
	start_row: int,
	settings: dict,
) -> int:
	"""
	Write one block of readings into a protocol sheet.

	Args:
		sheet: Target worksheet.
		rows: Normalized measurement rows.
		start_row: First sheet row of the block.
		settings: The "workbook" section of the layout.

	Returns:
		Row number after the block.
	"""
	columns = settings["columns"]
	height = settings.get("remarks_height") or {}
	style_row = int(settings["table_start_row"])
	formatted_until = int(settings.get("formatted_until_row", style_row))
	wrote_flow = False
	for index, row in enumerate(rows):
		row_no = start_row + index
		if row_no > formatted_until:
			drill_forms.sheets.ensure_row_style(sheet, style_row, row_no, columns.values())
		drill_forms.sheets.set_if_present(sheet, f"{columns['time']}{row_no}", row["uhrzeit"])
		drill_forms.sheets.set_if_present(sheet, f"{columns['depth']}{row_no}", row["abstichmass_ab_gok"])
		if not wrote_flow and row["flow"]:
			sheet[f"{columns['flow']}{row_no}"].value = row["flow"]
			wrote_flow = True
		drill_forms.sheets.set_if_present(sheet, f"{columns['remarks']}{row_no}", row["bemerkungen"])
		drill_forms.sheets.apply_wrapped_row_height(sheet, row_no, columns["remarks"], row["bemerkungen"], **height)
	return start_row + len(rows)


#============================================
def fill_protocol_sheet(sheet, run: dict, form: str, layout: dict, registry: FieldRegistry) -> int:
	"""
	Fill one cloned protocol sheet with a measurement run.

	Args:
		sheet: Cloned worksheet.
		run: Run dict from resolve_runs().
		form: "pump_test" or "flushing".
		layout: Protocol layout table.
		registry: Registry used for alias lookups.

	Returns:
		Sheet row of the recovery marker.
	"""
	settings = layout["workbook"]
	form_config = form_settings(layout, form)
	if form_config.get("write_title_cell"):
		sheet[settings["title_cell"]].value = form_config["title"]
	for key, cell_ref in (settings.get("header_cells") or {}).items():
		drill_forms.sheets.set_if_present(sheet, cell_ref, registry.value_for(run, key))
	sheet[settings["unit_cell"]].value = flow_unit_label(
		run.get("flow_rate_unit", run.get("flowRateUnit")), layout.get("flow_units") or {}
	)

	columns = settings["columns"]
	start_row = int(settings["table_start_row"])
	clear_count = int(settings.get("clear_row_count", 120))
	height = settings.get("remarks_height") or {}
	drill_forms.sheets.clear_rows(sheet, start_row, clear_count, columns.values())
	for row_no in range(start_row, start_row + clear_count):
		drill_forms.sheets.apply_wrapped_row_height(sheet, row_no, columns["remarks"], "", **height)

	after_groundwater = write_measurement_rows(sheet, run["groundwater"], start_row, settings)
	marker_row = after_groundwater + 2
	sheet[f"{columns['depth']}{marker_row}"].value = form_config["recovery_marker"]
	for column in settings.get("marker_blank_columns") or []:
		cell = sheet[f"{column}{marker_row}"]
		if not isinstance(cell, openpyxl.cell.cell.MergedCell):
			cell.value = None
	write_measurement_rows(sheet, run["recovery"], marker_row + 1, settings)
	return marker_row


#============================================
def build_water_protocol_workbook(
	record: dict,
	form: str = "pump_test",
	store: TemplateStore | None = None,
	layout: dict | None = None,
	sheet_names=(),
) -> openpyxl.Workbook:
	"""
	Build the protocol workbook: one sheet per measurement run.

	Every run sheet is cloned from the pristine template sheet, which is
	removed once all runs are written.

	Args:
		record: Input record.
		form: "pump_test" or "flushing".
		store: Template store holding the workbook template.
		layout: Layout table; defaults to the packaged water_protocol table.
		sheet_names: Names already claimed by the caller.

	Returns:
		Workbook.
	"""
	if layout is None:
		layout = drill_forms.config.load_layout(LAYOUT_NAME)
	if store is None:
		store = TemplateStore()
	form_settings(layout, form)
	settings = layout["workbook"]
	registry = FieldRegistry.from_layout(layout)
	workbook = drill_forms.sheets.load_template_workbook(store.resolve(settings["file"]))
	template = drill_forms.sheets.get_template_sheet(workbook, settings["sheet"])

	taken = [name for name in workbook.sheetnames if name != template.title] + list(sheet_names)
	runs = resolve_runs(record)
	for index, run in enumerate(runs):
		desired = _text(run.get("sheet_name", run.get("sheetName"))) or f"{DEFAULT_RUN_NAME} {index + 1}"
		title = drill_forms.sheets.unique_sheet_name(desired, taken, reserved=(template.title,))
		taken.append(title)
		sheet = drill_forms.sheets.clone_template_unit(workbook, template, title)
		fill_protocol_sheet(sheet, run, form, layout, registry)
		logger.info("Protocol sheet %s: %d + %d rows", title, len(run["groundwater"]), len(run["recovery"]))
	workbook.remove(template)
	workbook.active = 0
	return workbook


#============================================
def build_water_protocol_xlsx(record: dict, form: str = "pump_test", **kwargs) -> bytes:
	workbook = build_water_protocol_workbook(record, form=form, **kwargs)
	return drill_forms.sheets.workbook_to_bytes(workbook)


#============================================
def draw_protocol_frame(surface: drill_forms.render.PageSurface, frame: dict) -> None:
	"""
	Draw the protocol grid and its labels on a blank page.

	Args:
		surface: Target page surface.
		frame: pdf.frame table of the layout (header box, rules, table
			columns and row height, labels).
	"""
	line_width = float(frame.get("line_width", 1))
	box = frame.get("header_box")
	if box:
		drill_forms.render.draw_box(
			surface, Rect(float(box["x"]), float(box["y"]), float(box["w"]), float(box["h"])), line_width
		)
	for x0, y0, x1, y1 in frame.get("rules") or []:
		drill_forms.render.draw_rule(surface, float(x0), float(y0), float(x1), float(y1), line_width)
	table = frame.get("table")
	if table:
		columns = [float(value) for value in table["columns"]]
		top = float(table["top"])
		bottom = float(table["bottom"])
		drill_forms.render.draw_box(surface, Rect(columns[0], bottom, columns[-1] - columns[0], top - bottom), line_width)
		for x in columns[1:-1]:
			drill_forms.render.draw_rule(surface, x, bottom, x, top, line_width)
		row_height = float(table["row_height"])
		y = top - row_height
		while y >= bottom:
			drill_forms.render.draw_rule(surface, columns[0], y, columns[-1], y, line_width)
			y -= row_height
	label_size = float(frame.get("label_size", 10))
	for label in frame.get("labels") or []:
		drill_forms.render.draw_static_text(surface, float(label["x"]), float(label["y"]), str(label["text"]), label_size)


#============================================
def build_sections(record: dict, form: str, layout: dict) -> list:
	"""
	Build one section per measurement run; run i draws on page i.
	"""
	form_config = form_settings(layout, form)
	pdf = layout.get("pdf") or {}
	runs = resolve_runs(record)
	columns = layout.get("columns") or {}
	units = layout.get("flow_units") or {}

	def run_section(run_index, run):
		def draw_run(context):
			surface = context.pages[run_index]
			if context.document.source(surface.template_index).is_blank:
				draw_protocol_frame(surface, pdf.get("frame") or {})
			title = pdf.get("title") or {}
			drill_forms.render.draw_static_text(
				surface, float(title.get("x", 24)), float(title.get("y", 560)),
				form_config["title"], float(title.get("size", 34)),
			)
			for key in context.registry.keys():
				if key.startswith("row_"):
					continue
				value = context.registry.value_for(run, key)
				if key == "blatt" and not _text(value):
					value = f"{run_index + 1}/{len(runs)}"
				drill_forms.render.draw_field(context, key, value, surface=surface)
			unit = pdf.get("unit_label") or {}
			drill_forms.render.draw_static_text(
				surface, float(unit.get("x", 312)), float(unit.get("y", 350)),
				flow_unit_label(run.get("flow_rate_unit", run.get("flowRateUnit")), units),
				float(unit.get("size", 10)),
			)
			plan = PageFlowPlan.from_layout(pdf["rows"])
			remarks = context.registry.get("row_remarks")
			line_height = float(pdf.get("remarks_line_height", 9))
			remark_lines = int(pdf.get("remarks_lines", 2))

			def draw_line(line_surface, slot, line, index):
				if line.kind == "marker":
					drill_forms.render.draw_static_text(
						line_surface, float(pdf.get("marker_x", 94)), slot.y_offset,
						line.row["text"], float(pdf.get("marker_size", 10)),
					)
					return
				if line.kind != "row":
					return
				drill_forms.render.draw_row_fields(context, line_surface, slot, line.row, columns)
				if line.write_flow:
					drill_forms.render.draw_field(
						context, "row_flow", line.row["flow"],
						anchor_y=slot.y_offset, surface=line_surface,
					)
				wrapped = drill_forms.text_fit.wrap_chars(line.row["bemerkungen"], int(pdf.get("remarks_chars", 34)))
				drill_forms.render.draw_stacked_list(
					line_surface,
					wrapped,
					remarks.x,
					slot.y_offset,
					max_width=line_surface.width - remarks.x - 28,
					max_height=line_height * remark_lines,
					font_size=remarks.font_size,
					line_height=line_height,
					warnings=context.warnings,
				)

			drill_forms.render.flow_rows(
				context,
				plan,
				protocol_lines(run, form_config["recovery_marker"]),
				draw_line,
				page_map=[run_index],
				label=f"protocol lines of run {run_index + 1}",
			)
		draw_run.__name__ = f"draw_run_{run_index + 1}"
		return draw_run

	return [run_section(index, run) for index, run in enumerate(runs)]


#============================================
def render_water_protocol_pdf(
	record: dict,
	form: str = "pump_test",
	store: TemplateStore | None = None,
	layout: dict | None = None,
	warnings: list[str] | None = None,
	title: str | None = None,
	debug_grid_step: float | None = None,
	markers: list[dict] | None = None,
) -> drill_forms.render.RenderResult:
	"""
	Render the protocol as PDF, one page per measurement run.

	Args:
		record: Input record.
		form: "pump_test" or "flushing".
		store: Template store; defaults to the configured template directory.
		layout: Layout table; defaults to the packaged water_protocol table.
		warnings: Optional overflow channel.
		title: Optional PDF title.
		debug_grid_step: Draw a calibration grid when set.
		markers: Optional calibration markers.

	Returns:
		RenderResult.
	"""
	if layout is None:
		layout = drill_forms.config.load_layout(LAYOUT_NAME)
	if store is None:
		store = TemplateStore()
	sections = build_sections(record, form, layout)
	registry = FieldRegistry.from_layout(layout)
	document = store.load_document(layout)
	registry.validate_pages(document.page_count)
	return drill_forms.render.render_document(
		document,
		sections,
		registry,
		page_templates=[0] * len(sections),
		warnings=warnings,
		title=title,
		debug_grid_step=debug_grid_step,
		markers=markers,
	)


#============================================
def build_water_protocol_pdf(record: dict, form: str = "pump_test", **kwargs) -> bytes:
	return render_water_protocol_pdf(record, form=form, **kwargs).pdf_bytes
