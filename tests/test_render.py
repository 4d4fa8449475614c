import base64
import io
import pathlib

import PIL.Image
import pypdf
import pytest

import drill_forms.config
import drill_forms.offsets
import drill_forms.pagination
import drill_forms.registry
import drill_forms.render


TWO_PAGE_LAYOUT = {
	"version": 1,
	"templates": [
		{"name": "first", "file": "SV_1.pdf"},
		{"name": "continuation", "file": "SV_2.pdf"},
	],
	"fields": [
		{"key": "title", "x": 60, "y": 800, "size": 12, "max_width": 120, "min_size": 7},
		{"key": "depth", "x": 50, "y": 600, "size": 9},
		{"key": "note", "x": 300, "y": 600, "size": 9, "max_width": 80, "max_height": 30},
	],
}


#============================================
def signature_data_url() -> str:
	image = PIL.Image.new("RGBA", (80, 30), (0, 0, 0, 255))
	buffer = io.BytesIO()
	image.save(buffer, format="PNG")
	return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")


#============================================
def render_rows(template_store, rows: list[str], warnings=None) -> drill_forms.render.RenderResult:
	registry = drill_forms.registry.FieldRegistry.from_layout(TWO_PAGE_LAYOUT)
	document = template_store.load_document(TWO_PAGE_LAYOUT)
	plan = drill_forms.pagination.PageFlowPlan(
		rows_per_page=(4, 8), base_y_offset=(600.0, 600.0), row_pitch=18.0
	)

	def draw_rows(context):
		def draw_row(surface, slot, row, index):
			drill_forms.render.draw_field(context, "depth", row, anchor_y=slot.y_offset, surface=surface)

		drill_forms.render.flow_rows(context, plan, rows, draw_row, label="depth rows")

	return drill_forms.render.render_document(
		document, [draw_rows], registry, page_templates=[0, 1], warnings=warnings
	)


#============================================
def test_fifth_row_starts_second_page(template_store) -> None:
	"""
	With 4 rows on page 1, the fifth row lands at the top of page 2.
	"""
	rows = [f"row {index + 1}" for index in range(5)]
	result = render_rows(template_store, rows)
	assert result.page_count == 2
	texts = {mark.text: mark for mark in result.marks if mark.kind == "text"}
	assert texts["row 4"].page_index == 0
	assert texts["row 4"].y == 600.0 - 3 * 18.0
	assert texts["row 5"].page_index == 1
	assert texts["row 5"].y == 600.0
	reader = pypdf.PdfReader(io.BytesIO(result.pdf_bytes))
	assert len(reader.pages) == 2
	assert "row 5" in reader.pages[1].extract_text()
	assert "SV 2" in reader.pages[1].extract_text()


#============================================
def test_overflow_rows_are_reported(template_store) -> None:
	warnings: list[str] = []
	result = render_rows(template_store, [str(index) for index in range(15)], warnings)
	drawn = [mark for mark in result.marks if mark.kind == "text"]
	assert len(drawn) == 12
	assert any("3 depth rows" in message for message in warnings)
	assert result.warnings == warnings


#============================================
def test_overflow_is_silent_without_channel(template_store) -> None:
	result = render_rows(template_store, [str(index) for index in range(15)])
	assert result.warnings == []


#============================================
def build_context(template_store, warnings=None, offsets=None) -> drill_forms.render.RenderContext:
	registry = drill_forms.registry.FieldRegistry.from_layout(TWO_PAGE_LAYOUT)
	document = template_store.load_document(TWO_PAGE_LAYOUT)
	pages = [
		drill_forms.render.PageSurface(index, index, document.source(index).width, document.source(index).height)
		for index in range(2)
	]
	return drill_forms.render.RenderContext(
		document=document,
		pages=pages,
		registry=registry,
		offsets=offsets or drill_forms.offsets.OffsetConfig(),
		warnings=warnings,
	)


#============================================
def test_draw_field_applies_offsets_and_shrinks(template_store) -> None:
	layout = {"offsets": {"fields": {"title": {"x": 5, "y": -3}}}}
	offsets = drill_forms.offsets.OffsetConfig.from_layout(layout)
	context = build_context(template_store, offsets=offsets)
	assert drill_forms.render.draw_field(context, "title", "Neubau Wohnanlage Am Kieswerk Nord")
	mark = context.marks[0]
	assert (mark.x, mark.y) == (65.0, 797.0)
	assert mark.font_size < 12
	assert mark.width <= 120
	assert not drill_forms.render.draw_field(context, "title", "   ")
	assert not drill_forms.render.draw_field(context, "title", None)
	drill_forms.render.draw_field(context, "title", "x", apply_offsets=False)
	assert (context.marks[-1].x, context.marks[-1].y) == (60.0, 800.0)


#============================================
def test_draw_field_unknown_key_raises(template_store) -> None:
	context = build_context(template_store)
	with pytest.raises(drill_forms.config.UnknownFieldError):
		drill_forms.render.draw_field(context, "nope", "value")


#============================================
def test_boxed_field_truncates(template_store) -> None:
	warnings: list[str] = []
	context = build_context(template_store, warnings)
	drill_forms.render.draw_field(context, "note", " ".join(["Sand"] * 60))
	lines = [mark for mark in context.marks if mark.kind == "text"]
	assert 1 <= len(lines) <= 3
	assert lines[-1].text.endswith(drill_forms.config.ELLIPSIS)
	assert warnings


#============================================
def test_stacked_list_respects_height(template_store) -> None:
	warnings: list[str] = []
	context = build_context(template_store, warnings)
	surface = context.pages[0]
	drawn = drill_forms.render.draw_stacked_list(
		surface, ["1,20", "", "3,40", "5,60"], 100, 500, 40, 12, font_size=6.5, line_height=6.0, warnings=warnings
	)
	assert drawn == 2
	assert [mark.y for mark in surface.marks] == [500.0, 494.0]
	assert len(warnings) == 1


#============================================
def test_highlight_circle_and_page_number(template_store) -> None:
	context = build_context(template_store)
	surface = context.pages[1]
	drill_forms.render.draw_highlight(surface, drill_forms.config.Rect(467, 590, 40, 8))
	drill_forms.render.draw_circle_marker(surface, 393, 548)
	drill_forms.render.draw_page_number(surface, 2)
	kinds = [mark.kind for mark in surface.marks]
	assert kinds == ["highlight", "circle", "mask", "static"]
	mask = surface.marks[2]
	number = surface.marks[3]
	assert mask.width >= 26
	assert mask.x <= number.x <= mask.x + mask.width


#============================================
def test_signature_drawn_and_bad_data_skipped(template_store) -> None:
	warnings: list[str] = []
	context = build_context(template_store, warnings)
	box = drill_forms.config.Rect(470, 30, 150, 55)
	assert drill_forms.render.draw_signature(context.pages[0], signature_data_url(), box, warnings)
	assert context.marks[-1].kind == "image"
	assert not drill_forms.render.draw_signature(context.pages[0], "data:image/png;base64,AAAA", box, warnings)
	assert not drill_forms.render.draw_signature(context.pages[0], "not a url", box, warnings)
	assert len(warnings) == 2


#============================================
def test_markers_and_single_page_grid(template_store) -> None:
	registry = drill_forms.registry.FieldRegistry.from_layout(TWO_PAGE_LAYOUT)
	document = template_store.load_document(TWO_PAGE_LAYOUT)
	result = drill_forms.render.render_document(
		document,
		[],
		registry,
		debug_grid_step=100,
		debug_grid_page=9,
		markers=[{"text": "A", "page": 5, "x": 10, "y": 10}, {"text": "B", "x": "bad", "y": 1}],
	)
	grids = [mark for mark in result.marks if mark.kind == "grid"]
	markers = [mark for mark in result.marks if mark.kind == "marker"]
	assert [mark.page_index for mark in grids] == [1]
	assert [mark.page_index for mark in markers] == [1]


#============================================
def test_malformed_markers_are_skipped_with_warning(template_store) -> None:
	registry = drill_forms.registry.FieldRegistry.from_layout(TWO_PAGE_LAYOUT)
	document = template_store.load_document(TWO_PAGE_LAYOUT)
	warnings: list[str] = []
	result = drill_forms.render.render_document(
		document,
		[],
		registry,
		warnings=warnings,
		markers=["oops", None, {"text": "M", "x": "12,5", "y": 30, "size": "big"}, {"text": "N", "page": [], "x": 1, "y": 1}],
	)
	markers = [mark for mark in result.marks if mark.kind == "marker"]
	assert [(mark.text, mark.x, mark.y, mark.font_size) for mark in markers] == [("M", 12.5, 30.0, 10.0)]
	assert len(warnings) == 3
	assert all(message.startswith("Skipped malformed marker") for message in warnings)

	warnings = []
	result = drill_forms.render.render_document(document, [], registry, warnings=warnings, markers="oops")
	assert result.page_count == 2
	assert warnings == ["Skipped debug markers: expected a list, got str"]


#============================================
def test_templates_are_not_modified(template_store, template_dir: pathlib.Path) -> None:
	before = (template_dir / "SV_1.pdf").read_bytes()
	render_rows(template_store, ["a", "b", "c", "d", "e"])
	render_rows(template_store, ["f"])
	assert (template_dir / "SV_1.pdf").read_bytes() == before
	document = template_store.load_document(TWO_PAGE_LAYOUT, required=[0])
	with pytest.raises(drill_forms.config.LayoutConfigError):
		document.source(1)


#============================================
def test_missing_template_raises(tmp_path: pathlib.Path) -> None:
	store = drill_forms.render.TemplateStore(tmp_path)
	with pytest.raises(drill_forms.config.TemplateNotFoundError):
		store.load_document(TWO_PAGE_LAYOUT)


#============================================
def test_rotated_template_is_landscape(template_store) -> None:
	layout = {"version": 1, "templates": [{"name": "daily", "file": "tagesbericht_template.pdf", "rotate": 90}], "fields": []}
	document = template_store.load_document(layout)
	source = document.source(0)
	assert (source.width, source.height) == (842.0, 595.0)
	page = source.clone_page()
	assert float(page.mediabox.width) == 842.0
