import io
import pathlib

import openpyxl
import openpyxl.cell.cell
import pytest

import drill_forms.config
import drill_forms.sheets


#============================================
def load_template(template_dir: pathlib.Path) -> openpyxl.Workbook:
	return drill_forms.sheets.load_template_workbook(template_dir / "KlarSpuel.xlsx")


#============================================
def test_sanitize_sheet_name() -> None:
	assert drill_forms.sheets.sanitize_sheet_name("BK 1/2") == "BK 1-2"
	assert drill_forms.sheets.sanitize_sheet_name("a[b]:c*?") == "a-b--c--"
	assert drill_forms.sheets.sanitize_sheet_name("'quoted'") == "quoted"
	assert drill_forms.sheets.sanitize_sheet_name("") == "Sheet"
	assert drill_forms.sheets.sanitize_sheet_name(None) == "Sheet"


#============================================
def test_unique_sheet_name_suffixes() -> None:
	"""
	Collisions compare case-insensitively and get a numbered suffix.
	"""
	unique = drill_forms.sheets.unique_sheet_name
	assert unique("Messung", []) == "Messung"
	assert unique("Messung", ["messung"]) == "Messung (2)"
	assert unique("Messung", ["Messung", "Messung (2)"]) == "Messung (3)"
	assert unique("Tabelle1", [], reserved=["Tabelle1"]) == "Tabelle1 (2)"


#============================================
def test_unique_sheet_name_respects_length_limit() -> None:
	long_name = "Pumpversuch Messstelle Nord-Ost Brunnen"
	first = drill_forms.sheets.unique_sheet_name(long_name, [])
	assert len(first) == drill_forms.config.EXCEL_SHEET_NAME_LIMIT
	second = drill_forms.sheets.unique_sheet_name(long_name, [first])
	assert len(second) <= drill_forms.config.EXCEL_SHEET_NAME_LIMIT
	assert second.endswith(" (2)")
	assert second != first


#============================================
def test_missing_or_broken_workbook_raises(tmp_path: pathlib.Path) -> None:
	with pytest.raises(drill_forms.config.TemplateNotFoundError):
		drill_forms.sheets.load_template_workbook(tmp_path / "missing.xlsx")
	broken = tmp_path / "broken.xlsx"
	broken.write_bytes(b"not a workbook")
	with pytest.raises(drill_forms.config.TemplateNotFoundError):
		drill_forms.sheets.load_template_workbook(broken)


#============================================
def test_get_template_sheet(template_dir: pathlib.Path) -> None:
	workbook = load_template(template_dir)
	assert drill_forms.sheets.get_template_sheet(workbook, "Tabelle1").title == "Tabelle1"
	with pytest.raises(drill_forms.config.LayoutConfigError):
		drill_forms.sheets.get_template_sheet(workbook, "Nope")


#============================================
def test_clone_keeps_formatting_and_copies_images(template_dir: pathlib.Path) -> None:
	"""
	Each clone carries its own image objects and leaves the template alone.
	"""
	workbook = load_template(template_dir)
	source = workbook["Tabelle1"]
	first = drill_forms.sheets.clone_template_unit(workbook, source, "Messung")
	second = drill_forms.sheets.clone_template_unit(workbook, source, "Messung (2)")
	for clone in (first, second):
		assert "B5:G5" in {str(merged) for merged in clone.merged_cells.ranges}
		assert clone.freeze_panes == "A16"
		assert clone.print_title_rows == source.print_title_rows
		assert clone.row_dimensions[20].height == 18
		assert clone["B20"].border.bottom.style == "thin"
		assert len(clone._images) == len(source._images) == 1
	assert first._images[0] is not second._images[0]
	assert first._images[0].anchor is not second._images[0].anchor
	first["A16"] = "08:00"
	assert source["A16"].value == "stale"
	assert second["A16"].value == "stale"


#============================================
def test_clone_survives_save(template_dir: pathlib.Path) -> None:
	workbook = load_template(template_dir)
	source = workbook["Tabelle1"]
	drill_forms.sheets.clone_template_unit(workbook, source, "Messung")
	drill_forms.sheets.clone_template_unit(workbook, source, "Messung (2)")
	workbook.remove(source)
	payload = drill_forms.sheets.workbook_to_bytes(workbook)
	reloaded = openpyxl.load_workbook(io.BytesIO(payload))
	assert reloaded.sheetnames == ["Messung", "Messung (2)"]
	assert len(reloaded["Messung (2)"]._images) == 1


#============================================
def test_set_if_present_and_clear_rows(template_dir: pathlib.Path) -> None:
	workbook = load_template(template_dir)
	sheet = workbook["Tabelle1"]
	assert drill_forms.sheets.set_if_present(sheet, "I6", "  2026-01-30 ")
	assert sheet["I6"].value == "2026-01-30"
	assert not drill_forms.sheets.set_if_present(sheet, "I7", "   ")
	assert sheet["I7"].value is None
	drill_forms.sheets.clear_rows(sheet, 5, 12, ["A", "C", "I"])
	assert sheet["A16"].value is None
	assert sheet["I16"].value is None
	assert isinstance(sheet["C5"], openpyxl.cell.cell.MergedCell)


#============================================
def test_ensure_row_style_copies_template_row(template_dir: pathlib.Path) -> None:
	workbook = load_template(template_dir)
	sheet = workbook["Tabelle1"]
	assert not sheet["A60"].has_style
	drill_forms.sheets.ensure_row_style(sheet, 16, 60, ["A", "B"])
	assert sheet["A60"].border.bottom.style == "thin"
	assert sheet.row_dimensions[60].height == 18


#============================================
def test_apply_wrapped_row_height(template_dir: pathlib.Path) -> None:
	workbook = load_template(template_dir)
	sheet = workbook["Tabelle1"]
	lines = drill_forms.sheets.apply_wrapped_row_height(sheet, 16, "I", "x" * 45)
	assert lines == 3
	assert sheet.row_dimensions[16].height == 48
	assert sheet["I16"].alignment.wrap_text
	assert sheet["I16"].alignment.vertical == "top"
	drill_forms.sheets.apply_wrapped_row_height(sheet, 17, "I", "")
	assert sheet.row_dimensions[17].height == 18
