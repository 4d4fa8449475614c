import io

import pypdf

import drill_forms.daily_report


#============================================
def base_record() -> dict:
	return {
		"date": "2026-01-30",
		"project": "Neubau Kita Am Mühlbach",
		"client": "Stadtwerke",
		"a_nr": "A-2026-017",
		"weather": {"conditions": ["regen"], "tempMaxC": "7"},
		"drilling_rows": [
			{"bo_nr": "B1", "drilled_from": "4,00", "drilled_to": "4,55", "casing_flags": "RB,EK",
				"samples": {"gp": True, "kk_lv": "x", "sp": False}},
			{"bo_nr": "B2", "drilled_from": "0", "drilled_to": "6", "metres": "6,5"},
		],
	}


#============================================
def marks_of(result, kind: str) -> list:
	return [mark for mark in result.marks if mark.kind == kind]


#============================================
def text_mark(result, text: str):
	for mark in result.marks:
		if mark.kind == "text" and mark.text == text:
			return mark
	raise AssertionError(f"no text mark {text!r}")


#============================================
def test_render_produces_one_landscape_page(template_store) -> None:
	result = drill_forms.daily_report.render_daily_report(base_record(), store=template_store)
	assert result.page_count == 1
	reader = pypdf.PdfReader(io.BytesIO(result.pdf_bytes))
	assert len(reader.pages) == 1
	page = reader.pages[0]
	assert (float(page.mediabox.width), float(page.mediabox.height)) == (842.0, 595.0)
	project = text_mark(result, "Neubau Kita Am Mühlbach")
	assert (project.x, project.y) == (160.0, 537.0)


#============================================
def test_friday_mark_position(template_store) -> None:
	"""
	2026-01-30 is a Friday; its check mark sits in the Friday box.
	"""
	result = drill_forms.daily_report.render_daily_report(base_record(), store=template_store)
	checks = {(mark.x, mark.y) for mark in marks_of(result, "check")}
	assert (90.0, 510.0) in checks
	assert (26.0, 510.0) not in checks
	# weather and temperature come from the nested weather block
	assert (640.0, 490.0) in checks
	assert text_mark(result, "7").x == 735.0


#============================================
def test_drilled_metres_derived_from_depths(template_store) -> None:
	result = drill_forms.daily_report.render_daily_report(base_record(), store=template_store)
	metres = text_mark(result, "0,55")
	assert (metres.x, metres.y) == (608.0, 380.0)
	explicit = text_mark(result, "6,5")
	assert (explicit.x, explicit.y) == (608.0, 362.0)


#============================================
def test_row_flags_are_checked_in_row(template_store) -> None:
	result = drill_forms.daily_report.render_daily_report(base_record(), store=template_store)
	row_checks = {(mark.x, mark.y) for mark in marks_of(result, "check") if mark.y == 380.0}
	assert row_checks == {(148.0, 380.0), (165.0, 380.0), (407.0, 380.0), (525.0, 380.0)}


#============================================
def test_sample_flags_forms() -> None:
	assert drill_forms.daily_report.sample_flags({"sample_flags": "GP, WP"}) == ["GP", "WP"]
	assert drill_forms.daily_report.sample_flags({"samples": {"KK-LV": 1, "bkb": "ja", "wp": "nein"}}) == ["KK-LV", "BKB"]
	assert drill_forms.daily_report.sample_flags({"samples": "GP"}) == []


#============================================
def test_drilled_metres() -> None:
	assert drill_forms.daily_report.drilled_metres({"drilled_from": "1,5", "drilled_to": "3"}) == "1,5"
	assert drill_forms.daily_report.drilled_metres({"drilled_from": "3", "drilled_to": "1"}) == ""
	assert drill_forms.daily_report.drilled_metres({"metres": " 2,25 "}) == "2,25"


#============================================
def test_drilling_overflow_warns(template_store) -> None:
	record = base_record()
	record["drilling_rows"] = [{"bo_nr": f"B{index}"} for index in range(10)]
	warnings: list[str] = []
	result = drill_forms.daily_report.render_daily_report(record, store=template_store, warnings=warnings)
	bo_marks = [mark for mark in marks_of(result, "text") if mark.x == 26.0 and mark.text.startswith("B")]
	assert len(bo_marks) == 8
	assert any(message.startswith("2 drilling rows") for message in warnings)


#============================================
def test_worker_hours_overflow_warns(template_store) -> None:
	record = {"date": "2026-02-01", "workers": [{"name": "Meier", "hours": [str(value) for value in range(17)], "allowance_day": True}]}
	warnings: list[str] = []
	result = drill_forms.daily_report.render_daily_report(record, store=template_store, warnings=warnings)
	hour_marks = [mark for mark in marks_of(result, "text") if mark.font_size == 7]
	assert len(hour_marks) == 15
	assert any("2 hour value(s) dropped" in message for message in warnings)
	checks = {(mark.x, mark.y) for mark in marks_of(result, "check")}
	assert (26.0, 510.0) in checks
	assert (250.0, 475.0) in checks


#============================================
def test_record_offsets_move_fields(template_store) -> None:
	record = base_record()
	record["field_offsets"] = {"project": {"x": 10}}
	record["relocation_rows"] = [{"from": "Halle", "to": "Hof"}]
	result = drill_forms.daily_report.render_daily_report(record, store=template_store)
	assert text_mark(result, "Neubau Kita Am Mühlbach").x == 170.0
	# layout offset lifts the first line of the relocation row
	assert text_mark(result, "Hof").y == 291.0


#============================================
def test_empty_record_renders_blank_form(template_store) -> None:
	warnings: list[str] = []
	result = drill_forms.daily_report.render_daily_report({}, store=template_store, warnings=warnings)
	assert result.page_count == 1
	assert marks_of(result, "text") == []
	assert warnings == []
