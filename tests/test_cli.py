import json
import pathlib

import openpyxl
import pypdf
import pytest

import drill_forms.cli


#============================================
def write_record(tmp_path: pathlib.Path, record) -> pathlib.Path:
	path = tmp_path / "record.json"
	path.write_text(json.dumps(record), encoding="utf-8")
	return path


#============================================
def run(argv: list[str]) -> int:
	return drill_forms.cli.run_render(drill_forms.cli.parse_args(argv))


#============================================
def test_parse_args_defaults() -> None:
	args = drill_forms.cli.parse_args(["render", "layer_log", "in.json", "-o", "out.pdf"])
	assert args.form == "layer_log"
	assert args.output_path == "out.pdf"
	assert not args.debug_grid
	assert args.grid_step == drill_forms.cli.DEFAULT_GRID_STEP
	assert args.template_dir is None


#============================================
def test_parse_args_rejects_unknown_form() -> None:
	with pytest.raises(SystemExit):
		drill_forms.cli.parse_args(["render", "slug_test", "in.json", "-o", "out.pdf"])


#============================================
def test_render_layer_log_pdf(tmp_path: pathlib.Path, template_dir: pathlib.Path, capsys) -> None:
	record = {"projekt": "Kiesgrube Nord", "layers": [{"to": f"{index},0"} for index in range(6)]}
	record_path = write_record(tmp_path, record)
	output = tmp_path / "out" / "layer_log.pdf"
	code = run([
		"render", "layer_log", str(record_path), "-o", str(output),
		"--templates", str(template_dir), "-g", "-t", "SV Kiesgrube",
	])
	assert code == 0
	reader = pypdf.PdfReader(str(output))
	assert len(reader.pages) == 2
	assert reader.metadata.title == "SV Kiesgrube"
	captured = capsys.readouterr()
	assert "(2 pages," in captured.out
	assert "Debug grid: 50 pt" in captured.out


#============================================
def test_render_protocol_xlsx(tmp_path: pathlib.Path, template_dir: pathlib.Path, capsys) -> None:
	record = {"runs": [{"sheet_name": "Tag 1"}, {"sheet_name": "Tag 2"}]}
	record_path = write_record(tmp_path, record)
	output = tmp_path / "protocol.xlsx"
	code = run(["render", "flushing", str(record_path), "-o", str(output), "--templates", str(template_dir)])
	assert code == 0
	assert openpyxl.load_workbook(output).sheetnames == ["Tag 1", "Tag 2"]
	assert "(2 sheets," in capsys.readouterr().out


#============================================
def test_overflow_warnings_printed(tmp_path: pathlib.Path, template_dir: pathlib.Path, capsys) -> None:
	record = {"drilling_rows": [{"bo_nr": str(index)} for index in range(9)]}
	record_path = write_record(tmp_path, record)
	output = tmp_path / "daily.pdf"
	code = run(["render", "daily_report", str(record_path), "-o", str(output), "--templates", str(template_dir)])
	assert code == 0
	captured = capsys.readouterr()
	assert "Warnings: 1" in captured.out
	assert "1 drilling rows did not fit" in captured.out


#============================================
def test_spreadsheet_only_for_protocols(tmp_path: pathlib.Path, template_dir: pathlib.Path, capsys) -> None:
	record_path = write_record(tmp_path, {})
	output = tmp_path / "daily.xlsx"
	code = run(["render", "daily_report", str(record_path), "-o", str(output), "--templates", str(template_dir)])
	assert code == 1
	assert not output.exists()
	assert "Configuration error" in capsys.readouterr().err


#============================================
def test_missing_template_is_configuration_error(tmp_path: pathlib.Path, capsys) -> None:
	record_path = write_record(tmp_path, {})
	code = run(["render", "layer_log", str(record_path), "-o", str(tmp_path / "x.pdf"), "--templates", str(tmp_path)])
	assert code == 1
	assert "Template not found" in capsys.readouterr().err


#============================================
def test_unreadable_record(tmp_path: pathlib.Path, capsys) -> None:
	record_path = write_record(tmp_path, [1, 2, 3])
	code = run(["render", "layer_log", str(record_path), "-o", str(tmp_path / "x.pdf")])
	assert code == 2
	assert "Cannot read record" in capsys.readouterr().err
	code = run(["render", "layer_log", str(tmp_path / "missing.json"), "-o", str(tmp_path / "x.pdf")])
	assert code == 2


#============================================
def test_main_exits_with_code(tmp_path: pathlib.Path, template_dir: pathlib.Path) -> None:
	record_path = write_record(tmp_path, {"datum": "30.01.2026"})
	output = tmp_path / "pump.pdf"
	with pytest.raises(SystemExit) as excinfo:
		drill_forms.cli.main(["render", "pump_test", str(record_path), "-o", str(output), "--templates", str(template_dir)])
	assert excinfo.value.code == 0
	assert output.is_file()


#============================================
def test_bad_tuning_values_still_render(tmp_path: pathlib.Path, template_dir: pathlib.Path, capsys) -> None:
	record = {
		"layers": [{"to": "1,0"}],
		"layer_flow": {"x_offset": ["abc", 0], "row_offsets": [None]},
		"debug_markers": ["oops", {"text": "M", "x": 10, "y": 10, "size": None}],
	}
	record_path = write_record(tmp_path, record)
	output = tmp_path / "layer_log.pdf"
	code = run(["render", "layer_log", str(record_path), "-o", str(output), "--templates", str(template_dir)])
	assert code == 0
	assert output.is_file()
	captured = capsys.readouterr()
	assert "Ignored non-numeric layer_flow x_offset value 'abc'" in captured.out
	assert "Skipped malformed marker 'oops'" in captured.out


#============================================
def test_render_rhein_main_link_report(tmp_path: pathlib.Path, template_dir: pathlib.Path, capsys) -> None:
	record_path = write_record(tmp_path, {"date": "2026-01-30", "ort": "Frankfurt"})
	output = tmp_path / "rml.pdf"
	code = run(["render", "daily_report_rml", str(record_path), "-o", str(output), "--templates", str(template_dir)])
	assert code == 0
	reader = pypdf.PdfReader(str(output))
	assert len(reader.pages) == 1
	assert "Frankfurt" in reader.pages[0].extract_text()
	assert "(1 pages," in capsys.readouterr().out
