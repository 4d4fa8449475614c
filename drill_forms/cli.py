"""
CLI entry point: render a report record onto its form templates.
"""

# Standard Library
import argparse
import json
import logging
import pathlib
import sys

# local repo modules
import drill_forms.config
import drill_forms.daily_report
import drill_forms.daily_report_rml
import drill_forms.layer_log
import drill_forms.render
import drill_forms.sheets
import drill_forms.water_protocol


LayoutConfigError = drill_forms.config.LayoutConfigError
TemplateStore = drill_forms.render.TemplateStore

FORMS = ("daily_report", "daily_report_rml", "layer_log") + drill_forms.water_protocol.FORMS
SPREADSHEET_FORMS = drill_forms.water_protocol.FORMS
DEFAULT_GRID_STEP = 50.0


#============================================
def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
	"""
	Parse command line arguments.

	Args:
		argv: Argument list; sys.argv when None.

	Returns:
		Parsed argparse namespace.
	"""
	parser = argparse.ArgumentParser(description="Fill drilling site report templates from a JSON record.")
	subparsers = parser.add_subparsers(dest="command", required=True)

	render_parser = subparsers.add_parser("render", help="Render one record.")
	render_parser.add_argument("form", choices=FORMS, help="Form to render.")
	render_parser.add_argument("record_path", help="Input record JSON file.")

	output_group = render_parser.add_argument_group("Output")
	output_group.add_argument("-o", "--output", dest="output_path", required=True, help="Output .pdf or .xlsx path.")
	output_group.add_argument("-t", "--title", dest="title", default=None, help="PDF title metadata.")

	template_group = render_parser.add_argument_group("Templates")
	template_group.add_argument("--templates", dest="template_dir", default=None, help="Template directory.")

	debug_group = render_parser.add_argument_group("Calibration")
	debug_group.add_argument("-g", "--debug-grid", dest="debug_grid", action="store_true", help="Draw a coordinate grid.")
	debug_group.add_argument(
		"--grid-step", dest="grid_step", type=float, default=DEFAULT_GRID_STEP, help="Grid spacing in points."
	)
	debug_group.add_argument("-v", "--verbose", dest="verbose", action="store_true", help="Log render details.")

	parser.set_defaults(debug_grid=False, verbose=False)
	args = parser.parse_args(argv)
	return args


#============================================
def read_record(path: pathlib.Path) -> dict:
	"""
	Load an input record.

	Returns:
		Record dict.

	Raises:
		ValueError: When the file is not a JSON object.
	"""
	with open(path, "r", encoding="utf-8") as handle:
		record = json.load(handle)
	if not isinstance(record, dict):
		raise ValueError(f"{path} does not hold a JSON object")
	return record


#============================================
def render_record(args: argparse.Namespace, record: dict, warnings: list[str]) -> tuple[bytes, int]:
	"""
	Render a record and return (output bytes, unit count).
	"""
	output_path = pathlib.Path(args.output_path)
	store = TemplateStore(args.template_dir)
	grid_step = args.grid_step if args.debug_grid else None
	if output_path.suffix.lower() == ".xlsx":
		if args.form not in SPREADSHEET_FORMS:
			raise LayoutConfigError(f"Form {args.form} has no spreadsheet output")
		workbook = drill_forms.water_protocol.build_water_protocol_workbook(record, form=args.form, store=store)
		count = len(workbook.sheetnames)
		return (drill_forms.sheets.workbook_to_bytes(workbook), count)
	options = {
		"store": store,
		"warnings": warnings,
		"title": args.title,
		"debug_grid_step": grid_step,
		"markers": record.get("debug_markers"),
	}
	if args.form == "daily_report":
		result = drill_forms.daily_report.render_daily_report(record, **options)
	elif args.form == "daily_report_rml":
		result = drill_forms.daily_report_rml.render_daily_report_rml(record, **options)
	elif args.form == "layer_log":
		result = drill_forms.layer_log.render_layer_log(record, **options)
	else:
		result = drill_forms.water_protocol.render_water_protocol_pdf(record, form=args.form, **options)
	return (result.pdf_bytes, result.page_count)


#============================================
def run_render(args: argparse.Namespace) -> int:
	"""
	Run the render command.

	Args:
		args: Parsed argparse namespace.

	Returns:
		Process exit code.
	"""
	print(f"Form: {args.form}")
	print(f"Record: {args.record_path}")
	print(f"Output: {args.output_path}")
	if args.template_dir:
		print(f"Templates: {args.template_dir}")
	if args.debug_grid:
		print(f"Debug grid: {args.grid_step:g} pt")

	try:
		record = read_record(pathlib.Path(args.record_path))
	except (OSError, ValueError) as exc:
		print(f"Cannot read record: {exc}", file=sys.stderr)
		return 2

	warnings: list[str] = []
	try:
		payload, count = render_record(args, record, warnings)
	except LayoutConfigError as exc:
		print(f"Configuration error: {exc}", file=sys.stderr)
		return 1

	output_path = pathlib.Path(args.output_path)
	output_path.parent.mkdir(parents=True, exist_ok=True)
	output_path.write_bytes(payload)
	unit = "sheets" if output_path.suffix.lower() == ".xlsx" else "pages"
	print(f"Written: {output_path} ({count} {unit}, {len(payload)} bytes)")
	if warnings:
		print(f"Warnings: {len(warnings)}")
		for message in warnings:
			print(f"  {message}")
	return 0


#============================================
def main(argv: list[str] | None = None) -> None:
	"""
	Main entry point.
	"""
	args = parse_args(argv)
	logging.basicConfig(
		level=logging.INFO if args.verbose else logging.WARNING,
		format="%(levelname)s %(name)s: %(message)s",
	)
	sys.exit(run_render(args))


if __name__ == "__main__":
	main()
