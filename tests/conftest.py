"""
Pytest configuration for local imports and generated form templates.
"""

# Standard Library
import io
import os
import pathlib
import sys

# PIP3 modules
import openpyxl
import openpyxl.drawing.image
import openpyxl.styles
import PIL.Image
import pytest
import reportlab.pdfgen.canvas

A4_PORTRAIT = (595.0, 842.0)
A4_LANDSCAPE = (842.0, 595.0)

#============================================


def _ensure_repo_on_path() -> None:
	"""
	Ensure the repository root is on sys.path.
	"""
	repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
	if repo_root not in sys.path:
		sys.path.insert(0, repo_root)


_ensure_repo_on_path()

# local repo modules
import drill_forms.render  # noqa: E402


#============================================
def write_template_pdf(path: pathlib.Path, size: tuple[float, float], label: str) -> pathlib.Path:
	"""
	Write a one-page stand-in for a printed form.

	Args:
		path: Output path.
		size: Page size in points.
		label: Text printed in the corner.

	Returns:
		The written path.
	"""
	pdf = reportlab.pdfgen.canvas.Canvas(str(path), pagesize=size)
	pdf.setLineWidth(1)
	pdf.rect(10, 10, size[0] - 20, size[1] - 20)
	pdf.setFont("Helvetica", 8)
	pdf.drawString(20, 20, label)
	pdf.showPage()
	pdf.save()
	return path


#============================================
def png_bytes(size: tuple[int, int] = (40, 20), color: tuple[int, int, int] = (0, 0, 0)) -> bytes:
	image = PIL.Image.new("RGB", size, color)
	buffer = io.BytesIO()
	image.save(buffer, format="PNG")
	return buffer.getvalue()


#============================================
def write_protocol_workbook(path: pathlib.Path) -> pathlib.Path:
	"""
	Write a protocol workbook template with styles, merges and a logo.
	"""
	workbook = openpyxl.Workbook()
	sheet = workbook.active
	sheet.title = "Tabelle1"
	sheet["A3"] = "Klarspülprotokoll"
	sheet["A3"].font = openpyxl.styles.Font(bold=True, size=20)
	sheet["A5"] = "BV"
	sheet.merge_cells("B5:G5")
	sheet["A15"] = "Dauer"
	sheet["B15"] = "Abstichmaß ab GOK"
	sheet["E15"] = "l/sec"
	sheet["I15"] = "Bemerkungen"
	sheet.column_dimensions["B"].width = 18
	sheet.column_dimensions["I"].width = 30
	for row in range(16, 46):
		for column in ("A", "B", "E", "I"):
			sheet[f"{column}{row}"].border = openpyxl.styles.Border(bottom=openpyxl.styles.Side(style="thin"))
		sheet.row_dimensions[row].height = 18
	sheet["A16"] = "stale"
	sheet["I16"] = "stale remark"
	sheet.freeze_panes = "A16"
	sheet.print_title_rows = "1:15"
	logo = openpyxl.drawing.image.Image(io.BytesIO(png_bytes((60, 30), (200, 0, 0))))
	logo.anchor = "H1"
	sheet.add_image(logo)
	workbook.save(path)
	return path


#============================================
@pytest.fixture
def template_dir(tmp_path: pathlib.Path) -> pathlib.Path:
	"""
	Directory holding stand-ins for every form template.
	"""
	directory = tmp_path / "templates"
	directory.mkdir()
	write_template_pdf(directory / "tagesbericht_template.pdf", A4_PORTRAIT, "Tagesbericht")
	write_template_pdf(directory / "SV_1.pdf", A4_PORTRAIT, "SV 1")
	write_template_pdf(directory / "SV_2.pdf", A4_PORTRAIT, "SV 2")
	write_template_pdf(directory / "GW_SV.pdf", A4_PORTRAIT, "GW SV")
	write_template_pdf(directory / "wasserprotokoll.pdf", A4_LANDSCAPE, "Protokoll")
	# second name in the Rhein-Main-Link candidate list
	write_template_pdf(directory / "TB_RML.pdf", A4_PORTRAIT, "TB RML")
	write_protocol_workbook(directory / "KlarSpuel.xlsx")
	return directory


#============================================
@pytest.fixture
def template_store(template_dir: pathlib.Path) -> drill_forms.render.TemplateStore:
	return drill_forms.render.TemplateStore(template_dir)
