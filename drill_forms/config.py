"""
Shared configuration, constants, and layout table loading.
"""

# Standard Library
import dataclasses
import functools
import os
import pathlib

# PIP3 modules
import yaml


DEFAULT_FONT = "Helvetica"
DEFAULT_FONT_BOLD = "Helvetica-Bold"
DEFAULT_FONT_SIZE = 10.0
ELLIPSIS = "…"

# filled-in values are blue so they stand out against the printed form
VALUE_COLOR = (0.0, 0.35, 0.9)
STATIC_COLOR = (0.0, 0.0, 0.0)
MARKER_COLOR = (0.85, 0.1, 0.1)
HIGHLIGHT_COLOR = (0.45, 0.82, 1.0)
HIGHLIGHT_OPACITY = 0.35
GRID_COLOR = (0.85, 0.85, 0.85)
GRID_LABEL_COLOR = (0.45, 0.45, 0.45)

CHECK_MARK = "X"
CHECK_MARK_SIZE = 12.0
BLOCK_LINE_HEIGHT_FACTOR = 1.25
STACKED_LINE_HEIGHT_FACTOR = 1.2
MIN_BLOCK_LINE_HEIGHT = 12.0
SHRINK_STEP = 0.5

EXCEL_SHEET_NAME_LIMIT = 31
EXCEL_INVALID_SHEET_CHARS = "[]:*?/\\"

LAYOUT_DIR_ENV = "DRILL_FORMS_LAYOUT_DIR"
TEMPLATE_DIR_ENV = "DRILL_FORMS_TEMPLATE_DIR"
PACKAGE_LAYOUT_DIR = pathlib.Path(__file__).resolve().parent / "layouts"


#============================================
class LayoutConfigError(Exception):
	"""
	Layout data does not match what the renderer was asked to do.
	"""


#============================================
class UnknownFieldError(LayoutConfigError, KeyError):
	"""
	A field key is not present in the field registry.
	"""

	def __str__(self) -> str:
		# KeyError quotes its argument, keep the plain message
		return str(self.args[0]) if self.args else ""


#============================================
class TemplateNotFoundError(LayoutConfigError, FileNotFoundError):
	"""
	A template page or workbook could not be loaded.
	"""


@dataclasses.dataclass(frozen=True)
class FieldDescriptor:
	key: str
	page_index: int
	x: float
	y: float
	font_size: float = DEFAULT_FONT_SIZE
	max_width: float | None = None
	max_height: float | None = None
	max_chars: int | None = None
	min_font_size: float | None = None
	aliases: tuple[str, ...] = ()


@dataclasses.dataclass(frozen=True)
class Rect:
	x: float
	y: float
	width: float
	height: float


@dataclasses.dataclass(frozen=True)
class RowSlot:
	page_index: int
	local_row_index: int
	y_offset: float
	x_offset: float = 0.0


@dataclasses.dataclass(frozen=True)
class RenderedMark:
	kind: str
	page_index: int
	x: float
	y: float
	text: str = ""
	font_size: float = 0.0
	width: float = 0.0
	height: float = 0.0


#============================================
def resolve_layout_path(name: str, layout_dir: pathlib.Path | None = None) -> pathlib.Path:
	"""
	Find the YAML table for a form layout.

	Args:
		name: Layout name, for example "layer_log".
		layout_dir: Optional directory that takes precedence over the package data.

	Returns:
		Path to the YAML file.
	"""
	candidates: list[pathlib.Path] = []
	if layout_dir is not None:
		candidates.append(pathlib.Path(layout_dir))
	env_dir = os.environ.get(LAYOUT_DIR_ENV)
	if env_dir:
		candidates.append(pathlib.Path(env_dir))
	candidates.append(PACKAGE_LAYOUT_DIR)
	for directory in candidates:
		path = directory / f"{name}.yaml"
		if path.exists():
			return path
	raise LayoutConfigError(f"Layout table not found: {name}.yaml")


#============================================
def read_layout_file(path: pathlib.Path) -> dict:
	"""
	Read and sanity check one layout YAML file.

	Args:
		path: Layout file path.

	Returns:
		Parsed layout mapping.
	"""
	with path.open("r", encoding="utf-8") as handle:
		payload = yaml.safe_load(handle)
	if not isinstance(payload, dict):
		raise LayoutConfigError(f"Invalid layout structure in {path} (expected mapping)")
	missing = {"version", "templates", "fields"} - payload.keys()
	if missing:
		raise LayoutConfigError(
			f"Layout {path.name} missing required keys: {', '.join(sorted(missing))}"
		)
	return payload


#============================================
@functools.lru_cache(maxsize=None)
def _load_cached_layout(path_text: str) -> dict:
	return read_layout_file(pathlib.Path(path_text))


#============================================
def load_layout(name: str, layout_dir: pathlib.Path | None = None) -> dict:
	"""
	Load a layout table once per process.

	The returned mapping is shared between calls and must be treated as
	read-only.

	Args:
		name: Layout name.
		layout_dir: Optional override directory.

	Returns:
		Parsed layout mapping.
	"""
	path = resolve_layout_path(name, layout_dir)
	return _load_cached_layout(str(path))
