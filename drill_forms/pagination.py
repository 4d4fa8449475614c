"""
Row-flow pagination: distribute repeating rows across template pages.

Page coordinates have a bottom-left origin, so rows flow downward by
subtracting the pitch from each page's base y.
"""

# Standard Library
import dataclasses
import logging

# local repo modules
import drill_forms.config


RowSlot = drill_forms.config.RowSlot
LayoutConfigError = drill_forms.config.LayoutConfigError

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class PageFlowPlan:
	"""
	Capacity and geometry of one repeating row-set.

	Attributes:
		rows_per_page: Row capacity per destination page; zero is legal.
		base_y_offset: y of local row 0 per page.
		row_pitch: Vertical distance between consecutive rows.
		non_uniform_row_offsets: Extra per-local-row drop, indexed by local row.
		non_uniform_pages: Pages that use the non-uniform list; None means all.
		x_offset: Optional horizontal shift per page.
	"""
	rows_per_page: tuple[int, ...]
	base_y_offset: tuple[float, ...]
	row_pitch: float
	non_uniform_row_offsets: tuple[float, ...] = ()
	non_uniform_pages: frozenset[int] | None = None
	x_offset: tuple[float, ...] = ()

	def __post_init__(self):
		if len(self.rows_per_page) != len(self.base_y_offset):
			raise LayoutConfigError(
				"rows_per_page and base_y_offset must have one entry per page "
				f"({len(self.rows_per_page)} != {len(self.base_y_offset)})"
			)
		if any(count < 0 for count in self.rows_per_page):
			raise LayoutConfigError("rows_per_page entries must be >= 0")

	#============================================
	@property
	def capacity(self) -> int:
		return sum(self.rows_per_page)

	#============================================
	@property
	def page_count(self) -> int:
		return len(self.rows_per_page)

	#============================================
	def _non_uniform(self, page_index: int, local_row: int) -> float:
		if self.non_uniform_pages is not None and page_index not in self.non_uniform_pages:
			return 0.0
		if local_row < len(self.non_uniform_row_offsets):
			return self.non_uniform_row_offsets[local_row]
		return 0.0

	#============================================
	def locate(self, global_row_index: int) -> RowSlot | None:
		"""
		Find the destination page and slot for a row.

		Args:
			global_row_index: 0-based index into the flat row list.

		Returns:
			RowSlot, or None when the row is beyond the plan's capacity.
		"""
		if global_row_index < 0:
			raise ValueError(f"row index must be >= 0, got {global_row_index}")
		start = 0
		for page_index, count in enumerate(self.rows_per_page):
			if global_row_index < start + count:
				local_row = global_row_index - start
				y_offset = (
					self.base_y_offset[page_index]
					- local_row * self.row_pitch
					- self._non_uniform(page_index, local_row)
				)
				x_offset = 0.0
				if page_index < len(self.x_offset):
					x_offset = self.x_offset[page_index]
				return RowSlot(
					page_index=page_index,
					local_row_index=local_row,
					y_offset=y_offset,
					x_offset=x_offset,
				)
			start += count
		return None

	#============================================
	def pages_used(self, row_count: int) -> int:
		"""
		Count the destination pages that receive at least one row.

		Trailing pages are only needed when rows reach them; leading pages
		count even when their capacity is zero.
		"""
		rendered = min(max(row_count, 0), self.capacity)
		if rendered == 0:
			return 0
		last = self.locate(rendered - 1)
		return last.page_index + 1

	#============================================
	def dropped(self, row_count: int) -> int:
		return max(0, row_count - self.capacity)

	#============================================
	@classmethod
	def from_layout(cls, entry: dict, overrides: dict | None = None) -> "PageFlowPlan":
		"""
		Build a plan from a layout flow entry and optional caller tuning.

		Caller-tuned capacities are clamped to the calibrated maxima in
		max_rows_per_page, since the printed forms have a fixed number of
		physical rows.

		Args:
			entry: Layout flow mapping.
			overrides: Optional mapping with rows_per_page, base_y, pitch.

		Returns:
			PageFlowPlan.
		"""
		overrides = overrides or {}
		try:
			rows = [int(value) for value in entry["rows_per_page"]]
			base_y = [float(value) for value in entry["base_y"]]
			pitch = float(entry["pitch"])
		except (KeyError, TypeError, ValueError) as exc:
			raise LayoutConfigError(f"Invalid flow entry: {exc}") from exc
		maxima = [int(value) for value in entry.get("max_rows_per_page", rows)]

		tuned_rows = overrides.get("rows_per_page")
		if tuned_rows is not None:
			for index, value in enumerate(tuned_rows[: len(rows)]):
				try:
					rows[index] = int(value)
				except (TypeError, ValueError):
					logger.warning("Ignoring non-integer row capacity %r", value)
		for index, value in enumerate(rows):
			limit = maxima[index] if index < len(maxima) else value
			clamped = max(0, min(value, limit))
			if clamped != value:
				logger.info("Row capacity %d on page %d clamped to %d", value, index + 1, clamped)
			rows[index] = clamped

		tuned_base = overrides.get("base_y")
		if tuned_base is not None:
			for index, value in enumerate(tuned_base[: len(base_y)]):
				try:
					base_y[index] = float(value)
				except (TypeError, ValueError):
					logger.warning("Ignoring non-numeric base y %r", value)
		if overrides.get("pitch") is not None:
			try:
				pitch = float(overrides["pitch"])
			except (TypeError, ValueError):
				logger.warning("Ignoring non-numeric row pitch %r", overrides["pitch"])

		non_uniform_pages = entry.get("non_uniform_pages")
		if non_uniform_pages is not None:
			non_uniform_pages = frozenset(int(page) - 1 for page in non_uniform_pages)
		return cls(
			rows_per_page=tuple(rows),
			base_y_offset=tuple(base_y),
			row_pitch=pitch,
			non_uniform_row_offsets=tuple(float(value) for value in entry.get("non_uniform", ())),
			non_uniform_pages=non_uniform_pages,
			x_offset=tuple(float(value) for value in entry.get("x_offset", ())),
		)


#============================================
def locate_sub_entry(index: int, per_row: int) -> tuple[int, int] | None:
	"""
	Split a flat sub-entry index into (table row, line within the row).

	Args:
		index: 0-based index into the flat list of sub-entries.
		per_row: How many sub-entries fit into one table row.

	Returns:
		Tuple of (row, line), or None when per_row is not positive.
	"""
	if per_row <= 0 or index < 0:
		return None
	return (index // per_row, index % per_row)


#============================================
def record_rows(record, *keys: str) -> list[dict]:
	"""
	Read a repeating row list from a record.

	The first key holding a list wins; entries that are not mappings are
	skipped.

	Args:
		record: Input record.
		keys: Candidate keys, preferred first.

	Returns:
		List of row mappings.
	"""
	for key in keys:
		value = record.get(key)
		if isinstance(value, list):
			return [row for row in value if isinstance(row, dict)]
	return []


#============================================
def chunk_rows(rows: list, size: int) -> list[list]:
	"""
	Split rows into consecutive chunks of at most size items.
	"""
	if size <= 0:
		return []
	return [rows[start:start + size] for start in range(0, len(rows), size)]
