"""
Field registry: logical field keys mapped to page anchors.
"""

# Standard Library
import collections.abc

# local repo modules
import drill_forms.config


FieldDescriptor = drill_forms.config.FieldDescriptor
LayoutConfigError = drill_forms.config.LayoutConfigError
UnknownFieldError = drill_forms.config.UnknownFieldError
DEFAULT_FONT_SIZE = drill_forms.config.DEFAULT_FONT_SIZE


#============================================
def _optional_float(value) -> float | None:
	if value is None:
		return None
	return float(value)


#============================================
def parse_field_entry(entry: dict) -> FieldDescriptor:
	"""
	Build a FieldDescriptor from one layout table entry.

	Layout tables use 1-based page numbers ("page: 1") like the printed
	forms; descriptors store 0-based indices.

	Args:
		entry: Mapping with key, page, x, y and optional sizing keys.

	Returns:
		FieldDescriptor.
	"""
	try:
		key = str(entry["key"])
		page_number = int(entry.get("page", 1))
		x = float(entry["x"])
		y = float(entry["y"])
	except (KeyError, TypeError, ValueError) as exc:
		raise LayoutConfigError(f"Invalid field entry {entry!r}: {exc}") from exc
	if page_number < 1:
		raise LayoutConfigError(f"Field {key} has invalid page number {page_number}")
	max_chars = entry.get("max_chars")
	aliases = entry.get("aliases") or ()
	return FieldDescriptor(
		key=key,
		page_index=page_number - 1,
		x=x,
		y=y,
		font_size=float(entry.get("size", DEFAULT_FONT_SIZE)),
		max_width=_optional_float(entry.get("max_width")),
		max_height=_optional_float(entry.get("max_height")),
		max_chars=int(max_chars) if max_chars is not None else None,
		min_font_size=_optional_float(entry.get("min_size")),
		aliases=tuple(str(alias) for alias in aliases),
	)


class FieldRegistry:
	"""
	Read-only table of field descriptors keyed by field key.
	"""

	def __init__(self, fields: collections.abc.Iterable[FieldDescriptor]):
		self._fields: dict[str, FieldDescriptor] = {}
		for field in fields:
			if field.key in self._fields:
				raise LayoutConfigError(f"Duplicate field key in registry: {field.key}")
			if field.page_index < 0:
				raise LayoutConfigError(f"Field {field.key} has negative page index")
			self._fields[field.key] = field

	#============================================
	@classmethod
	def from_entries(cls, entries: collections.abc.Iterable[dict]) -> "FieldRegistry":
		"""
		Build a registry from raw layout entries.
		"""
		return cls(parse_field_entry(entry) for entry in entries)

	#============================================
	@classmethod
	def from_layout(cls, layout: dict) -> "FieldRegistry":
		return cls.from_entries(layout.get("fields") or [])

	def __contains__(self, key: str) -> bool:
		return key in self._fields

	def __len__(self) -> int:
		return len(self._fields)

	def __iter__(self):
		return iter(self._fields.values())

	#============================================
	def keys(self) -> list[str]:
		return list(self._fields)

	#============================================
	def get(self, key: str) -> FieldDescriptor:
		"""
		Look up a field descriptor.

		Args:
			key: Field key.

		Returns:
			FieldDescriptor.

		Raises:
			UnknownFieldError: When the key is not registered.
		"""
		field = self._fields.get(key)
		if field is None:
			raise UnknownFieldError(f"Unknown field key: {key}")
		return field

	#============================================
	def value_for(self, record: collections.abc.Mapping, key: str):
		"""
		Read a field value from a record, falling back to alias keys.

		Args:
			record: Input record.
			key: Field key.

		Returns:
			The first non-None value, or None.
		"""
		field = self.get(key)
		value = record.get(key)
		if value is not None:
			return value
		for alias in field.aliases:
			value = record.get(alias)
			if value is not None:
				return value
		return None

	#============================================
	def validate_pages(self, page_count: int) -> None:
		"""
		Check that every field addresses an existing template page.

		Args:
			page_count: Number of distinct template pages available.
		"""
		for field in self._fields.values():
			if field.page_index >= page_count:
				raise LayoutConfigError(
					f"Field {field.key} targets page {field.page_index + 1} "
					f"but the template has {page_count} page(s)"
				)
