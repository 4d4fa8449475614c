"""
Offset override store and coordinate resolution.

Offsets are deltas added to a field's anchor. For every (field, axis):

	caller row override, when set, is the offset;
	otherwise (caller field override or layout field default or 0)
	plus the layout row default for that row.
"""

# Standard Library
import collections.abc
import dataclasses
import logging
import types

# local repo modules
import drill_forms.config
import drill_forms.registry


FieldRegistry = drill_forms.registry.FieldRegistry
UnknownFieldError = drill_forms.config.UnknownFieldError

AXES = ("x", "y")

logger = logging.getLogger(__name__)

AxisMap = collections.abc.Mapping[str, float]
FieldOffsetMap = collections.abc.Mapping[str, AxisMap]
RowOffsetMap = collections.abc.Mapping[int, FieldOffsetMap]


#============================================
def resolve_offset(
	default: float | None,
	field_override: float | None,
	row_override: float | None,
) -> float:
	"""
	Pick the winning offset from the three tiers.

	Args:
		default: Compiled default offset, or None.
		field_override: Field-level override, or None.
		row_override: Row-level override, or None.

	Returns:
		Offset value; 0.0 when no tier has a value.
	"""
	if row_override is not None:
		return row_override
	if field_override is not None:
		return field_override
	if default is not None:
		return default
	return 0.0


#============================================
def to_float(value) -> float | None:
	"""
	Parse a caller number; comma decimals are accepted, junk gives None.
	"""
	if value is None or isinstance(value, bool):
		return None
	if isinstance(value, (int, float)):
		return float(value)
	text = str(value).strip().replace(",", ".")
	if not text:
		return None
	try:
		return float(text)
	except ValueError:
		return None


#============================================
def _freeze_axes(raw) -> types.MappingProxyType:
	axes: dict[str, float] = {}
	if isinstance(raw, collections.abc.Mapping):
		for axis in AXES:
			number = to_float(raw.get(axis))
			if number is not None:
				axes[axis] = number
	return types.MappingProxyType(axes)


#============================================
def parse_field_offsets(raw, registry: FieldRegistry | None = None) -> dict[str, types.MappingProxyType]:
	"""
	Parse a {field: {x, y}} map, dropping unparseable numbers.

	Args:
		raw: Raw mapping from a record or layout table.
		registry: When given, every field key must be registered.

	Returns:
		Normalized mapping of field key to axis offsets.
	"""
	parsed: dict[str, types.MappingProxyType] = {}
	if not isinstance(raw, collections.abc.Mapping):
		return parsed
	for key, axes in raw.items():
		key = str(key)
		if registry is not None and key not in registry:
			raise UnknownFieldError(f"Offset override references unknown field: {key}")
		frozen = _freeze_axes(axes)
		if frozen:
			parsed[key] = frozen
	return parsed


#============================================
def parse_row_offsets(raw, registry: FieldRegistry | None = None) -> dict[int, dict]:
	"""
	Parse a {row_index: {field: {x, y}}} map.

	Row keys arrive as strings from JSON; keys that are not integers are
	skipped.
	"""
	parsed: dict[int, dict] = {}
	if not isinstance(raw, collections.abc.Mapping):
		return parsed
	for row_key, fields in raw.items():
		try:
			row_index = int(row_key)
		except (TypeError, ValueError):
			logger.warning("Ignoring row offset with non-integer row key %r", row_key)
			continue
		row_fields = parse_field_offsets(fields, registry)
		if row_fields:
			parsed[row_index] = row_fields
	return parsed


@dataclasses.dataclass(frozen=True)
class OffsetConfig:
	"""
	Immutable bundle of offset tiers passed into every render call.
	"""
	field_defaults: FieldOffsetMap = dataclasses.field(default_factory=dict)
	row_defaults: RowOffsetMap = dataclasses.field(default_factory=dict)
	field_overrides: FieldOffsetMap = dataclasses.field(default_factory=dict)
	row_overrides: RowOffsetMap = dataclasses.field(default_factory=dict)
	locked_axes: collections.abc.Mapping[str, frozenset] = dataclasses.field(default_factory=dict)

	#============================================
	@classmethod
	def from_layout(cls, layout: dict, registry: FieldRegistry | None = None) -> "OffsetConfig":
		"""
		Build the compiled defaults from a layout table.
		"""
		section = layout.get("offsets") or {}
		locked = {
			str(key): frozenset(str(axis) for axis in axes)
			for key, axes in (section.get("locked") or {}).items()
		}
		return cls(
			field_defaults=parse_field_offsets(section.get("fields"), registry),
			row_defaults=parse_row_offsets(section.get("rows"), registry),
			locked_axes=locked,
		)

	#============================================
	@classmethod
	def from_record(
		cls,
		record: collections.abc.Mapping,
		defaults: "OffsetConfig | None" = None,
		registry: FieldRegistry | None = None,
		field_key: str = "field_offsets",
		row_key: str = "row_field_offsets",
	) -> "OffsetConfig":
		"""
		Layer caller overrides from an input record on top of defaults.

		Args:
			record: Input record.
			defaults: Compiled defaults (from_layout), optional.
			registry: Registry used to reject unknown field keys.
			field_key: Record key holding field-level overrides.
			row_key: Record key holding row-level overrides.

		Returns:
			New OffsetConfig.
		"""
		base = defaults or cls()
		return dataclasses.replace(
			base,
			field_overrides=parse_field_offsets(record.get(field_key), registry),
			row_overrides=parse_row_offsets(record.get(row_key), registry),
		)

	#============================================
	def offset(self, key: str, axis: str, row_index: int | None = None) -> float:
		"""
		Resolve the offset for one field axis.

		Args:
			key: Field key.
			axis: "x" or "y".
			row_index: Local row index for row-level tiers, or None.

		Returns:
			Offset delta.
		"""
		if axis not in AXES:
			raise ValueError(f"axis must be 'x' or 'y', got {axis!r}")
		locked = axis in self.locked_axes.get(key, frozenset())
		default = self.field_defaults.get(key, {}).get(axis)
		field_override = None
		if not locked:
			field_override = self.field_overrides.get(key, {}).get(axis)
		row_override = None
		row_default = None
		if row_index is not None:
			row_default = self.row_defaults.get(row_index, {}).get(key, {}).get(axis)
			if not locked:
				row_override = self.row_overrides.get(row_index, {}).get(key, {}).get(axis)
		value = resolve_offset(default, field_override, row_override)
		# layout row calibration stacks on the field tier
		if row_override is None and row_default is not None:
			value += row_default
		return value


#============================================
def resolve_coordinate(
	registry: FieldRegistry,
	offsets: OffsetConfig,
	key: str,
	axis: str,
	row_index: int | None = None,
) -> float:
	"""
	Compute a field's final coordinate on one axis.

	Args:
		registry: Field registry.
		offsets: Offset tiers.
		key: Field key; must be registered.
		axis: "x" or "y".
		row_index: Optional local row index.

	Returns:
		Anchor plus resolved offset.
	"""
	field = registry.get(key)
	anchor = field.x if axis == "x" else field.y
	return anchor + offsets.offset(key, axis, row_index)
