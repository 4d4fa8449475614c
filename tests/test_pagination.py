import pytest

import drill_forms.config
import drill_forms.pagination


PageFlowPlan = drill_forms.pagination.PageFlowPlan


#============================================
def build_two_page_plan() -> PageFlowPlan:
	return PageFlowPlan(rows_per_page=(4, 8), base_y_offset=(600.0, 600.0), row_pitch=18.0)


#============================================
def test_capacity_and_locate() -> None:
	"""
	Rows fill page 1 first, then continue at the top of page 2.
	"""
	plan = build_two_page_plan()
	assert plan.capacity == 12
	first = plan.locate(0)
	assert (first.page_index, first.local_row_index, first.y_offset) == (0, 0, 600.0)
	last_on_first = plan.locate(3)
	assert (last_on_first.page_index, last_on_first.local_row_index) == (0, 3)
	assert last_on_first.y_offset == 600.0 - 3 * 18.0
	fifth = plan.locate(4)
	assert (fifth.page_index, fifth.local_row_index, fifth.y_offset) == (1, 0, 600.0)
	assert plan.locate(11).page_index == 1
	assert plan.locate(12) is None


#============================================
def test_every_row_lands_exactly_once() -> None:
	plan = build_two_page_plan()
	seen = set()
	for index in range(plan.capacity):
		slot = plan.locate(index)
		key = (slot.page_index, slot.local_row_index)
		assert key not in seen
		seen.add(key)
	assert len(seen) == plan.capacity


#============================================
def test_pages_used_and_dropped() -> None:
	plan = build_two_page_plan()
	assert plan.pages_used(0) == 0
	assert plan.pages_used(4) == 1
	assert plan.pages_used(5) == 2
	assert plan.pages_used(30) == 2
	assert plan.dropped(12) == 0
	assert plan.dropped(15) == 3


#============================================
def test_zero_capacity_page_is_skipped() -> None:
	plan = PageFlowPlan(rows_per_page=(0, 3), base_y_offset=(500.0, 700.0), row_pitch=20.0)
	slot = plan.locate(0)
	assert slot.page_index == 1
	assert slot.y_offset == 700.0
	assert plan.pages_used(1) == 2


#============================================
def test_non_uniform_offsets_apply_to_selected_pages() -> None:
	plan = PageFlowPlan(
		rows_per_page=(2, 3),
		base_y_offset=(100.0, 100.0),
		row_pitch=10.0,
		non_uniform_row_offsets=(0.0, 2.0, 5.0),
		non_uniform_pages=frozenset({1}),
		x_offset=(0.0, 4.0),
	)
	assert plan.locate(1).y_offset == 90.0
	second_page = [plan.locate(index) for index in range(2, 5)]
	assert [slot.y_offset for slot in second_page] == [100.0, 88.0, 75.0]
	assert all(slot.x_offset == 4.0 for slot in second_page)


#============================================
def test_negative_index_raises() -> None:
	with pytest.raises(ValueError):
		build_two_page_plan().locate(-1)


#============================================
def test_mismatched_lengths_raise() -> None:
	with pytest.raises(drill_forms.config.LayoutConfigError):
		PageFlowPlan(rows_per_page=(4, 8), base_y_offset=(600.0,), row_pitch=18.0)


#============================================
def test_from_layout_clamps_tuned_capacity() -> None:
	"""
	Caller-tuned capacities cannot exceed the calibrated maxima.
	"""
	entry = {
		"rows_per_page": [4, 8],
		"max_rows_per_page": [4, 8],
		"base_y": [0, 280],
		"pitch": 95,
		"non_uniform_pages": [2],
	}
	plan = PageFlowPlan.from_layout(entry, {"rows_per_page": [9, "x"], "pitch": "90"})
	assert plan.rows_per_page == (4, 8)
	assert plan.row_pitch == 90.0
	assert plan.non_uniform_pages == frozenset({1})
	plan = PageFlowPlan.from_layout(entry, {"rows_per_page": [2, 3]})
	assert plan.rows_per_page == (2, 3)


#============================================
def test_from_layout_rejects_broken_entry() -> None:
	with pytest.raises(drill_forms.config.LayoutConfigError):
		PageFlowPlan.from_layout({"rows_per_page": [4]})


#============================================
def test_locate_sub_entry() -> None:
	assert drill_forms.pagination.locate_sub_entry(0, 10) == (0, 0)
	assert drill_forms.pagination.locate_sub_entry(13, 10) == (1, 3)
	assert drill_forms.pagination.locate_sub_entry(3, 2) == (1, 1)
	assert drill_forms.pagination.locate_sub_entry(3, 0) is None


#============================================
def test_record_rows_and_chunks() -> None:
	record = {"rows": None, "tableRows": [{"a": 1}, "junk", {"a": 2}]}
	rows = drill_forms.pagination.record_rows(record, "rows", "tableRows")
	assert rows == [{"a": 1}, {"a": 2}]
	assert drill_forms.pagination.record_rows({}, "rows") == []
	assert drill_forms.pagination.chunk_rows([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]


#============================================
def test_sixth_row_uses_second_page_pitch_list() -> None:
	"""
	Twelve rows over [4, 8]: row index 5 is the second row on page 2.
	"""
	plan = PageFlowPlan(
		rows_per_page=(4, 8),
		base_y_offset=(600.0, 600.0),
		row_pitch=18.0,
		non_uniform_row_offsets=(0.0, 3.0, 5.0, 8.0, 10.0, 13.0, 15.0, 18.0),
		non_uniform_pages=frozenset({1}),
	)
	slots = [plan.locate(index) for index in range(12)]
	assert all(slot is not None for slot in slots)
	assert (slots[5].page_index, slots[5].local_row_index) == (1, 1)
	assert slots[5].y_offset == 600.0 - 1 * 18.0 - 3.0
	assert slots[3].y_offset == 600.0 - 3 * 18.0
