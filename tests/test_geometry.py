"""
Tests for field geometry and the editor session.

Covers zoom-independent placement, clamping to the page origin, default
sizes, resizing limits, page-scoped hit testing and dragging.
"""

from dataclasses import dataclass

import pytest

from policysign.documents import geometry
from policysign.documents.exceptions import FieldNotOnPage, InvalidPage, InvalidZoom
from policysign.documents.models import FieldType


@dataclass
class _Field:
    page_number: int
    x: float
    y: float
    width: float
    height: float
    id: str = "f"


# ---------------------------------------------------------------------------
# Placement
# ---------------------------------------------------------------------------

class TestPlacement:
    """A field keeps the same page position whatever the zoom it was placed at."""

    def test_same_page_position_at_different_zooms(self):
        at_100 = geometry.place_field(1, 100, 100, 1.0, FieldType.signature, page_count=2)
        at_200 = geometry.place_field(1, 200, 200, 2.0, FieldType.signature, page_count=2)
        assert (at_100.x, at_100.y) == (100, 100)
        assert (at_200.x, at_200.y) == (100, 100)

    def test_half_zoom_scales_up(self):
        placement = geometry.place_field(1, 50, 40, 0.5, FieldType.text, page_count=1)
        assert (placement.x, placement.y) == (100, 80)

    def test_negative_coordinates_clamped_to_origin(self):
        placement = geometry.place_field(1, -30, -5, 1.0, FieldType.checkbox, page_count=1)
        assert (placement.x, placement.y) == (0, 0)

    @pytest.mark.parametrize(
        "field_type,multiline,size",
        [
            (FieldType.signature, False, (160, 50)),
            (FieldType.initials, False, (80, 40)),
            (FieldType.date, False, (120, 30)),
            (FieldType.text, False, (120, 30)),
            (FieldType.text, True, (120, 60)),
            (FieldType.checkbox, False, (20, 20)),
        ],
    )
    def test_default_sizes(self, field_type, multiline, size):
        placement = geometry.place_field(1, 0, 0, 1.0, field_type, page_count=1, multiline=multiline)
        assert (placement.width, placement.height) == size

    def test_page_outside_document_rejected(self):
        with pytest.raises(InvalidPage):
            geometry.place_field(4, 10, 10, 1.0, FieldType.signature, page_count=3)
        with pytest.raises(InvalidPage):
            geometry.place_field(0, 10, 10, 1.0, FieldType.signature, page_count=3)

    @pytest.mark.parametrize("zoom", [0.25, 3.5, 0])
    def test_zoom_outside_range_rejected(self, zoom):
        with pytest.raises(InvalidZoom):
            geometry.place_field(1, 10, 10, zoom, FieldType.signature, page_count=1)


# ---------------------------------------------------------------------------
# Move and resize
# ---------------------------------------------------------------------------

class TestMoveAndResize:
    def test_move_keeps_size_and_page(self):
        field = _Field(page_number=2, x=10, y=10, width=160, height=50)
        placement = geometry.move_field(field, 300, 150, 1.5)
        assert (placement.x, placement.y) == (200, 100)
        assert (placement.width, placement.height) == (160, 50)
        assert placement.page_number == 2

    def test_move_clamps_at_origin(self):
        field = _Field(page_number=1, x=10, y=10, width=20, height=20)
        placement = geometry.move_field(field, 5, 5, 1.0, offset_x=15, offset_y=15)
        assert (placement.x, placement.y) == (0, 0)

    def test_resize_converts_screen_size(self):
        field = _Field(page_number=1, x=10, y=10, width=160, height=50)
        placement = geometry.resize_field(field, 400, 100, 2.0)
        assert (placement.width, placement.height) == (200, 50)
        assert (placement.x, placement.y) == (10, 10)

    def test_resize_enforces_minimum(self):
        field = _Field(page_number=1, x=0, y=0, width=160, height=50)
        placement = geometry.resize_field(field, 4, 2, 1.0)
        assert (placement.width, placement.height) == (geometry.MIN_FIELD_SIZE, geometry.MIN_FIELD_SIZE)


# ---------------------------------------------------------------------------
# Editor session
# ---------------------------------------------------------------------------

class TestEditorSession:
    def test_zoom_steps_are_bounded(self):
        session = geometry.EditorSession(page_count=1, zoom=2.75)
        assert session.zoom_in() == 3.0
        assert session.zoom_in() == 3.0
        session.set_zoom(0.75)
        assert session.zoom_out() == 0.5
        assert session.zoom_out() == 0.5
        assert session.reset_zoom() == 1.0

    def test_set_zoom_validates(self):
        session = geometry.EditorSession(page_count=1)
        with pytest.raises(InvalidZoom):
            session.set_zoom(4.0)
        assert session.zoom == 1.0

    def test_hit_test_only_sees_current_page(self):
        on_page_one = _Field(page_number=1, x=100, y=100, width=160, height=50, id="one")
        on_page_two = _Field(page_number=2, x=100, y=100, width=160, height=50, id="two")
        session = geometry.EditorSession(page_count=2)

        assert session.hit_test([on_page_one, on_page_two], 120, 120).id == "one"
        session.go_to_page(2)
        assert session.hit_test([on_page_one, on_page_two], 120, 120).id == "two"
        assert session.hit_test([on_page_one, on_page_two], 10, 10) is None

    def test_hit_test_uses_zoom(self):
        field = _Field(page_number=1, x=100, y=100, width=20, height=20)
        session = geometry.EditorSession(page_count=1, zoom=2.0)
        assert session.hit_test([field], 220, 220) is field
        assert session.hit_test([field], 120, 120) is None

    def test_topmost_field_wins(self):
        below = _Field(page_number=1, x=0, y=0, width=100, height=100, id="below")
        above = _Field(page_number=1, x=50, y=50, width=100, height=100, id="above")
        session = geometry.EditorSession(page_count=1)
        assert session.hit_test([below, above], 75, 75).id == "above"

    def test_drag_keeps_grab_point_across_zoom_change(self):
        field = _Field(page_number=1, x=100, y=100, width=160, height=50)
        session = geometry.EditorSession(page_count=1)
        session.begin_drag(field, 110, 120)
        assert session.drag_offset == (10, 20)

        session.set_zoom(2.0)
        placement = session.drag_to(field, 420, 440)
        assert (placement.x, placement.y) == (200, 200)
        session.end_drag()
        assert session.drag_offset is None

    def test_drag_rejects_field_on_other_page(self):
        field = _Field(page_number=2, x=0, y=0, width=10, height=10)
        session = geometry.EditorSession(page_count=2)
        with pytest.raises(FieldNotOnPage):
            session.begin_drag(field, 5, 5)

    def test_changing_page_drops_selection(self):
        field = _Field(page_number=1, x=0, y=0, width=10, height=10)
        session = geometry.EditorSession(page_count=2)
        session.begin_drag(field, 5, 5)
        session.go_to_page(2)
        assert session.selected_field_id is None
        assert session.drag_offset is None

    def test_invalid_initial_page(self):
        with pytest.raises(InvalidPage):
            geometry.EditorSession(page_count=2, current_page=3)
