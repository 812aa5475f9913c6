"""
Field geometry for the template editor.

The editor shows a page scaled by a zoom factor. Everything persisted is
expressed in the page-reference space (zoom 1.0), so pointer positions
are divided by the current zoom before they touch a field. Interactive
state (current page, zoom, selection, drag offset) lives in an
``EditorSession`` owned by the caller.
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Protocol

from policysign.documents.exceptions import FieldNotOnPage, InvalidPage, InvalidZoom
from policysign.documents.models import FieldType

ZOOM_MIN = 0.5
ZOOM_MAX = 3.0
ZOOM_STEP = 0.25
MIN_FIELD_SIZE = 10.0

# (width, height) in page units
DEFAULT_FIELD_SIZES = {
    FieldType.signature: (160.0, 50.0),
    FieldType.initials: (80.0, 40.0),
    FieldType.date: (120.0, 30.0),
    FieldType.text: (120.0, 30.0),
    FieldType.checkbox: (20.0, 20.0),
}
MULTILINE_TEXT_HEIGHT = 60.0


class PositionedField(Protocol):
    page_number: int
    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class Placement:
    page_number: int
    x: float
    y: float
    width: float
    height: float


def validate_page(page_number: int, page_count: int) -> int:
    if page_number < 1 or page_number > page_count:
        raise InvalidPage(f"Page {page_number} is outside 1..{page_count}")
    return page_number


def validate_zoom(zoom: float) -> float:
    if not ZOOM_MIN <= zoom <= ZOOM_MAX:
        raise InvalidZoom(f"Zoom {zoom} is outside {ZOOM_MIN}..{ZOOM_MAX}")
    return zoom


def to_page_space(pointer_x: float, pointer_y: float, zoom: float) -> tuple[float, float]:
    """Convert on-screen pointer coordinates to page-reference coordinates."""
    validate_zoom(zoom)
    return pointer_x / zoom, pointer_y / zoom


def clamp_origin(x: float, y: float) -> tuple[float, float]:
    return max(0.0, x), max(0.0, y)


def default_size(field_type: FieldType, multiline: bool = False) -> tuple[float, float]:
    width, height = DEFAULT_FIELD_SIZES[FieldType(field_type)]
    if multiline and field_type == FieldType.text:
        height = MULTILINE_TEXT_HEIGHT
    return width, height


def place_field(
    page_number: int,
    pointer_x: float,
    pointer_y: float,
    zoom: float,
    field_type: FieldType,
    page_count: int,
    multiline: bool = False,
) -> Placement:
    """Position for a new field dropped at the pointer."""
    validate_page(page_number, page_count)
    x, y = clamp_origin(*to_page_space(pointer_x, pointer_y, zoom))
    width, height = default_size(field_type, multiline)
    return Placement(page_number=page_number, x=x, y=y, width=width, height=height)


def move_field(
    field: PositionedField,
    pointer_x: float,
    pointer_y: float,
    zoom: float,
    offset_x: float = 0.0,
    offset_y: float = 0.0,
) -> Placement:
    """New origin for ``field`` when dragged to the pointer.

    ``offset_x``/``offset_y`` are the grab point inside the field, already in
    page units.
    """
    px, py = to_page_space(pointer_x, pointer_y, zoom)
    x, y = clamp_origin(px - offset_x, py - offset_y)
    return Placement(page_number=field.page_number, x=x, y=y, width=field.width, height=field.height)


def resize_field(field: PositionedField, screen_width: float, screen_height: float, zoom: float) -> Placement:
    validate_zoom(zoom)
    width = max(MIN_FIELD_SIZE, screen_width / zoom)
    height = max(MIN_FIELD_SIZE, screen_height / zoom)
    x, y = clamp_origin(field.x, field.y)
    return Placement(page_number=field.page_number, x=x, y=y, width=width, height=height)


def contains(field: PositionedField, x: float, y: float) -> bool:
    return field.x <= x <= field.x + field.width and field.y <= y <= field.y + field.height


@dataclass
class EditorSession:
    """Per-user editor state for one document."""

    page_count: int
    current_page: int = 1
    zoom: float = 1.0
    selected_field_id: Optional[object] = None
    drag_offset: Optional[tuple[float, float]] = None

    def __post_init__(self):
        validate_page(self.current_page, self.page_count)
        validate_zoom(self.zoom)

    def go_to_page(self, page_number: int) -> None:
        validate_page(page_number, self.page_count)
        self.end_drag()
        self.selected_field_id = None
        self.current_page = page_number

    def set_zoom(self, zoom: float) -> None:
        self.zoom = validate_zoom(zoom)

    def zoom_in(self) -> float:
        self.zoom = min(self.zoom + ZOOM_STEP, ZOOM_MAX)
        return self.zoom

    def zoom_out(self) -> float:
        self.zoom = max(self.zoom - ZOOM_STEP, ZOOM_MIN)
        return self.zoom

    def reset_zoom(self) -> float:
        self.zoom = 1.0
        return self.zoom

    def fields_on_page(self, fields: Iterable[PositionedField]) -> list:
        return [f for f in fields if f.page_number == self.current_page]

    def hit_test(self, fields: Iterable[PositionedField], pointer_x: float, pointer_y: float):
        """Topmost field under the pointer on the current page, or None."""
        x, y = to_page_space(pointer_x, pointer_y, self.zoom)
        hits = [f for f in self.fields_on_page(fields) if contains(f, x, y)]
        return hits[-1] if hits else None

    def place(self, pointer_x: float, pointer_y: float, field_type: FieldType, multiline: bool = False) -> Placement:
        return place_field(
            self.current_page, pointer_x, pointer_y, self.zoom, field_type, self.page_count, multiline
        )

    def begin_drag(self, field, pointer_x: float, pointer_y: float) -> None:
        if field.page_number != self.current_page:
            raise FieldNotOnPage(f"Field is on page {field.page_number}, editor shows page {self.current_page}")
        px, py = to_page_space(pointer_x, pointer_y, self.zoom)
        self.selected_field_id = getattr(field, "id", None)
        self.drag_offset = (px - field.x, py - field.y)

    def drag_to(self, field, pointer_x: float, pointer_y: float) -> Placement:
        if field.page_number != self.current_page:
            raise FieldNotOnPage(f"Field is on page {field.page_number}, editor shows page {self.current_page}")
        offset_x, offset_y = self.drag_offset or (0.0, 0.0)
        return move_field(field, pointer_x, pointer_y, self.zoom, offset_x, offset_y)

    def end_drag(self) -> None:
        self.drag_offset = None
