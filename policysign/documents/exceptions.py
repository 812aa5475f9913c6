from policysign.common.exceptions import Conflict, NotFound, ValidationFailed


class DocumentNotFound(NotFound):
    """Document not found"""

    code = "document_not_found"


class FieldNotFound(NotFound):
    """Field not found"""

    code = "field_not_found"


class InvalidPage(ValidationFailed):
    """Page number is outside the document"""

    code = "invalid_page"


class InvalidZoom(ValidationFailed):
    """Zoom factor is outside the supported range"""

    code = "invalid_zoom"


class FieldsOutOfRange(ValidationFailed):
    """Fields would be left past the last page"""

    code = "fields_out_of_range"


class FieldNotOnPage(Conflict):
    """Field is not on the page currently displayed"""

    code = "field_not_on_page"


class FieldLocked(Conflict):
    """Field can no longer be edited"""

    code = "field_locked"
