from fastapi import status

from policysign.common.exceptions import Conflict, DomainError, NotFound, ValidationFailed


class SignatureRequestNotFound(NotFound):
    """Signature request not found"""

    code = "signature_request_not_found"


class SignerNotFound(NotFound):
    """Signer not found"""

    code = "signer_not_found"


# ── Validation ──────────────────────────────────────────────────────────────────


class InvalidSigner(ValidationFailed):
    """Signer data is incomplete"""

    code = "invalid_signer"


class NoFieldsDefined(ValidationFailed):
    """The document has no fields to sign"""

    code = "no_fields_defined"


class InvalidExpiry(ValidationFailed):
    """Expiration must be in the future"""

    code = "invalid_expiry"


class NoChannels(ValidationFailed):
    """At least one notification channel is required"""

    code = "no_channels"


class MissingRequiredField(ValidationFailed):
    """Required fields are missing"""

    code = "missing_required_field"


class InvalidFieldValue(ValidationFailed):
    """Field values have the wrong type"""

    code = "invalid_field_value"


class FieldNotFillable(ValidationFailed):
    """Fields cannot be filled by this signer"""

    code = "field_not_fillable"


# ── Security ────────────────────────────────────────────────────────────────────


class TokenError(DomainError):
    """Signing link is not valid"""

    code = "token_invalid"
    status_code = status.HTTP_404_NOT_FOUND


class TokenNotFound(TokenError):
    """Signing link is not valid"""

    code = "token_not_found"


class TokenRevoked(TokenNotFound):
    """Signing link has been revoked"""

    code = "token_revoked"


class TokenExpired(TokenError):
    """Signing link has expired"""

    code = "token_expired"
    status_code = status.HTTP_410_GONE


class AlreadySigned(TokenError):
    """Document was already signed with this link"""

    code = "already_signed"
    status_code = status.HTTP_409_CONFLICT


# ── State ───────────────────────────────────────────────────────────────────────


class DocumentBusy(Conflict):
    """Document already has an open signature request"""

    code = "document_busy"


class InvalidTransition(Conflict):
    """Request is not in a state that allows this action"""

    code = "invalid_transition"
