# Import every model so they all register with Base.metadata.
from policysign.documents.models import Document, SignatureField  # noqa: F401
from policysign.esign.models import DocumentEvent, NotificationLog, SignatureRequest, Signer  # noqa: F401
