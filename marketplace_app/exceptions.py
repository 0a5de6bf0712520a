"""
Domain exceptions.

Services raise these; routers translate them to HTTP responses and the
realtime router drops the offending frame. Transient I/O failures
(geo lookup, attribution writes) never become exceptions at the caller:
they are logged and replaced by defaults where they happen.
"""


class MarketplaceError(Exception):
    """Base class for all domain errors"""


class NotFoundError(MarketplaceError):
    """Referenced entity does not exist (4xx, never retried)"""


class TrackingCodeNotFound(NotFoundError):
    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Tracking code not found: {code!r}")


class ApplicationNotFound(NotFoundError):
    def __init__(self, application_id: str):
        self.application_id = application_id
        super().__init__(f"Application not found: {application_id}")


class ConversationNotFound(NotFoundError):
    def __init__(self, conversation_id: str):
        self.conversation_id = conversation_id
        super().__init__(f"Conversation not found: {conversation_id}")


class InconsistencyError(MarketplaceError):
    """Stored data contradicts itself (5xx, logged, never retried)"""


class OfferMissingError(InconsistencyError):
    def __init__(self, application_id: str, offer_id: str):
        self.application_id = application_id
        self.offer_id = offer_id
        super().__init__(
            f"Application {application_id} references missing offer {offer_id}"
        )


class ProtocolError(MarketplaceError):
    """Malformed or unauthorized realtime frame; dropped per frame"""


class PermissionDeniedError(MarketplaceError):
    """Caller is not a party to the resource (403)"""
