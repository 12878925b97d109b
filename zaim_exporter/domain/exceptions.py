"""Domain-specific exceptions"""


class ExporterError(Exception):
    """Base exception for the exporter"""

    pass


class NotFoundError(ExporterError):
    """Requested item does not exist (expected, not a failure)"""

    pass


class CredentialNotFoundError(NotFoundError):
    """No access credential has been stored yet"""

    pass


class HandshakeNotFoundError(NotFoundError):
    """Handshake entry is unknown, already consumed, or expired"""

    pass


class CredentialStoreError(ExporterError):
    """Credential storage could not be read or written"""

    pass


class InvalidCredentialError(CredentialStoreError):
    """Stored credential is malformed, tampered with, or encrypted with another key"""

    pass


class HandshakeStoreError(ExporterError):
    """Handshake backend failed"""

    pass


class UpstreamError(ExporterError):
    """Zaim rejected the request or the network failed"""

    pass


class FetchTimeoutError(ExporterError):
    """Transaction fetch exceeded its deadline"""

    pass


class RegistrationError(ExporterError):
    """Metrics registry rejected a collector registration"""

    pass
