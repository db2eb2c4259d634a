from .client import BackendClient, PROTOCOL_VERSION

__all__ = ["BackendClient", "PROTOCOL_VERSION"]
