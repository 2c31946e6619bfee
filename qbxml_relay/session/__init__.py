"""Session storage and the Web Connector protocol state machine."""

from qbxml_relay.session.machine import (
    AuthenticateCall,
    BeginExchangeCall,
    CloseConnectionCall,
    CompleteExchangeCall,
    ConnectionErrorCall,
    ConnectorCall,
    ConnectorState,
    GetLastErrorCall,
    WebConnectorSession,
    default_request_source,
    query_request_source,
)
from qbxml_relay.session.store import (
    FileSessionStore,
    InMemorySessionStore,
    SessionExistsError,
    SessionStore,
    SessionStoreError,
)

__all__ = [
    "AuthenticateCall",
    "BeginExchangeCall",
    "CompleteExchangeCall",
    "ConnectionErrorCall",
    "GetLastErrorCall",
    "CloseConnectionCall",
    "ConnectorCall",
    "ConnectorState",
    "WebConnectorSession",
    "default_request_source",
    "query_request_source",
    "SessionStore",
    "InMemorySessionStore",
    "FileSessionStore",
    "SessionExistsError",
    "SessionStoreError",
]
