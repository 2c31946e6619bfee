"""Web Connector session protocol.

The Connector drives a conversation through six stateless SOAP calls:
``authenticate`` opens a session, ``sendRequestXML`` pulls the next request,
``receiveResponseXML`` pushes QuickBooks' answer, and ``connectionError`` /
``closeConnection`` end it. Every call answers with a fixed sentinel when
anything goes wrong; the Connector has no other error channel, so nothing
raised here may reach it.
"""

from __future__ import annotations

import inspect
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, ClassVar, Generator, Optional, Union

from qbxml_relay.config.settings import ProcessorConfig, SessionConfig
from qbxml_relay.errors.classifier import classify, log_classified
from qbxml_relay.models.entities import Entity
from qbxml_relay.models.results import ProcessingResult
from qbxml_relay.models.session import INVALID_USER, Session, SessionStats, SessionStatus, utcnow
from qbxml_relay.models.types import EntityType
from qbxml_relay.processor.pipeline import QBXMLProcessor
from qbxml_relay.qbxml.builder import build_query_request
from qbxml_relay.session.store import InMemorySessionStore, SessionStore
from qbxml_relay.utils.logging import (
    clear_session_context,
    get_logger,
    new_request_id,
    set_request_id,
    set_session_context,
)

logger = get_logger("session.machine")

DONE = "done"
CLOSED_OK = "OK"
PROGRESS_COMPLETE = 100
PROGRESS_FAILED = -1
SUCCESS_HRESULTS = ("", "0")

RequestSource = Callable[[Session], Union[str, Awaitable[str]]]
EntitySink = Callable[[ProcessingResult[Entity]], Awaitable[None]]
Authenticator = Callable[[str, str], Union[bool, Awaitable[bool]]]


class ConnectorState(Enum):
    """Where a ticket stands in the protocol."""

    NO_SESSION = "no_session"
    ACTIVE = "active"
    CLOSED = "closed"
    EXPIRED = "expired"


@dataclass(frozen=True)
class AuthenticateCall:
    wire_name: ClassVar[str] = "authenticate"

    user: str = ""
    password: str = ""


@dataclass(frozen=True)
class BeginExchangeCall:
    wire_name: ClassVar[str] = "sendRequestXML"

    ticket: str = ""


@dataclass(frozen=True)
class CompleteExchangeCall:
    wire_name: ClassVar[str] = "receiveResponseXML"

    ticket: str = ""
    response: str = ""
    hresult: str = ""
    message: str = ""


@dataclass(frozen=True)
class ConnectionErrorCall:
    wire_name: ClassVar[str] = "connectionError"

    ticket: str = ""
    hresult: str = ""
    message: str = ""


@dataclass(frozen=True)
class GetLastErrorCall:
    wire_name: ClassVar[str] = "getLastError"

    ticket: str = ""


@dataclass(frozen=True)
class CloseConnectionCall:
    wire_name: ClassVar[str] = "closeConnection"

    ticket: str = ""


ConnectorCall = Union[
    AuthenticateCall,
    BeginExchangeCall,
    CompleteExchangeCall,
    ConnectionErrorCall,
    GetLastErrorCall,
    CloseConnectionCall,
]


def default_request_source(session: Session) -> str:
    """The fixed customer query handed out on every exchange."""
    return build_query_request(
        EntityType.CUSTOMER,
        request_id="1",
        max_returned=100,
        on_error="stopOnError",
    )


def query_request_source(config: ProcessorConfig) -> RequestSource:
    """Request source querying the configured default entity type."""

    def _source(session: Session) -> str:
        return build_query_request(
            config.default_entity_type,
            request_id=str(session.requests_sent + 1),
            max_returned=config.max_returned,
            qbxml_version=config.qbxml_version,
        )

    return _source


async def log_entity_handoff(result: ProcessingResult[Entity]) -> None:
    """Default sink: record what would be handed downstream."""
    logger.info(
        "entities_ready",
        request_id=result.metadata.request_id,
        entity_type=result.metadata.entity_type.value if result.metadata.entity_type else None,
        records=len(result.data),
        warnings=len(result.warnings),
    )


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class WebConnectorSession:
    """
    The session protocol state machine.

    Holds no conversation state itself; everything lives in the store, so
    one instance can serve any number of concurrent Connectors.
    """

    def __init__(
        self,
        store: Optional[SessionStore] = None,
        processor: Optional[QBXMLProcessor] = None,
        session_config: Optional[SessionConfig] = None,
        request_source: RequestSource = default_request_source,
        entity_sink: EntitySink = log_entity_handoff,
        authenticator: Optional[Authenticator] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """
        Initialize the state machine.

        Args:
            store: Session store (in-memory if omitted)
            processor: Pipeline used for inbound responses
            session_config: TTL settings
            request_source: Produces the outbound document for a session
            entity_sink: Receives successfully processed responses
            authenticator: Credential check; any non-empty pair is accepted
                when omitted
            clock: Current time, injectable for expiry tests
        """
        self.store = store if store is not None else InMemorySessionStore()
        self.processor = processor if processor is not None else QBXMLProcessor()
        self.session_config = session_config if session_config is not None else SessionConfig()
        self.request_source = request_source
        self.entity_sink = entity_sink
        self.authenticator = authenticator
        self.clock = clock

    @property
    def ttl(self) -> timedelta:
        return timedelta(hours=self.session_config.ttl_hours)

    async def dispatch(self, call: ConnectorCall) -> Union[str, int]:
        """Route a decoded Connector call to its operation."""
        match call:
            case AuthenticateCall(user=user, password=password):
                return await self.authenticate(user, password)
            case BeginExchangeCall(ticket=ticket):
                return await self.begin_exchange(ticket)
            case CompleteExchangeCall(ticket=ticket, response=response, hresult=hresult, message=message):
                return await self.complete_exchange(ticket, response, hresult, message)
            case ConnectionErrorCall(ticket=ticket, hresult=hresult, message=message):
                return await self.report_connection_error(ticket, hresult, message)
            case GetLastErrorCall(ticket=ticket):
                return await self.get_last_error(ticket)
            case CloseConnectionCall(ticket=ticket):
                return await self.close_connection(ticket)
            case _:
                raise TypeError(f"Unsupported connector call: {call!r}")

    async def authenticate(self, user: str, password: str) -> str:
        """
        Open a session.

        Returns:
            The new ticket, or ``"nvu"`` for empty or rejected credentials
            and for any store failure
        """
        with self._call_context("", AuthenticateCall.wire_name):
            if not user or not password:
                logger.info("authentication_rejected", user=user, reason="missing_credentials")
                return INVALID_USER

            try:
                if self.authenticator is not None:
                    accepted = await _maybe_await(self.authenticator(user, password))
                    if not accepted:
                        logger.info("authentication_rejected", user=user, reason="invalid_credentials")
                        return INVALID_USER

                session = Session.open(user, self.ttl, now=self.clock())
                await self.store.create(session)
            except Exception as e:
                self._log_fault(e, "", AuthenticateCall.wire_name, user=user)
                return INVALID_USER

            logger.info("session_opened", ticket=session.ticket, user=user)
            return session.ticket

    async def begin_exchange(self, ticket: str) -> str:
        """
        Hand out the next request for a live session.

        Returns:
            QBXML request text, or ``""`` when the ticket is unknown, closed
            or expired (the Connector treats empty as "nothing to do")
        """
        with self._call_context(ticket, BeginExchangeCall.wire_name):
            try:
                session = await self._load_session(ticket)
                if session is None:
                    return ""

                await self.store.update_activity(ticket, self.clock(), count_request=True)
                request = await _maybe_await(self.request_source(session))
            except Exception as e:
                self._log_fault(e, ticket, BeginExchangeCall.wire_name)
                return ""

            logger.info(
                "request_sent",
                requests_sent=session.requests_sent + 1,
                size=len(request or ""),
            )
            return request or ""

    async def complete_exchange(
        self,
        ticket: str,
        response: str,
        hresult: str,
        message: str,
    ) -> int:
        """
        Accept QuickBooks' response for the last request.

        Returns:
            100 for any known session (pipeline failures are only logged),
            -1 for an unknown, closed or expired ticket
        """
        with self._call_context(ticket, CompleteExchangeCall.wire_name):
            try:
                session = await self._load_session(ticket)
                if session is None:
                    return PROGRESS_FAILED

                await self.store.update_activity(ticket, self.clock())

                if (hresult or "").strip() not in SUCCESS_HRESULTS:
                    remote = classify(f"{hresult}: {message}", {"ticket": ticket})
                    log_classified(remote, event="quickbooks_error_reported")
                    return PROGRESS_COMPLETE

                await self._process_response(response)
            except Exception as e:
                self._log_fault(e, ticket, CompleteExchangeCall.wire_name)
                return PROGRESS_FAILED

            return PROGRESS_COMPLETE

    async def report_connection_error(self, ticket: str, hresult: str, message: str) -> str:
        """Record a Connector-side failure and close the session. Always ``"done"``."""
        with self._call_context(ticket, ConnectionErrorCall.wire_name):
            remote = classify(f"{hresult}: {message}", {"ticket": ticket})
            log_classified(remote, event="connection_error_reported")
            await self._close_quietly(ticket, ConnectionErrorCall.wire_name)
            return DONE

    async def get_last_error(self, ticket: str) -> str:
        """
        Last error text for a session.

        Session-scoped error history is not kept, so this is always empty.
        """
        with self._call_context(ticket, GetLastErrorCall.wire_name):
            logger.debug("last_error_requested")
            return ""

    async def close_connection(self, ticket: str) -> str:
        """Close the session. Always ``"OK"``, whatever the store says."""
        with self._call_context(ticket, CloseConnectionCall.wire_name):
            closed = await self._close_quietly(ticket, CloseConnectionCall.wire_name)
            logger.info("session_closed" if closed else "close_ignored")
            return CLOSED_OK

    async def state(self, ticket: str) -> ConnectorState:
        """Current protocol state of a ticket, without side effects."""
        if not ticket:
            return ConnectorState.NO_SESSION
        session = await self.store.get(ticket)
        if session is None:
            return ConnectorState.NO_SESSION
        if session.status == SessionStatus.CLOSED:
            return ConnectorState.CLOSED
        if session.is_expired(self.clock()):
            return ConnectorState.EXPIRED
        return ConnectorState.ACTIVE

    async def stats(self, ticket: str) -> Optional[SessionStats]:
        """Request count and age of a known session, or None."""
        if not ticket:
            return None
        session = await self.store.get(ticket)
        if session is None:
            return None
        return session.stats(self.clock())

    async def _load_session(self, ticket: str) -> Optional[Session]:
        """
        Look up a usable session.

        Absent and closed sessions yield None. A session past ``expires_at``
        that the store has not swept yet is closed on the spot and also
        yields None.
        """
        if not ticket:
            return None

        session = await self.store.get(ticket)
        if session is None:
            logger.info("session_not_found")
            return None
        if session.status != SessionStatus.ACTIVE:
            logger.info("session_not_active", status=session.status.value)
            return None
        if session.is_expired(self.clock()):
            logger.info("session_expired", expires_at=session.expires_at.isoformat())
            await self._close_quietly(ticket, "expire")
            return None
        return session

    async def _process_response(self, response: str) -> None:
        result = await self.processor.process_response(
            response,
            self.processor.config.default_entity_type,
        )
        if not result.success:
            logger.warning(
                "response_processing_failed",
                codes=[e.code for e in result.errors],
                errors=[e.message for e in result.errors][:5],
            )
            return

        try:
            await self.entity_sink(result)
        except Exception as e:
            self._log_fault(e, "", "entity_sink")

    async def _close_quietly(self, ticket: str, operation: str) -> bool:
        if not ticket:
            return False
        try:
            return await self.store.close(ticket, self.clock())
        except Exception as e:
            self._log_fault(e, ticket, operation)
            return False

    def _log_fault(self, error: Exception, ticket: str, operation: str, **fields: Any) -> None:
        classified = classify(error, {"ticket": ticket or None, "operation": operation})
        log_classified(classified, event="operation_fault", **fields)

    @contextmanager
    def _call_context(self, ticket: str, operation: str) -> Generator[None, None, None]:
        set_request_id(new_request_id())
        set_session_context(ticket, operation)
        try:
            yield
        finally:
            clear_session_context()
