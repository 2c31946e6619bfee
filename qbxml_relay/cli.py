"""CLI entry point for qbxml-relay."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import click

from qbxml_relay import __version__
from qbxml_relay.config.settings import RelayConfig, SessionConfig, load_config
from qbxml_relay.models.types import EntityType
from qbxml_relay.utils.logging import configure_logging, get_logger
from qbxml_relay.utils.result import ExitCode

DEFAULT_CONFIG = "./config"

ENTITY_CHOICES = [e.value for e in EntityType]


class Context:
    """CLI context for sharing state between commands."""

    def __init__(self, config: RelayConfig) -> None:
        self.config = config
        self.logger = get_logger("cli")

    def processor(self):
        from qbxml_relay.processor import QBXMLProcessor

        return QBXMLProcessor(self.config.processor)


pass_context = click.make_pass_decorator(Context)


def output_json(data: dict) -> None:
    """Output JSON to stdout."""
    click.echo(json.dumps(data, indent=2, default=str))


def read_document(path: str) -> str:
    """Read a file, or stdin for ``-``."""
    if path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8")


def parse_entity_type(value: Optional[str]) -> Optional[EntityType]:
    return EntityType.parse(value) if value else None


def build_store(session_config: SessionConfig, force_file: bool = False):
    """Session store for the configured backend."""
    from qbxml_relay.session import FileSessionStore, InMemorySessionStore

    if force_file or session_config.backend == "file":
        return FileSessionStore(session_config.store_dir)
    return InMemorySessionStore()


@click.group()
@click.option(
    "--config",
    type=click.Path(exists=False, path_type=Path),
    default=DEFAULT_CONFIG,
    help="Path to config directory",
)
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Logging level (overrides config)",
)
@click.option(
    "--log-format",
    type=click.Choice(["json", "console"], case_sensitive=False),
    default=None,
    help="Log format (overrides config)",
)
@click.version_option(version=__version__)
@click.pass_context
def cli(
    ctx: click.Context,
    config: Path,
    log_level: Optional[str],
    log_format: Optional[str],
) -> None:
    """
    QBXML Relay - QuickBooks Web Connector bridge.

    Validates and transforms QBXML documents and runs the Web Connector
    session protocol against a local session store.
    """
    result = load_config(config)
    if result.is_err():
        error = result.unwrap_err()
        configure_logging(level=log_level or "info", format_type=log_format or "json")
        output_json({
            "status": "error",
            "message": f"Invalid configuration: {error.field}: {error.message}",
        })
        ctx.exit(ExitCode.CONFIG_INVALID)

    relay_config = result.unwrap()
    configure_logging(
        level=log_level or relay_config.logging.level,
        format_type=log_format or relay_config.logging.format,
    )

    ctx.obj = Context(config=relay_config)


@cli.command()
@click.argument("document", type=str, default="-")
@click.option(
    "--direction",
    type=click.Choice(["request", "response"]),
    default="response",
    help="Validate as an outbound request or an inbound response",
)
@click.option(
    "--entity-type",
    type=click.Choice(ENTITY_CHOICES, case_sensitive=False),
    default=None,
    help="Expected entity type",
)
@pass_context
def validate(ctx: Context, document: str, direction: str, entity_type: Optional[str]) -> None:
    """Validate a QBXML document (file path or - for stdin)."""
    from qbxml_relay.qbxml import QBXMLValidator

    text = read_document(document)
    validator = QBXMLValidator()
    expected = parse_entity_type(entity_type)

    if direction == "request":
        result = validator.validate_request(text, expected)
    else:
        result = validator.validate_response(text, expected)

    output_json({"status": "valid" if result.is_valid else "invalid", **result.to_dict()})
    if not result.is_valid:
        sys.exit(ExitCode.DOCUMENT_INVALID)


@cli.command()
@click.argument("document", type=str, default="-")
@click.option(
    "--entity-type",
    type=click.Choice(ENTITY_CHOICES, case_sensitive=False),
    default=None,
    help="Expected entity type",
)
@click.option(
    "--validate-entities",
    is_flag=True,
    default=False,
    help="Run semantic checks on every transformed entity",
)
@click.option(
    "--skip-validation",
    is_flag=True,
    default=False,
    help="Transform without structural validation",
)
@click.option(
    "--max-retries",
    type=int,
    default=None,
    help="Override the configured retry count",
)
@pass_context
def process(
    ctx: Context,
    document: str,
    entity_type: Optional[str],
    validate_entities: bool,
    skip_validation: bool,
    max_retries: Optional[int],
) -> None:
    """Run a QBXML response through the full pipeline."""
    from qbxml_relay.processor import ProcessOptions

    text = read_document(document)
    options = ProcessOptions(
        validate_schema=not skip_validation,
        validate_entities=validate_entities,
        max_retries=max_retries,
    )

    result = asyncio.run(
        ctx.processor().process_response(text, parse_entity_type(entity_type), options)
    )

    output_json(result.to_dict())
    if not result.success:
        sys.exit(ExitCode.PROCESSING_FAILED)


@cli.command()
@click.argument("documents", type=click.Path(exists=True, dir_okay=False), nargs=-1, required=True)
@click.option(
    "--entity-type",
    type=click.Choice(ENTITY_CHOICES, case_sensitive=False),
    default=None,
    help="Expected entity type for every document",
)
@click.option(
    "--max-concurrent",
    type=int,
    default=None,
    help="Window size (defaults to config)",
)
@click.option(
    "--stop-on-error",
    is_flag=True,
    default=False,
    help="Abort the batch on the first item that raises",
)
@pass_context
def batch(
    ctx: Context,
    documents: tuple[str, ...],
    entity_type: Optional[str],
    max_concurrent: Optional[int],
    stop_on_error: bool,
) -> None:
    """Process several QBXML response files."""
    from qbxml_relay.errors import ClassifiedError
    from qbxml_relay.processor import BatchItem, ProcessOptions

    expected = parse_entity_type(entity_type)
    items = [BatchItem(read_document(path), expected) for path in documents]
    options = ProcessOptions(
        continue_on_error=not stop_on_error and ctx.config.batch.continue_on_error,
        max_concurrent=max_concurrent or ctx.config.batch.max_concurrent,
    )

    try:
        report = asyncio.run(ctx.processor().process_batch(items, options))
    except ClassifiedError as e:
        ctx.logger.error("batch_failed", code=e.code, error=e.message)
        output_json({"status": "error", "error": e.to_dict()})
        sys.exit(ExitCode.PROCESSING_FAILED)

    output_json({
        "status": "success" if report.summary.failed == 0 else "partial",
        "documents": list(documents),
        **report.to_dict(),
    })
    if report.summary.failed:
        sys.exit(ExitCode.PROCESSING_FAILED)


@cli.command()
@pass_context
def health(ctx: Context) -> None:
    """Check that every pipeline component works."""
    processor = ctx.processor()
    report = asyncio.run(processor.health_check())

    output_json({**report.to_dict(), "statistics": processor.statistics()})
    if report.status == "unhealthy":
        sys.exit(ExitCode.GENERAL_ERROR)


@cli.command()
@click.argument("envelope", type=str, default="-")
@pass_context
def soap(ctx: Context, envelope: str) -> None:
    """
    Handle one Web Connector SOAP call.

    Reads the request envelope from a file (or stdin) and prints the SOAP
    response. Sessions are kept in the file store so that consecutive
    invocations form one conversation.
    """
    from qbxml_relay.session import WebConnectorSession, query_request_source
    from qbxml_relay.soap import handle_soap_request

    machine = WebConnectorSession(
        store=build_store(ctx.config.session, force_file=True),
        processor=ctx.processor(),
        session_config=ctx.config.session,
        request_source=query_request_source(ctx.config.processor),
    )

    response = asyncio.run(handle_soap_request(machine, read_document(envelope)))
    click.echo(response)
    if "Fault>" in response:
        sys.exit(ExitCode.SOAP_FAULT)


@cli.command()
@click.option(
    "--url",
    default="https://localhost/qbwc",
    help="Service address written into the WSDL",
)
def wsdl(url: str) -> None:
    """Print the WSDL for the Web Connector service."""
    from qbxml_relay.soap import build_wsdl

    click.echo(build_wsdl(url))


@cli.command()
@click.argument("entity_type", type=click.Choice(ENTITY_CHOICES, case_sensitive=False))
@click.option("--request-id", default="1", help="requestID attribute")
@click.option("--max-returned", type=int, default=None, help="MaxReturned (defaults to config)")
@click.option(
    "--on-error",
    type=click.Choice(["stopOnError", "continueOnError"]),
    default="stopOnError",
)
@pass_context
def request(
    ctx: Context,
    entity_type: str,
    request_id: str,
    max_returned: Optional[int],
    on_error: str,
) -> None:
    """Print a QBXML query request for an entity type."""
    from qbxml_relay.qbxml import build_query_request

    click.echo(build_query_request(
        parse_entity_type(entity_type),
        request_id=request_id,
        max_returned=max_returned or ctx.config.processor.max_returned,
        on_error=on_error,
        qbxml_version=ctx.config.processor.qbxml_version,
    ))


@cli.command("purge-sessions")
@pass_context
def purge_sessions(ctx: Context) -> None:
    """Remove expired sessions from the file store."""
    store = build_store(ctx.config.session, force_file=True)
    removed = asyncio.run(store.purge_expired())

    output_json({
        "status": "success",
        "store_dir": str(ctx.config.session.store_dir),
        "removed": removed,
    })


def main() -> None:
    """Main entry point."""
    try:
        cli()
    except Exception as e:
        logger = get_logger("cli")
        logger.error("cli_error", error=str(e))
        sys.exit(ExitCode.GENERAL_ERROR)


if __name__ == "__main__":
    main()
