"""qbxml-relay: QuickBooks Web Connector bridge with QBXML processing."""

__version__ = "2.0.0"
