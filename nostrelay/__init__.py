"""Building blocks for a Nostr relay: filters, message parsing, metrics and web pages."""

__version__ = "0.9.0"