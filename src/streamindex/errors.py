"""
StreamIndex Errors
==================

Exception hierarchy for the sync engine.

Record-level errors (decode, key, identifier) are caught inside the pipeline
and turned into failed ProcessingResults. Only errors outside this hierarchy,
or ConfigurationError at start-up, escape to the invoking runtime.
"""


class StreamIndexError(Exception):
    """Base exception for streamindex errors."""


class AttributeDecodeError(StreamIndexError):
    """A typed attribute value could not be decoded."""


class RecordKeyError(StreamIndexError):
    """A primary key could not be resolved to a single string id."""


class SourceIdentifierError(StreamIndexError):
    """The source table could not be parsed from the feed identifier."""


class ConfigurationError(StreamIndexError):
    """Invalid engine configuration."""
