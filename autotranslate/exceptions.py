"""Exceptions raised by the tagging and translation services."""


class AutotranslateError(Exception):
    """Base class for service errors."""


class HashSpaceExhaustedError(AutotranslateError):
    """No free hash could be allocated within the attempt ceiling."""


class MissingSourceError(AutotranslateError):
    """A translation was written for a hash that has no source record."""


class ScopeLevelMismatchError(AutotranslateError):
    """A translation was written with a scope level different from its source."""


class UnknownContentTypeError(AutotranslateError):
    """The content type is not declared in the tagging policy."""


class TranslationNotFoundError(AutotranslateError):
    """No translation record exists for the requested hash and language."""
