"""Exceptions raised by the verification engine."""


class KitVerifyError(Exception):
    """Base class for engine errors."""


class InvalidCodeError(KitVerifyError, ValueError):
    """The submitted product code is missing or malformed."""


class VerificationError(KitVerifyError):
    """No signal at all could be produced for a code."""
