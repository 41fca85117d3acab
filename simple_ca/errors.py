class SimpleCAError(Exception):
    """
    Base class of every error raised by the issuance core.

    :var int exit_code:
    The process exit code the CLI reports for this kind of failure.
    """

    exit_code = 1


class MaterialNotFound(SimpleCAError):
    """Key or certificate material expected in a slot is missing."""


class MaterialCorrupt(SimpleCAError):
    """Stored material can't be parsed, decrypted, or its halves don't match."""

    exit_code = 2


class AlreadyBootstrapped(SimpleCAError):
    """Bootstrap was requested on a store that already holds a root CA."""


class ChainNotReady(SimpleCAError):
    """An operation needs root and intermediate CA material that isn't there yet."""


class InvalidSubject(SimpleCAError, ValueError):
    """A subject name or SAN entry is empty or not a legal DNS name."""


class SigningKeyUnavailable(SimpleCAError):
    """The signing key/certificate of a parent CA couldn't be obtained."""

    exit_code = 2


class StoreLocked(SimpleCAError):
    """Another process holds the store lock. Retrying later may succeed."""

    exit_code = 3
