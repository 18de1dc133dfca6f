"""Errors raised while collecting and analysing secrets."""


class EvaluationError(Exception):
    """Base class for all errors that abort or disturb an evaluation run."""


class ConfigError(EvaluationError):
    """Configuration is invalid or the cluster API cannot be reached."""


class SyncTimeoutError(EvaluationError):
    """The initial list of secrets did not complete in time."""


class DuplicateAddError(EvaluationError):
    """An ADDED event arrived for a secret that is already tracked."""

    def __init__(self, uid, namespace, name):
        super().__init__(
            f"Secret '{name}' in ns '{namespace}' (uid {uid}) added when already tracked, numbers may be off")
        self.uid = uid
        self.namespace = namespace
        self.name = name


class DecodeError(EvaluationError):
    """A pull secret payload could not be decoded."""


class MissingFieldError(DecodeError):
    """A pull secret is missing the payload field its type requires."""


class UnknownSecretTypeError(DecodeError):
    """A secret of an unrecognised type reached the decoder."""
