"""Domain exceptions."""


class CadenceError(Exception):
    """Base class for errors raised by Cadence."""


class MissingModelError(CadenceError, LookupError):
    """A work/rest model id is not in the catalog."""

    def __init__(self, model_id: str) -> None:
        super().__init__(f"Unknown work/rest model: {model_id!r}")
        self.model_id = model_id


class InvalidChoiceError(CadenceError, ValueError):
    """A prompt was answered with a choice it did not offer."""


class DecryptionError(CadenceError):
    """A federated contribution could not be opened or its commitment did not match."""
