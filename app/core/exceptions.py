"""Relay exceptions."""


class RelayError(Exception):
    """Base class for relay errors."""


class MissingCredentialError(RelayError):
    """Neither a student nor a default OpenAI key is available."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(
            "No OpenAI API key configured. Please configure your OpenAI API key in the workshop."
        )


class CompletionError(RelayError):
    """The language model call failed or timed out."""


class ConfigLookupError(RelayError):
    """The session configuration could not be fetched."""
