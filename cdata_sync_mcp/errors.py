"""Exceptions raised by the CData Sync client and services."""


class ConfigurationError(Exception):
    """The server cannot reach or authenticate against CData Sync as configured."""


class AuthenticationRequired(ConfigurationError):
    """CData Sync answered 401 and no credentials are configured."""

    def __init__(self, message: str | None = None):
        super().__init__(
            message
            or "Authentication required. Please provide CData Sync credentials using the "
            "configure_sync_server tool with either authToken or username/password."
        )
