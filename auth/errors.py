"""Authentication error taxonomy.

Every error here is terminal for the invoking command. Nothing is retried;
recovery (re-running the bootstrap, fixing the app registration) is left
to the operator.
"""

BOOTSTRAP_HINT = "Run: m365-auth"


class AuthError(Exception):
    """Base class for token lifecycle failures."""


class NoCredentials(AuthError):
    """The token cache is missing, unreadable, or corrupt."""

    def __init__(self, message: str = "No token cache found.") -> None:
        super().__init__(f"{message} {BOOTSTRAP_HINT}")


class NoAccount(AuthError):
    """The token cache holds no account."""

    def __init__(self) -> None:
        super().__init__(f"No account found in token cache. {BOOTSTRAP_HINT}")


class RefreshUnavailable(AuthError):
    """The access token is unusable and no refresh token is cached."""

    def __init__(self) -> None:
        super().__init__(
            f"Access token expired and no refresh token is cached. {BOOTSTRAP_HINT}"
        )


class RefreshFailed(AuthError):
    """The identity provider rejected the refresh-token grant."""

    def __init__(self, error: str, description: str = "") -> None:
        self.error = error
        self.description = description
        detail = f"{error}: {description}" if description else error
        super().__init__(f"Token refresh failed ({detail}). {BOOTSTRAP_HINT}")


class DeviceFlowExpired(AuthError):
    """The device code expired before the user completed sign-in."""

    def __init__(self) -> None:
        super().__init__("Authentication expired. Please run again.")


class DeviceFlowFailed(AuthError):
    """The identity provider rejected the device-code flow."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Authentication error: {detail}")
