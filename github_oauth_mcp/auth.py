"""
Bearer token extraction for the tool endpoints.

The tokens presented here are GitHub OAuth access tokens issued by the
callback flow. This service does not mint or verify them itself: GitHub is
the only party that can say whether a token is valid, and it does so on the
first upstream call (401 -> `Unauthorized`). What we do enforce locally:

- An Authorization header must be present
- It must use the "Bearer" scheme (RFC 6750, case-insensitive)
- The token part must be non-empty

Any failure rejects the request with 401 before the dispatcher runs.
"""


class AuthError(Exception):
    """
    Raised when the Authorization header is missing or malformed.

    Attributes:
        message: Human-readable error description
        status_code: HTTP status code to return (401 for auth failures)
    """

    def __init__(self, message: str, status_code: int = 401):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def extract_bearer_token(authorization_header: str | None) -> str:
    """
    Return the token from a "Bearer <token>" Authorization header.

    Args:
        authorization_header: The raw Authorization header value

    Returns:
        The opaque token string, stripped of surrounding whitespace

    Raises:
        AuthError: If the header is absent, uses another scheme, or has no token
    """
    if not authorization_header:
        raise AuthError("Missing Authorization header")

    parts = authorization_header.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AuthError("Invalid Authorization header format, expected 'Bearer <token>'")

    token = parts[1].strip()
    if not token:
        raise AuthError("Invalid Authorization header format, expected 'Bearer <token>'")

    return token
