"""Error taxonomy for token and verification-code handling.

Every error carries an HTTP ``status_code`` and a generic public ``message``.
The exception's own text is internal detail: it is logged, never returned to
the client.
"""


class AuthgateError(Exception):
    """Base class for classified errors."""

    status_code: int = 500
    message: str = "Something went wrong. Please try again later"


class SigningError(AuthgateError):
    """Token secret is missing or unusable."""

    message = "Unable to sign tokens"


class PersistenceError(AuthgateError):
    """Credential store is unavailable or failed."""

    message = "Unable to complete the request. Please try again later"


# Tokens


class TokenError(AuthgateError):
    """Base class for token validation failures."""

    status_code = 401
    message = "Authentication failed. Invalid token"


class MissingCredentials(TokenError):
    """No bearer token on the request."""

    message = "Authentication failed. Token not provided or malformed"


class TokenMalformed(TokenError):
    pass


class TokenExpired(TokenError):
    message = "Authentication failed. Token expired"


class SignatureInvalid(TokenError):
    pass


class TokenRevoked(TokenError):
    """Refresh token fingerprint no longer matches the user."""


# Verification codes


class VerificationError(AuthgateError):
    """Base class for verification code redemption failures."""

    status_code = 400
    message = "Verification failed. Invalid or expired code"


class VerificationNotFound(VerificationError):
    pass


class VerificationCodeMismatch(VerificationError):
    pass


class VerificationExpired(VerificationError):
    message = "Verification failed. Code has expired, please request a new one"


class VerificationTypeMismatch(VerificationError):
    pass


# Accounts


class InvalidCredentials(AuthgateError):
    status_code = 401
    message = "Incorrect email or password"


class UnverifiedUser(AuthgateError):
    status_code = 401
    message = "Please verify your email address before logging in"


class UserAlreadyExists(AuthgateError):
    status_code = 400
    message = "User already exists with the given email"


class UserNotFound(AuthgateError):
    status_code = 404
    message = "User not found"


class PasswordMismatch(AuthgateError):
    status_code = 400
    message = "Password and password confirmation do not match"
