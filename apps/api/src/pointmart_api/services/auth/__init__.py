from .service import (
    AuthError,
    AuthService,
    InvalidCredentialsError,
    InvalidTokenError,
    LoginTakenError,
    PasswordTooLongError,
    decode_access_token,
    hash_password,
    verify_password,
)

__all__ = [
    "AuthError",
    "AuthService",
    "InvalidCredentialsError",
    "InvalidTokenError",
    "LoginTakenError",
    "PasswordTooLongError",
    "decode_access_token",
    "hash_password",
    "verify_password",
]
