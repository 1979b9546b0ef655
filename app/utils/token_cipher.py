from cryptography.fernet import Fernet, InvalidToken

from app.exceptions import ConfigError


class TokenCipher:
    """Encrypts refresh tokens before they are stored on an account."""

    def __init__(self, key: str) -> None:
        try:
            self._fernet = Fernet(key.encode())
        except (ValueError, TypeError) as e:
            raise ConfigError("TOKEN_ENCRYPTION_KEY is not a valid Fernet key") from e

    def encrypt(self, token: str) -> str:
        """Encrypt a token"""
        return self._fernet.encrypt(token.encode()).decode()

    def decrypt(self, token: str) -> str:
        """Decrypt a token"""
        try:
            return self._fernet.decrypt(token.encode()).decode()
        except InvalidToken as e:
            raise ConfigError("Stored refresh token cannot be decrypted with the configured key") from e
