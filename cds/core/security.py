from cryptography.fernet import Fernet, InvalidToken
import base64
import hashlib
from cds.core.config import settings

class DataEncryption:
    """
    Symmetric encryption for PHI at rest (cached sessions, audit details).
    """
    _cipher_suite = None

    @classmethod
    def get_cipher(cls) -> Fernet:
        if cls._cipher_suite is None:
            # SHA256 gives exactly 32 bytes, Fernet wants them URL-safe base64 encoded
            key = hashlib.sha256(settings.SESSION_SECRET.encode()).digest()
            key_b64 = base64.urlsafe_b64encode(key)
            cls._cipher_suite = Fernet(key_b64)
        return cls._cipher_suite

    @classmethod
    def encrypt(cls, data: str) -> str:
        if not data:
            return ""
        return cls.get_cipher().encrypt(data.encode()).decode()

    @classmethod
    def decrypt(cls, token: str) -> str:
        if not token:
            return ""
        try:
            return cls.get_cipher().decrypt(token.encode()).decode()
        except InvalidToken:
            # Rotated secret or tampered payload
            raise ValueError("Unable to decrypt payload: invalid token")
