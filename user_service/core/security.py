"""
Password hashing.

The service only stores credentials; it never reverses a hash and compares
hashes exclusively through a ``PasswordHasher``.
"""

import logging
from abc import ABC, abstractmethod

from passlib.context import CryptContext

logger = logging.getLogger(__name__)

# PUBLIC_INTERFACE
pwd_context = CryptContext(
    schemes=["argon2", "bcrypt"],
    deprecated=["bcrypt"],  # Hashes written by the previous service generation
    argon2__rounds=4,  # Number of iterations
    argon2__memory_cost=65536,  # Memory usage in kibibytes (64MB)
    argon2__parallelism=4,  # Number of parallel threads
    argon2__salt_size=16,  # Salt size in bytes
    argon2__hash_len=32,  # Hash length in bytes
)


class PasswordHasher(ABC):
    """One-way, salted password hashing."""

    @abstractmethod
    def hash(self, password: str) -> str:
        """Return an opaque hash of ``password``."""

    @abstractmethod
    def verify(self, password: str, hashed_password: str) -> bool:
        """Check ``password`` against a hash produced by this hasher."""


class PasslibPasswordHasher(PasswordHasher):
    """``PasswordHasher`` backed by a passlib ``CryptContext``."""

    def __init__(self, context: CryptContext = pwd_context):
        self.context = context

    def hash(self, password: str) -> str:
        return get_password_hash(password, self.context)

    def verify(self, password: str, hashed_password: str) -> bool:
        return verify_password(password, hashed_password, self.context)


# PUBLIC_INTERFACE
def verify_password(plain_password: str, hashed_password: str,
                    context: CryptContext = pwd_context) -> bool:
    """
    Verify a password against its hash.

    Args:
        plain_password: The plaintext password to verify
        hashed_password: The hashed password to verify against
        context: Context holding the accepted schemes

    Returns:
        bool: True if the password matches, False otherwise
    """
    if not hashed_password:
        return False
    try:
        return context.verify(plain_password, hashed_password)
    except (ValueError, TypeError) as e:
        logger.debug(f"Password verification failed: {e}")
        return False


# PUBLIC_INTERFACE
def get_password_hash(password: str, context: CryptContext = pwd_context) -> str:
    """
    Generate a secure password hash using the context's default scheme.

    Args:
        password: The plaintext password to hash
        context: Context holding the default scheme

    Returns:
        str: The hashed password

    Raises:
        TypeError: If password is not a string
    """
    if not isinstance(password, str):
        raise TypeError("password must be a string")
    return context.hash(password)
