"""
Ed25519 keypair for signing chain checkpoints.
Private keys live in PEM files readable by their owner only.
"""

from pathlib import Path
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives import serialization

from ..config import PUBLIC_KEY_LENGTH
from ..errors import KeypairError
from ..utils.hashing import hash_bytes


class SigningKeypair:
    """
    Ed25519 keypair with a stable key id.
    """

    def __init__(self, private_key: Ed25519PrivateKey):
        """
        Initialize keypair from private key.

        Args:
            private_key: Ed25519 private key object
        """
        if not isinstance(private_key, Ed25519PrivateKey):
            raise KeypairError("Invalid private key type")

        self._private_key = private_key
        self._public_key = private_key.public_key()

    @classmethod
    def generate(cls) -> 'SigningKeypair':
        """
        Generate a new Ed25519 keypair.

        Returns:
            New SigningKeypair instance
        """
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def from_private_pem(cls, pem_data: bytes) -> 'SigningKeypair':
        """
        Load keypair from PEM-encoded private key.

        Args:
            pem_data: PEM-encoded private key

        Returns:
            SigningKeypair instance

        Raises:
            KeypairError: If PEM is invalid
        """
        try:
            private_key = serialization.load_pem_private_key(
                pem_data,
                password=None,
            )
        except (ValueError, TypeError) as e:
            raise KeypairError(f"Invalid PEM data: {e}")

        if not isinstance(private_key, Ed25519PrivateKey):
            raise KeypairError("PEM does not contain an Ed25519 key")
        return cls(private_key)

    @classmethod
    def load_from_file(cls, path: str) -> 'SigningKeypair':
        """
        Load keypair from PEM file.

        Args:
            path: Path to PEM file

        Returns:
            SigningKeypair instance

        Raises:
            KeypairError: If file cannot be read
        """
        try:
            pem_data = Path(path).read_bytes()
        except OSError as e:
            raise KeypairError(f"Cannot read key file: {e}")
        return cls.from_private_pem(pem_data)

    def get_private_pem(self) -> bytes:
        """
        Export private key as PEM.
        WARNING: Handle with extreme care.

        Returns:
            PEM-encoded private key
        """
        return self._private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )

    def get_public_bytes(self) -> bytes:
        """
        Export public key as raw bytes.

        Returns:
            32-byte public key
        """
        return self._public_key.public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )

    def get_key_id(self) -> str:
        """
        Derive the key id from the public key.
        Key id = SHA-256(public_key_bytes)

        Returns:
            64-character hex string
        """
        return hash_bytes(self.get_public_bytes())

    def save_to_file(self, path: str):
        """
        Save private key to a PEM file with owner-only permissions.

        Args:
            path: Path to save file

        Raises:
            KeypairError: If file cannot be written
        """
        key_path = Path(path)
        try:
            key_path.touch(mode=0o600, exist_ok=False)
            key_path.chmod(0o600)
            key_path.write_bytes(self.get_private_pem())
        except OSError as e:
            raise KeypairError(f"Cannot write key file: {e}")

    def sign(self, data: bytes) -> bytes:
        """Sign bytes with the private key."""
        return self._private_key.sign(data)

    @property
    def public_key(self) -> Ed25519PublicKey:
        """Get public key object (for verification)."""
        return self._public_key


def load_public_key(public_bytes: bytes) -> Ed25519PublicKey:
    """
    Load Ed25519 public key from raw bytes.

    Args:
        public_bytes: 32-byte public key

    Returns:
        Ed25519PublicKey object

    Raises:
        KeypairError: If bytes are invalid
    """
    if len(public_bytes) != PUBLIC_KEY_LENGTH:
        raise KeypairError(f"Public key must be {PUBLIC_KEY_LENGTH} bytes, got {len(public_bytes)}")

    try:
        return Ed25519PublicKey.from_public_bytes(public_bytes)
    except ValueError as e:
        raise KeypairError(f"Invalid public key bytes: {e}")
