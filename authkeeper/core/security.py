"""Security utilities - signing keys, refresh token digests, password hashing"""

from dataclasses import dataclass
import base64
import hashlib
import hmac
import secrets

import bcrypt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from authkeeper.config import settings

RSA_PUBLIC_EXPONENT = 65537


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against its hash

    Args:
        plain_password: Plain text password
        hashed_password: Hashed password

    Returns:
        bool: True if password matches
    """
    return bcrypt.checkpw(
        plain_password.encode('utf-8'),
        hashed_password.encode('utf-8')
    )


def get_password_hash(password: str) -> str:
    """
    Hash a password using bcrypt

    Args:
        password: Plain text password

    Returns:
        str: Hashed password
    """
    return bcrypt.hashpw(
        password.encode('utf-8'),
        bcrypt.gensalt()
    ).decode('utf-8')


def generate_refresh_token(num_bytes: int = None) -> str:
    """
    Generate a raw refresh token

    Args:
        num_bytes: Bytes of entropy (defaults to REFRESH_TOKEN_BYTES)

    Returns:
        str: URL-safe random token; only ever handed to the client
    """
    return secrets.token_urlsafe(num_bytes or settings.REFRESH_TOKEN_BYTES)


def hash_refresh_token(raw_token: str, key: str = None) -> str:
    """
    Digest a raw refresh token for storage and lookup

    Args:
        raw_token: Raw token presented by the client
        key: HMAC key (defaults to REFRESH_TOKEN_HASH_KEY)

    Returns:
        str: Hex HMAC-SHA256 of the token
    """
    secret = (key or settings.REFRESH_TOKEN_HASH_KEY).encode("utf-8")
    return hmac.new(secret, raw_token.encode("utf-8"), hashlib.sha256).hexdigest()


@dataclass(frozen=True)
class SigningKeyPair:
    """Immutable RSA key pair used to sign and verify access tokens."""

    private_key: rsa.RSAPrivateKey
    public_key: rsa.RSAPublicKey
    encoded_private: str
    encoded_public: str
    private_pem: str
    public_pem: str
    kid: str


def key_pair_from_private_key(private_key: rsa.RSAPrivateKey) -> SigningKeyPair:
    """Build the stored encodings for a private key and its public half."""
    public_key = private_key.public_key()
    private_der = private_key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_der = public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")
    public_pem = public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")
    return SigningKeyPair(
        private_key=private_key,
        public_key=public_key,
        encoded_private=base64.b64encode(private_der).decode("ascii"),
        encoded_public=base64.b64encode(public_der).decode("ascii"),
        private_pem=private_pem,
        public_pem=public_pem,
        kid=hashlib.sha256(public_der).hexdigest()[:16],
    )


def generate_key_pair(key_size: int = None) -> SigningKeyPair:
    """
    Generate a fresh RSA signing key pair

    Args:
        key_size: Modulus size in bits (defaults to RSA_KEY_SIZE)

    Returns:
        SigningKeyPair: New pair with its stored encodings
    """
    private_key = rsa.generate_private_key(
        public_exponent=RSA_PUBLIC_EXPONENT,
        key_size=key_size or settings.RSA_KEY_SIZE,
    )
    return key_pair_from_private_key(private_key)


def decode_key_pair(encoded_public: str, encoded_private: str) -> SigningKeyPair:
    """
    Rebuild a key pair from its base64 DER encodings

    Args:
        encoded_public: base64 X.509 SubjectPublicKeyInfo
        encoded_private: base64 PKCS#8

    Returns:
        SigningKeyPair: Reconstructed pair

    Raises:
        ValueError: If either half is malformed, not RSA, not in canonical
            encoding, or the halves do not match
    """
    public_key = serialization.load_der_public_key(
        base64.b64decode(encoded_public, validate=True)
    )
    private_key = serialization.load_der_private_key(
        base64.b64decode(encoded_private, validate=True), password=None
    )
    if not isinstance(private_key, rsa.RSAPrivateKey) or not isinstance(public_key, rsa.RSAPublicKey):
        raise ValueError("stored signing keys are not RSA keys")
    if private_key.public_key().public_numbers() != public_key.public_numbers():
        raise ValueError("stored public key does not match stored private key")

    pair = key_pair_from_private_key(private_key)
    if pair.encoded_public != encoded_public:
        raise ValueError("stored public key encoding is not canonical")
    if pair.encoded_private != encoded_private:
        raise ValueError("stored private key encoding is not canonical")
    return pair
