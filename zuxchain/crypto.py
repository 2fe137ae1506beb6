"""
Core cryptographic functions for the ledger.
"""
import hashlib
import base64
import nacl.bindings
import nacl.signing
import nacl.exceptions


def sha256_hex(data: bytes) -> str:
    """Hex-encoded SHA-256 digest, used for block hashes and Merkle nodes."""
    return hashlib.sha256(data).hexdigest()

def generate_hash(data: bytes) -> bytes:
    """Generates a Keccak-256 hash."""
    from Crypto.Hash import keccak
    return keccak.new(digest_bits=256, data=data).digest()

def generate_key_pair() -> tuple[nacl.signing.SigningKey, nacl.signing.VerifyKey]:
    """Generates an Ed25519 signing/verifying key pair from the OS CSPRNG."""
    signing_key = nacl.signing.SigningKey.generate()
    return signing_key, signing_key.verify_key

def serialize_public_key(verify_key: nacl.signing.VerifyKey) -> bytes:
    """Raw 32-byte encoding of a verifying key."""
    return verify_key.encode()

def encode_base64(data: bytes) -> str:
    """Base64 text form of key material, for display."""
    return base64.b64encode(data).decode('ascii')

def sign(signing_key: nacl.signing.SigningKey, data: bytes) -> bytes:
    """Signs byte data, returning the detached 64-byte signature."""
    return signing_key.sign(data).signature

def verify_signature(public_key: bytes, signature: bytes, data: bytes) -> bool:
    """
    Verifies a detached Ed25519 signature.

    Raises ValueError for malformed key or signature bytes; returns False
    when the bytes are well formed but the signature does not match.
    """
    if not isinstance(public_key, bytes) or not isinstance(signature, bytes):
        raise ValueError("Public key and signature must be bytes")
    if len(signature) != nacl.bindings.crypto_sign_BYTES:
        raise ValueError(f"Invalid signature length: {len(signature)}")
    try:
        verify_key = nacl.signing.VerifyKey(public_key)
    except (nacl.exceptions.CryptoError, TypeError) as e:
        raise ValueError(f"Invalid public key: {e}") from e

    try:
        verify_key.verify(data, signature)
        return True
    except nacl.exceptions.BadSignatureError:
        return False
