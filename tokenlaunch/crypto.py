"""
Hashing and address helpers shared by the ledgers and the state store.
"""
import hashlib
from Crypto.Hash import keccak
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives import serialization

ADDRESS_LENGTH = 20
ZERO_ADDRESS = b'\x00' * ADDRESS_LENGTH


def generate_hash(data: bytes) -> bytes:
    """Generates a Keccak-256 hash."""
    return keccak.new(digest_bits=256, data=data).digest()


def generate_key_pair() -> tuple[ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey]:
    """Generates an ECDSA private/public key pair."""
    private_key = ec.generate_private_key(ec.SECP256R1())
    return private_key, private_key.public_key()


def serialize_public_key(public_key: ec.EllipticCurvePublicKey) -> str:
    """Serializes a public key object into PEM format (string)."""
    return public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo
    ).decode('utf-8')


def public_key_to_address(public_key_pem: str) -> bytes:
    """Derives an account address from a public key PEM string."""
    public_key = serialization.load_pem_public_key(public_key_pem.encode('utf-8'))
    der_bytes = public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo
    )
    return hashlib.sha256(der_bytes).digest()[:ADDRESS_LENGTH]


def new_account_address() -> bytes:
    """Create a fresh externally owned account and return its address."""
    _, public_key = generate_key_pair()
    return public_key_to_address(serialize_public_key(public_key))


def contract_address(deployer: bytes, label: str) -> bytes:
    """
    Deterministic address for a component deployed by `deployer`.

    The same deployer and label always map to the same address, so a
    system rebuilt over existing state finds its accounts again.
    """
    return generate_hash(b'CONTRACT:' + deployer + label.encode())[-ADDRESS_LENGTH:]


def is_zero_address(address: bytes) -> bool:
    return not address or address == ZERO_ADDRESS
