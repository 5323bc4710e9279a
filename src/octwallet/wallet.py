import base64
import hashlib
from dataclasses import dataclass

import base58
import nacl.exceptions
import nacl.signing

import octwallet.constants as C


def address_from_public_key(public_key: bytes) -> str:
    """Ledger address: prefix + base58(sha256(raw public key))."""
    digest = hashlib.sha256(public_key).digest()
    return C.ADDRESS_PREFIX + base58.b58encode(digest).decode()


def is_valid_address(address: str | None) -> bool:
    return bool(address) and C.ADDRESS_RE.match(address) is not None


@dataclass(frozen=True, slots=True)
class Wallet:
    address: str
    public_key: str  # base64
    private_key: str | None = None  # base64 seed

    def __str__(self):
        return self.address

    @classmethod
    def from_private_key(cls, private_key_b64: str) -> "Wallet":
        """Load a wallet from a base64 Ed25519 key.

        Accepts either the 32 byte seed or the 64 byte seed+public key form some
        wallet exports use; only the seed is kept.
        """
        raw = base64.b64decode(private_key_b64)
        if len(raw) == 64:
            raw = raw[:32]
        sk = nacl.signing.SigningKey(raw)
        pub = bytes(sk.verify_key)
        return cls(
            address=address_from_public_key(pub),
            public_key=base64.b64encode(pub).decode(),
            private_key=base64.b64encode(raw).decode(),
        )

    @classmethod
    def create(cls) -> "Wallet":
        sk = nacl.signing.SigningKey.generate()
        return cls.from_private_key(base64.b64encode(bytes(sk)).decode())

    def signing_key(self) -> nacl.signing.SigningKey:
        """Return the signing key, raising KeyError when the wallet can't sign."""
        if not self.private_key:
            raise KeyError(f"no private key for {self.address}")
        try:
            return nacl.signing.SigningKey(base64.b64decode(self.private_key))
        except (ValueError, TypeError, nacl.exceptions.CryptoError) as e:
            raise KeyError(f"unusable private key for {self.address}: {e}") from e
