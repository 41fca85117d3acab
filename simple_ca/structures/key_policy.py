from dataclasses import dataclass

from ..constants import CA_KEY_SIZE, LEAF_KEY_SIZE
from .role import Role


@dataclass(frozen=True)
class KeyPolicy:
    """
    Fixed algorithm/strength policy for generated key pairs.

    :var bool ecdsa:
    If True, every role gets a SECP256R1 key. Otherwise RSA.

    :var int ca_key_size:
    RSA modulus size of root and intermediate keys.

    :var int leaf_key_size:
    RSA modulus size of leaf keys.
    """

    ecdsa: bool = False
    ca_key_size: int = CA_KEY_SIZE
    leaf_key_size: int = LEAF_KEY_SIZE

    @classmethod
    def from_name(cls, name: str) -> "KeyPolicy":
        match name.strip().lower():
            case "rsa":
                return cls(ecdsa=False)
            case "ecdsa" | "ec":
                return cls(ecdsa=True)
            case _:
                raise ValueError(f"Unknown key algorithm {name!r}, expected 'rsa' or 'ecdsa'")

    def key_size_for(self, role: Role) -> int:
        return self.ca_key_size if role.is_ca else self.leaf_key_size
