from enum import Enum

from ..constants import ROOT_CN_SUFFIX, INTERMEDIATE_CN_SUFFIX


class Role(Enum):
    """
    Position of a certificate in the chain of trust. Decides which
    extension policy, key size and validity a certificate gets.
    """

    ROOT = "root"
    INTERMEDIATE = "intermediate"
    LEAF = "leaf"

    @property
    def is_ca(self) -> bool:
        return self is not Role.LEAF

    @property
    def cn_suffix(self) -> str:
        match self:
            case Role.ROOT:
                return ROOT_CN_SUFFIX
            case Role.INTERMEDIATE:
                return INTERMEDIATE_CN_SUFFIX
            case _:
                raise ValueError("Leaf certificates are named by the caller")
