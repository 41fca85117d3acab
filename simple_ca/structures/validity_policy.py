from dataclasses import dataclass

from ..constants import ROOT_VALIDITY_DAYS, INTERMEDIATE_VALIDITY_DAYS, LEAF_VALIDITY_DAYS
from .role import Role


@dataclass(frozen=True)
class ValidityPolicy:
    """Lifetime in days of the certificates of each role."""

    root_days: int = ROOT_VALIDITY_DAYS
    intermediate_days: int = INTERMEDIATE_VALIDITY_DAYS
    leaf_days: int = LEAF_VALIDITY_DAYS

    def days_for(self, role: Role) -> int:
        match role:
            case Role.ROOT:
                return self.root_days
            case Role.INTERMEDIATE:
                return self.intermediate_days
            case _:
                return self.leaf_days
