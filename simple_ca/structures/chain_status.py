from enum import Enum, auto


class ChainStatus(Enum):
    """
    Represents how far the store got in building the chain of trust.
    Drives which engine operations are allowed.
    """

    EMPTY = auto()  # no root CA
    ROOT_ONLY = auto()  # root CA, no intermediate (interrupted bootstrap)
    CHAIN_READY = auto()  # root + intermediate, leaves can be issued
