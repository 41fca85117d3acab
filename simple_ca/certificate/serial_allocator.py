from cryptography import x509

from ..storage.key_material_store import KeyMaterialStore
from ..logs.loggers import core_logger


class SerialNumberAllocator:
    """
    Hands out serial numbers per issuer. Values are 159-bit random numbers
    (x509.random_serial_number); each one is checked against the issuer's
    persisted ledger and recorded there before it's returned, so a serial is
    never reused by the same issuer, also across restarts.
    """

    MAX_ATTEMPTS = 16

    def __init__(self, store: KeyMaterialStore):
        self._store = store

    def next(self, issuer: str) -> int:
        """
        :type issuer: str
        :param issuer: Store slot of the issuing CA ('root' for the self-signed root).

        :rtype: int
        :returns: A positive serial number not issued before by this issuer.
        """
        with self._store.lock():
            issued = self._store.issued_serials(issuer)
            for _ in range(self.MAX_ATTEMPTS):
                serial = x509.random_serial_number()
                if serial not in issued:
                    self._store.record_serial(issuer, serial)
                    core_logger.debug(f"Allocated serial {serial:x} for issuer '{issuer}'")
                    return serial
                core_logger.warning(f"Serial {serial:x} already issued by '{issuer}', drawing again")

        raise RuntimeError(f"Couldn't draw an unused serial for '{issuer}' in {self.MAX_ATTEMPTS} attempts")
