import os
import threading
import time

from ..constants import DEFAULT_LOCK_TIMEOUT, LOCK_POLL_INTERVAL
from ..errors import StoreLocked
from ..logs.loggers import store_logger

if os.name == "nt":
    import msvcrt

    def _try_lock_file(fh):
        fh.seek(0)
        msvcrt.locking(fh.fileno(), msvcrt.LK_NBLCK, 1)

    def _unlock_file(fh):
        fh.seek(0)
        msvcrt.locking(fh.fileno(), msvcrt.LK_UNLCK, 1)
else:
    import fcntl

    def _try_lock_file(fh):
        fcntl.flock(fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)

    def _unlock_file(fh):
        fcntl.flock(fh.fileno(), fcntl.LOCK_UN)


class StoreLock:
    """
    Store-wide exclusive lock shared by every process using the same store
    directory. Backed by an advisory lock on a lock file (flock on POSIX,
    msvcrt.locking on Windows).

    Re-entrant for the holding thread: only the outermost acquire takes the
    file lock, so an engine operation can hold it across several saves.
    Acquisition polls until the timeout and then raises StoreLocked instead
    of blocking forever.

    :var str path:
    Location of the lock file.

    :var float timeout:
    Default seconds to wait for the lock.
    """

    def __init__(self, path: str, timeout: float = DEFAULT_LOCK_TIMEOUT):
        self.path = path
        self.timeout = timeout
        self._mtx = threading.RLock()
        self._depth = 0
        self._fh = None

    @property
    def is_held(self) -> bool:
        return self._depth > 0

    def acquire(self, timeout: float | None = None) -> "StoreLock":
        """
        :type timeout: float | None
        :param timeout: Seconds to wait. Defaults to the lock's timeout.

        :raises StoreLocked: If the lock couldn't be obtained in time.
        """
        timeout = self.timeout if timeout is None else timeout
        deadline = time.monotonic() + timeout

        # threads of this process first, then other processes
        if not self._mtx.acquire(timeout=timeout):
            raise StoreLocked(f"Store lock {self.path} is held by another thread (waited {timeout}s)")

        try:
            if self._depth == 0:
                self._fh = self._lock_file(deadline, timeout)
            self._depth += 1
        except BaseException:
            self._mtx.release()
            raise
        return self

    def release(self):
        if not self.is_held:
            raise RuntimeError("Releasing a store lock that isn't held")

        self._depth -= 1
        try:
            if self._depth == 0:
                fh, self._fh = self._fh, None
                try:
                    _unlock_file(fh)
                finally:
                    fh.close()
                store_logger.debug(f"Released store lock {self.path}")
        finally:
            self._mtx.release()

    def __enter__(self):
        return self.acquire()

    def __exit__(self, exc_type, exc, tb):
        self.release()

    def _lock_file(self, deadline: float, timeout: float):
        lock_dir = os.path.dirname(self.path)
        if lock_dir:
            os.makedirs(lock_dir, exist_ok=True)

        fh = open(self.path, "a+b")
        while True:
            try:
                _try_lock_file(fh)
                store_logger.debug(f"Acquired store lock {self.path}")
                return fh
            except OSError:
                if time.monotonic() >= deadline:
                    fh.close()
                    raise StoreLocked(
                        f"Store lock {self.path} is held by another process (waited {timeout}s). Try again later."
                    )
                time.sleep(LOCK_POLL_INTERVAL)
