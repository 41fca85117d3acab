import logging
import os
import sys

from ..constants import LOG_FORMAT


class LoggingManager:
    """
    Manages the logging infrastructure of simple-ca.
    Handles the initialization of:
    * core logger (simple_ca.core) - engine, signer, allocator
    * store logger (simple_ca.store) - key material persistence and locking
    * console output
    * an optional log file.
    """

    LOGGER_NAMES = ("simple_ca.core", "simple_ca.store")

    @staticmethod
    def setup_logging(verbose: bool = False, log_file: str | None = None):
        """
        Initializes the loggers. Verbosity only changes what is printed,
        never what the core does.

        :type verbose: bool
        :param verbose: If True, console shows INFO and above, otherwise WARNING and above.

        :type log_file: str | None
        :param log_file: If given, every record (DEBUG and above) is also written there.
        """
        try:
            formatter = logging.Formatter(LOG_FORMAT)

            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(logging.INFO if verbose else logging.WARNING)
            console_handler.setFormatter(formatter)

            file_handler = None
            if log_file:
                log_dir = os.path.dirname(log_file)
                if log_dir:
                    os.makedirs(log_dir, exist_ok=True)
                file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
                file_handler.setLevel(logging.DEBUG)
                file_handler.setFormatter(formatter)

            for name in LoggingManager.LOGGER_NAMES:
                logger = logging.getLogger(name)
                logger.setLevel(logging.DEBUG)
                logger.propagate = False

                # setup may run more than once per process (tests, repeated CLI calls)
                LoggingManager._remove_handlers(logger)

                logger.addHandler(console_handler)
                if file_handler is not None:
                    logger.addHandler(file_handler)

        except Exception as e:
            print(f"CRITICAL ERROR: could not initialize logging system: {e}", file=sys.stderr)

    @staticmethod
    def _remove_handlers(logger: logging.Logger):
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            try:
                handler.close()
            except OSError as e:
                print(f"NON-CRITICAL ERROR: Failed closing log handler: {e}", file=sys.stderr)
