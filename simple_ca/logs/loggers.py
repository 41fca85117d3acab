import logging

core_logger = logging.getLogger("simple_ca.core")
store_logger = logging.getLogger("simple_ca.store")
