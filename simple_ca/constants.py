from pathlib import Path

# default store location (overridden by SIMPLE_CA_DIR)
DEFAULT_STORE_DIR = str(Path.home() / ".simple_ca")

# ---CA subject details---
DEFAULT_ORGANIZATION_NAME = "Simple CA"
ROOT_CN_SUFFIX = "Root CA"
INTERMEDIATE_CN_SUFFIX = "Intermediate CA"

# ---Key policy---
DEFAULT_KEY_ALGORITHM = "rsa"
RSA_PUBLIC_EXPONENT = 65537
CA_KEY_SIZE = 4096
LEAF_KEY_SIZE = 2048

# ---Validity---
ROOT_VALIDITY_DAYS = 7200  # ~20 years
INTERMEDIATE_VALIDITY_DAYS = 3600  # ~10 years
LEAF_VALIDITY_DAYS = 370  # 1 year + a few days
CLOCK_SKEW_MINUTES = 10

# ---Store layout---
CA_DIR_NAME = "ca"
LEAF_DIR_NAME = "servers"
SERIALS_DIR_NAME = "serials"
LOCK_FILE_NAME = ".lock"
KEY_FILE_SUFFIX = ".key.pem"
CERT_FILE_SUFFIX = ".cert.pem"
CHAIN_FILE_SUFFIX = ".fullchain.pem"
SERIALS_FILE_SUFFIX = ".txt"

ROOT_SLOT = "root"
INTERMEDIATE_SLOT = "intermediate"

# ---Locking---
DEFAULT_LOCK_TIMEOUT = 10.0  # seconds
LOCK_POLL_INTERVAL = 0.05

# ---Logging details---
LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
