import logging
import re
import bcrypt

logger = logging.getLogger(__name__)

# Devise stores bcrypt hashes with the $2a$ prefix and a cost of 11
DEVISE_COST = 11
_BCRYPT_PREFIX = re.compile(r"^\$2\w\$")


def hash_password(password: str) -> str:
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=DEVISE_COST)).decode("utf-8")
    return _BCRYPT_PREFIX.sub("$2a$", hashed)


def check_password(password: str, encrypted_password: str) -> bool:

    if not encrypted_password:
        return False

    if not encrypted_password.startswith("$2"):
        # legacy rows hold the password itself
        logger.warning("Password hash is not in bcrypt format, using direct comparison")
        return password == encrypted_password

    normalized = _BCRYPT_PREFIX.sub("$2b$", encrypted_password)
    try:
        return bcrypt.checkpw(password.encode("utf-8"), normalized.encode("utf-8"))
    except ValueError as e:
        logger.error(f"Invalid bcrypt hash: {e}")
        return False
