from werkzeug.security import check_password_hash, generate_password_hash

PASSWORD_HASH_METHOD = "pbkdf2:sha256"


def hash_password(password: str) -> str:
    """Hash a password as ``method$salt$hash`` using salted PBKDF2-SHA256."""
    return generate_password_hash(password, method=PASSWORD_HASH_METHOD)


def verify_password(password: str, password_hash: str) -> bool:
    # Malformed stored hashes compare as a mismatch.
    return check_password_hash(password_hash, password)
