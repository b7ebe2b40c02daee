# coursehub/security.py
from passlib.context import CryptContext
from . import config

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=config.BCRYPT_ROUNDS,
)


def hash_password(password):
    return pwd_context.hash(password)


def verify_password(plain_password, password_hash):
    if not password_hash:
        return False
    return pwd_context.verify(plain_password, password_hash)
