# jurisdiction/auth/auth.py
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from jurisdiction.configs import configs, env
from jurisdiction.exceptions import UnauthorizedError
from jurisdiction.models.user import Principal

# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


class ClaimsDecoder:
    """
    Verifies bearer tokens and turns their claims into a Principal.

    Tokens are issued elsewhere; ``encode`` only exists for tooling and tests.
    """

    def __init__(self, secret_key: Optional[str], algorithm: str = "HS256"):
        self.secret_key = secret_key
        self.algorithm = algorithm

    def encode(self, claims: dict, expires_delta: Optional[timedelta] = None) -> str:
        to_encode = claims.copy()
        expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=30))
        to_encode.update({"exp": expire})
        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)

    def decode(self, token: str) -> dict:
        if not self.secret_key:
            raise UnauthorizedError("Token verification is not configured")
        try:
            return jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError:
            raise UnauthorizedError("Could not validate credentials")

    def principal(self, token: str) -> Principal:
        return Principal.from_claims(self.decode(token))


claims_decoder = ClaimsDecoder(
    secret_key=env.get("SECRET_KEY"),
    algorithm=configs.get("jwt", {}).get("algorithm", "HS256"),
)
