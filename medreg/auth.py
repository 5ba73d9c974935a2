"""
MEDREG Authentication Module

Ed25519 challenge-response authentication. The registry never holds a
private key or API key; an account is its public key, and its address is
derived from that key.

Usage:
    from medreg.auth import AccountAuth, generate_keypair, sign_challenge

    # Client generates keypair (private key stays with the client)
    private_key, public_key = generate_keypair()

    # Client registers its public key
    auth = AccountAuth()
    address = auth.register("records-office", public_key)

    # Auth flow: challenge -> sign -> verify -> JWT
    challenge = auth.create_challenge(address)
    signature = sign_challenge(private_key, challenge)
    result = auth.verify_challenge(address, signature)
"""

import base64
import hashlib
import hmac
import json
import secrets
import sqlite3
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional, Tuple, Union

from nacl.encoding import HexEncoder
from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey

from .config import CHALLENGE_TTL_SECONDS, JWT_TTL_HOURS, get_db_path, get_jwt_secret_file
from .logger import get_logger

logger = get_logger(__name__)


# =============================================================================
# KEY GENERATION (client side)
# =============================================================================

def generate_keypair() -> Tuple[bytes, bytes]:
    """
    Generate an Ed25519 keypair.

    Returns:
        (private_key_hex, public_key_hex) - Both as hex-encoded bytes
    """
    signing_key = SigningKey.generate()
    private_key_hex = signing_key.encode(encoder=HexEncoder)
    public_key_hex = signing_key.verify_key.encode(encoder=HexEncoder)
    return private_key_hex, public_key_hex


def address_for(public_key_hex: Union[str, bytes]) -> str:
    """Deterministic account address for a public key."""
    if isinstance(public_key_hex, bytes):
        public_key_hex = public_key_hex.decode()
    return hashlib.sha256(public_key_hex.encode()).hexdigest()[:16]


def sign_challenge(private_key_hex: Union[str, bytes], challenge: bytes) -> bytes:
    """
    Sign a challenge with the account's private key.

    Returns:
        Signature (hex-encoded)
    """
    if isinstance(private_key_hex, str):
        private_key_hex = private_key_hex.encode()
    signing_key = SigningKey(private_key_hex, encoder=HexEncoder)
    signed = signing_key.sign(challenge)
    return signed.signature.hex().encode()


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass
class Account:
    """Registered caller identity."""
    address: str
    name: str
    public_key_hex: str
    created_at: str
    last_seen: Optional[str] = None


@dataclass
class AuthResult:
    """Result of authentication attempt."""
    success: bool
    token: Optional[str] = None
    account: Optional[Account] = None
    error: Optional[str] = None
    expires_at: Optional[str] = None


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode()


def _unb64url(s: str) -> bytes:
    return base64.urlsafe_b64decode(s + "=" * (-len(s) % 4))


# =============================================================================
# ACCOUNT AUTHENTICATION
# =============================================================================

class AccountAuth:
    """
    Account authentication using Ed25519 challenge-response.

    1. Only public keys are stored
    2. Challenges are single-use and expire after CHALLENGE_TTL_SECONDS
    3. Sessions are short-lived HMAC-signed JWTs
    """

    def __init__(self, db_path: Optional[Path] = None, jwt_secret_file: Optional[Path] = None):
        self.db_path = db_path or get_db_path()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()
        self._jwt_secret = self._load_or_create_jwt_secret(jwt_secret_file or get_jwt_secret_file())

    def _init_db(self):
        conn = sqlite3.connect(self.db_path)
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS accounts (
                address TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                public_key_hex TEXT NOT NULL UNIQUE,
                created_at TEXT NOT NULL,
                last_seen TEXT
            )
        """)

        # Pending challenges, one per account
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS challenges (
                address TEXT PRIMARY KEY,
                challenge_hex TEXT NOT NULL,
                created_at TEXT NOT NULL,
                expires_at TEXT NOT NULL
            )
        """)

        conn.commit()
        conn.close()

    def _load_or_create_jwt_secret(self, secret_file: Path) -> bytes:
        secret_file.parent.mkdir(parents=True, exist_ok=True)

        if secret_file.exists():
            return secret_file.read_bytes()

        secret = secrets.token_bytes(32)
        secret_file.write_bytes(secret)
        secret_file.chmod(0o600)
        return secret

    def register(self, name: str, public_key_hex: Union[str, bytes]) -> str:
        """
        Register a new account with its public key.

        Returns:
            Account address (derived from public key hash)

        Raises:
            ValueError: If the key is malformed or already registered
        """
        if isinstance(public_key_hex, bytes):
            public_key_hex = public_key_hex.decode()

        try:
            VerifyKey(public_key_hex.encode(), encoder=HexEncoder)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid Ed25519 public key: {e}")

        address = address_for(public_key_hex)

        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute("""
                INSERT INTO accounts (address, name, public_key_hex, created_at)
                VALUES (?, ?, ?, ?)
            """, (address, name, public_key_hex, datetime.now(timezone.utc).isoformat()))
            conn.commit()
        except sqlite3.IntegrityError:
            raise ValueError(f"Account already registered: {address}")
        finally:
            conn.close()

        logger.info("Account registered: %s (%s)", address, name)
        return address

    def create_challenge(self, address: str) -> bytes:
        """
        Create an authentication challenge for an account.

        Returns:
            Random challenge bytes (32 bytes), valid for CHALLENGE_TTL_SECONDS
        """
        conn = sqlite3.connect(self.db_path)
        cursor = conn.cursor()

        cursor.execute("SELECT address FROM accounts WHERE address = ?", (address,))
        if not cursor.fetchone():
            conn.close()
            raise ValueError(f"Unknown account: {address}")

        challenge = secrets.token_bytes(32)
        now = datetime.now(timezone.utc)
        expires = now + timedelta(seconds=CHALLENGE_TTL_SECONDS)

        cursor.execute("""
            INSERT OR REPLACE INTO challenges (address, challenge_hex, created_at, expires_at)
            VALUES (?, ?, ?, ?)
        """, (address, challenge.hex(), now.isoformat(), expires.isoformat()))

        conn.commit()
        conn.close()

        return challenge

    def verify_challenge(self, address: str, signature_hex: Union[str, bytes]) -> AuthResult:
        """
        Verify the account's signature over its pending challenge and issue a JWT.
        """
        if isinstance(signature_hex, bytes):
            signature_hex = signature_hex.decode()

        conn = sqlite3.connect(self.db_path)
        cursor = conn.cursor()

        cursor.execute("""
            SELECT a.public_key_hex, c.challenge_hex, c.expires_at, a.name, a.created_at
            FROM accounts a
            JOIN challenges c ON a.address = c.address
            WHERE a.address = ?
        """, (address,))

        row = cursor.fetchone()
        if not row:
            conn.close()
            return AuthResult(success=False, error="No pending challenge")

        public_key_hex, challenge_hex, expires_at, name, created_at = row

        if datetime.fromisoformat(expires_at) < datetime.now(timezone.utc):
            cursor.execute("DELETE FROM challenges WHERE address = ?", (address,))
            conn.commit()
            conn.close()
            return AuthResult(success=False, error="Challenge expired")

        try:
            verify_key = VerifyKey(public_key_hex.encode(), encoder=HexEncoder)
            verify_key.verify(bytes.fromhex(challenge_hex), bytes.fromhex(signature_hex))
        except BadSignatureError:
            conn.close()
            logger.warning("Bad challenge signature for %s", address)
            return AuthResult(success=False, error="Invalid signature")
        except ValueError as e:
            conn.close()
            return AuthResult(success=False, error=f"Verification error: {e}")

        # Challenges are single-use
        cursor.execute("DELETE FROM challenges WHERE address = ?", (address,))
        last_seen = datetime.now(timezone.utc).isoformat()
        cursor.execute("UPDATE accounts SET last_seen = ? WHERE address = ?", (last_seen, address))
        conn.commit()
        conn.close()

        expires = datetime.now(timezone.utc) + timedelta(hours=JWT_TTL_HOURS)
        token = self._create_jwt(address, name, expires)

        return AuthResult(
            success=True,
            token=token,
            account=Account(
                address=address,
                name=name,
                public_key_hex=public_key_hex,
                created_at=created_at,
                last_seen=last_seen,
            ),
            expires_at=expires.isoformat(),
        )

    def _create_jwt(self, address: str, name: str, expires_at: datetime) -> str:
        """Create simple HMAC-signed JWT."""
        header = {"alg": "HS256", "typ": "JWT"}
        payload = {
            "sub": address,
            "name": name,
            "exp": int(expires_at.timestamp()),
            "iat": int(time.time()),
        }

        message = f"{_b64url(json.dumps(header).encode())}.{_b64url(json.dumps(payload).encode())}"
        signature = hmac.new(self._jwt_secret, message.encode(), hashlib.sha256).digest()
        return f"{message}.{_b64url(signature)}"

    def verify_jwt(self, token: str) -> Optional[dict]:
        """Verify JWT and return payload if valid."""
        parts = token.split(".")
        if len(parts) != 3:
            return None

        header_b64, payload_b64, signature_b64 = parts
        message = f"{header_b64}.{payload_b64}"

        try:
            actual_sig = _unb64url(signature_b64)
            payload = json.loads(_unb64url(payload_b64))
        except (ValueError, TypeError):
            return None

        expected_sig = hmac.new(self._jwt_secret, message.encode(), hashlib.sha256).digest()
        if not hmac.compare_digest(expected_sig, actual_sig):
            return None

        if not isinstance(payload, dict) or payload.get("exp", 0) < time.time():
            return None

        return payload

    def get_account(self, address: str) -> Optional[Account]:
        conn = sqlite3.connect(self.db_path)
        cursor = conn.cursor()
        cursor.execute("""
            SELECT address, name, public_key_hex, created_at, last_seen
            FROM accounts WHERE address = ?
        """, (address,))
        row = cursor.fetchone()
        conn.close()
        return Account(*row) if row else None
