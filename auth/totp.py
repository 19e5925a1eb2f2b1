"""
auth/totp.py -- TOTP secrets, code verification and backup codes.

Security design decisions:
  Secrets: pyotp.random_base32() -> 32 base32 chars = 160 bits, the RFC 4226
       recommended minimum. generate_secret() never persists anything; the
       caller decides when to store the secret.

  Verification: 6 digits, 30-second steps, SHA-1 (what every authenticator
       app speaks). Codes that are not exactly six ASCII digits are rejected
       before any HMAC is computed. A well-formed code is accepted if it
       matches any step in [T - window, T + window]; pyotp compares with
       hmac.compare_digest.

  Logging: the secret is never logged and submitted codes are masked to
       their first two characters.

  Backup codes: 8 chars from [A-Z0-9] via secrets.choice (~41 bits each).
       Stored as HMAC-SHA256(SECRET_KEY, code) -- same reasoning as API key
       hashing: the input is random, not user-chosen, so a keyed fast hash
       gives O(1) lookup and bcrypt's slowness buys nothing.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import io
import logging
import secrets
import string
from dataclasses import dataclass
from datetime import datetime

import pyotp
import qrcode

logger = logging.getLogger("st0r.totp")

TOTP_DIGITS = 6
TOTP_INTERVAL = 30
BACKUP_CODE_LENGTH = 8
_BACKUP_ALPHABET = string.ascii_uppercase + string.digits


@dataclass(frozen=True)
class ProvisionedSecret:
    secret: str
    provisioning_uri: str


def mask_code(code: str | None) -> str:
    """Return a log-safe fragment of a submitted code: '12****'."""
    if not code:
        return "<empty>"
    return f"{code[:2]}****"


def is_well_formed_code(code: str | None) -> bool:
    return code is not None and len(code) == TOTP_DIGITS and code.isascii() and code.isdigit()


def normalize_backup_code(code: str) -> str:
    """Upper-case and drop the separators users tend to type ('abcd-1234')."""
    return "".join(ch for ch in code.upper() if ch not in "- \t")


def is_backup_code_shape(code: str | None) -> bool:
    if not code:
        return False
    normalized = normalize_backup_code(code)
    return len(normalized) == BACKUP_CODE_LENGTH and all(ch in _BACKUP_ALPHABET for ch in normalized)


class TOTPEngine:
    """Stateless second-factor primitives.

    Usage:
        engine = TOTPEngine(issuer="St0r GUI", backup_key=settings.secret_key)
        provisioned = engine.generate_secret("alice")
        engine.verify(provisioned.secret, "123456")
    """

    def __init__(self, issuer: str, backup_key: str, window_steps: int = 2) -> None:
        self.issuer = issuer
        self.window_steps = window_steps
        self._backup_key = backup_key.encode("utf-8")

    # ------------------------------------------------------------------
    # Secrets
    # ------------------------------------------------------------------

    def generate_secret(self, label: str) -> ProvisionedSecret:
        secret = pyotp.random_base32()
        uri = pyotp.TOTP(secret, digits=TOTP_DIGITS, interval=TOTP_INTERVAL).provisioning_uri(
            name=label, issuer_name=self.issuer
        )
        return ProvisionedSecret(secret=secret, provisioning_uri=uri)

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify(
        self,
        secret: str,
        code: str | None,
        window_steps: int | None = None,
        at: datetime | int | None = None,
    ) -> bool:
        """Return True if code is valid for secret within the drift window.

        Args:
            secret:       base32 secret as stored on the account.
            code:         the submitted code, as received.
            window_steps: steps tolerated either side; defaults to the
                          engine's window (2 -> +/-60s).
            at:           verification instant; None means now. Tests pass
                          a fixed instant to stay clear of step boundaries.
        """
        if not is_well_formed_code(code):
            logger.info("TOTP code rejected as malformed (%s)", mask_code(code))
            return False
        window = self.window_steps if window_steps is None else window_steps
        totp = pyotp.TOTP(secret, digits=TOTP_DIGITS, interval=TOTP_INTERVAL)
        ok = totp.verify(code, for_time=at if at is not None else datetime.now(), valid_window=window)
        if not ok:
            logger.info("TOTP code %s did not match any step in +/-%d", mask_code(code), window)
        return ok

    # ------------------------------------------------------------------
    # Backup codes
    # ------------------------------------------------------------------

    def generate_backup_codes(self, count: int = 8) -> list[str]:
        return ["".join(secrets.choice(_BACKUP_ALPHABET) for _ in range(BACKUP_CODE_LENGTH)) for _ in range(count)]

    def hash_backup_code(self, code: str) -> str:
        return hmac.new(self._backup_key, normalize_backup_code(code).encode("utf-8"), hashlib.sha256).hexdigest()


def render_qr_data_url(uri: str) -> str:
    """Render a provisioning URI as a PNG QR image in a data: URL.

    The browser drops the result straight into an <img src>.
    """
    qr = qrcode.QRCode(version=1, box_size=10, border=4)
    qr.add_data(uri)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buf = io.BytesIO()
    img.save(buf)
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")
