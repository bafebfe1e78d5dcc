"""
Signature Engine (``expense_kernel.domain.signing``).

Responsibility
--------------
Produces and checks ECDSA P-256 / SHA-256 proofs over canonical payload
bytes.  Every signing event mints a fresh keypair; the private half lives
only for the duration of one ``generate_and_sign`` call and the public half
travels inside the envelope as base64 DER SubjectPublicKeyInfo.

Trust model
-----------
There is no key registry.  A valid envelope proves that *whoever held the
private key at signing time produced this exact payload*, and it binds that
payload to the ``signedBy`` claim.  It does NOT prove that the named person
owns a long-lived identity key.  Who may sign is decided by the
authorization layer that allowed the transition; the signature's job is
tamper evidence of the payload.

Signature encoding
------------------
Signatures are emitted as IEEE P1363 ``r || s`` (64 bytes), which is what
browser WebCrypto produces, so envelopes minted client-side and
server-side are interchangeable.  Verification also accepts DER-encoded
signatures.

Failure modes
-------------
* ``CryptoUnavailableError`` -- the backend cannot generate P-256 keys or
  sign with them.
* ``MalformedSignatureError`` -- bad base64, or a public key that does not
  parse or is not a P-256 key.  A well-formed signature that simply does
  not match returns ``False``; it is not an error.
"""

from __future__ import annotations

import base64
import binascii
from datetime import datetime

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)

from expense_kernel.domain.clock import Clock, SystemClock
from expense_kernel.domain.values import SignatureEnvelope
from expense_kernel.exceptions import CryptoUnavailableError, MalformedSignatureError
from expense_kernel.logging_config import get_logger
from expense_kernel.utils.hashing import hash_bytes

logger = get_logger("domain.signing")

CURVE_NAME = "secp256r1"
HASH_NAME = "sha256"
SIGNATURE_FORMATS = ("p1363", "der")

_CURVES = {"secp256r1": ec.SECP256R1}
_HASHES = {"sha256": hashes.SHA256}
SUPPORTED_CURVES = tuple(_CURVES)
SUPPORTED_HASHES = tuple(_HASHES)

# P-256 scalars are 32 bytes each
_COORDINATE_BYTES = 32


def _b64encode(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def _b64decode(field: str, value: str) -> bytes:
    if not isinstance(value, str) or not value:
        raise MalformedSignatureError(field, "expected a non-empty base64 string")
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise MalformedSignatureError(field, f"invalid base64: {exc}")


def der_to_p1363(der_signature: bytes, width: int = _COORDINATE_BYTES) -> bytes:
    """Convert a DER ECDSA signature to fixed-width ``r || s``."""
    r, s = decode_dss_signature(der_signature)
    return r.to_bytes(width, "big") + s.to_bytes(width, "big")


def p1363_to_der(raw_signature: bytes, width: int = _COORDINATE_BYTES) -> bytes:
    """Convert fixed-width ``r || s`` to a DER ECDSA signature."""
    r = int.from_bytes(raw_signature[:width], "big")
    s = int.from_bytes(raw_signature[width:], "big")
    return encode_dss_signature(r, s)


def load_public_key(encoded: str, curve_name: str = CURVE_NAME) -> ec.EllipticCurvePublicKey:
    """Import a base64 DER SubjectPublicKeyInfo EC public key on ``curve_name``."""
    der = _b64decode("publicKey", encoded)
    try:
        key = serialization.load_der_public_key(der)
    except (ValueError, UnsupportedAlgorithm) as exc:
        raise MalformedSignatureError("publicKey", f"unparseable SPKI: {exc}")
    if not isinstance(key, ec.EllipticCurvePublicKey):
        raise MalformedSignatureError(
            "publicKey", f"expected an EC public key, got {type(key).__name__}"
        )
    if key.curve.name != curve_name:
        raise MalformedSignatureError(
            "publicKey", f"expected curve {curve_name}, got {key.curve.name}"
        )
    return key


class SignatureEngine:
    """Ephemeral-key ECDSA signer/verifier over canonical bytes.

    Stateless apart from the injected clock; safe to share between threads.
    """

    def __init__(
        self,
        clock: Clock | None = None,
        signature_format: str = "p1363",
        curve: str = CURVE_NAME,
        hash_name: str = HASH_NAME,
    ) -> None:
        if signature_format not in SIGNATURE_FORMATS:
            raise ValueError(
                f"signature_format must be one of {SIGNATURE_FORMATS}, "
                f"got {signature_format!r}"
            )
        if curve not in _CURVES:
            raise ValueError(f"curve must be one of {SUPPORTED_CURVES}, got {curve!r}")
        if hash_name not in _HASHES:
            raise ValueError(f"hash_name must be one of {SUPPORTED_HASHES}, got {hash_name!r}")
        self._clock = clock or SystemClock()
        self._signature_format = signature_format
        self._curve_name = curve
        self._curve = _CURVES[curve]()
        self._hash = _HASHES[hash_name]
        self._coordinate_bytes = (self._curve.key_size + 7) // 8

    @property
    def curve(self) -> str:
        return self._curve_name

    @property
    def hash_name(self) -> str:
        return self._hash.name

    def generate_and_sign(
        self,
        payload: bytes,
        signer_identity: str,
        signed_at: datetime | None = None,
    ) -> SignatureEnvelope:
        """Mint a keypair, sign ``payload``, and return the envelope.

        ``signed_at`` must be the same instant that was encoded into
        ``payload`` when the payload carries one; it defaults to the clock.
        """
        try:
            private_key = ec.generate_private_key(self._curve)
            der_signature = private_key.sign(payload, ec.ECDSA(self._hash()))
            public_der = private_key.public_key().public_bytes(
                encoding=serialization.Encoding.DER,
                format=serialization.PublicFormat.SubjectPublicKeyInfo,
            )
        except UnsupportedAlgorithm as exc:
            logger.error("crypto_unavailable", extra={"reason": str(exc)})
            raise CryptoUnavailableError(str(exc))
        del private_key

        if self._signature_format == "p1363":
            signature = der_to_p1363(der_signature, self._coordinate_bytes)
        else:
            signature = der_signature

        envelope = SignatureEnvelope(
            data=_b64encode(signature),
            public_key=_b64encode(public_der),
            signed_by=signer_identity,
            signed_at=signed_at or self._clock.now(),
        )
        logger.debug(
            "payload_signed",
            extra={
                "signed_by": signer_identity,
                "payload_sha256": hash_bytes(payload),
            },
        )
        return envelope

    def verify(self, signature: SignatureEnvelope, payload: bytes) -> bool:
        """Check ``signature`` against ``payload``.

        Returns False for any cryptographic mismatch.  Raises
        MalformedSignatureError only for structurally unusable input.
        """
        public_key = load_public_key(signature.public_key, self._curve_name)
        raw = _b64decode("data", signature.data)
        if len(raw) == 2 * self._coordinate_bytes:
            raw = p1363_to_der(raw, self._coordinate_bytes)
        try:
            public_key.verify(raw, payload, ec.ECDSA(self._hash()))
        except InvalidSignature:
            logger.debug(
                "signature_mismatch",
                extra={
                    "signed_by": signature.signed_by,
                    "payload_sha256": hash_bytes(payload),
                },
            )
            return False
        return True
