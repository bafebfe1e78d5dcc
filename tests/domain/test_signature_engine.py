"""Tests for the ECDSA P-256 signature engine."""

import base64
from datetime import datetime, timezone

import pytest
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec

from expense_kernel.domain.signing import (
    SignatureEngine,
    der_to_p1363,
    load_public_key,
    p1363_to_der,
)
from expense_kernel.domain.values import SignatureEnvelope
from expense_kernel.exceptions import CryptoUnavailableError, MalformedSignatureError

PAYLOAD = b'{"amount":"42.50","title":"Taxi"}'


def _flip_byte(encoded: str, index: int = 0) -> str:
    raw = bytearray(base64.b64decode(encoded))
    raw[index] ^= 0x01
    return base64.b64encode(bytes(raw)).decode("ascii")


def _with(envelope: SignatureEnvelope, **changes) -> SignatureEnvelope:
    fields = {
        "data": envelope.data,
        "public_key": envelope.public_key,
        "signed_by": envelope.signed_by,
        "signed_at": envelope.signed_at,
    }
    fields.update(changes)
    return SignatureEnvelope(**fields)


class TestRoundTrip:

    def test_sign_then_verify(self, signature_engine):
        envelope = signature_engine.generate_and_sign(PAYLOAD, "ana@example.com")
        assert signature_engine.verify(envelope, PAYLOAD) is True

    def test_envelope_fields(self, signature_engine, deterministic_clock):
        envelope = signature_engine.generate_and_sign(PAYLOAD, "ana@example.com")
        assert envelope.signed_by == "ana@example.com"
        assert envelope.signed_at == deterministic_clock.now()
        # P1363 r || s
        assert len(base64.b64decode(envelope.data)) == 64
        key = load_public_key(envelope.public_key)
        assert key.curve.name == "secp256r1"

    def test_explicit_signed_at_used(self, signature_engine):
        at = datetime(2024, 5, 2, 9, 30, tzinfo=timezone.utc)
        envelope = signature_engine.generate_and_sign(PAYLOAD, "ana@example.com", at)
        assert envelope.signed_at == at

    def test_fresh_keypair_each_time(self, signature_engine):
        a = signature_engine.generate_and_sign(PAYLOAD, "ana@example.com")
        b = signature_engine.generate_and_sign(PAYLOAD, "ana@example.com")
        assert a.public_key != b.public_key

    def test_der_format_engine_round_trip(self, deterministic_clock):
        engine = SignatureEngine(clock=deterministic_clock, signature_format="der")
        envelope = engine.generate_and_sign(PAYLOAD, "ana@example.com")
        # DER sequence tag
        assert base64.b64decode(envelope.data)[0] == 0x30
        assert engine.verify(envelope, PAYLOAD) is True

    def test_unknown_signature_format_refused(self):
        with pytest.raises(ValueError):
            SignatureEngine(signature_format="jws")

    @pytest.mark.parametrize("options", [{"curve": "secp384r1"}, {"hash_name": "sha1"}])
    def test_unsupported_curve_or_hash_refused(self, options):
        with pytest.raises(ValueError):
            SignatureEngine(**options)

    def test_envelope_survives_wire_form(self, signature_engine):
        envelope = signature_engine.generate_and_sign(PAYLOAD, "ana@example.com")
        restored = SignatureEnvelope.from_dict(envelope.to_dict())
        assert restored == envelope
        assert signature_engine.verify(restored, PAYLOAD) is True


class TestTamperDetection:

    def test_single_byte_payload_change_fails(self, signature_engine):
        envelope = signature_engine.generate_and_sign(PAYLOAD, "ana@example.com")
        tampered = PAYLOAD.replace(b"42.50", b"42.51")
        assert signature_engine.verify(envelope, tampered) is False

    def test_every_payload_byte_is_covered(self, signature_engine):
        envelope = signature_engine.generate_and_sign(PAYLOAD, "ana@example.com")
        for i in range(len(PAYLOAD)):
            mutated = bytearray(PAYLOAD)
            mutated[i] ^= 0x01
            assert signature_engine.verify(envelope, bytes(mutated)) is False

    def test_flipped_signature_byte_fails(self, signature_engine):
        envelope = signature_engine.generate_and_sign(PAYLOAD, "ana@example.com")
        broken = _with(envelope, data=_flip_byte(envelope.data, 10))
        assert signature_engine.verify(broken, PAYLOAD) is False

    def test_other_signers_key_fails(self, signature_engine):
        a = signature_engine.generate_and_sign(PAYLOAD, "ana@example.com")
        b = signature_engine.generate_and_sign(PAYLOAD, "ana@example.com")
        swapped = _with(a, public_key=b.public_key)
        assert signature_engine.verify(swapped, PAYLOAD) is False


class TestMalformedInput:

    def test_bad_base64_signature(self, signature_engine):
        envelope = signature_engine.generate_and_sign(PAYLOAD, "ana@example.com")
        with pytest.raises(MalformedSignatureError) as exc_info:
            signature_engine.verify(_with(envelope, data="not base64!!"), PAYLOAD)
        assert exc_info.value.field == "data"

    def test_empty_signature(self, signature_engine):
        envelope = signature_engine.generate_and_sign(PAYLOAD, "ana@example.com")
        with pytest.raises(MalformedSignatureError):
            signature_engine.verify(_with(envelope, data=""), PAYLOAD)

    def test_garbage_public_key(self, signature_engine):
        envelope = signature_engine.generate_and_sign(PAYLOAD, "ana@example.com")
        garbage = base64.b64encode(b"definitely not a key").decode("ascii")
        with pytest.raises(MalformedSignatureError) as exc_info:
            signature_engine.verify(_with(envelope, public_key=garbage), PAYLOAD)
        assert exc_info.value.field == "publicKey"

    def test_wrong_curve_public_key(self, signature_engine):
        envelope = signature_engine.generate_and_sign(PAYLOAD, "ana@example.com")
        other = ec.generate_private_key(ec.SECP384R1()).public_key().public_bytes(
            serialization.Encoding.DER,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        with pytest.raises(MalformedSignatureError):
            signature_engine.verify(
                _with(envelope, public_key=base64.b64encode(other).decode("ascii")),
                PAYLOAD,
            )

    def test_undecodable_der_signature_does_not_verify(self, signature_engine):
        envelope = signature_engine.generate_and_sign(PAYLOAD, "ana@example.com")
        junk = base64.b64encode(b"\x30\x03abc").decode("ascii")
        assert signature_engine.verify(_with(envelope, data=junk), PAYLOAD) is False


class TestEncodings:

    def test_der_signature_accepted(self, signature_engine):
        private_key = ec.generate_private_key(ec.SECP256R1())
        der = private_key.sign(PAYLOAD, ec.ECDSA(hashes.SHA256()))
        public = private_key.public_key().public_bytes(
            serialization.Encoding.DER,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        envelope = SignatureEnvelope(
            data=base64.b64encode(der).decode("ascii"),
            public_key=base64.b64encode(public).decode("ascii"),
            signed_by="ana@example.com",
            signed_at="2024-03-01T12:00:00.000Z",
        )
        assert signature_engine.verify(envelope, PAYLOAD) is True

    def test_p1363_der_conversion_round_trip(self):
        private_key = ec.generate_private_key(ec.SECP256R1())
        der = private_key.sign(PAYLOAD, ec.ECDSA(hashes.SHA256()))
        raw = der_to_p1363(der)
        assert len(raw) == 64
        assert p1363_to_der(raw) == der


class TestCryptoUnavailable:

    def test_backend_failure_surfaces_typed_error(self, signature_engine, monkeypatch):
        def _unsupported(curve):
            raise UnsupportedAlgorithm("P-256 disabled")

        monkeypatch.setattr(ec, "generate_private_key", _unsupported)
        with pytest.raises(CryptoUnavailableError) as exc_info:
            signature_engine.generate_and_sign(PAYLOAD, "ana@example.com")
        assert exc_info.value.code == "CRYPTO_UNAVAILABLE"
