"""Unit tests for clinsign.services.signature.biometrics."""
from datetime import UTC, datetime

from clinsign.db.models.signature import BiometricType
from clinsign.schemas.signature import BiometricDigest, BiometricSample
from clinsign.services.signature.biometrics import (
    encode_biometric,
    hash_sample,
    is_well_formed,
    matches,
)

FIXED = datetime(2026, 3, 1, 9, 30, tzinfo=UTC)


def _sample(**overrides) -> BiometricSample:
    fields = {"type": BiometricType.FINGERPRINT, "template": "minutiae:abc123"}
    fields.update(overrides)
    return BiometricSample(**fields)


# ─── Hashing ──────────────────────────────────────────────────────────────────

def test_hash_is_deterministic():
    assert hash_sample(_sample()) == hash_sample(_sample())


def test_hash_is_sha256_hex_by_default():
    assert len(hash_sample(_sample())) == 64


def test_hash_differs_by_template():
    assert hash_sample(_sample()) != hash_sample(_sample(template="minutiae:zzz999"))


def test_hash_differs_by_type():
    assert hash_sample(_sample()) != hash_sample(_sample(type=BiometricType.IRIS))


def test_metadata_key_order_does_not_change_hash():
    a = _sample(metadata={"dpi": 500, "finger": "left_index"})
    b = _sample(metadata={"finger": "left_index", "dpi": 500})
    assert hash_sample(a) == hash_sample(b)


def test_hash_never_contains_raw_template():
    assert "abc123" not in hash_sample(_sample())


# ─── Encoding ─────────────────────────────────────────────────────────────────

def test_encode_biometric_populates_digest():
    digest = encode_biometric(_sample(), clock=lambda: FIXED)
    assert digest.type == BiometricType.FINGERPRINT
    assert digest.hash == hash_sample(_sample())
    assert digest.algorithm == "sha256"
    assert digest.captured_at == FIXED


def test_encode_biometric_with_other_algorithm():
    digest = encode_biometric(_sample(), algorithm="sha512", clock=lambda: FIXED)
    assert digest.algorithm == "sha512"
    assert len(digest.hash) == 128


# ─── Matching ─────────────────────────────────────────────────────────────────

def test_identical_sample_matches():
    assert matches(encode_biometric(_sample()), _sample()) is True


def test_different_template_does_not_match():
    assert matches(encode_biometric(_sample()), _sample(template="forged")) is False


def test_different_type_does_not_match():
    assert matches(encode_biometric(_sample()), _sample(type=BiometricType.FACIAL)) is False


def test_matching_uses_reference_algorithm():
    reference = encode_biometric(_sample(), algorithm="sha512")
    assert matches(reference, _sample()) is True


def test_unknown_reference_algorithm_does_not_match():
    reference = BiometricDigest(
        type=BiometricType.FINGERPRINT, hash="00", algorithm="no-such-hash", captured_at=FIXED
    )
    assert matches(reference, _sample()) is False


# ─── Well-formedness ──────────────────────────────────────────────────────────

def test_encoded_digest_is_well_formed():
    assert is_well_formed(encode_biometric(_sample())) is True


def test_digest_missing_hash_is_malformed():
    digest = BiometricDigest(
        type=BiometricType.FINGERPRINT, hash="", algorithm="sha256", captured_at=FIXED
    )
    assert is_well_formed(digest) is False


def test_digest_missing_capture_time_is_malformed():
    digest = BiometricDigest(
        type=BiometricType.FINGERPRINT, hash="ab" * 32, algorithm="sha256", captured_at=None
    )
    assert is_well_formed(digest) is False


def test_naive_capture_time_is_normalised_to_utc():
    digest = BiometricDigest(
        type=None, hash="ab", algorithm="sha256", captured_at=datetime(2026, 1, 1, 12, 0)
    )
    assert digest.captured_at.tzinfo is UTC
