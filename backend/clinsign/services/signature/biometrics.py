"""
Biometric encoder.

Samples are reduced to a one-way digest over their canonical JSON form;
the raw template never leaves this module. Identical samples always
produce identical hashes for a given algorithm.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Callable
from datetime import datetime

from clinsign.core.security import safe_str_compare
from clinsign.db.base import utcnow
from clinsign.schemas.signature import BiometricDigest, BiometricSample


def _canonical_sample(sample: BiometricSample) -> bytes:
    components = {
        "type": sample.type.value,
        "template": sample.template,
        "metadata": sample.metadata,
    }
    return json.dumps(components, sort_keys=True, ensure_ascii=True, default=str).encode()


def hash_sample(sample: BiometricSample, algorithm: str = "sha256") -> str:
    """Hex digest of ``sample``. Raises ValueError for unknown algorithms."""
    return hashlib.new(algorithm, _canonical_sample(sample)).hexdigest()


def encode_biometric(
    sample: BiometricSample,
    algorithm: str = "sha256",
    clock: Callable[[], datetime] = utcnow,
) -> BiometricDigest:
    """Digest a sample for storage alongside a signature."""
    return BiometricDigest(
        type=sample.type,
        hash=hash_sample(sample, algorithm),
        algorithm=algorithm,
        captured_at=clock(),
    )


def matches(reference: BiometricDigest, sample: BiometricSample) -> bool:
    """
    Compare a fresh sample against a stored digest, in constant time.

    The sample is hashed with the reference's own algorithm so digests
    written under an older algorithm setting still compare correctly.
    """
    if reference.type is not None and reference.type != sample.type:
        return False
    try:
        candidate = hash_sample(sample, reference.algorithm)
    except ValueError:
        return False
    return safe_str_compare(candidate, reference.hash)


def is_well_formed(digest: BiometricDigest) -> bool:
    """Structural check only; the hash itself cannot be recomputed without the sample."""
    return bool(digest.hash and digest.algorithm and digest.captured_at)
