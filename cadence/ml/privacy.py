"""
Privacy primitives for federated contributions.

  - LaplaceMechanism: differential-privacy noise on each summary field,
    followed by clamping back into the valid range.
  - CommitmentScheme: an HMAC-SHA256 commitment over the privatized payload
    plus a Fernet-sealed opening (payload + nonce). Opening re-derives the
    commitment, so a tampered or foreign contribution is rejected.

Keys are process-local: contributions sealed by another process cannot be
opened here.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import secrets
import string
from typing import Optional, Tuple

import numpy as np
from cryptography.fernet import Fernet, InvalidToken

from cadence.data.models import PrivacyConfig, StatisticalSummary
from cadence.errors import DecryptionError

logger = logging.getLogger(__name__)

# How far one participant can move each field
FIELD_SENSITIVITY = {
    "average_work_duration": 5.0,
    "average_completion_rate": 0.1,
    "average_satisfaction": 0.5,
}

PROOF_LENGTH = 64   # hex sha256


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class LaplaceMechanism:
    def __init__(self, config: PrivacyConfig, rng: Optional[np.random.Generator] = None) -> None:
        self.config = config
        self.rng = rng if rng is not None else np.random.default_rng()

    def noise(self, field_sensitivity: float) -> float:
        scale = field_sensitivity * self.config.sensitivity / self.config.epsilon
        return float(self.rng.laplace(0.0, scale))

    def privatize(self, summary: StatisticalSummary) -> StatisticalSummary:
        return StatisticalSummary(
            average_work_duration=max(
                0.0,
                summary.average_work_duration + self.noise(FIELD_SENSITIVITY["average_work_duration"]),
            ),
            average_completion_rate=clamp(
                summary.average_completion_rate + self.noise(FIELD_SENSITIVITY["average_completion_rate"]),
                0.0, 1.0,
            ),
            average_satisfaction=clamp(
                summary.average_satisfaction + self.noise(FIELD_SENSITIVITY["average_satisfaction"]),
                1.0, 5.0,
            ),
            sample_count=summary.sample_count,
            peak_productivity_hours=list(summary.peak_productivity_hours),
        )


def _canonical(payload: dict) -> bytes:
    return json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")


class CommitmentScheme:
    """HMAC commitments with authenticated-encryption openings."""

    def __init__(self, mac_key: Optional[bytes] = None, cipher_key: Optional[bytes] = None) -> None:
        self._mac_key = mac_key or secrets.token_bytes(32)
        self._fernet = Fernet(cipher_key or Fernet.generate_key())

    def commit(self, payload: dict) -> Tuple[str, str]:
        """Return (proof, sealed opening) for payload."""
        nonce = secrets.token_hex(16)
        proof = self._mac({"nonce": nonce, "payload": payload})
        sealed = self._fernet.encrypt(_canonical({"nonce": nonce, "payload": payload}))
        return proof, sealed.decode("ascii")

    def open(self, proof: str, sealed: str) -> dict:
        """Decrypt a sealed opening and check it against its proof."""
        try:
            opening = json.loads(self._fernet.decrypt(sealed.encode("ascii")))
            expected = self._mac({"nonce": opening["nonce"], "payload": opening["payload"]})
        except (InvalidToken, ValueError, KeyError, TypeError, UnicodeError) as exc:
            raise DecryptionError("contribution could not be decrypted") from exc
        if not hmac.compare_digest(expected, proof):
            raise DecryptionError("commitment does not match its proof")
        return opening["payload"]

    def sign(self, payload: dict) -> str:
        return self._mac(payload)

    @staticmethod
    def is_well_formed(proof: Optional[str]) -> bool:
        return (
            isinstance(proof, str)
            and len(proof) == PROOF_LENGTH
            and all(c in string.hexdigits for c in proof)
        )

    def _mac(self, payload: dict) -> str:
        return hmac.new(self._mac_key, _canonical(payload), hashlib.sha256).hexdigest()
