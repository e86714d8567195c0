"""Seed streams for the heightmap and erosion stages.

Each run starts from one integer seed. Stages never share a generator:
``RngStream(seed).stage("erosion")`` and ``RngStream(seed).stage("heightmap")``
are independent PCG64 streams, so adding draws to one stage leaves the other
stage's output unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass
import hashlib

import numpy as np


NAMESPACE = "dunescape-v1"
_PERSON = b"dunefork"
_SEED_BITS = 64


def wrap_seed(seed: int) -> int:
    """Fold any Python int (negative ones included) into ``[0, 2**64)``."""

    return int(seed) % (1 << _SEED_BITS)


def derive_seed(parent_seed: int, key: str, *, namespace: str = NAMESPACE) -> int:
    """Child seed for stage `key` of `parent_seed`."""

    if not key:
        raise ValueError("stage key must be non-empty")
    payload = f"{namespace}/{wrap_seed(parent_seed)}/{key}".encode("utf-8")
    digest = hashlib.blake2b(payload, digest_size=_SEED_BITS // 8, person=_PERSON).digest()
    return int.from_bytes(digest, byteorder="little", signed=False)


@dataclass(frozen=True)
class RngStream:
    seed: int
    namespace: str = NAMESPACE

    def fork(self, *keys: str) -> "RngStream":
        """Descend through `keys` in order; ``fork("a", "b") == fork("a").fork("b")``."""

        if not keys:
            raise ValueError("fork needs at least one stage key")
        seed = self.seed
        for key in keys:
            seed = derive_seed(seed, key, namespace=self.namespace)
        return RngStream(seed, self.namespace)

    def generator(self) -> np.random.Generator:
        return np.random.Generator(np.random.PCG64(wrap_seed(self.seed)))

    def stage(self, *keys: str) -> np.random.Generator:
        """Fresh generator for the stage named by `keys`."""

        return self.fork(*keys).generator()
