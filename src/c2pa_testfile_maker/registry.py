"""Signing algorithm registry for c2pa-testfile-maker.

Each supported algorithm is a single :class:`AlgorithmSpec` entry in
``_ALGORITHMS``.  How a key is checked against an entry is decided by the
entry's key requirement family, through ``_KEY_PREDICATES``; adding an
algorithm means adding a table row and, for a new key family, one predicate.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from types import MappingProxyType
from typing import Any

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa

from c2pa_testfile_maker.models import (
    AlgorithmSpec,
    EcKeyRequirement,
    EdKeyRequirement,
    ErrorKind,
    Failure,
    KeyRequirement,
    RsaPssKeyRequirement,
)

_STAGE = "algorithm"

_ALGORITHMS: Mapping[str, AlgorithmSpec] = MappingProxyType(
    {
        spec.identifier: spec
        for spec in (
            AlgorithmSpec(
                identifier="es256",
                key_requirement=EcKeyRequirement(curve="secp256r1"),
                hash_name="sha256",
            ),
            AlgorithmSpec(
                identifier="es384",
                key_requirement=EcKeyRequirement(curve="secp384r1"),
                hash_name="sha384",
            ),
            AlgorithmSpec(
                identifier="es512",
                key_requirement=EcKeyRequirement(curve="secp521r1"),
                hash_name="sha512",
            ),
            AlgorithmSpec(
                identifier="ps256",
                key_requirement=RsaPssKeyRequirement(min_bits=2048),
                hash_name="sha256",
            ),
            AlgorithmSpec(
                identifier="ps384",
                key_requirement=RsaPssKeyRequirement(min_bits=2048),
                hash_name="sha384",
            ),
            AlgorithmSpec(
                identifier="ps512",
                key_requirement=RsaPssKeyRequirement(min_bits=2048),
                hash_name="sha512",
            ),
            AlgorithmSpec(
                identifier="ed25519",
                key_requirement=EdKeyRequirement(),
                hash_name="sha512",
            ),
        )
    }
)

_HASHES: Mapping[str, type[hashes.HashAlgorithm]] = MappingProxyType(
    {
        "sha256": hashes.SHA256,
        "sha384": hashes.SHA384,
        "sha512": hashes.SHA512,
    }
)


# ---------------------------------------------------------------------------
# Key-type predicates, one per requirement family
# ---------------------------------------------------------------------------


def _ec_matches(requirement: Any, key: Any) -> bool:
    return (
        isinstance(key, (ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey))
        and key.curve.name == requirement.curve
    )


def _rsa_pss_matches(requirement: Any, key: Any) -> bool:
    return (
        isinstance(key, (rsa.RSAPrivateKey, rsa.RSAPublicKey))
        and key.key_size >= requirement.min_bits
    )


def _ed_matches(requirement: Any, key: Any) -> bool:
    return isinstance(key, (ed25519.Ed25519PrivateKey, ed25519.Ed25519PublicKey))


_KEY_PREDICATES: Mapping[str, Callable[[Any, Any], bool]] = MappingProxyType(
    {
        "ec": _ec_matches,
        "rsa-pss": _rsa_pss_matches,
        "ed": _ed_matches,
    }
)


def _validate_registry() -> None:
    """Check the table once at import so a bad entry fails loudly and early."""
    for identifier, spec in _ALGORITHMS.items():
        if identifier != identifier.lower():
            raise RuntimeError(f"Algorithm identifier must be lower case: {identifier}")
        if spec.key_requirement.family not in _KEY_PREDICATES:
            raise RuntimeError(
                f"No key predicate for family {spec.key_requirement.family!r} "
                f"(algorithm {identifier})"
            )
        if spec.hash_name not in _HASHES:
            raise RuntimeError(
                f"Unknown hash {spec.hash_name!r} for algorithm {identifier}"
            )


_validate_registry()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def supported_algorithms() -> list[str]:
    """Return the supported identifiers in table order."""
    return list(_ALGORITHMS)


def specs() -> list[AlgorithmSpec]:
    """Return every registry entry in table order."""
    return list(_ALGORITHMS.values())


def lookup(identifier: str) -> AlgorithmSpec | Failure:
    """Return the :class:`AlgorithmSpec` for *identifier*.

    Matching ignores case and surrounding whitespace.  An unknown identifier
    yields a :class:`Failure` of kind ``UnsupportedAlgorithm``.
    """
    spec = _ALGORITHMS.get(identifier.strip().lower())
    if spec is None:
        return Failure(
            kind=ErrorKind.unsupported_algorithm,
            stage=_STAGE,
            message=(
                f"Unsupported signing algorithm {identifier!r}; expected one of "
                f"{', '.join(_ALGORITHMS)}"
            ),
        )
    return spec


def key_matches(requirement: KeyRequirement, key: Any) -> bool:
    """Return True if *key* (private or public) satisfies *requirement*."""
    return _KEY_PREDICATES[requirement.family](requirement, key)


def hash_algorithm(spec: AlgorithmSpec) -> hashes.HashAlgorithm:
    """Return a fresh ``cryptography`` hash instance for *spec*."""
    return _HASHES[spec.hash_name]()


def describe_key(key: Any) -> str:
    """Human-readable key family, used in mismatch messages."""
    if isinstance(key, (ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey)):
        return f"EC {key.curve.name}"
    if isinstance(key, (rsa.RSAPrivateKey, rsa.RSAPublicKey)):
        return f"RSA {key.key_size} bits"
    if isinstance(key, (ed25519.Ed25519PrivateKey, ed25519.Ed25519PublicKey)):
        return "Ed25519"
    return type(key).__name__


__all__ = [
    "describe_key",
    "hash_algorithm",
    "key_matches",
    "lookup",
    "specs",
    "supported_algorithms",
]
