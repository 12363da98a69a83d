"""Thin adapter over the ``c2pa`` manifest engine.

This is the only module that talks to ``c2pa`` directly.  Everything here is
a small blocking call; error handling is left to the callers in
:mod:`c2pa_testfile_maker.core`.
"""

from __future__ import annotations

import json
import mimetypes
from collections.abc import Callable
from pathlib import Path
from typing import Any, BinaryIO

import c2pa
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, padding, rsa

from c2pa_testfile_maker.models import AlgorithmSpec, Credential, ManifestDefinition
from c2pa_testfile_maker.registry import hash_algorithm, supported_algorithms

# Extensions mimetypes gets wrong or does not know on every platform.
_MIME_OVERRIDES = {
    ".dng": "image/dng",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",
    ".bmp": "image/bmp",
    ".heic": "image/heic",
    ".avif": "image/avif",
}


def signing_alg(spec: AlgorithmSpec) -> c2pa.C2paSigningAlg:
    """Map a registry entry to the engine's algorithm enum."""
    return c2pa.C2paSigningAlg[spec.identifier.upper()]


for _identifier in supported_algorithms():
    if _identifier.upper() not in c2pa.C2paSigningAlg.__members__:
        raise RuntimeError(f"c2pa does not support algorithm {_identifier!r}")


def mime_type_for(path: str | Path) -> str | None:
    """Guess the MIME type of *path* from its extension."""
    suffix = Path(path).suffix.lower()
    if suffix in _MIME_OVERRIDES:
        return _MIME_OVERRIDES[suffix]
    return mimetypes.guess_type(str(path))[0]


def supported_mime_types() -> list[str]:
    return c2pa.Builder.get_supported_mime_types()


# ---------------------------------------------------------------------------
# Signing
# ---------------------------------------------------------------------------


def sign_callback(credential: Credential, spec: AlgorithmSpec) -> Callable[[bytes], bytes]:
    """Return a function producing raw signatures for the engine.

    The engine builds the COSE structure and hands over the bytes to be
    signed; this callback only applies the key with the algorithm's hash and
    padding.
    """
    private_key = serialization.load_pem_private_key(
        credential.private_key_pem, password=None
    )

    if isinstance(private_key, ed25519.Ed25519PrivateKey):
        return private_key.sign

    if isinstance(private_key, ec.EllipticCurvePrivateKey):
        def _sign_ecdsa(data: bytes) -> bytes:
            return private_key.sign(data, ec.ECDSA(hash_algorithm(spec)))

        return _sign_ecdsa

    if isinstance(private_key, rsa.RSAPrivateKey):
        def _sign_pss(data: bytes) -> bytes:
            digest = hash_algorithm(spec)
            return private_key.sign(
                data,
                padding.PSS(mgf=padding.MGF1(digest), salt_length=digest.digest_size),
                digest,
            )

        return _sign_pss

    raise ValueError(f"Unsupported key type: {type(private_key).__name__}")


def create_signer(
    credential: Credential, spec: AlgorithmSpec, tsa_url: str | None = None
) -> c2pa.Signer:
    """Build an engine signer for *credential* under *spec*."""
    return c2pa.Signer.from_callback(
        callback=sign_callback(credential, spec),
        alg=signing_alg(spec),
        certs=credential.cert_chain_pem.decode("utf-8"),
        tsa_url=tsa_url,
    )


def embed(
    signer: c2pa.Signer,
    manifest: ManifestDefinition,
    mime_type: str,
    source: BinaryIO,
    dest: BinaryIO,
) -> bytes:
    """Embed *manifest* into *source*, writing the signed asset to *dest*.

    Resources and file ingredients referenced by the manifest are streamed
    into the builder before signing.  Returns the manifest bytes.
    """
    with c2pa.Builder(manifest.document) as builder:
        for identifier, path in manifest.resources.items():
            with path.open("rb") as resource:
                builder.add_resource(identifier, resource)
        for ingredient in manifest.file_ingredients:
            with ingredient.path.open("rb") as ingredient_stream:
                builder.add_ingredient(
                    json.dumps(ingredient.ingredient_json()),
                    ingredient.mime_type,
                    ingredient_stream,
                )
        return builder.sign(signer, mime_type, source, dest)


# ---------------------------------------------------------------------------
# Reading back
# ---------------------------------------------------------------------------


def read_manifest_store(path: str | Path) -> dict[str, Any]:
    """Return the manifest store of the asset at *path* as a dict."""
    with c2pa.Reader(str(path)) as reader:
        return json.loads(reader.json())


__all__ = [
    "create_signer",
    "embed",
    "mime_type_for",
    "read_manifest_store",
    "sign_callback",
    "signing_alg",
    "supported_mime_types",
]
