"""Shared test fixtures for c2pa-testfile-maker."""

from __future__ import annotations

import contextlib
import json
import struct
import zlib
from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
import structlog
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from c2pa_testfile_maker import engine


@pytest.fixture(autouse=True)
def _reset_logging() -> Iterator[None]:
    """Drop any structlog configuration a CLI invocation bound to a captured stream."""
    yield
    structlog.reset_defaults()


# ---------------------------------------------------------------------------
# Credential generation
# ---------------------------------------------------------------------------

# Which generated credential set each algorithm signs with.
ALGORITHM_CREDENTIALS = {
    "es256": "ec256",
    "es384": "ec384",
    "es512": "ec521",
    "ps256": "rsa",
    "ps384": "rsa",
    "ps512": "rsa",
    "ed25519": "ed25519",
}


def _key_usage(*, signing: bool) -> x509.KeyUsage:
    return x509.KeyUsage(
        digital_signature=signing,
        content_commitment=False,
        key_encipherment=False,
        data_encipherment=False,
        key_agreement=False,
        key_cert_sign=not signing,
        crl_sign=not signing,
        encipher_only=False,
        decipher_only=False,
    )


def make_cert_chain(private_key: Any) -> bytes:
    """Issue an end-entity certificate for *private_key* from a throwaway CA.

    Returns the PEM chain, leaf first.
    """
    now = datetime.now(tz=UTC)
    ca_key = ec.generate_private_key(ec.SECP256R1())
    ca_name = x509.Name(
        [
            x509.NameAttribute(NameOID.COMMON_NAME, "Testfile Maker Root CA"),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Testfile Maker"),
        ]
    )
    ca_cert = (
        x509.CertificateBuilder()
        .subject_name(ca_name)
        .issuer_name(ca_name)
        .public_key(ca_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=365))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(_key_usage(signing=False), critical=True)
        .add_extension(
            x509.SubjectKeyIdentifier.from_public_key(ca_key.public_key()),
            critical=False,
        )
        .sign(ca_key, hashes.SHA256())
    )
    leaf_name = x509.Name(
        [
            x509.NameAttribute(NameOID.COMMON_NAME, "Testfile Maker Signer"),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Testfile Maker"),
        ]
    )
    leaf_cert = (
        x509.CertificateBuilder()
        .subject_name(leaf_name)
        .issuer_name(ca_name)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(days=1))
        .not_valid_after(now + timedelta(days=90))
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(_key_usage(signing=True), critical=True)
        .add_extension(
            x509.ExtendedKeyUsage([ExtendedKeyUsageOID.EMAIL_PROTECTION]),
            critical=False,
        )
        .add_extension(
            x509.SubjectKeyIdentifier.from_public_key(private_key.public_key()),
            critical=False,
        )
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(ca_key.public_key()),
            critical=False,
        )
        .sign(ca_key, hashes.SHA256())
    )
    return leaf_cert.public_bytes(serialization.Encoding.PEM) + ca_cert.public_bytes(
        serialization.Encoding.PEM
    )


def private_pem(private_key: Any) -> bytes:
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


@pytest.fixture(scope="session")
def credential_files(tmp_path_factory: pytest.TempPathFactory) -> dict[str, tuple[Path, Path]]:
    """One (cert_path, key_path) pair per key family, generated once per session."""
    keys = {
        "ec256": ec.generate_private_key(ec.SECP256R1()),
        "ec384": ec.generate_private_key(ec.SECP384R1()),
        "ec521": ec.generate_private_key(ec.SECP521R1()),
        "rsa": rsa.generate_private_key(public_exponent=65537, key_size=2048),
        "ed25519": ed25519.Ed25519PrivateKey.generate(),
    }
    out_dir = tmp_path_factory.mktemp("certs")
    files: dict[str, tuple[Path, Path]] = {}
    for name, key in keys.items():
        cert_path = out_dir / f"{name}_cert.pem"
        key_path = out_dir / f"{name}_private.pem"
        cert_path.write_bytes(make_cert_chain(key))
        key_path.write_bytes(private_pem(key))
        files[name] = (cert_path, key_path)
    return files


@pytest.fixture()
def es256_files(credential_files: dict[str, tuple[Path, Path]]) -> tuple[Path, Path]:
    return credential_files["ec256"]


# ---------------------------------------------------------------------------
# Manifests and assets
# ---------------------------------------------------------------------------


SIMPLE_MANIFEST: dict[str, Any] = {
    "claim_generator": "c2pa-testfile-maker/0.1.0",
    "claim_generator_info": [{"name": "c2pa-testfile-maker", "version": "0.1.0"}],
    "title": "Example Image with C2PA Manifest",
    "assertions": [
        {
            "label": "c2pa.actions",
            "data": {
                "actions": [
                    {
                        "action": "c2pa.created",
                        "digitalSourceType": (
                            "http://cv.iptc.org/newscodes/digitalsourcetype/digitalCreation"
                        ),
                    }
                ]
            },
        }
    ],
}


def write_manifest(directory: Path, document: Any, name: str = "manifest.json") -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    path.write_text(json.dumps(document, indent=2), encoding="utf-8")
    return path


def make_png(width: int = 8, height: int = 8) -> bytes:
    """Return a tiny valid RGB PNG."""

    def chunk(tag: bytes, data: bytes) -> bytes:
        crc = zlib.crc32(tag + data) & 0xFFFFFFFF
        return struct.pack(">I", len(data)) + tag + data + struct.pack(">I", crc)

    rows = b"".join(b"\x00" + b"\x80\x40\x20" * width for _ in range(height))
    header = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return (
        b"\x89PNG\r\n\x1a\n"
        + chunk(b"IHDR", header)
        + chunk(b"IDAT", zlib.compress(rows))
        + chunk(b"IEND", b"")
    )


@pytest.fixture()
def simple_manifest(tmp_path: Path) -> Path:
    return write_manifest(tmp_path / "manifests", SIMPLE_MANIFEST)


@pytest.fixture()
def input_asset(tmp_path: Path) -> Path:
    path = tmp_path / "assets" / "Dog.png"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(make_png())
    return path


# ---------------------------------------------------------------------------
# Fake engine
# ---------------------------------------------------------------------------


class FakeEngine:
    """In-process stand-in for the c2pa adapter functions."""

    SUPPORTED = ["image/jpeg", "image/png", "image/webp"]

    def __init__(self) -> None:
        self.signers: list[dict[str, Any]] = []
        self.embeds: list[dict[str, Any]] = []
        self.fail_after_write = False
        self.fail_signer = False
        self.store: dict[str, Any] = {
            "active_manifest": "urn:uuid:test",
            "manifests": {"urn:uuid:test": {"title": "Example"}},
        }
        self.store_error: Exception | None = None
        self.mime_types_error: Exception | None = None
        self.read_paths: list[Path] = []

    def create_signer(self, credential: Any, spec: Any, tsa_url: str | None = None) -> Any:
        if self.fail_signer:
            raise RuntimeError("signer rejected")
        self.signers.append(
            {"algorithm": credential.algorithm, "spec": spec.identifier, "tsa_url": tsa_url}
        )
        return contextlib.nullcontext(object())

    def embed(self, signer: Any, manifest: Any, mime_type: str, source: Any, dest: Any) -> bytes:
        self.embeds.append(
            {
                "document": manifest.document,
                "mime_type": mime_type,
                "resources": dict(manifest.resources),
                "file_ingredients": list(manifest.file_ingredients),
            }
        )
        dest.write(b"SIGNED:" + source.read())
        if self.fail_after_write:
            raise RuntimeError("engine failed mid-write")
        return b"manifest-bytes"

    def supported_mime_types(self) -> list[str]:
        if self.mime_types_error is not None:
            raise self.mime_types_error
        return list(self.SUPPORTED)

    def read_manifest_store(self, path: Any) -> dict[str, Any]:
        self.read_paths.append(Path(path))
        if self.store_error is not None:
            raise self.store_error
        return self.store


@pytest.fixture()
def fake_engine(monkeypatch: pytest.MonkeyPatch) -> FakeEngine:
    """Replace the engine adapter's calls with a :class:`FakeEngine`."""
    fake = FakeEngine()
    monkeypatch.setattr(engine, "create_signer", fake.create_signer)
    monkeypatch.setattr(engine, "embed", fake.embed)
    monkeypatch.setattr(engine, "supported_mime_types", fake.supported_mime_types)
    monkeypatch.setattr(engine, "read_manifest_store", fake.read_manifest_store)
    return fake
