"""Credential loading, signing orchestration and verification."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

import structlog
from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization

from c2pa_testfile_maker import engine, registry
from c2pa_testfile_maker.manifest import ManifestLoader
from c2pa_testfile_maker.models import (
    AlgorithmSpec,
    Credential,
    ErrorKind,
    Failure,
    SigningRequest,
    SigningResult,
    SigningStatus,
    VerificationFinding,
    VerificationReport,
)

logger = structlog.get_logger(__name__)

# Reported for every self-signed test chain; not treated as a failure.
TOLERATED_STATUS_CODES = frozenset({"signingCredential.untrusted"})

_OUTPUT_MODE = 0o644


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _read_file(path: Path, stage: str, what: str) -> bytes | Failure:
    try:
        return path.read_bytes()
    except FileNotFoundError:
        return Failure(
            kind=ErrorKind.missing_file,
            stage=stage,
            message=f"{what} file not found",
            path=path,
        )
    except OSError as exc:
        return Failure(
            kind=ErrorKind.missing_file,
            stage=stage,
            message=f"Failed to read {what.lower()} file: {exc}",
            path=path,
        )


def _public_der(key: object) -> bytes:
    return key.public_bytes(  # type: ignore[attr-defined]
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def _error_path(exc: Exception) -> Path | None:
    """The file an OS error names, if any; engine errors name none."""
    if isinstance(exc, OSError) and exc.filename is not None:
        return Path(os.fsdecode(exc.filename))
    return None


def _failed(failure: Failure) -> SigningResult:
    logger.error(
        "stage_failed",
        stage=failure.stage,
        kind=failure.kind.value,
        message=failure.message,
        path=str(failure.path) if failure.path else None,
    )
    return SigningResult(status=SigningStatus.failed, failure=failure)


def resolve_output_path(input_path: Path, output_path: Path) -> Path:
    """Return the file to write; an existing directory receives the input's name."""
    if output_path.is_dir():
        return output_path / input_path.name
    return output_path


# ---------------------------------------------------------------------------
# CredentialLoader
# ---------------------------------------------------------------------------


class CredentialLoader:
    """Load a certificate chain and private key and check them against an algorithm."""

    stage = "credential"

    def load(
        self,
        cert_path: str | Path,
        key_path: str | Path,
        spec: AlgorithmSpec,
    ) -> Credential | Failure:
        """Return a :class:`Credential` usable with *spec*, or a :class:`Failure`.

        Checks run in a fixed order: both files readable, key parses, chain
        parses, key family matches *spec*, leaf certificate carries the same
        public key.  Nothing here touches the engine, so a mismatched key is
        always reported as ``AlgorithmKeyTypeMismatch`` rather than as an
        opaque signing error later on.
        """
        cert_file, key_file = Path(cert_path), Path(key_path)

        cert_pem = _read_file(cert_file, self.stage, "Certificate")
        if isinstance(cert_pem, Failure):
            return cert_pem
        key_pem = _read_file(key_file, self.stage, "Private key")
        if isinstance(key_pem, Failure):
            return key_pem

        try:
            private_key = serialization.load_pem_private_key(key_pem, password=None)
        except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
            return Failure(
                kind=ErrorKind.malformed_key,
                stage=self.stage,
                message=f"Cannot parse PEM private key: {exc}",
                path=key_file,
            )

        try:
            chain = x509.load_pem_x509_certificates(cert_pem)
        except ValueError as exc:
            return Failure(
                kind=ErrorKind.malformed_certificate,
                stage=self.stage,
                message=f"Cannot parse PEM certificate chain: {exc}",
                path=cert_file,
            )

        requirement = spec.key_requirement
        if not registry.key_matches(requirement, private_key):
            return Failure(
                kind=ErrorKind.algorithm_key_type_mismatch,
                stage=self.stage,
                message=(
                    f"Algorithm {spec.identifier} requires a {requirement.describe()} "
                    f"key, got {registry.describe_key(private_key)}"
                ),
                path=key_file,
            )

        leaf_key = chain[0].public_key()
        if _public_der(leaf_key) != _public_der(private_key.public_key()):
            return Failure(
                kind=ErrorKind.algorithm_key_type_mismatch,
                stage=self.stage,
                message=(
                    "Certificate public key does not match the private key "
                    f"(certificate: {registry.describe_key(leaf_key)}, "
                    f"key: {registry.describe_key(private_key)})"
                ),
                path=cert_file,
            )

        logger.info(
            "credential_loaded",
            algorithm=spec.identifier,
            key_type=registry.describe_key(private_key),
            chain_length=len(chain),
        )
        return Credential(
            private_key_pem=key_pem,
            cert_chain_pem=cert_pem,
            algorithm=spec.identifier,
        )


# ---------------------------------------------------------------------------
# AssetSigner
# ---------------------------------------------------------------------------


class AssetSigner:
    """Embed a signed manifest into an asset and publish it atomically."""

    stage = "sign"

    def sign(self, request: SigningRequest) -> SigningResult:
        """Sign ``request.input_path`` into ``request.output_path``.

        The engine writes into a temporary file next to the output, which is
        renamed over the output only once signing finished.  On failure the
        temporary file is removed and the output path is left as it was.
        """
        spec = registry.lookup(request.credential.algorithm)
        if isinstance(spec, Failure):
            return _failed(spec)

        input_path = request.input_path
        if not input_path.is_file():
            return _failed(
                Failure(
                    kind=ErrorKind.missing_file,
                    stage=self.stage,
                    message="Input asset not found",
                    path=input_path,
                )
            )

        mime_type = engine.mime_type_for(input_path)
        try:
            supported = engine.supported_mime_types()
        except Exception as exc:
            return _failed(
                Failure(
                    kind=ErrorKind.embedding_failure,
                    stage=self.stage,
                    message=f"Cannot query supported asset formats: {exc}",
                )
            )
        if mime_type is None or mime_type not in supported:
            return _failed(
                Failure(
                    kind=ErrorKind.asset_format_unsupported,
                    stage=self.stage,
                    message=f"Unsupported asset format: {mime_type or 'unknown'}",
                    path=input_path,
                )
            )

        output_path = request.output_path
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{output_path.name}.",
                suffix=".partial",
                dir=output_path.parent,
            )
        except OSError as exc:
            return _failed(
                Failure(
                    kind=ErrorKind.embedding_failure,
                    stage=self.stage,
                    message=f"Cannot create output file: {exc}",
                    path=output_path,
                )
            )

        tmp_path = Path(tmp_name)
        try:
            with (
                os.fdopen(fd, "w+b") as dest,
                input_path.open("rb") as source,
                engine.create_signer(request.credential, spec, request.tsa_url) as signer,
            ):
                engine.embed(signer, request.manifest, mime_type, source, dest)
                dest.flush()
                os.fsync(dest.fileno())
            os.chmod(tmp_path, _OUTPUT_MODE)
            os.replace(tmp_path, output_path)
        except Exception as exc:
            tmp_path.unlink(missing_ok=True)
            return _failed(
                Failure(
                    kind=ErrorKind.embedding_failure,
                    stage=self.stage,
                    message=f"Failed to sign and embed manifest: {exc}",
                    path=_error_path(exc),
                )
            )

        logger.info(
            "asset_signed",
            input=str(input_path),
            output=str(output_path),
            algorithm=spec.identifier,
            mime_type=mime_type,
        )
        return SigningResult(output_path=output_path, status=SigningStatus.signed)


# ---------------------------------------------------------------------------
# AssetVerifier
# ---------------------------------------------------------------------------


class AssetVerifier:
    """Read a signed asset back through the engine and judge its manifest."""

    def verify(self, asset_path: str | Path) -> VerificationReport:
        """Return a :class:`VerificationReport` for *asset_path*.

        The asset is only read.  The report is valid when the store has an
        active manifest and the engine reported no failure codes other than
        :data:`TOLERATED_STATUS_CODES`.
        """
        try:
            store = engine.read_manifest_store(asset_path)
        except Exception as exc:
            return VerificationReport(
                valid=False, error=f"Failed to read manifest store: {exc}"
            )

        findings = [
            VerificationFinding(
                code=str(status.get("code", "")),
                url=status.get("url"),
                explanation=status.get("explanation"),
            )
            for status in _failure_statuses(store)
        ]
        active = store.get("active_manifest")
        state = store.get("validation_state")
        failures = [f for f in findings if f.code not in TOLERATED_STATUS_CODES]

        error = None
        if active is None:
            error = "No active manifest found"
        elif state == "Invalid" and not failures:
            error = "Engine reported the manifest as invalid"
        elif failures:
            error = ", ".join(f.code for f in failures)

        report = VerificationReport(
            valid=error is None,
            active_manifest=active,
            validation_state=state,
            findings=findings,
            error=error,
        )
        logger.info(
            "verification_completed",
            path=str(asset_path),
            valid=report.valid,
            findings=len(findings),
        )
        return report


def _failure_statuses(store: dict) -> list[dict]:
    """Collect failure status entries from either engine report layout."""
    statuses = list(store.get("validation_status") or [])
    results = store.get("validation_results") or {}
    active = results.get("activeManifest") or {}
    seen = {(s.get("code"), s.get("url")) for s in statuses}
    for status in active.get("failure") or []:
        if (status.get("code"), status.get("url")) not in seen:
            statuses.append(status)
    return statuses


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


def run_pipeline(
    manifest_path: str | Path,
    input_path: str | Path,
    output_path: str | Path,
    cert_path: str | Path,
    key_path: str | Path,
    algorithm: str = "es256",
    verify: bool = False,
    tsa_url: str | None = None,
) -> SigningResult:
    """Run one signing invocation end to end.

    Stages run in order and the first :class:`Failure` ends the run.  A
    verification failure is reported on the result but keeps the signed
    asset in place.
    """
    logger.info(
        "signing_started",
        manifest=str(manifest_path),
        input=str(input_path),
        output=str(output_path),
        algorithm=algorithm,
    )

    spec = registry.lookup(algorithm)
    if isinstance(spec, Failure):
        return _failed(spec)

    credential = CredentialLoader().load(cert_path, key_path, spec)
    if isinstance(credential, Failure):
        return _failed(credential)

    manifest = ManifestLoader().load(manifest_path)
    if isinstance(manifest, Failure):
        return _failed(manifest)

    source = Path(input_path)
    request = SigningRequest(
        input_path=source,
        output_path=resolve_output_path(source, Path(output_path)),
        credential=credential,
        manifest=manifest,
        verify=verify,
        tsa_url=tsa_url,
    )
    result = AssetSigner().sign(request)
    if result.failure is not None or not request.verify:
        return result

    report = AssetVerifier().verify(request.output_path)
    if report.valid:
        return result.model_copy(update={"verification": report})

    failure = Failure(
        kind=ErrorKind.verification_failure,
        stage="verify",
        message=f"Verification failed: {report.error}",
        path=request.output_path,
    )
    logger.warning(
        "verification_failed",
        path=str(request.output_path),
        error=report.error,
    )
    return SigningResult(
        output_path=request.output_path,
        status=SigningStatus.signed_unverified,
        verification=report,
        failure=failure,
    )


__all__ = [
    "AssetSigner",
    "AssetVerifier",
    "CredentialLoader",
    "TOLERATED_STATUS_CODES",
    "resolve_output_path",
    "run_pipeline",
]
