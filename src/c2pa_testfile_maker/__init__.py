"""c2pa-testfile-maker: signed C2PA test assets for provenance tooling."""

from c2pa_testfile_maker.core import (
    AssetSigner,
    AssetVerifier,
    CredentialLoader,
    run_pipeline,
)
from c2pa_testfile_maker.manifest import ManifestLoader
from c2pa_testfile_maker.models import (
    AlgorithmSpec,
    Credential,
    ErrorKind,
    ExitCode,
    Failure,
    ManifestDefinition,
    SigningRequest,
    SigningResult,
    SigningStatus,
    VerificationReport,
)
from c2pa_testfile_maker.registry import lookup, supported_algorithms

__version__ = "0.1.0"

__all__ = [
    "AlgorithmSpec",
    "AssetSigner",
    "AssetVerifier",
    "Credential",
    "CredentialLoader",
    "ErrorKind",
    "ExitCode",
    "Failure",
    "ManifestDefinition",
    "ManifestLoader",
    "SigningRequest",
    "SigningResult",
    "SigningStatus",
    "VerificationReport",
    "lookup",
    "run_pipeline",
    "supported_algorithms",
]
