"""Pydantic models for c2pa-testfile-maker."""

from __future__ import annotations

from enum import Enum, IntEnum
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class ErrorKind(str, Enum):
    """Every way a signing run can fail."""

    unsupported_algorithm = "UnsupportedAlgorithm"
    missing_file = "MissingFile"
    malformed_certificate = "MalformedCertificate"
    malformed_key = "MalformedKey"
    algorithm_key_type_mismatch = "AlgorithmKeyTypeMismatch"
    manifest_parse_error = "ManifestParseError"
    asset_format_unsupported = "AssetFormatUnsupported"
    embedding_failure = "EmbeddingFailure"
    verification_failure = "VerificationFailure"


class ExitCode(IntEnum):
    """Process exit codes, grouped by cause."""

    ok = 0
    bad_input = 2
    signing_failed = 3
    verification_failed = 4


_EXIT_CODES: dict[ErrorKind, ExitCode] = {
    ErrorKind.embedding_failure: ExitCode.signing_failed,
    ErrorKind.verification_failure: ExitCode.verification_failed,
}


class Failure(BaseModel):
    """A typed failure returned by a pipeline stage instead of raising."""

    model_config = ConfigDict(frozen=True)

    kind: ErrorKind
    stage: str
    message: str
    path: Path | None = None

    @property
    def exit_code(self) -> ExitCode:
        return _EXIT_CODES.get(self.kind, ExitCode.bad_input)

    def describe(self) -> str:
        """One-line, user-facing description of the failure."""
        suffix = f" ({self.path})" if self.path is not None else ""
        return f"{self.kind.value}: {self.message}{suffix}"


# ---------------------------------------------------------------------------
# Algorithm registry entries
# ---------------------------------------------------------------------------


class EcKeyRequirement(BaseModel):
    """An elliptic-curve key on a specific named curve."""

    model_config = ConfigDict(frozen=True)

    family: Literal["ec"] = "ec"
    curve: str = Field(min_length=1)

    def describe(self) -> str:
        return f"EC {self.curve}"


class RsaPssKeyRequirement(BaseModel):
    """An RSA key used with PSS padding, at least ``min_bits`` wide."""

    model_config = ConfigDict(frozen=True)

    family: Literal["rsa-pss"] = "rsa-pss"
    min_bits: int = Field(ge=2048)

    def describe(self) -> str:
        return f"RSA-PSS >= {self.min_bits} bits"


class EdKeyRequirement(BaseModel):
    """An Edwards-curve key."""

    model_config = ConfigDict(frozen=True)

    family: Literal["ed"] = "ed"
    curve: Literal["ed25519"] = "ed25519"

    def describe(self) -> str:
        return self.curve.capitalize()


KeyRequirement = EcKeyRequirement | RsaPssKeyRequirement | EdKeyRequirement


class AlgorithmSpec(BaseModel):
    """Static description of one supported signing algorithm."""

    model_config = ConfigDict(frozen=True)

    identifier: str = Field(min_length=1)
    key_requirement: KeyRequirement = Field(discriminator="family")
    hash_name: str = Field(min_length=1)


# ---------------------------------------------------------------------------
# Loaded inputs
# ---------------------------------------------------------------------------


class Credential(BaseModel):
    """PEM key and certificate chain validated against one algorithm."""

    model_config = ConfigDict(frozen=True)

    private_key_pem: bytes = Field(repr=False)
    cert_chain_pem: bytes
    algorithm: str


class IngredientRelationship(str, Enum):
    """How an ingredient relates to the asset being signed."""

    parent_of = "parentOf"
    component_of = "componentOf"
    input_to = "inputTo"


class FileIngredient(BaseModel):
    """An ingredient whose content is read from a file at signing time."""

    model_config = ConfigDict(frozen=True)

    path: Path
    mime_type: str
    title: str | None = None
    relationship: IngredientRelationship | None = None

    def ingredient_json(self) -> dict[str, Any]:
        data: dict[str, Any] = {"title": self.title or self.path.name}
        if self.relationship is not None:
            data["relationship"] = self.relationship.value
        return data


class ManifestDefinition(BaseModel):
    """A manifest document plus everything needed to resolve its references."""

    model_config = ConfigDict(frozen=True)

    document: dict[str, Any]
    base_dir: Path
    resources: dict[str, Path] = Field(default_factory=dict)
    file_ingredients: list[FileIngredient] = Field(default_factory=list)

    @property
    def claim_generator(self) -> str | None:
        return self.document.get("claim_generator")

    @property
    def title(self) -> str | None:
        return self.document.get("title")

    @property
    def assertions(self) -> list[dict[str, Any]]:
        return list(self.document.get("assertions", []))


class SigningRequest(BaseModel):
    """Everything one signing run needs, assembled from loaded inputs."""

    model_config = ConfigDict(frozen=True)

    input_path: Path
    output_path: Path
    credential: Credential
    manifest: ManifestDefinition
    verify: bool = False
    tsa_url: str | None = None


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


class VerificationFinding(BaseModel):
    """A single validation status entry reported by the engine."""

    code: str
    url: str | None = None
    explanation: str | None = None


class VerificationReport(BaseModel):
    """Outcome of re-reading a signed asset through the engine."""

    valid: bool
    active_manifest: str | None = None
    validation_state: str | None = None
    findings: list[VerificationFinding] = Field(default_factory=list)
    error: str | None = None


class SigningStatus(str, Enum):
    """Overall outcome of a run."""

    signed = "signed"
    signed_unverified = "signed_unverified"
    failed = "failed"


class SigningResult(BaseModel):
    """What a run produced, consumed by the CLI to choose an exit code."""

    output_path: Path | None = None
    status: SigningStatus
    verification: VerificationReport | None = None
    failure: Failure | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is SigningStatus.signed

    @property
    def exit_code(self) -> ExitCode:
        if self.failure is not None:
            return self.failure.exit_code
        return ExitCode.ok


__all__ = [
    "AlgorithmSpec",
    "Credential",
    "EcKeyRequirement",
    "EdKeyRequirement",
    "ErrorKind",
    "ExitCode",
    "Failure",
    "FileIngredient",
    "IngredientRelationship",
    "KeyRequirement",
    "ManifestDefinition",
    "RsaPssKeyRequirement",
    "SigningRequest",
    "SigningResult",
    "SigningStatus",
    "VerificationFinding",
    "VerificationReport",
]
