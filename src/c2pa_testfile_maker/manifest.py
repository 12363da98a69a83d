"""Manifest definition loading for c2pa-testfile-maker."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from c2pa_testfile_maker.models import (
    ErrorKind,
    Failure,
    FileIngredient,
    IngredientRelationship,
    ManifestDefinition,
)

logger = structlog.get_logger(__name__)

_STAGE = "manifest"

# Not part of the C2PA manifest definition; consumed here and stripped
# before the document reaches the engine.
FILE_INGREDIENTS_KEY = "ingredients_from_files"

# Formats accepted for ingredients read from files, keyed by extension.
INGREDIENT_MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",
    ".bmp": "image/bmp",
}


# ---------------------------------------------------------------------------
# Structural schema.  Only the fields this tool reads are checked; the rest
# of the document belongs to the engine's manifest format.
# ---------------------------------------------------------------------------


class _ResourceRef(BaseModel):
    model_config = ConfigDict(extra="allow")

    format: str | None = None
    identifier: str


class _Assertion(BaseModel):
    model_config = ConfigDict(extra="allow")

    label: str = Field(min_length=1)


class _Ingredient(BaseModel):
    model_config = ConfigDict(extra="allow")

    thumbnail: _ResourceRef | None = None


class _GeneratorInfo(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    icon: _ResourceRef | None = None


class _FileIngredientEntry(BaseModel):
    file_path: str = Field(min_length=1)
    title: str | None = None
    relationship: str | None = None


class _ManifestDocument(BaseModel):
    model_config = ConfigDict(extra="allow")

    claim_generator: str | None = None
    claim_generator_info: list[_GeneratorInfo] = Field(default_factory=list)
    title: str | None = None
    thumbnail: _ResourceRef | None = None
    assertions: list[_Assertion] = Field(default_factory=list)
    ingredients: list[_Ingredient] = Field(default_factory=list)
    ingredients_from_files: list[_FileIngredientEntry] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _parse_relationship(value: str | None) -> IngredientRelationship | None:
    if value is None:
        return None
    for relationship in IngredientRelationship:
        if relationship.value.lower() == value.lower():
            return relationship
    raise ValueError(f"Invalid ingredient relationship: {value!r}")


def _ingredient_mime_type(path: Path) -> str | None:
    return INGREDIENT_MIME_TYPES.get(path.suffix.lower())


def _resolve(base_dir: Path, reference: str) -> Path:
    path = Path(reference)
    return path if path.is_absolute() else base_dir / path


def _is_external(identifier: str) -> bool:
    return "://" in identifier


# ---------------------------------------------------------------------------
# ManifestLoader
# ---------------------------------------------------------------------------


class ManifestLoader:
    """Read a JSON manifest definition and resolve the files it references.

    Relative references are resolved against the manifest file's directory,
    never the process working directory, so a manifest and its thumbnails can
    be moved around together.
    """

    def load(self, manifest_path: str | Path) -> ManifestDefinition | Failure:
        path = Path(manifest_path)
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            return self._failure(
                ErrorKind.missing_file, "Manifest file not found", path
            )
        except OSError as exc:
            return self._failure(
                ErrorKind.missing_file, f"Failed to read manifest file: {exc}", path
            )

        try:
            raw = data.decode("utf-8")
        except UnicodeDecodeError as exc:
            return self._failure(
                ErrorKind.manifest_parse_error, f"Manifest is not valid UTF-8: {exc}", path
            )

        try:
            document = json.loads(raw)
        except json.JSONDecodeError as exc:
            return self._failure(
                ErrorKind.manifest_parse_error, f"Invalid JSON: {exc}", path
            )
        if not isinstance(document, dict):
            return self._failure(
                ErrorKind.manifest_parse_error,
                f"Manifest must be a JSON object, got {type(document).__name__}",
                path,
            )

        try:
            parsed = _ManifestDocument.model_validate(document)
        except ValidationError as exc:
            errors = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in exc.errors()
            )
            return self._failure(
                ErrorKind.manifest_parse_error, f"Invalid manifest: {errors}", path
            )

        base_dir = path.resolve().parent
        return self._build(document, parsed, base_dir, path)

    def _build(
        self,
        document: dict[str, Any],
        parsed: _ManifestDocument,
        base_dir: Path,
        manifest_path: Path,
    ) -> ManifestDefinition | Failure:
        references: list[str] = []
        if parsed.thumbnail is not None:
            references.append(parsed.thumbnail.identifier)
        for ingredient in parsed.ingredients:
            if ingredient.thumbnail is not None:
                references.append(ingredient.thumbnail.identifier)
        for info in parsed.claim_generator_info:
            if info.icon is not None:
                references.append(info.icon.identifier)

        resources: dict[str, Path] = {}
        for identifier in references:
            if _is_external(identifier) or identifier in resources:
                continue
            resolved = _resolve(base_dir, identifier)
            if not resolved.is_file():
                return self._failure(
                    ErrorKind.missing_file,
                    f"Referenced resource {identifier!r} not found",
                    resolved,
                )
            resources[identifier] = resolved

        file_ingredients: list[FileIngredient] = []
        for entry in parsed.ingredients_from_files:
            resolved = _resolve(base_dir, entry.file_path)
            if not resolved.is_file():
                return self._failure(
                    ErrorKind.missing_file,
                    f"Ingredient file {entry.file_path!r} not found",
                    resolved,
                )
            mime_type = _ingredient_mime_type(resolved)
            if mime_type is None:
                return self._failure(
                    ErrorKind.asset_format_unsupported,
                    f"Unsupported ingredient file format: {resolved.suffix or 'no extension'}",
                    resolved,
                )
            try:
                relationship = _parse_relationship(entry.relationship)
            except ValueError as exc:
                return self._failure(
                    ErrorKind.manifest_parse_error, str(exc), manifest_path
                )
            file_ingredients.append(
                FileIngredient(
                    path=resolved,
                    mime_type=mime_type,
                    title=entry.title,
                    relationship=relationship,
                )
            )

        engine_document = {
            key: value for key, value in document.items() if key != FILE_INGREDIENTS_KEY
        }
        definition = ManifestDefinition(
            document=engine_document,
            base_dir=base_dir,
            resources=resources,
            file_ingredients=file_ingredients,
        )
        logger.info(
            "manifest_loaded",
            path=str(manifest_path),
            assertions=len(definition.assertions),
            resources=len(resources),
            file_ingredients=len(file_ingredients),
        )
        return definition

    @staticmethod
    def _failure(kind: ErrorKind, message: str, path: Path) -> Failure:
        return Failure(kind=kind, stage=_STAGE, message=message, path=path)


__all__ = ["FILE_INGREDIENTS_KEY", "INGREDIENT_MIME_TYPES", "ManifestLoader"]
