"""Durable keyed storage for stage artifacts.

Artifacts are stored as ``{root}/{stage}/{unit}/{name}.{ext}`` where the
extension comes from the artifact's declared content type. Every call hits
the filesystem, so a crashed run can be resumed from whatever was written.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import pickle
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import joblib
import pandas as pd

from .errors import ArtifactNotFound, ArtifactStoreError, OutputContractViolation

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

LINEAGE_FILENAME = "_lineage.json"


class ContentType(Enum):
    """Serialization format of an artifact, fixed when the artifact is declared."""

    TABLE = "csv"
    TSV = "tsv"
    OBJECT = "joblib"
    JSON = "json"

    @property
    def extension(self) -> str:
        return self.value

    @property
    def is_tabular(self) -> bool:
        return self in (ContentType.TABLE, ContentType.TSV)

    def accepts(self, value: Any) -> bool:
        """Return True if ``value`` can be persisted under this content type."""
        if self.is_tabular:
            return isinstance(value, pd.DataFrame)
        if self is ContentType.JSON:
            return isinstance(value, (dict, list))
        return value is not None


@dataclass(frozen=True)
class ArtifactSpec:
    """Declared artifact: a name plus its content type."""

    name: str
    content_type: ContentType = ContentType.TABLE

    @property
    def filename(self) -> str:
        return f"{self.name}.{self.content_type.extension}"


@dataclass(frozen=True)
class ArtifactRef:
    """Reference to an artifact produced by a given stage."""

    stage: str
    spec: ArtifactSpec

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def key(self) -> str:
        return f"{self.stage}/{self.spec.name}"


@dataclass(frozen=True)
class ArtifactLocation:
    """Where and what an artifact write produced.

    Attributes
    ----------
    stage : str
        Producing stage
    unit : str
        Work unit identifier
    name : str
        Artifact name
    content_type : ContentType
        Declared serialization format
    path : Path
        Location on disk
    checksum : str
        sha256 of the persisted bytes
    """

    stage: str
    unit: str
    name: str
    content_type: ContentType
    path: Path
    checksum: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {
            "stage": self.stage,
            "unit": self.unit,
            "name": self.name,
            "content_type": self.content_type.name,
            "path": str(self.path),
            "checksum": self.checksum,
        }


def check_segment(value: str, what: str) -> str:
    """Return ``value`` if it is usable as a single path component."""
    if not value or "/" in value or "\\" in value or value in (".", ".."):
        raise ValueError(f"Invalid {what} identifier: {value!r}")
    return value


def _sha256(path: Path) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as handle:
        for chunk in iter(lambda: handle.read(1 << 20), b""):
            digest.update(chunk)
    return digest.hexdigest()


class ArtifactStore:
    """Filesystem-backed artifact store.

    Writes to distinct keys never contend: each ``put`` writes a private
    temporary file and moves it into place with ``os.replace``, so concurrent
    workers can share one store.

    Parameters
    ----------
    root : PathLike
        Root directory of the store

    Example
    -------
    >>> store = ArtifactStore("results/artifacts")
    >>> spec = ArtifactSpec("normalized", ContentType.TABLE)
    >>> store.put("preprocessing", "BRCA", spec, df)
    >>> store.exists("preprocessing", "BRCA", spec)
    True
    """

    def __init__(self, root: PathLike):
        self.root = Path(root)
        if self.root.exists() and not self.root.is_dir():
            raise ArtifactStoreError(f"Artifact root is not a directory: {self.root}")

    def path_for(self, stage: str, unit: str, spec: ArtifactSpec) -> Path:
        """Return the on-disk path for an artifact key."""
        check_segment(stage, "stage")
        check_segment(unit, "unit")
        return self.root / stage / unit / spec.filename

    def exists(self, stage: str, unit: str, spec: ArtifactSpec) -> bool:
        return self.path_for(stage, unit, spec).is_file()

    def put(self, stage: str, unit: str, spec: ArtifactSpec, value: Any) -> ArtifactLocation:
        """Serialize and persist an artifact, replacing any previous version.

        Raises
        ------
        ArtifactStoreError
            If the storage medium cannot be written
        OutputContractViolation
            If the value cannot be serialized as its content type
        """
        return self.put_many(stage, unit, {spec: value})[0]

    def put_many(
        self,
        stage: str,
        unit: str,
        values: Dict[ArtifactSpec, Any],
    ) -> List[ArtifactLocation]:
        """Persist several artifacts of one (stage, unit) pair together.

        Every value is serialized to a temporary file first; targets are only
        replaced once all of them serialized cleanly.
        """
        staged: List[Tuple[ArtifactSpec, Path, Path]] = []
        try:
            try:
                for spec, value in values.items():
                    path = self.path_for(stage, unit, spec)
                    path.parent.mkdir(parents=True, exist_ok=True)
                    fd, tmp_name = tempfile.mkstemp(
                        dir=path.parent, prefix=f".{spec.name}.", suffix=".tmp"
                    )
                    os.close(fd)
                    staged.append((spec, path, Path(tmp_name)))
                    self._serialize(spec.content_type, value, Path(tmp_name))
                for _, path, tmp_path in staged:
                    os.replace(tmp_path, path)
            finally:
                for _, _, tmp_path in staged:
                    tmp_path.unlink(missing_ok=True)
        except OSError as e:
            raise ArtifactStoreError(f"Failed to write artifacts for {stage}/{unit}: {e}") from e
        except (TypeError, ValueError, AttributeError, pickle.PicklingError) as e:
            raise OutputContractViolation(
                f"Cannot serialize output for {stage}/{unit}: {e}"
            ) from e

        locations = []
        for spec, path, _ in staged:
            logger.debug("Stored artifact %s/%s/%s", stage, unit, spec.filename)
            locations.append(
                ArtifactLocation(
                    stage=stage,
                    unit=unit,
                    name=spec.name,
                    content_type=spec.content_type,
                    path=path,
                    checksum=_sha256(path),
                )
            )
        return locations

    def get(self, stage: str, unit: str, spec: ArtifactSpec) -> Any:
        """Load an artifact.

        Raises
        ------
        ArtifactNotFound
            If the artifact has not been stored
        ArtifactStoreError
            If the artifact exists but cannot be decoded
        """
        path = self.path_for(stage, unit, spec)
        if not path.is_file():
            raise ArtifactNotFound(f"Artifact not found: {stage}/{unit}/{spec.filename}")
        try:
            return self._deserialize(spec.content_type, path)
        except (OSError, ValueError, EOFError, pickle.UnpicklingError) as e:
            raise ArtifactStoreError(f"Corrupt artifact {path}: {e}") from e

    def list_units(self, stage: str) -> List[str]:
        """List units with at least one artifact for ``stage``, sorted."""
        stage_dir = self.root / check_segment(stage, "stage")
        if not stage_dir.is_dir():
            return []
        return sorted(p.name for p in stage_dir.iterdir() if p.is_dir())

    def write_lineage(self, stage: str, unit: str, record: Dict[str, Any]) -> Path:
        """Persist the lineage record of a (stage, unit) pair."""
        path = self.root / check_segment(stage, "stage") / check_segment(unit, "unit") / LINEAGE_FILENAME
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_suffix(".json.tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(record, f, indent=2, default=str)
            os.replace(tmp_path, path)
        except OSError as e:
            raise ArtifactStoreError(f"Failed to write lineage {path}: {e}") from e
        return path

    def read_lineage(self, stage: str, unit: str) -> Optional[Dict[str, Any]]:
        path = self.root / check_segment(stage, "stage") / check_segment(unit, "unit") / LINEAGE_FILENAME
        if not path.is_file():
            return None
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def restricted(
        self,
        stages: Iterable[str],
        hidden_units: Optional[Mapping[str, Iterable[str]]] = None,
    ) -> "ArtifactView":
        """Return a view whose reads only see artifacts of ``stages``.

        ``hidden_units`` maps a stage name to units whose artifacts of that
        stage are also treated as absent.
        """
        return ArtifactView(self, stages, hidden_units)

    @staticmethod
    def _serialize(content_type: ContentType, value: Any, path: Path) -> None:
        if content_type is ContentType.TABLE:
            value.to_csv(path)
        elif content_type is ContentType.TSV:
            value.to_csv(path, sep="\t")
        elif content_type is ContentType.JSON:
            with open(path, "w", encoding="utf-8") as f:
                json.dump(value, f, indent=2, default=str)
        else:
            joblib.dump(value, path)

    @staticmethod
    def _deserialize(content_type: ContentType, path: Path) -> Any:
        if content_type is ContentType.TABLE:
            return pd.read_csv(path, index_col=0)
        if content_type is ContentType.TSV:
            return pd.read_csv(path, sep="\t", index_col=0)
        if content_type is ContentType.JSON:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        return joblib.load(path)


class ArtifactView:
    """Read-scoped view over an ArtifactStore.

    Artifacts of stages outside ``visible_stages``, or of units hidden for
    their stage, report as absent. Writes and lineage pass through to the
    underlying store.
    """

    def __init__(
        self,
        store: ArtifactStore,
        visible_stages: Iterable[str],
        hidden_units: Optional[Mapping[str, Iterable[str]]] = None,
    ):
        self.store = store
        self.visible_stages = frozenset(visible_stages)
        self.hidden_units = {
            stage: frozenset(units) for stage, units in (hidden_units or {}).items()
        }

    @property
    def root(self) -> Path:
        return self.store.root

    def is_visible(self, stage: str, unit: str) -> bool:
        return stage in self.visible_stages and unit not in self.hidden_units.get(stage, ())

    def exists(self, stage: str, unit: str, spec: ArtifactSpec) -> bool:
        if not self.is_visible(stage, unit):
            return False
        return self.store.exists(stage, unit, spec)

    def get(self, stage: str, unit: str, spec: ArtifactSpec) -> Any:
        if not self.is_visible(stage, unit):
            raise ArtifactNotFound(f"Artifact not visible: {stage}/{unit}/{spec.filename}")
        return self.store.get(stage, unit, spec)

    def put(self, stage: str, unit: str, spec: ArtifactSpec, value: Any) -> ArtifactLocation:
        return self.store.put(stage, unit, spec, value)

    def put_many(
        self,
        stage: str,
        unit: str,
        values: Dict[ArtifactSpec, Any],
    ) -> List[ArtifactLocation]:
        return self.store.put_many(stage, unit, values)

    def list_units(self, stage: str) -> List[str]:
        if stage not in self.visible_stages:
            return []
        return self.store.list_units(stage)

    def write_lineage(self, stage: str, unit: str, record: Dict[str, Any]) -> Path:
        return self.store.write_lineage(stage, unit, record)

    def read_lineage(self, stage: str, unit: str) -> Optional[Dict[str, Any]]:
        return self.store.read_lineage(stage, unit)
