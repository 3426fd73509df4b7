"""Known remote datasets and their storage layouts."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .config import read_yaml
from .enums import PartitionScheme
from .errors import ConfigurationError

ENCLAVE_BUCKET = "s3://openstax-enclave-data"
EVENT_CAPTURE_BUCKET = "s3://openstax-event-capture"
TUTOR_REGION = "us-west-2"


@dataclass(frozen=True)
class DatasetDescriptor:
    """How one dataset is stored and which view name queries use.

    ``path_template`` is a ``str.format`` template appended to
    ``storage_location``. Placeholders by scheme:

    - by_year: ``{year}``
    - by_day: ``{name}``, ``{year}``, ``{month}``, ``{day}``
    - wildcard: ``{name}``
    - none: no placeholders

    Datasets with ``executable`` False only support path resolution.
    """

    dataset_id: str
    storage_location: str
    partitioning: PartitionScheme
    path_template: str
    view_name: Optional[str] = None
    region: Optional[str] = None
    description: str = ""
    executable: bool = True

    @property
    def needs_name(self) -> bool:
        return self.partitioning in (PartitionScheme.WILDCARD, PartitionScheme.BY_DAY)


BUILTIN_DATASETS: List[DatasetDescriptor] = [
    DatasetDescriptor(
        dataset_id="tutor",
        storage_location=f"{ENCLAVE_BUCKET}/tutor/v1",
        partitioning=PartitionScheme.BY_YEAR,
        path_template="openstax_tutor_{year}-01-01__{year}-12-31.parquet",
        view_name="tutor_data",
        region=TUTOR_REGION,
        description="Tutor activity, one parquet file per calendar year",
    ),
    DatasetDescriptor(
        dataset_id="tutor_exercises",
        storage_location=f"{ENCLAVE_BUCKET}/tutor/v1",
        partitioning=PartitionScheme.NONE,
        path_template="openstax_tutor_assessment_content_exercises.parquet",
        view_name="exercises_data",
        region=TUTOR_REGION,
        description="Tutor assessment exercises, single file",
    ),
    DatasetDescriptor(
        dataset_id="tutor_notes_highlights",
        storage_location=f"{ENCLAVE_BUCKET}/tutor/v1",
        partitioning=PartitionScheme.NONE,
        path_template="openstax_tutor_highlights_notes.parquet",
        view_name="tutor_notes_highlights",
        region=TUTOR_REGION,
        description="Tutor notes and highlights, single file",
    ),
    DatasetDescriptor(
        dataset_id="notes_highlights",
        storage_location=(
            f"{ENCLAVE_BUCKET}/notes_and_highlights/highlights-prod-s3-export/highlights"
        ),
        partitioning=PartitionScheme.WILDCARD,
        path_template="public.{name}/1/combined*.parquet",
        description="Highlights service export, one prefix per table",
    ),
    DatasetDescriptor(
        dataset_id="event_capture",
        storage_location=EVENT_CAPTURE_BUCKET,
        partitioning=PartitionScheme.BY_DAY,
        path_template="{name}/year={year}/month={month}/day={day}/*.parquet",
        description="Event capture stream, Hive-partitioned by day per event type",
        executable=False,
    ),
]


class DatasetRegistry:
    """Lookup of dataset descriptors by id."""

    def __init__(self, descriptors: Iterable[DatasetDescriptor] = ()) -> None:
        self._datasets: Dict[str, DatasetDescriptor] = {}
        for d in descriptors:
            self._datasets[d.dataset_id] = d

    @classmethod
    def builtin(cls) -> "DatasetRegistry":
        return cls(BUILTIN_DATASETS)

    @classmethod
    def from_yaml(cls, path: Path, *, include_builtin: bool = True) -> "DatasetRegistry":
        """Load descriptors from the ``datasets`` list of a YAML file.

        Entries override built-in descriptors with the same id.
        """
        data = read_yaml(Path(path))
        entries = data.get("datasets", []) or []
        registry = cls.builtin() if include_builtin else cls()
        for item in entries:
            registry.add(_descriptor_from_mapping(item, source=path))
        return registry

    def add(self, descriptor: DatasetDescriptor) -> None:
        self._datasets[descriptor.dataset_id] = descriptor

    def get(self, dataset_id: str) -> DatasetDescriptor:
        try:
            return self._datasets[dataset_id]
        except KeyError:
            raise ConfigurationError(
                f"Unknown dataset '{dataset_id}'. Known datasets: {', '.join(self.ids())}"
            ) from None

    def ids(self) -> List[str]:
        return sorted(self._datasets)

    def all(self) -> List[DatasetDescriptor]:
        return [self._datasets[i] for i in self.ids()]

    def __contains__(self, dataset_id: object) -> bool:
        return dataset_id in self._datasets

    def __len__(self) -> int:
        return len(self._datasets)


def _descriptor_from_mapping(item: object, *, source: Path) -> DatasetDescriptor:
    if not isinstance(item, dict):
        raise ConfigurationError(f"Dataset entries in {source} must be mappings, got {item!r}")
    missing = [k for k in ("dataset_id", "storage_location", "partitioning", "path_template")
               if not item.get(k)]
    if missing:
        raise ConfigurationError(
            f"Dataset entry in {source} is missing required keys: {', '.join(missing)}"
        )
    try:
        scheme = PartitionScheme(str(item["partitioning"]).lower())
    except ValueError:
        valid = ", ".join(s.value for s in PartitionScheme)
        raise ConfigurationError(
            f"Unknown partitioning '{item['partitioning']}' for dataset "
            f"'{item['dataset_id']}'. Valid values: {valid}"
        ) from None
    return DatasetDescriptor(
        dataset_id=str(item["dataset_id"]),
        storage_location=str(item["storage_location"]).rstrip("/"),
        partitioning=scheme,
        path_template=str(item["path_template"]).lstrip("/"),
        view_name=item.get("view_name"),
        region=item.get("region"),
        description=str(item.get("description", "")),
        executable=bool(item.get("executable", True)),
    )


_DEFAULT_REGISTRY: Optional[DatasetRegistry] = None


def default_registry() -> DatasetRegistry:
    """Registry of the built-in datasets, created on first use."""
    global _DEFAULT_REGISTRY
    if _DEFAULT_REGISTRY is None:
        _DEFAULT_REGISTRY = DatasetRegistry.builtin()
    return _DEFAULT_REGISTRY


def get_dataset(dataset_id: str) -> DatasetDescriptor:
    return default_registry().get(dataset_id)


def list_datasets() -> List[DatasetDescriptor]:
    return default_registry().all()


__all__ = [
    "DatasetDescriptor",
    "DatasetRegistry",
    "BUILTIN_DATASETS",
    "default_registry",
    "get_dataset",
    "list_datasets",
]
