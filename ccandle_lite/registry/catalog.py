"""
Catalog of supported models.

The catalog maps canonical model names to the artifacts and defaults needed to
load them. It is plain data handed to the registry, so adding a model never
touches orchestration code.
"""

import json
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ccandle_lite.engine.sampling import SamplingParams


@dataclass(frozen=True)
class ModelSpec:
    """Everything needed to load one supported model.

    Attributes:
        name: Canonical name callers pass to ``load_model``.
        repo_id: HuggingFace repository id or local directory.
        revision: Repository revision.
        backend: Engine backend key (see ``ccandle_lite.engine.loader.ENGINE_BACKENDS``).
        eos_token: End-of-sequence token text; None uses the tokenizer's EOS.
        seed: Sampling seed.
        temperature: Sampling temperature; None selects greedy decoding.
        top_p: Nucleus sampling threshold; None disables it.
        repeat_penalty: Penalty applied to recently seen tokens.
        repeat_last_n: Window of recent tokens the penalty applies to.
    """

    name: str
    repo_id: str
    revision: str = "main"
    backend: str = "hf"
    eos_token: Optional[str] = None
    seed: int = 299792458
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    repeat_penalty: float = 1.1
    repeat_last_n: int = 64

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("model name cannot be empty")
        if not self.repo_id:
            raise ValueError(f"repo_id cannot be empty for model {self.name!r}")

    def sampling_params(self) -> SamplingParams:
        """Sampling defaults for this model."""
        return SamplingParams(
            seed=self.seed,
            temperature=self.temperature,
            top_p=self.top_p,
            repeat_penalty=self.repeat_penalty,
            repeat_last_n=self.repeat_last_n,
        )

    @classmethod
    def from_dict(cls, name: str, data: Mapping[str, Any]) -> "ModelSpec":
        """Build a spec from a JSON-style mapping; unknown keys are rejected."""
        known = set(cls.__dataclass_fields__) - {"name"}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"unknown keys for model {name!r}: {sorted(unknown)}")
        return cls(name=name, **data)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("name")
        return data


@dataclass(frozen=True)
class ModelCatalog:
    """Versioned, read-only set of supported models.

    Attributes:
        version: Catalog version string.
        entries: Canonical name -> ModelSpec.
    """

    version: str
    entries: Mapping[str, ModelSpec] = field(default_factory=dict)

    @classmethod
    def of(cls, version: str, specs: Iterable[ModelSpec]) -> "ModelCatalog":
        entries: Dict[str, ModelSpec] = {}
        for spec in specs:
            if spec.name in entries:
                raise ValueError(f"duplicate catalog entry {spec.name!r}")
            entries[spec.name] = spec
        return cls(version=version, entries=entries)

    def lookup(self, name: str) -> Optional[ModelSpec]:
        """Return the spec for ``name`` or None. Matching is exact."""
        return self.entries.get(name)

    def names(self) -> List[str]:
        return sorted(self.entries)

    def __contains__(self, name: object) -> bool:
        return name in self.entries

    def __len__(self) -> int:
        return len(self.entries)

    def with_entry(self, spec: ModelSpec, version: Optional[str] = None) -> "ModelCatalog":
        """Return a copy of this catalog with ``spec`` added or replaced."""
        entries = dict(self.entries)
        entries[spec.name] = spec
        return ModelCatalog(version=version or self.version, entries=entries)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ModelCatalog":
        """Build a catalog from ``{"version": ..., "models": {name: {...}}}``."""
        if "version" not in data:
            raise ValueError("catalog is missing 'version'")
        models = data.get("models", {})
        if not isinstance(models, Mapping):
            raise ValueError("catalog 'models' must be a mapping")
        return cls.of(
            str(data["version"]),
            (ModelSpec.from_dict(name, entry) for name, entry in models.items()),
        )

    @classmethod
    def from_json(cls, path: str) -> "ModelCatalog":
        """Load a catalog from a JSON file."""
        with open(path, "r", encoding="utf-8") as f:
            return cls.from_dict(json.load(f))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "models": {name: spec.to_dict() for name, spec in self.entries.items()},
        }


DEFAULT_CATALOG = ModelCatalog.of(
    "2024.1",
    [
        ModelSpec(
            name="mistral",
            repo_id="mistralai/Mistral-7B-v0.1",
            revision="main",
            eos_token="</s>",
        ),
    ],
)
