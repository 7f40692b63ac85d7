"""
Runtime configuration.

This module defines the RuntimeConfig class which stores the knobs that control
how models are placed (device, dtype), where artifacts are cached, and how
strictly ownership misuse is reported at the boundary.
"""

import os
from typing import Any, Dict, Optional


_VALID_DEVICES = ("cpu", "cuda", "mps")
_VALID_DTYPES = ("float32", "float16", "bfloat16")

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off", "")


def _env_flag(name: str, default: bool) -> bool:
    """Read a boolean flag from the environment.

    Raises:
        ValueError: If the variable is set to an unrecognized value.
    """
    raw = os.environ.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean flag, got {raw!r}")


class RuntimeConfig:
    """Configuration for the model runtime.

    Attributes:
        device: Device to place models on ("cpu", "cuda", "mps"), or None to
            pick CUDA when available and CPU otherwise.
        dtype: Weight dtype ("float32", "float16", "bfloat16"), or None to use
            bfloat16 on CUDA and float32 elsewhere.
        strict_misuse: Raise on ownership misuse (double release, use after
            release). When False, misuse is logged and ignored.
        serialize_generation: Block a second concurrent generate on the same
            handle instead of rejecting it.
        abort_on_misuse: Abort the process when the C ABI detects misuse.
        cache_dir: HuggingFace cache directory override.
        hf_token: HuggingFace access token for gated repositories.
        catalog_path: JSON catalog file replacing the default catalog.
    """

    def __init__(
        self,
        device: Optional[str] = None,
        dtype: Optional[str] = None,
        strict_misuse: bool = True,
        serialize_generation: bool = False,
        abort_on_misuse: bool = False,
        cache_dir: Optional[str] = None,
        hf_token: Optional[str] = None,
        catalog_path: Optional[str] = None,
    ) -> None:
        self.device = device
        self.dtype = dtype
        self.strict_misuse = strict_misuse
        self.serialize_generation = serialize_generation
        self.abort_on_misuse = abort_on_misuse
        self.cache_dir = cache_dir
        self.hf_token = hf_token
        self.catalog_path = catalog_path

        self._validate()

    def _validate(self) -> None:
        """Validate configuration values.

        Raises:
            ValueError: If any value is out of range.
        """
        if self.device is not None and self.device not in _VALID_DEVICES:
            raise ValueError(
                f"device must be one of {_VALID_DEVICES} or None, got {self.device!r}"
            )
        if self.dtype is not None and self.dtype not in _VALID_DTYPES:
            raise ValueError(
                f"dtype must be one of {_VALID_DTYPES} or None, got {self.dtype!r}"
            )
        for flag in ("strict_misuse", "serialize_generation", "abort_on_misuse"):
            if not isinstance(getattr(self, flag), bool):
                raise ValueError(f"{flag} must be a bool, got {getattr(self, flag)!r}")

    @classmethod
    def from_env(cls, **overrides: Any) -> "RuntimeConfig":
        """Build a configuration from CCANDLE_* environment variables.

        Args:
            **overrides: Explicit values that take precedence over the environment.

        Returns:
            RuntimeConfig populated from the environment.
        """
        values: Dict[str, Any] = {
            "device": os.environ.get("CCANDLE_DEVICE") or None,
            "dtype": os.environ.get("CCANDLE_DTYPE") or None,
            "strict_misuse": _env_flag("CCANDLE_STRICT_MISUSE", True),
            "serialize_generation": _env_flag("CCANDLE_SERIALIZE_GENERATION", False),
            "abort_on_misuse": _env_flag("CCANDLE_ABORT_ON_MISUSE", False),
            "cache_dir": os.environ.get("CCANDLE_CACHE_DIR") or None,
            "hf_token": os.environ.get("HF_TOKEN") or None,
            "catalog_path": os.environ.get("CCANDLE_CATALOG") or None,
        }
        values.update(overrides)
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to a dictionary (the token is masked)."""
        return {
            "device": self.device,
            "dtype": self.dtype,
            "strict_misuse": self.strict_misuse,
            "serialize_generation": self.serialize_generation,
            "abort_on_misuse": self.abort_on_misuse,
            "cache_dir": self.cache_dir,
            "hf_token": "***" if self.hf_token else None,
            "catalog_path": self.catalog_path,
        }

    def __repr__(self) -> str:
        return (
            f"RuntimeConfig("
            f"device={self.device!r}, "
            f"dtype={self.dtype!r}, "
            f"strict_misuse={self.strict_misuse}, "
            f"serialize_generation={self.serialize_generation}, "
            f"abort_on_misuse={self.abort_on_misuse}, "
            f"cache_dir={self.cache_dir!r}, "
            f"catalog_path={self.catalog_path!r}"
            f")"
        )
