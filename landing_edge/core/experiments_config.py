import logging
import os
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from landing_edge.utils.errors import ExperimentConfigError

logger = logging.getLogger(__name__)


def normalize_path(path: str) -> str:
    """Directory-like paths ("/x") are folded onto their canonical "/x/" form."""
    if not path.endswith("/") and "." not in path:
        return f"{path}/"
    return path


class VariantConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    path: str
    weight: int = Field(..., ge=0)

    @field_validator("path")
    @classmethod
    def _path_is_absolute(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError("variant path must start with '/'")
        return value


class ExperimentsConfig(BaseModel):
    """
    Static A/B experiment table.
    Maps a canonical page path (trailing slash form, e.g. "/beginners-course/start/")
    to its variants. Built once at startup and never mutated afterwards;
    changing experiments means shipping a new configs/experiments.yaml.
    """

    model_config = ConfigDict(frozen=True)

    experiments: Mapping[str, Tuple[VariantConfig, ...]] = Field(default_factory=dict, validate_default=True)

    @field_validator("experiments")
    @classmethod
    def _check_experiments(
        cls, value: Mapping[str, Tuple[VariantConfig, ...]]
    ) -> Mapping[str, Tuple[VariantConfig, ...]]:
        for path, variants in value.items():
            if not path.startswith("/"):
                raise ValueError(f"experiment path {path!r} must start with '/'")
            # Lookups use the normalized request path, so any other form never matches.
            if normalize_path(path) != path:
                raise ValueError(f"experiment path {path!r} must be written as {normalize_path(path)!r}")
            names = [v.name for v in variants]
            if len(names) != len(set(names)):
                raise ValueError(f"variant names must be unique within experiment {path!r}")
        return MappingProxyType(dict(value))

    def get(self, path: str) -> Optional[Tuple[VariantConfig, ...]]:
        return self.experiments.get(path)

    @classmethod
    def from_mapping(cls, data: dict) -> "ExperimentsConfig":
        try:
            return cls.model_validate(data or {})
        except ValidationError as exc:
            raise ExperimentConfigError(f"Invalid experiment configuration: {exc}") from exc

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "ExperimentsConfig":
        config_path = config_path or os.environ.get("EXPERIMENTS_CONFIG_PATH", "configs/experiments.yaml")

        if not os.path.exists(config_path):
            logger.info(f"No experiment configuration found at {config_path}, running without experiments")
            return cls()

        with open(config_path, "r") as f:
            try:
                config_dict = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise ExperimentConfigError(f"Failed to parse {config_path}: {exc}") from exc

        config = cls.from_mapping(config_dict)
        logger.info(f"Loaded {len(config.experiments)} experiment(s) from {config_path}")
        return config
