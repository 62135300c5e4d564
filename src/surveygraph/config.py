"""
Builder configuration.

A BuilderConfig carries the knobs the editing session and the transformer
need: validator strictness, the staircase used when positions have to be
synthesized, id prefixes, and defaults for freshly created documents.

Configuration can be written as YAML:

    strictness: quick
    layout_step_x: 400
    default_language: en
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Literal, Union

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from pydantic_core import PydanticCustomError

from surveygraph.errors import ConfigError


STRICTNESS_LEVELS = ("quick", "full")


class BuilderConfig(BaseModel):
    """
    Settings shared by the editing session and the transformer.

    Properties:
        strictness:
            Validator variant used after each edit ("quick" or "full").
            Export always runs the full variant.

        question_id_prefix:
            Prefix of generated question ids (Q1, Q2, ...).

        layout_origin_x / layout_origin_y / layout_step_x / layout_step_y:
            Staircase used to place nodes when a document carries no layout.

        default_language / default_time_zone / default_title:
            Metadata given to new documents.

        required_message:
            Message returned when a required question has no answer.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    strictness: Literal["quick", "full"] = "full"
    question_id_prefix: str = "Q"
    layout_origin_x: float = 100.0
    layout_origin_y: float = 100.0
    layout_step_x: float = 350.0
    layout_step_y: float = 150.0
    default_language: str = "ko"
    default_time_zone: str = "Asia/Seoul"
    default_title: str = "New survey"
    required_message: str = "This field is required."

    @field_validator("layout_origin_x", "layout_origin_y", "layout_step_x", "layout_step_y", mode="before")
    @classmethod
    def validate_coordinate(cls, v: Any) -> Any:
        """Coordinates are numbers; booleans and numeric strings are refused."""
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise PydanticCustomError(
                "coordinate_type",
                "Layout setting must be a number, got {kind}",
                {"kind": type(v).__name__},
            )
        return v

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> BuilderConfig:
        """
        Build a config from a plain mapping.

        Raises:
            ConfigError: on unknown keys, wrong value types, or an
                unknown strictness level
        """
        if not isinstance(data, dict):
            raise ConfigError(f"Config must be a mapping, got {type(data).__name__}")
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise ConfigError(f"Invalid builder config: {exc}") from exc


def load_config(path: Union[str, Path]) -> BuilderConfig:
    """Read a BuilderConfig from a YAML file. An empty file gives the defaults."""
    try:
        with open(path, encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    if data is None:
        return BuilderConfig()
    return BuilderConfig.from_dict(data)
