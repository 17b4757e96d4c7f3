"""
Pipeline configuration.

Example YAML::

    frame_width: 1280
    frame_height: 720
    min_visible_corners: 3
    tracker:
      roi_radius: 40
    compositor:
      use_foreground_detection: true
      motion_threshold: 30
"""
import yaml
from dataclasses import dataclass, field, fields, asdict
from pathlib import Path
from typing import Any, Dict, Mapping, Union

from .modules.compositing import CompositorConfig
from .modules.tracking import TrackerConfig


def _build(cls, values: Mapping[str, Any], section: str):
    known = {f.name for f in fields(cls)}
    unknown = set(values) - known
    if unknown:
        raise ValueError(f"Unknown {section} settings: {sorted(unknown)}")
    return cls(**values)


@dataclass
class PipelineConfig:
    """Configuration for the surface replacement pipeline."""

    # Frame geometry
    frame_width: int = 854
    frame_height: int = 480

    # Warp
    min_visible_corners: int = 3

    # Components
    tracker: TrackerConfig = field(default_factory=TrackerConfig)
    compositor: CompositorConfig = field(default_factory=CompositorConfig)

    def validate(self):
        if self.frame_width <= 0 or self.frame_height <= 0:
            raise ValueError(f"Invalid frame size: {self.frame_width}x{self.frame_height}")
        if not 0 <= self.min_visible_corners <= 4:
            raise ValueError(f"min_visible_corners must be in [0, 4], got {self.min_visible_corners}")
        self.compositor.validate()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PipelineConfig":
        data = dict(data or {})
        tracker = _build(TrackerConfig, data.pop("tracker", None) or {}, "tracker")
        compositor = _build(CompositorConfig, data.pop("compositor", None) or {}, "compositor")
        config = _build(cls, data, "pipeline")
        config.tracker = tracker
        config.compositor = compositor
        config.validate()
        return config

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "PipelineConfig":
        with open(path, 'r') as f:
            data = yaml.safe_load(f)
        if data is not None and not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping")
        return cls.from_dict(data or {})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
