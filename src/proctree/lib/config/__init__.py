"""Configuration loading."""

from proctree.lib.config.settings import ProctreeConfig, load_config, resolve_config_path

__all__ = [
    "ProctreeConfig",
    "load_config",
    "resolve_config_path",
]
