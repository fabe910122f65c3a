"""Cluster profile persistence.

Each profile lives in ``<PROFILES_DIR>/<name>/config.json``.
"""
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import List, Optional

from jsonschema import ValidationError, validate

from nodectl.config import Config
from nodectl.errors import ProfileInvalidError, ProfileNotFoundError, ProfileSaveError
from nodectl.models import ClusterConfig

logger = logging.getLogger("nodectl.registry")

PROFILE_SCHEMA = {
    "type": "object",
    "properties": {
        "name": {"type": "string", "minLength": 1},
        "driver": {"type": "string"},
        "ha": {"type": "boolean"},
        "multi_node_requested": {"type": "boolean"},
        "memory": {"type": "integer"},
        "memory_explicit": {"type": "boolean"},
        "kubeconfig": {"type": ["string", "null"]},
        "kubernetes_config": {
            "type": "object",
            "properties": {
                "kubernetes_version": {"type": "string"},
                "cni": {"type": "string"},
                "network_plugin": {"type": "string"},
            },
        },
        "nodes": {
            "type": "array",
            "minItems": 1,
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "worker": {"type": "boolean"},
                    "control_plane": {"type": "boolean"},
                    "kubernetes_version": {"type": "string"},
                    "os": {"type": "string"},
                    "os_version": {"type": "string"},
                    "ip": {"type": "string"},
                },
                "required": ["name"],
            },
        },
    },
    "required": ["name", "driver", "nodes"],
}


class ProfileStore:
    """Loads and saves cluster profiles under a base directory."""

    def __init__(self, base_dir: Optional[Path] = None):
        self.base_dir = Path(base_dir) if base_dir else Config.PROFILES_DIR

    def profile_path(self, name: str) -> Path:
        return self.base_dir / name / "config.json"

    def list_profiles(self) -> List[str]:
        if not self.base_dir.exists():
            return []
        return sorted(p.parent.name for p in self.base_dir.glob("*/config.json"))

    def load_profile(self, name: str) -> ClusterConfig:
        path = self.profile_path(name)
        if not path.exists():
            raise ProfileNotFoundError(f"Profile '{name}' not found at {path}")

        try:
            with open(path, "r") as f:
                data = json.load(f)
            validate(instance=data, schema=PROFILE_SCHEMA)
        except json.JSONDecodeError as e:
            raise ProfileInvalidError(f"Profile '{name}' is not valid JSON: {e}") from e
        except ValidationError as ve:
            raise ProfileInvalidError(f"Profile '{name}' failed validation: {ve.message}") from ve

        names = [n["name"] for n in data["nodes"]]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ProfileInvalidError(f"Profile '{name}' has duplicate node names: {', '.join(duplicates)}")

        return ClusterConfig.from_dict(data)

    def save_profile(self, name: str, cluster: ClusterConfig) -> Path:
        """Write the profile atomically."""
        path = self.profile_path(name)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".config-", suffix=".json")
            try:
                with os.fdopen(fd, "w") as f:
                    json.dump(cluster.to_dict(), f, indent=2)
                os.replace(tmp_path, path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise ProfileSaveError(f"failed to save config for profile '{name}': {e}") from e

        logger.debug(f"Saved profile {name} to {path}")
        return path


_default_store: Optional[ProfileStore] = None


def get_profile_store() -> ProfileStore:
    """Get the profile store rooted at the configured directory."""
    global _default_store
    if _default_store is None:
        _default_store = ProfileStore()
    return _default_store
