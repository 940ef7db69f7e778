from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

import yaml

from dhis2_dq.core.errors import ConfigurationError


@dataclass(frozen=True)
class InstanceDefinition:
    """Connection settings of one DHIS2 instance."""

    name: str
    url: str
    username: str
    password: str = field(default="", repr=False)
    description: str = ""
    datasets: List[str] = field(default_factory=list)

    @property
    def base_url(self) -> str:
        return self.url.rstrip("/")


class InstanceRegistry:
    """Load and query DHIS2 instance definitions from YAML.

    Passwords can be given inline (``password``) or read from an environment
    variable (``password_env``); the environment wins when both are set.
    """

    def __init__(self, instances_file: Path) -> None:
        self.instances_file = instances_file
        self._instances: List[InstanceDefinition] = self._load_instances(instances_file)

    @staticmethod
    def _load_instances(instances_file: Path) -> List[InstanceDefinition]:
        """Load and parse YAML into a list of InstanceDefinition objects."""
        if not instances_file.exists():
            raise FileNotFoundError(f"Instances file not found: {instances_file}")
        with instances_file.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        entries = data.get("instances", []) or []
        instances: List[InstanceDefinition] = []
        for item in entries:
            name = str(item.get("name", "")).strip()
            url = str(item.get("url", "")).strip()
            if not name or not url:
                raise ConfigurationError(f"Instance entry needs 'name' and 'url': {item!r}")
            password = str(item.get("password", "") or "")
            env_var = item.get("password_env")
            if env_var and os.environ.get(str(env_var)):
                password = os.environ[str(env_var)]
            instances.append(
                InstanceDefinition(
                    name=name,
                    url=url,
                    username=str(item.get("username", "")),
                    password=password,
                    description=str(item.get("description", "")),
                    datasets=[str(d) for d in item.get("datasets", []) or []],
                )
            )
        return instances

    def all(self) -> List[InstanceDefinition]:
        """Return all instance definitions."""
        return list(self._instances)

    def get(self, name: str) -> InstanceDefinition:
        """Return the instance called ``name``.

        Raises:
            KeyError: If no instance has that name.
        """
        for inst in self._instances:
            if inst.name == name:
                return inst
        raise KeyError(f"Unknown instance: {name}")
