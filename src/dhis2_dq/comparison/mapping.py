"""Load logical element groups from YAML.

Expected layout::

    element_groups:
      - id: anc1
        logical_name: ANC 1st visit
        elements:
          dsMonthly: {id: deA, display_name: ANC1 (monthly)}
          dsWeekly: deB          # shorthand: element id only
          dsLegacy: null         # no equivalent element
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import yaml

from dhis2_dq.core.errors import ConfigurationError
from dhis2_dq.core.models import ElementRef, LogicalElementGroup


def _parse_element(source_id: str, raw: Any, group_id: str) -> Optional[ElementRef]:
    if raw is None:
        return None
    if isinstance(raw, str):
        return ElementRef(id=raw, dataset_id=source_id)
    if isinstance(raw, dict) and raw.get("id"):
        return ElementRef(
            id=str(raw["id"]),
            display_name=str(raw.get("display_name", "")),
            dataset_id=str(raw.get("dataset_id", source_id)),
            dataset_name=str(raw.get("dataset_name", "")),
        )
    raise ConfigurationError(
        f"Group '{group_id}': element for source '{source_id}' must be an id, "
        f"a mapping with 'id', or null (got {raw!r})"
    )


def parse_element_groups(data: Dict[str, Any]) -> List[LogicalElementGroup]:
    """Build LogicalElementGroup objects from already-loaded YAML data."""
    entries = data.get("element_groups", []) or []
    groups: List[LogicalElementGroup] = []
    seen = set()
    for item in entries:
        group_id = str(item.get("id", "")).strip()
        if not group_id:
            raise ConfigurationError(f"Element group without id: {item!r}")
        if group_id in seen:
            raise ConfigurationError(f"Duplicate element group id: {group_id}")
        seen.add(group_id)
        elements = item.get("elements") or {}
        if not isinstance(elements, dict):
            raise ConfigurationError(f"Group '{group_id}': 'elements' must be a mapping")
        groups.append(
            LogicalElementGroup(
                id=group_id,
                logical_name=str(item.get("logical_name") or group_id),
                elements={
                    str(source_id): _parse_element(str(source_id), raw, group_id)
                    for source_id, raw in elements.items()
                },
            )
        )
    return groups


def load_element_groups(path: Path) -> List[LogicalElementGroup]:
    """Load element groups from a YAML file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigurationError: If the content is malformed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Element groups file not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
    return parse_element_groups(data)


def groups_to_config(groups: Sequence[LogicalElementGroup]) -> Dict[str, Any]:
    """Inverse of parse_element_groups: the ``element_groups`` YAML structure."""
    entries = []
    for group in groups:
        elements: Dict[str, Any] = {}
        for source_id, ref in group.elements.items():
            if ref is None:
                elements[source_id] = None
            elif ref.display_name or ref.dataset_name:
                entry = {"id": ref.id, "display_name": ref.display_name}
                if ref.dataset_name:
                    entry["dataset_name"] = ref.dataset_name
                elements[source_id] = entry
            else:
                elements[source_id] = ref.id
        entries.append({"id": group.id, "logical_name": group.logical_name, "elements": elements})
    return {"element_groups": entries}


def write_element_groups(groups: Sequence[LogicalElementGroup], path: Path) -> None:
    """Write groups in the layout read by load_element_groups."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        yaml.safe_dump(groups_to_config(groups), f, sort_keys=False, allow_unicode=True, indent=2)


def load_publish_mapping(path: Path) -> Tuple[Dict[str, str], Dict[str, str]]:
    """Load source-to-destination id mappings used when publishing.

    Layout::

        data_elements:
          srcDeA: dstDeA
        org_units:        # optional; unmapped org units keep their id
          srcOuA: dstOuA

    Returns:
        (element_mapping, org_unit_mapping)
    """
    if not path.exists():
        raise FileNotFoundError(f"Publish mapping file not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    mappings = []
    for key in ("data_elements", "org_units"):
        section = data.get(key) or {}
        if not isinstance(section, dict):
            raise ConfigurationError(f"'{key}' in {path} must be a mapping of source id to destination id")
        mappings.append({str(k): str(v) for k, v in section.items() if v})
    return mappings[0], mappings[1]
