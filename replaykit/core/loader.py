# replaykit/core/loader.py
from __future__ import annotations

"""Scenario / bundle file loader
--------------------------------
Reads steps and bundles from YAML or JSON. YAML files may hold several
documents separated by `---`. Accepted document shapes:

  - a scenario:  {title: ..., steps: [ {id, event, bundle, ...}, ... ]}
  - a step list: [ {id, event, bundle, ...}, ... ]
  - one step:    {id, event, bundle, ...}
  - a bundle:    {tag, xpath, ...}            (load_bundle only)

`${VAR}` references in string values are replaced from the environment.
"""

import json
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Union

import yaml
from pydantic import ValidationError

from replaykit.core.models import LocatorBundle, Scenario, Step

_ENV_REF = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


class ScenarioFileError(ValueError):
    pass


# ---------- Helpers ----------


def _subst_env(obj: Any) -> Any:
    if isinstance(obj, str):
        return _ENV_REF.sub(lambda m: os.environ.get(m.group(1), m.group(0)), obj)
    if isinstance(obj, list):
        return [_subst_env(x) for x in obj]
    if isinstance(obj, dict):
        return {k: _subst_env(v) for k, v in obj.items()}
    return obj


def _format_validation(ve: ValidationError, where: str) -> str:
    lines = [f"Invalid {where}:"]
    for e in ve.errors():
        loc = ".".join(str(p) for p in e.get("loc", []))
        msg = e.get("msg", "invalid value")
        lines.append(f"  - {loc}: {msg}")
    return "\n".join(lines)


def load_documents(path: Union[Path, str]) -> List[Any]:
    """Raw documents (env-substituted, empty documents skipped)."""
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Scenario file not found: {p}")
    raw = p.read_text(encoding="utf-8")
    try:
        if p.suffix.lower() == ".json":
            docs = [json.loads(raw)]
        else:
            docs = list(yaml.safe_load_all(raw))
    except json.JSONDecodeError as je:
        raise ScenarioFileError(f"JSON parse error in {p}: {je}") from je
    except yaml.YAMLError as ye:
        raise ScenarioFileError(f"YAML parse error in {p}: {ye}") from ye
    return [_subst_env(d) for d in docs if d is not None]


def _to_scenario(data: Any, where: str) -> Scenario:
    if isinstance(data, list):
        data = {"steps": data}
    elif isinstance(data, dict) and "event" in data:
        data = {"steps": [data]}
    if not isinstance(data, dict):
        raise ScenarioFileError(f"{where} must be a mapping or a list of steps.")
    try:
        return Scenario.model_validate(data)
    except ValidationError as ve:
        raise ScenarioFileError(_format_validation(ve, where)) from ve


def _is_bundle_doc(data: Any) -> bool:
    if not isinstance(data, dict) or "steps" in data or "event" in data:
        return False
    return "xpath" in data or isinstance(data.get("bundle"), dict)


def _to_bundle(data: Dict[str, Any], where: str) -> LocatorBundle:
    if isinstance(data.get("bundle"), dict):
        data = data["bundle"]
    try:
        return LocatorBundle.model_validate(data)
    except ValidationError as ve:
        raise ScenarioFileError(_format_validation(ve, where)) from ve


# ---------- Public API ----------


def load_scenarios(path: Union[Path, str]) -> List[Scenario]:
    p = Path(path)
    docs = load_documents(p)
    if not docs:
        raise ScenarioFileError(f"No documents found in {p}")
    return [_to_scenario(d, f"'{p}' (document {i})") for i, d in enumerate(docs, start=1)]


def load_steps(path: Union[Path, str]) -> List[Step]:
    """All steps of all documents, in file order."""
    return [step for scenario in load_scenarios(path) for step in scenario.steps]


def load_bundle(path: Union[Path, str]) -> LocatorBundle:
    """First document as a bundle; a step document contributes its `bundle`."""
    p = Path(path)
    docs = load_documents(p)
    if not docs or not isinstance(docs[0], dict):
        raise ScenarioFileError(f"{p} must contain a bundle mapping.")
    return _to_bundle(docs[0], f"bundle '{p}'")


def load_file(path: Union[Path, str]) -> List[Union[Scenario, LocatorBundle]]:
    """Every document of a file, as a Scenario or (bare bundle documents) a LocatorBundle."""
    p = Path(path)
    docs = load_documents(p)
    if not docs:
        raise ScenarioFileError(f"No documents found in {p}")
    out: List[Union[Scenario, LocatorBundle]] = []
    for i, d in enumerate(docs, start=1):
        where = f"'{p}' (document {i})"
        out.append(_to_bundle(d, where) if _is_bundle_doc(d) else _to_scenario(d, where))
    return out


__all__ = [
    "ScenarioFileError",
    "load_documents",
    "load_scenarios",
    "load_steps",
    "load_bundle",
    "load_file",
]
