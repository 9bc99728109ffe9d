"""Module run configuration loaded from YAML.

Example file::

    module:
      name: cell-type-neuroblastoma-04
      path: ../analyses/cell-type-neuroblastoma-04
    global:
      data_dir: ../../data/current/SCPCP000004
      results_dir: results
    steps:
      classify:
        name: Classify with SingleR
        script: scripts/02_classify-singler.R
        inputs:
          sce: "{global.data_dir}/SCPCS000101/SCPCL000118_processed.rds"
        outputs:
          tsv: "{global.results_dir}/SCPCL000118_singler.tsv"
        args:
          sce_file: "{steps.classify.inputs.sce}"
          output_tsv: "{steps.classify.outputs.tsv}"
          threads: 4
"""

import re
from collections import deque
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .step import ModuleStep

TEMPLATE_PATTERN = re.compile(r"\{([A-Za-z_][\w\-]*(?:\.[\w\-]+)+)\}")
MAX_TEMPLATE_DEPTH = 10


class ModuleConfig:
    """Load, resolve and order the steps of one module run.

    Parameters
    ----------
    config_path : str or Path
        Path to the YAML file

    Attributes
    ----------
    raw_config : Dict[str, Any]
        Parsed YAML
    steps : Dict[str, ModuleStep]
        Steps by id, with templates resolved
    module_path : Path
        Directory the steps run in; ``module.path`` resolved against the
        config file's directory, or that directory itself

    Example
    -------
    >>> config = ModuleConfig("module.yaml")
    >>> config.load()
    >>> config.parse_steps()
    >>> order = config.get_execution_order()
    """

    def __init__(self, config_path, base_dir=None):
        self.config_path = Path(config_path)
        self.base_dir = Path(base_dir) if base_dir is not None else self.config_path.parent
        self.raw_config: Dict[str, Any] = {}
        self.steps: Dict[str, ModuleStep] = {}

    def load(self) -> None:
        """Read the YAML file.

        Raises
        ------
        FileNotFoundError
            If the file does not exist
        ValueError
            If the file is not a YAML mapping
        """
        if not self.config_path.exists():
            raise FileNotFoundError(f"Module config not found: {self.config_path}")

        with open(self.config_path, "r") as f:
            data = yaml.safe_load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Module config must be a mapping: {self.config_path}")
        self.raw_config = data

    @property
    def module_name(self) -> str:
        module = self.raw_config.get("module") or {}
        return str(module.get("name", self.module_path.name))

    @property
    def module_path(self) -> Path:
        path = (self.raw_config.get("module") or {}).get("path")
        if not path:
            return self.base_dir.resolve()
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = self.base_dir / candidate
        return candidate.resolve()

    def _lookup(self, reference: str) -> Any:
        value: Any = self.raw_config
        for part in reference.split("."):
            if not isinstance(value, dict) or part not in value:
                raise KeyError(f"Unresolved template '{{{reference}}}' in {self.config_path}")
            value = value[part]
        if isinstance(value, (dict, list)):
            raise KeyError(f"Template '{{{reference}}}' does not point at a single value")
        return value

    def resolve_template(self, value: str) -> str:
        """Replace ``{global.x}``, ``{module.x}`` and ``{steps.ID.outputs.y}`` references.

        References are resolved repeatedly so values may themselves contain
        templates.

        Raises
        ------
        KeyError
            If a reference does not exist
        ValueError
            If references nest too deeply (most likely a cycle)
        """
        resolved = value
        for _ in range(MAX_TEMPLATE_DEPTH):
            if not TEMPLATE_PATTERN.search(resolved):
                return resolved
            resolved = TEMPLATE_PATTERN.sub(lambda m: str(self._lookup(m.group(1))), resolved)
        raise ValueError(f"Template nesting too deep while resolving '{value}'")

    def _resolve_any(self, value: Any) -> Any:
        if isinstance(value, str):
            return self.resolve_template(value)
        if isinstance(value, list):
            return [self._resolve_any(v) for v in value]
        return value

    def parse_steps(self) -> None:
        """Build ``ModuleStep`` objects with templates resolved.

        Raises
        ------
        KeyError
            If there is no ``steps`` section
        """
        if "steps" not in self.raw_config or not self.raw_config["steps"]:
            raise KeyError("No 'steps' section in module config")

        self.steps = {}
        for step_id, step_def in self.raw_config["steps"].items():
            step_def = dict(step_def or {})
            for key in ("inputs", "outputs", "args", "env"):
                step_def[key] = {
                    k: self._resolve_any(v) for k, v in (step_def.get(key) or {}).items()
                }
            if isinstance(step_def.get("script"), str):
                step_def["script"] = self.resolve_template(step_def["script"])
            if step_def.get("command"):
                step_def["command"] = self._resolve_any(step_def["command"])
            self.steps[step_id] = ModuleStep.from_dict(step_def, step_id)

    def validate_dependencies(self) -> Tuple[bool, List[str]]:
        """Check that dependencies exist and contain no cycle."""
        errors = []
        for step_id, step in self.steps.items():
            for dep in step.depends_on:
                if dep not in self.steps:
                    errors.append(f"Step '{step_id}' depends on unknown step '{dep}'")

        if not errors:
            try:
                self.get_execution_order()
            except ValueError as e:
                errors.append(str(e))

        return (len(errors) == 0, errors)

    def get_execution_order(self) -> List[str]:
        """Topological order of step ids; ties keep file order.

        Raises
        ------
        ValueError
            If the dependencies contain a cycle
        """
        in_degree = {
            step_id: len([d for d in step.depends_on if d in self.steps])
            for step_id, step in self.steps.items()
        }
        queue = deque(sid for sid, degree in in_degree.items() if degree == 0)
        order = []

        while queue:
            step_id = queue.popleft()
            order.append(step_id)
            for other_id, other in self.steps.items():
                if step_id in other.depends_on:
                    in_degree[other_id] -= 1
                    if in_degree[other_id] == 0:
                        queue.append(other_id)

        if len(order) != len(self.steps):
            stuck = sorted(set(self.steps) - set(order))
            raise ValueError(f"Circular dependency between steps: {stuck}")
        return order

    def get_step(self, step_id: str) -> Optional[ModuleStep]:
        return self.steps.get(step_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "module": self.raw_config.get("module", {}),
            "global": self.raw_config.get("global", {}),
            "steps": {sid: step.to_dict() for sid, step in self.steps.items()},
        }

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any], base_dir=".") -> "ModuleConfig":
        """Build a config from a mapping; relative paths resolve against ``base_dir``."""
        config = cls(Path(base_dir) / "<dict>", base_dir=base_dir)
        config.raw_config = dict(config_dict)
        config.parse_steps()
        return config
