"""A single step of an analysis module run."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

INTERPRETERS = {
    ".r": ["Rscript"],
    ".py": ["python"],
    ".sh": ["bash"],
}


@dataclass
class ModuleStep:
    """One script or command in an analysis module.

    Attributes
    ----------
    name : str
        Human-readable step name (e.g., "Classify with SingleR")
    step_id : str
        Short identifier used in ``depends_on`` and templates
    script : str, optional
        Script path relative to the module directory; the interpreter is
        chosen from the suffix (``.R``, ``.py``, ``.sh``)
    command : List[str], optional
        Explicit command, used instead of ``script``
    args : Dict[str, Any]
        Options appended as ``--key value``; ``True`` adds a bare flag,
        ``False``/``None`` are left out, lists repeat the value
    inputs : Dict[str, str]
        Files that must exist before the step runs
    outputs : Dict[str, str]
        Files the step must produce
    depends_on : List[str]
        Step ids that run first
    env : Dict[str, str]
        Extra environment variables
    optional : bool
        Skip instead of failing when inputs are missing

    Example
    -------
    >>> step = ModuleStep(
    ...     name="Classify",
    ...     step_id="classify",
    ...     script="scripts/02_classify-singler.R",
    ...     args={"sce_file": "data/SCPCL000001_processed.rds", "threads": 4},
    ... )
    >>> step.get_command()[:2]
    ['Rscript', 'scripts/02_classify-singler.R']
    """

    name: str
    step_id: str
    script: Optional[str] = None
    command: Optional[List[str]] = None
    args: Dict[str, Any] = field(default_factory=dict)
    inputs: Dict[str, str] = field(default_factory=dict)
    outputs: Dict[str, str] = field(default_factory=dict)
    depends_on: List[str] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)
    optional: bool = False

    def __post_init__(self) -> None:
        if not self.script and not self.command:
            raise ValueError(f"Step '{self.step_id}' needs either 'script' or 'command'")
        if self.script and self.command:
            raise ValueError(f"Step '{self.step_id}' sets both 'script' and 'command'")

    @staticmethod
    def _check_paths(paths: Dict[str, str], kind: str, base_dir: Optional[Path]) -> List[str]:
        errors = []
        for name, path in paths.items():
            candidate = Path(path)
            if base_dir is not None and not candidate.is_absolute():
                candidate = base_dir / candidate
            if not candidate.exists():
                errors.append(f"{kind} '{name}' not found: {candidate}")
        return errors

    def validate_inputs(self, base_dir: Optional[Path] = None) -> Tuple[bool, List[str]]:
        """Check that every input exists, relative paths taken from ``base_dir``."""
        errors = self._check_paths(self.inputs, "Input", base_dir)
        return (len(errors) == 0, errors)

    def validate_outputs(self, base_dir: Optional[Path] = None) -> Tuple[bool, List[str]]:
        """Check that every declared output was written."""
        errors = self._check_paths(self.outputs, "Output", base_dir)
        return (len(errors) == 0, errors)

    def interpreter(self) -> List[str]:
        suffix = Path(self.script).suffix.lower()
        if suffix not in INTERPRETERS:
            raise ValueError(
                f"Step '{self.step_id}': no interpreter for '{suffix}' scripts "
                f"(supported: {sorted(INTERPRETERS)}); use 'command' instead"
            )
        return list(INTERPRETERS[suffix])

    def get_command(self) -> List[str]:
        """Build the argument list for ``subprocess.run``.

        Option names are used as written, so R scripts keep their
        ``--sce_file`` style and Python scripts their ``--input-file`` style.
        """
        if self.command:
            cmd = [str(part) for part in self.command]
        else:
            cmd = self.interpreter() + [self.script]

        for key, value in self.args.items():
            if value is True:
                cmd.append(f"--{key}")
            elif value is False or value is None:
                continue
            elif isinstance(value, (list, tuple)):
                for item in value:
                    cmd += [f"--{key}", str(item)]
            else:
                cmd += [f"--{key}", str(value)]

        return cmd

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "name": self.name,
            "step_id": self.step_id,
            "args": self.args,
            "inputs": self.inputs,
            "outputs": self.outputs,
            "depends_on": self.depends_on,
            "env": self.env,
            "optional": self.optional,
        }
        if self.script:
            data["script"] = self.script
        else:
            data["command"] = self.command
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any], step_id: str) -> "ModuleStep":
        command = data.get("command")
        if isinstance(command, str):
            command = command.split()
        return cls(
            name=data.get("name", step_id),
            step_id=step_id,
            script=data.get("script"),
            command=command,
            args=dict(data.get("args") or {}),
            inputs=dict(data.get("inputs") or {}),
            outputs=dict(data.get("outputs") or {}),
            depends_on=list(data.get("depends_on") or []),
            env={k: str(v) for k, v in (data.get("env") or {}).items()},
            optional=bool(data.get("optional", False)),
        )
