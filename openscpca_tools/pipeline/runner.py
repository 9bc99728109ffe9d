"""Run a module's steps in order, with checkpointing."""

import json
import os
import subprocess
import time
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from .config import ModuleConfig
from .logger import RunLogger
from .step import ModuleStep

STATE_FILENAME = ".module_run_state.json"


class ModuleRunner:
    """Execute module steps one at a time inside the module directory.

    Each step runs with the module directory as working directory, as a CI
    job would after ``cd ${MODULE_PATH}``. Completed step ids are written to
    a JSON state file so an interrupted run resumes where it stopped.

    Parameters
    ----------
    config : ModuleConfig
        Parsed module configuration
    logger : RunLogger
        Initialized run logger
    state_file : str or Path, optional
        Checkpoint file; ``<module_path>/.module_run_state.json`` by default

    Example
    -------
    >>> config = ModuleConfig("module.yaml")
    >>> config.load()
    >>> config.parse_steps()
    >>> run_logger = RunLogger("logs/")
    >>> run_logger.setup()
    >>> exit_code = ModuleRunner(config, run_logger).run()
    """

    def __init__(
        self,
        config: ModuleConfig,
        logger: RunLogger,
        state_file=None,
    ):
        self.config = config
        self.logger = logger
        self.module_path = config.module_path
        self.state_file = Path(state_file) if state_file else self.module_path / STATE_FILENAME
        self.completed_steps: List[str] = []

    def load_state(self) -> None:
        if not self.state_file.exists():
            self.logger.debug("No checkpoint file found, starting fresh")
            return

        try:
            with open(self.state_file, "r") as f:
                state = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            self.logger.warning("Ignoring unreadable checkpoint %s: %s", self.state_file, e)
            self.completed_steps = []
            return

        if state.get("module") not in (None, self.config.module_name):
            self.logger.warning(
                "Checkpoint belongs to module '%s'; ignoring it", state.get("module")
            )
            self.completed_steps = []
            return

        self.completed_steps = list(state.get("completed_steps", []))
        self.logger.info("Loaded checkpoint: %d steps completed", len(self.completed_steps))

    def save_state(self) -> None:
        state = {
            "module": self.config.module_name,
            "completed_steps": self.completed_steps,
            "timestamp": datetime.now().isoformat(),
        }
        self.state_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.state_file, "w") as f:
            json.dump(state, f, indent=2)

    def clear_state(self) -> None:
        if self.state_file.exists():
            self.state_file.unlink()
            self.logger.info("Cleared checkpoint state")
        self.completed_steps = []

    def should_skip_step(self, step: ModuleStep) -> bool:
        """Optional steps are skipped when their inputs are missing."""
        if not step.optional:
            return False
        valid, errors = step.validate_inputs(self.module_path)
        if not valid:
            self.logger.info("[SKIP] Optional step %s: %s", step.step_id, "; ".join(errors))
            return True
        return False

    def execute_step(self, step: ModuleStep, dry_run: bool = False) -> int:
        """Run one step and return its exit code."""
        cmd = step.get_command()

        if dry_run:
            self.logger.info("[DRY RUN] %s: (cd %s && %s)", step.step_id, self.module_path, " ".join(cmd))
            return 0

        if self.should_skip_step(step):
            return 0

        valid, errors = step.validate_inputs(self.module_path)
        if not valid:
            self.logger.error("Input validation failed for step %s:", step.step_id)
            for error in errors:
                self.logger.error("  - %s", error)
            return 1

        self.logger.log_step_start(step.step_id, step.name)
        self.logger.debug("Running: %s", " ".join(cmd))
        env = dict(os.environ, **step.env)
        start_time = time.time()

        try:
            result = subprocess.run(
                cmd,
                cwd=self.module_path,
                env=env,
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as e:
            # Interpreter missing or not executable
            self.logger.log_step_error(step.step_id, str(e))
            return 127

        self.logger.log_step_output(step.step_id, result.stdout)
        if result.returncode != 0:
            self.logger.log_step_error(step.step_id, f"Exit code {result.returncode}")
            if result.stderr:
                self.logger.error("STDERR: %s", result.stderr[-1000:])
            return result.returncode

        valid, errors = step.validate_outputs(self.module_path)
        if not valid:
            self.logger.error("Output validation failed for step %s:", step.step_id)
            for error in errors:
                self.logger.error("  - %s", error)
            return 1

        self.logger.log_step_complete(step.step_id, time.time() - start_time)
        self.completed_steps.append(step.step_id)
        self.save_state()
        return 0

    def plan(self, start_step: Optional[str] = None, end_step: Optional[str] = None) -> List[str]:
        """Step ids to run, in order.

        Raises
        ------
        KeyError
            If ``start_step`` or ``end_step`` is not a step id
        """
        order = self.config.get_execution_order()
        if start_step:
            if start_step not in order:
                raise KeyError(f"Start step '{start_step}' not found")
            order = order[order.index(start_step):]
        if end_step:
            if end_step not in order:
                raise KeyError(f"End step '{end_step}' not found after start step")
            order = order[: order.index(end_step) + 1]
        return order

    def run(
        self,
        start_step: Optional[str] = None,
        end_step: Optional[str] = None,
        dry_run: bool = False,
        force: bool = False,
    ) -> int:
        """Run the module; returns 0 on success, the failing exit code otherwise."""
        if not self.module_path.is_dir():
            self.logger.error("Module directory not found: %s", self.module_path)
            return 1

        valid, errors = self.config.validate_dependencies()
        if not valid:
            for error in errors:
                self.logger.error(error)
            return 1

        try:
            order = self.plan(start_step, end_step)
        except KeyError as e:
            self.logger.error(str(e.args[0]))
            return 1

        if force:
            self.clear_state()
        elif not dry_run:
            self.load_state()

        self.logger.info("Module %s: %s", self.config.module_name, " -> ".join(order))
        if dry_run:
            self.logger.info("DRY RUN MODE - no steps will be executed")

        for step_id in order:
            if step_id in self.completed_steps:
                self.logger.info("[SKIP] Step %s already completed", step_id)
                continue

            exit_code = self.execute_step(self.config.steps[step_id], dry_run)
            if exit_code != 0:
                self.logger.error("Module run failed at step %s", step_id)
                return exit_code

        self.logger.info("Module run completed successfully")
        return 0
