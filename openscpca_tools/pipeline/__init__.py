"""Local runner for analysis modules.

Runs a module's scripts in dependency order from a YAML description, the
way a CI job would run them against test data, with checkpoint support.

Example Usage
-------------
>>> from openscpca_tools.pipeline import ModuleConfig, ModuleRunner, RunLogger
>>> config = ModuleConfig("module.yaml")
>>> config.load()
>>> config.parse_steps()
>>> run_logger = RunLogger("logs/")
>>> run_logger.setup()
>>> exit_code = ModuleRunner(config, run_logger).run()
"""

from .step import ModuleStep
from .config import ModuleConfig
from .logger import ColoredFormatter, RunLogger
from .runner import ModuleRunner

__all__ = [
    "ModuleStep",
    "ModuleConfig",
    "ColoredFormatter",
    "RunLogger",
    "ModuleRunner",
]
