from typing import List, Optional


class RscImportError(RuntimeError):
    """Base class for failures that terminate a preview or import call."""


class InvalidScriptError(RscImportError):
    """The script text is missing or blank."""


class NoDevicesError(RscImportError):
    """The script parsed, but no router or switch could be derived from it."""

    def __init__(self, message: str, warnings: Optional[List[str]] = None):
        super().__init__(message)
        self.warnings: List[str] = list(warnings or [])


class ScenarioNotFoundError(RscImportError):
    def __init__(self, scenario_id: int):
        super().__init__(f"Scenario not found: id={scenario_id}")
        self.scenario_id = scenario_id


class ImportFailedError(RscImportError):
    """A store write failed; the rest of the import was abandoned."""
