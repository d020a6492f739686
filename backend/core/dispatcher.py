"""
Workflow dispatcher: resolves a rule's code path to a Python module under
the workflow root, loads it fresh, and runs its entry point.

A workflow module exposes its single operation in one of two shapes:

    def run(context) -> result            # or async def run(context)
    workflow = SomeWorkflow()             # object with .run(context), or a bare callable

Modules are executed from source on every call and never registered in
sys.modules, so an edited workflow takes effect on the next request
without a restart. Module loading and synchronous entry points run in the
default executor so a slow workflow does not stall the event loop.
"""

import asyncio
import importlib.util
import inspect
import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

from errors import ErrorCode

logger = logging.getLogger(__name__)


@dataclass
class WorkflowResult:
    success: bool
    workflow_path: str
    result: Any = None
    error: Optional[ErrorCode] = None
    message: str = ""

    def to_dict(self) -> dict:
        data = {"success": self.success, "workflowPath": self.workflow_path}
        if self.success:
            data["result"] = self.result
        else:
            data["error"] = self.error.value if self.error else None
            data["message"] = self.message
        return data


class WorkflowNotFoundError(LookupError):
    pass


class WorkflowDispatcher:
    """Executes workflow modules found beneath a fixed root directory."""

    def __init__(self, workflow_root: Path):
        self.workflow_root = Path(workflow_root).resolve()

    def resolve_path(self, code_path: str) -> Path:
        """Map a rule's code path to a file under the root.

        Paths that escape the root (``..``, absolute paths, symlinks out)
        are treated as not found.
        """
        if not code_path:
            raise WorkflowNotFoundError("Workflow path is empty")
        candidate = (self.workflow_root / code_path).resolve()
        if not candidate.is_relative_to(self.workflow_root):
            raise WorkflowNotFoundError(f"Workflow path escapes workflow root: {code_path}")
        if candidate.suffix != ".py" or not candidate.is_file():
            raise WorkflowNotFoundError(f"Workflow implementation not found: {code_path}")
        return candidate

    def load_entry_point(self, path: Path) -> Callable:
        """Execute the module source and return its run callable."""
        module_name = f"_workflow_{path.stem}_{uuid.uuid4().hex[:8]}"
        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise ImportError(f"Cannot load workflow module from {path}")
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)

        run = getattr(module, "run", None)
        if callable(run):
            return run
        workflow = getattr(module, "workflow", None)
        if workflow is not None:
            if callable(getattr(workflow, "run", None)):
                return workflow.run
            if callable(workflow):
                return workflow
        raise TypeError('Workflow must export a "run" function or a "workflow" object')

    async def execute_workflow(self, code_path: str, context: dict) -> WorkflowResult:
        """Run the workflow at ``code_path``. Never raises."""
        try:
            path = self.resolve_path(code_path)
        except WorkflowNotFoundError as e:
            logger.warning("Workflow not found: %s", code_path)
            return WorkflowResult(
                success=False,
                workflow_path=code_path,
                error=ErrorCode.WORKFLOW_NOT_FOUND,
                message=f"{e}. This workflow is planned but not yet implemented.",
            )

        try:
            loop = asyncio.get_running_loop()
            entry = await loop.run_in_executor(None, self.load_entry_point, path)
            if inspect.iscoroutinefunction(entry):
                result = await entry(context)
            else:
                result = await loop.run_in_executor(None, entry, context)
                if inspect.isawaitable(result):
                    result = await result
        except Exception as e:
            logger.error("Error executing workflow %s: %s", code_path, e, exc_info=True)
            return WorkflowResult(
                success=False,
                workflow_path=code_path,
                error=ErrorCode.WORKFLOW_EXECUTION_ERROR,
                message=str(e) or e.__class__.__name__,
            )

        logger.info("Workflow %s completed", code_path)
        return WorkflowResult(success=True, workflow_path=code_path, result=result)
