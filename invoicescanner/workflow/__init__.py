"""Workflow package."""

from invoicescanner.workflow.state_machine import (
    AppPhase,
    CaptureInProgressError,
    DraftFieldError,
    InvalidTransitionError,
    ScanWorkflow,
    StepOutcome,
    WorkflowError,
    create_workflow,
)

__all__ = [
    "AppPhase",
    "CaptureInProgressError",
    "DraftFieldError",
    "InvalidTransitionError",
    "ScanWorkflow",
    "StepOutcome",
    "WorkflowError",
    "create_workflow",
]
