from .stack import ModeController, TaskStackOrchestrator

__all__ = ["ModeController", "TaskStackOrchestrator"]
