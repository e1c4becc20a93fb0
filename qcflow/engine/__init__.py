"""Workflow Engine - The brain of the system"""
from .engine import WorkflowEngine
from .condition_evaluator import ConditionEvaluator
from .assignee_resolver import AssigneeResolver
from .step_scheduler import StepScheduler
from .decision_processor import DecisionProcessor, SYSTEM_ACTOR
from .action_executor import ActionExecutor
from .notification_adapter import NotificationAdapter
from .timeout_sweeper import TimeoutSweeper
from .qc_ladder import QCLadder

__all__ = [
    "WorkflowEngine",
    "ConditionEvaluator",
    "AssigneeResolver",
    "StepScheduler",
    "DecisionProcessor",
    "SYSTEM_ACTOR",
    "ActionExecutor",
    "NotificationAdapter",
    "TimeoutSweeper",
    "QCLadder",
]
