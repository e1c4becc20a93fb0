"""Workflow Service - Template management business logic"""
from typing import Any, Dict, List, Optional

from ..domain.models import (
    ActorContext, StepTemplate, WorkflowSettings, WorkflowTemplate, WebhookAction
)
from ..domain.enums import ConditionOperator, TimeoutAction
from ..domain.errors import TemplateNotFoundError, TemplateValidationError
from ..repositories.base import WorkflowStore
from ..utils.idgen import generate_template_id
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


class WorkflowService:
    """
    Service for template operations

    Templates are immutable per version. Editing a template means publishing
    version N+1; running executions stay pinned to the version they started on.
    """

    def __init__(self, store: WorkflowStore):
        self.store = store

    def create_template(
        self,
        name: str,
        steps: List[StepTemplate],
        actor: ActorContext,
        description: Optional[str] = None,
        form_id: Optional[str] = None,
        settings: Optional[WorkflowSettings] = None
    ) -> WorkflowTemplate:
        """
        Create version 1 of a new template

        Raises:
            TemplateValidationError: If validation fails
        """
        template = WorkflowTemplate(
            template_id=generate_template_id(),
            version=1,
            name=name,
            description=description,
            form_id=form_id,
            tenant_id=actor.tenant_id,
            active=True,
            steps=self._ordered(steps),
            settings=settings or WorkflowSettings(),
            created_by=actor.user_id,
            created_at=utc_now()
        )
        self._raise_if_invalid(template.steps)

        self.store.save_template(template)
        logger.info(
            f"Created template: {template.template_id}",
            extra={"template_id": template.template_id, "tenant_id": actor.tenant_id, "user_id": actor.user_id}
        )
        return template

    def publish_new_version(
        self,
        template_id: str,
        actor: ActorContext,
        steps: Optional[List[StepTemplate]] = None,
        settings: Optional[WorkflowSettings] = None,
        name: Optional[str] = None,
        description: Optional[str] = None
    ) -> WorkflowTemplate:
        """Store version N+1; omitted fields are carried over from version N"""
        current = self.get_template(template_id, tenant_id=actor.tenant_id)

        template = current.model_copy(
            deep=True,
            update={
                "version": current.version + 1,
                "name": name or current.name,
                "description": description if description is not None else current.description,
                "steps": self._ordered(steps) if steps is not None else current.steps,
                "settings": settings or current.settings,
                "created_by": actor.user_id,
                "created_at": utc_now(),
            }
        )
        self._raise_if_invalid(template.steps)

        self.store.save_template(template)
        logger.info(
            f"Published template {template_id} v{template.version}",
            extra={"template_id": template_id, "tenant_id": actor.tenant_id}
        )
        return template

    def deactivate_template(self, template_id: str, actor: ActorContext) -> WorkflowTemplate:
        """Stop new executions; running executions are unaffected"""
        self.get_template(template_id, tenant_id=actor.tenant_id)
        return self.store.set_template_active(template_id, False)

    def activate_template(self, template_id: str, actor: ActorContext) -> WorkflowTemplate:
        self.get_template(template_id, tenant_id=actor.tenant_id)
        return self.store.set_template_active(template_id, True)

    def get_template(
        self,
        template_id: str,
        version: Optional[int] = None,
        tenant_id: Optional[str] = None
    ) -> WorkflowTemplate:
        template = self.store.get_template(template_id, version)
        if template is None or (tenant_id and template.tenant_id != tenant_id):
            raise TemplateNotFoundError(f"Template {template_id} not found")
        return template

    def list_templates(self, tenant_id: str, active_only: bool = False) -> List[WorkflowTemplate]:
        return self.store.list_templates(tenant_id=tenant_id, active_only=active_only)

    # =========================================================================
    # Validation
    # =========================================================================

    def validate_steps(self, steps: List[StepTemplate]) -> Dict[str, Any]:
        """
        Validate a step list

        Returns validation result with errors and warnings
        """
        errors = []
        warnings = []

        if not steps:
            errors.append({
                "type": "EMPTY_STEPS",
                "message": "Workflow must have at least one step",
                "path": "steps"
            })

        step_ids = set()
        orders = set()

        for i, step in enumerate(steps):
            if step.step_id in step_ids:
                errors.append({
                    "type": "DUPLICATE_STEP_ID",
                    "message": f"Duplicate step_id: {step.step_id}",
                    "path": f"steps[{i}].step_id"
                })
            step_ids.add(step.step_id)

            if step.order in orders:
                errors.append({
                    "type": "DUPLICATE_ORDER",
                    "message": f"Duplicate order index {step.order}",
                    "path": f"steps[{i}].order"
                })
            orders.add(step.order)

            for j, action in enumerate(step.actions):
                if isinstance(action, WebhookAction) and not action.url.strip():
                    errors.append({
                        "type": "WEBHOOK_URL_MISSING",
                        "message": "Webhook action requires a URL",
                        "path": f"steps[{i}].actions[{j}].url"
                    })

            for j, condition in enumerate(step.conditions):
                if condition.operator in (ConditionOperator.IN, ConditionOperator.NOT_IN) \
                        and not isinstance(condition.value, list):
                    errors.append({
                        "type": "INVALID_CONDITION_VALUE",
                        "message": f"Operator {condition.operator.value} requires a list value",
                        "path": f"steps[{i}].conditions[{j}].value"
                    })

            if not step.assignees and step.required:
                warnings.append({
                    "type": "NO_ASSIGNEES",
                    "message": f"Required step {step.step_id} has no assignees; only a timeout can move it",
                    "path": f"steps[{i}].assignees"
                })

            if step.timeout and step.timeout.action == TimeoutAction.ESCALATE and not step.timeout.escalate_to:
                warnings.append({
                    "type": "NO_ESCALATION_TARGETS",
                    "message": f"Step {step.step_id} escalates but lists no escalation targets",
                    "path": f"steps[{i}].timeout.escalate_to"
                })

        return {
            "is_valid": len(errors) == 0,
            "errors": errors,
            "warnings": warnings
        }

    def _raise_if_invalid(self, steps: List[StepTemplate]) -> None:
        validation = self.validate_steps(steps)
        if not validation["is_valid"]:
            raise TemplateValidationError(
                "Template validation failed",
                details={"errors": validation["errors"]}
            )

    @staticmethod
    def _ordered(steps: List[StepTemplate]) -> List[StepTemplate]:
        return sorted(steps, key=lambda s: s.order)
