"""Script to validate a stored workflow template

Run: python -m scripts.validate_template <template_id> [version]
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from qcflow.domain.errors import TemplateNotFoundError
from qcflow.engine import WorkflowEngine
from qcflow.repositories.workflow_repo import MongoWorkflowStore
from qcflow.services.workflow_service import WorkflowService


def validate_template(template_id: str, version=None) -> bool:
    service = WorkflowService(MongoWorkflowStore())
    try:
        template = service.get_template(template_id, version=version)
    except TemplateNotFoundError:
        print(f"[FAIL] Template {template_id} not found")
        return False

    print(f"[OK] Found template: {template.name}")
    print(f"   Version: {template.version}")
    print(f"   Tenant: {template.tenant_id}")
    print(f"   Active: {template.active}")
    print(f"   Estimated duration: {WorkflowEngine.estimate_duration(template)}h")
    print()

    print("=" * 60)
    print("STEPS")
    print("=" * 60)
    for step in template.steps:
        refs = ", ".join(f"{a.type}:{a.id}" for a in step.assignees) or "-"
        print(f"\n{step.order}. [{step.kind.value}] {step.name} ({step.step_id})")
        print(f"   Required: {step.required}")
        print(f"   Assignees: {refs}")
        if step.conditions:
            print(f"   Conditions: {len(step.conditions)}")
        if step.timeout:
            print(f"   Timeout: {step.timeout.duration_hours}h -> {step.timeout.action.value}")
        if step.actions:
            print(f"   Actions: {', '.join(a.type for a in step.actions)}")

    result = service.validate_steps(template.steps)
    print("\n" + "=" * 60)
    print("VALIDATION")
    print("=" * 60)
    for error in result["errors"]:
        print(f"   [ERROR] {error['path']}: {error['message']}")
    for warning in result["warnings"]:
        print(f"   [WARN] {warning['path']}: {warning['message']}")
    print(f"\nValid: {result['is_valid']}")
    return result["is_valid"]


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python -m scripts.validate_template <template_id> [version]")
        sys.exit(2)
    ok = validate_template(sys.argv[1], int(sys.argv[2]) if len(sys.argv) > 2 else None)
    sys.exit(0 if ok else 1)
