"""
Seed Data Script - Creates a sample tenant for local testing
Run: python -m scripts.seed_data
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from qcflow.repositories.mongo_client import get_collection, create_indexes
from qcflow.repositories.qc_repo import MongoQCStore
from qcflow.repositories.workflow_repo import MongoWorkflowStore
from qcflow.domain.models import (
    ActorContext, Condition, RoleAssignee, StepTemplate, Submission,
    TimeoutPolicy, UserAssignee, EmailAction, WorkflowSettings
)
from qcflow.domain.enums import ConditionOperator, StepKind, TimeoutAction
from qcflow.engine import QCLadder
from qcflow.services.directory_service import DirectoryService
from qcflow.services.submission_service import SubmissionService
from qcflow.services.workflow_service import WorkflowService

TENANT_ID = "tenant-demo"
ADMIN = ActorContext(user_id="admin", tenant_id=TENANT_ID, roles=["admin"])


def seed_directory():
    """Roles and groups used by the sample template"""
    directory = DirectoryService()
    directory.set_members("role", "managers", TENANT_ID, ["mgr-alice", "mgr-bob"])
    directory.set_members("role", "finance", TENANT_ID, ["fin-carol"])
    directory.set_members("group", "directors", TENANT_ID, ["dir-dave"])
    print("Created directory roles: managers, finance; group: directors")


def seed_template():
    """A two-step expense approval with a finance step for large amounts"""
    if get_collection("workflow_templates").count_documents({"tenant_id": TENANT_ID}) > 0:
        print("Templates already seeded. Skipping.")
        return

    steps = [
        StepTemplate(
            step_id="manager_review",
            name="Manager Review",
            kind=StepKind.APPROVAL,
            order=0,
            assignees=[RoleAssignee(id="managers")],
            timeout=TimeoutPolicy(
                duration_hours=24,
                action=TimeoutAction.ESCALATE,
                escalate_to=[UserAssignee(id="dir-dave")]
            )
        ),
        StepTemplate(
            step_id="finance_review",
            name="Finance Review",
            kind=StepKind.APPROVAL,
            order=1,
            assignees=[RoleAssignee(id="finance")],
            conditions=[Condition(field="amount", operator=ConditionOperator.GREATER_THAN, value=1000)],
            timeout=TimeoutPolicy(duration_hours=48, action=TimeoutAction.AUTO_REJECT),
            actions=[EmailAction(subject="Your expense claim was approved")]
        ),
    ]

    service = WorkflowService(MongoWorkflowStore())
    template = service.create_template(
        name="Expense Approval",
        steps=steps,
        actor=ADMIN,
        description="Manager approval, plus finance for claims over 1000",
        settings=WorkflowSettings(require_comments=False)
    )
    print(f"Created template: {template.template_id} v{template.version}")


def seed_submissions():
    submissions = SubmissionService()
    for submission_id, amount in (("sub-small", 250), ("sub-large", 5000)):
        submissions.save_submission(Submission(
            submission_id=submission_id,
            tenant_id=TENANT_ID,
            submitted_by="emp-erin",
            data={"amount": amount, "category": "travel"}
        ))
    print("Created submissions: sub-small, sub-large")


def seed_qc_stages():
    QCLadder(MongoQCStore()).initialize_stages(TENANT_ID)
    print("Initialized QC stages")


def main():
    print("=== Seeding database ===")
    print("-" * 40)

    create_indexes()

    seed_directory()
    seed_template()
    seed_submissions()
    seed_qc_stages()

    print("-" * 40)
    print("Done!")


if __name__ == "__main__":
    main()
