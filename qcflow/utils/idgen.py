"""ID Generation Utilities"""
import uuid
from datetime import datetime
from typing import Optional


def generate_id(prefix: Optional[str] = None) -> str:
    """
    Generate a unique ID with optional prefix

    Args:
        prefix: Optional prefix for the ID (e.g., 'EXEC', 'WFT', 'CMT')

    Returns:
        Unique ID string

    Examples:
        >>> generate_id('EXEC')
        'EXEC-a1b2c3d4e5f6'
        >>> generate_id()
        'a1b2c3d4e5f6'
    """
    unique_part = uuid.uuid4().hex[:12]

    if prefix:
        return f"{prefix}-{unique_part}"
    return unique_part


def generate_template_id() -> str:
    """Generate workflow template ID"""
    return generate_id("WFT")


def generate_execution_id() -> str:
    """Generate workflow execution ID"""
    return generate_id("EXEC")


def generate_comment_id() -> str:
    """Generate comment ID"""
    return generate_id("CMT")


def generate_notification_id() -> str:
    """Generate notification ID"""
    return generate_id("NTF")


def generate_transition_id() -> str:
    """Generate QC stage transition ID"""
    return generate_id("TRN")


def generate_task_id() -> str:
    """Generate follow-up task ID"""
    return generate_id("TSK")


def generate_correlation_id() -> str:
    """
    Generate a correlation ID for request tracing

    Returns:
        Correlation ID string with timestamp prefix
    """
    timestamp = datetime.utcnow().strftime("%Y%m%d%H%M%S")
    unique_part = uuid.uuid4().hex[:8]
    return f"COR-{timestamp}-{unique_part}"
