"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger
from coop_approvals.config import settings

logger = logging.getLogger("coop_approvals.workflow")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    root = logging.getLogger()
    root.setLevel(level)

    # Remove existing handlers
    root.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    root.addHandler(handler)


def log_request_created(request_id: str, request_type: str, member_id: str, amount: str) -> None:
    logger.info(
        "Approval request created",
        extra={
            "request_id": request_id,
            "request_type": request_type,
            "member_id": member_id,
            "amount": amount,
            "step": "request_created",
        },
    )


def log_eligibility_failure(request_type: str, member_id: Optional[str], reason: str, message: str) -> None:
    logger.warning(
        "Eligibility check failed",
        extra={
            "request_type": request_type,
            "member_id": member_id,
            "reason": reason,
            "detail": message,
            "step": "eligibility",
        },
    )


def log_transition(
    request_id: str,
    request_type: str,
    decision: str,
    level: int,
    actor_id: str,
    duration_ms: float,
) -> None:
    """Log a committed approval decision"""
    logger.info(
        "Approval decision applied",
        extra={
            "request_id": request_id,
            "request_type": request_type,
            "decision": decision,
            "approval_level": level,
            "actor_id": actor_id,
            "duration_ms": duration_ms,
            "step": "transition_complete",
        },
    )


def log_transition_failure(request_id: str, decision: str, actor_id: str, code: str, message: str, consistency: bool) -> None:
    """Consistency violations are logged at error severity for operator attention"""
    extra = {
        "request_id": request_id,
        "decision": decision,
        "actor_id": actor_id,
        "error_code": code,
        "detail": message,
        "step": "transition_failed",
    }
    if consistency:
        logger.error("Approval workflow consistency violation", extra=extra)
    else:
        logger.warning("Approval decision refused", extra=extra)
