"""Caller roles and report visibility."""

from typing import Any

import structlog
from fastapi import Request
from sqlalchemy.orm import Session

from api.config.settings import settings
from api.middleware.error_handler import ForbiddenError, NotFoundError, UnauthorizedError
from api.models import Report

logger = structlog.get_logger()


def get_current_user(request: Request) -> dict[str, Any]:
    """
    Get current user from request state.

    Usage:
        @router.get("/reports/{report_id}")
        def get_report(user: dict = Depends(get_current_user)):
            ...
    """
    if not hasattr(request.state, "user"):
        raise UnauthorizedError()
    return request.state.user


def is_admin(user: dict[str, Any]) -> bool:
    return settings.ADMIN_ROLE in user.get("roles", [])


def require_admin(request: Request) -> dict[str, Any]:
    """
    Dependency that requires admin role.

    Usage:
        @router.post("/queue/{job_id}/retry")
        def retry(user: dict = Depends(require_admin)):
            ...
    """
    user = get_current_user(request)
    if not is_admin(user):
        logger.warning("Admin check failed", user=user.get("sub"), user_roles=user.get("roles"))
        raise ForbiddenError()
    return user


def can_view_report(user: dict[str, Any], report: Report) -> bool:
    """Admins see every report; everyone else only their company's."""
    if is_admin(user):
        return True
    company_id = user.get("company_id")
    return bool(company_id) and report.company_id == company_id


def get_visible_report(db: Session, report_id: str, user: dict[str, Any]) -> Report:
    """Load a report the caller may see.

    Raises:
        NotFoundError: If the report is missing or belongs to another company
    """
    report = db.get(Report, report_id)
    if not report or not can_view_report(user, report):
        if report:
            logger.info("Report hidden from caller", report_id=report_id, user=user.get("sub"))
        raise NotFoundError("Report", report_id)
    return report
