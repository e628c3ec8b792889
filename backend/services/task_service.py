"""Task Workflow: Pending -> Submitted -> Completed | Rejected.

Every transition is a conditional UPDATE guarded on the expected current
state, so a retried or duplicated call finds zero matching rows instead of
applying the transition (and its credit) twice.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import (
    AlreadyReviewed,
    AlreadyStarted,
    InvalidState,
    MissingRequiredMedia,
    NotFound,
    TaskUnavailable,
)
from db.models.account import Account
from db.models.points_transaction import REASON_TASK_COMPLETION
from db.models.task import AssignmentStatus, Submission, Task, TaskAssignment, VerificationType
from db.session import get_or_use_session
from services.account_service import credit
from utils.db import atomic
from utils.timing import timeit

logger = logging.getLogger(__name__)

DECISION_APPROVE = "approve"
DECISION_REJECT = "reject"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _open_key(user_id: str, task_id: int) -> str:
    return f"{user_id}:{task_id}"


def is_expired(task: Task, now: datetime = None) -> bool:
    if task.expires_at is None:
        return False
    expires_at = task.expires_at
    # SQLite hands back naive datetimes; everything is stored in UTC
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at <= (now or _now())


def task_to_dict(task: Task) -> Dict[str, Any]:
    return {
        "id": task.id,
        "title": task.title,
        "points": task.points,
        "active": bool(task.active),
        "required_media": bool(task.required_media),
        "verification_type": VerificationType(task.verification_type).value,
        "expires_at": _iso(task.expires_at),
    }


def assignment_to_dict(assignment: TaskAssignment, submission: Optional[Submission] = None) -> Dict[str, Any]:
    data = {
        "id": assignment.id,
        "user_id": assignment.user_id,
        "task_id": assignment.task_id,
        "status": AssignmentStatus(assignment.status).value,
        "points_earned": assignment.points_earned,
        "completed_at": _iso(assignment.completed_at),
        "created_at": _iso(assignment.created_at),
    }
    if assignment.task is not None:
        data["task"] = task_to_dict(assignment.task)
    if submission is not None:
        data["submission"] = {
            "id": submission.id,
            "screenshot_ref": submission.screenshot_ref,
            "notes": submission.notes,
            "submitted_at": _iso(submission.submitted_at),
            "reviewed_at": _iso(submission.reviewed_at),
            "decision_notes": submission.decision_notes,
        }
    return data


async def _load_assignment(session: AsyncSession, assignment_id: int, user_id: Optional[str] = None) -> TaskAssignment:
    result = await session.execute(
        select(TaskAssignment)
        .where(TaskAssignment.id == assignment_id)
        .execution_options(populate_existing=True)
    )
    assignment = result.scalars().first()
    # Someone else's assignment is reported exactly like a missing one
    if not assignment or (user_id is not None and assignment.user_id != user_id):
        raise NotFound("Task assignment not found")
    return assignment


@timeit("start_task")
async def start_task(user_id: str, task_id: int, db: AsyncSession = None) -> Dict[str, Any]:
    async with get_or_use_session(db) as session:
        async with atomic(session, "start_task"):
            task = await session.get(Task, task_id, populate_existing=True)
            if not task:
                raise NotFound("Task not found")
            if not task.active:
                raise TaskUnavailable("This task is no longer active")
            if is_expired(task):
                raise TaskUnavailable()
            if await session.get(Account, user_id) is None:
                raise NotFound("Account not found")

            key = _open_key(user_id, task_id)
            existing = await session.execute(select(TaskAssignment.id).where(TaskAssignment.open_key == key))
            if existing.scalar_one_or_none() is not None:
                raise AlreadyStarted()

            assignment = TaskAssignment(
                user_id=user_id,
                task_id=task_id,
                status=AssignmentStatus.PENDING,
                open_key=key,
            )
            session.add(assignment)
            try:
                await session.flush()
            except IntegrityError:
                # A concurrent start for the same (user, task) committed first
                raise AlreadyStarted()
            logger.info(f"User {user_id} started task {task_id} (assignment {assignment.id})")
        return {"assignment_id": assignment.id, "state": AssignmentStatus.PENDING.value}


@timeit("submit_task")
async def submit_task(
    assignment_id: int,
    screenshot_ref: Optional[str] = None,
    notes: Optional[str] = None,
    user_id: Optional[str] = None,
    db: AsyncSession = None,
) -> Dict[str, Any]:
    async with get_or_use_session(db) as session:
        async with atomic(session, "submit_task"):
            assignment = await _load_assignment(session, assignment_id, user_id)
            if assignment.status != AssignmentStatus.PENDING:
                raise InvalidState(f"Cannot submit a task that is {AssignmentStatus(assignment.status).value}")
            if assignment.task.required_media and not (screenshot_ref or "").strip():
                raise MissingRequiredMedia()

            result = await session.execute(
                update(TaskAssignment)
                .where(TaskAssignment.id == assignment_id, TaskAssignment.status == AssignmentStatus.PENDING)
                .values(status=AssignmentStatus.SUBMITTED)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise InvalidState("Task assignment is no longer pending")

            submission = Submission(
                task_assignment_id=assignment_id,
                screenshot_ref=screenshot_ref or None,
                notes=notes or None,
                submitted_at=_now(),
            )
            session.add(submission)
            await session.flush()
            logger.info(f"Assignment {assignment_id} submitted for review (submission {submission.id})")
        return {"submission_id": submission.id, "state": AssignmentStatus.SUBMITTED.value}


@timeit("complete_task")
async def complete_task(assignment_id: int, user_id: Optional[str] = None, db: AsyncSession = None) -> Dict[str, Any]:
    """Finish an Automatic-verification task. Safe to retry: a repeat reports the first outcome."""
    async with get_or_use_session(db) as session:
        async with atomic(session, "complete_task"):
            assignment = await _load_assignment(session, assignment_id, user_id)
            task = assignment.task
            if VerificationType(task.verification_type) != VerificationType.AUTOMATIC:
                raise InvalidState("This task requires manual review")
            if assignment.status == AssignmentStatus.COMPLETED:
                return _prior_completion(assignment)
            if assignment.status != AssignmentStatus.PENDING:
                raise InvalidState(f"Cannot complete a task that is {AssignmentStatus(assignment.status).value}")

            points = int(task.points or 0)
            result = await session.execute(
                update(TaskAssignment)
                .where(TaskAssignment.id == assignment_id, TaskAssignment.status == AssignmentStatus.PENDING)
                .values(
                    status=AssignmentStatus.COMPLETED,
                    points_earned=points,
                    completed_at=_now(),
                    open_key=None,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                assignment = await _load_assignment(session, assignment_id)
                if assignment.status == AssignmentStatus.COMPLETED:
                    return _prior_completion(assignment)
                raise InvalidState("Task assignment changed while completing; reload and retry")

            balance = await credit(session, assignment.user_id, points, REASON_TASK_COMPLETION, assignment_id)
            logger.info(f"Assignment {assignment_id} auto-completed for {points} point(s)")
        return {
            "assignment_id": assignment_id,
            "state": AssignmentStatus.COMPLETED.value,
            "points_earned": points,
            "total_points": balance,
            "already_completed": False,
        }


def _prior_completion(assignment: TaskAssignment) -> Dict[str, Any]:
    logger.info(f"Assignment {assignment.id} already completed; reporting prior outcome")
    return {
        "assignment_id": assignment.id,
        "state": AssignmentStatus.COMPLETED.value,
        "points_earned": assignment.points_earned,
        "already_completed": True,
    }


@timeit("review_submission")
async def review_submission(
    submission_id: int,
    decision: str,
    reviewer_id: str,
    notes: Optional[str] = None,
    db: AsyncSession = None,
) -> Dict[str, Any]:
    decision = (decision or "").strip().lower()
    if decision not in (DECISION_APPROVE, DECISION_REJECT):
        raise InvalidState(f"Unknown review decision: {decision!r}")

    async with get_or_use_session(db) as session:
        async with atomic(session, "review_submission"):
            result = await session.execute(
                select(Submission).where(Submission.id == submission_id).execution_options(populate_existing=True)
            )
            submission = result.scalars().first()
            if not submission:
                raise NotFound("Submission not found")
            if submission.reviewed_at is not None:
                raise AlreadyReviewed()

            now = _now()
            # The check-then-set for "reviewed once" happens in this one statement
            result = await session.execute(
                update(Submission)
                .where(Submission.id == submission_id, Submission.reviewed_at.is_(None))
                .values(reviewed_at=now, reviewed_by=reviewer_id, decision_notes=notes or None)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise AlreadyReviewed()

            assignment_id = submission.task_assignment_id
            assignment = await _load_assignment(session, assignment_id)
            task = await session.get(Task, assignment.task_id, populate_existing=True)

            if decision == DECISION_APPROVE:
                points = int(task.points or 0)
                values = {
                    "status": AssignmentStatus.COMPLETED,
                    "points_earned": points,
                    "completed_at": now,
                    "open_key": None,
                }
            else:
                points = None
                values = {"status": AssignmentStatus.REJECTED, "points_earned": None, "open_key": None}

            result = await session.execute(
                update(TaskAssignment)
                .where(TaskAssignment.id == assignment_id, TaskAssignment.status == AssignmentStatus.SUBMITTED)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise InvalidState("Task assignment is not awaiting review")

            response = {
                "submission_id": submission_id,
                "assignment_id": assignment_id,
                "new_state": values["status"].value,
                "points_earned": points,
            }
            if points is not None:
                response["total_points"] = await credit(session, assignment.user_id, points, REASON_TASK_COMPLETION, assignment_id)
            logger.info(f"Submission {submission_id} {decision}d by {reviewer_id}")
        return response


async def _submission_for(session: AsyncSession, assignment_id: int) -> Optional[Submission]:
    result = await session.execute(
        select(Submission)
        .where(Submission.task_assignment_id == assignment_id)
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def list_available_tasks(db: AsyncSession = None) -> List[Dict[str, Any]]:
    """Active tasks that have not expired, newest first."""
    now = _now()
    async with get_or_use_session(db) as session:
        result = await session.execute(
            select(Task)
            .where(Task.active.is_(True))
            .order_by(Task.created_at.desc(), Task.id.desc())
            .execution_options(populate_existing=True)
        )
        return [task_to_dict(t) for t in result.scalars().all() if not is_expired(t, now)]


async def get_assignment(assignment_id: int, user_id: Optional[str] = None, db: AsyncSession = None) -> Dict[str, Any]:
    async with get_or_use_session(db) as session:
        assignment = await _load_assignment(session, assignment_id, user_id)
        return assignment_to_dict(assignment, await _submission_for(session, assignment_id))


async def list_user_assignments(user_id: str, db: AsyncSession = None) -> List[Dict[str, Any]]:
    """The caller's assignments, newest first, with the review outcome where there is one."""
    async with get_or_use_session(db) as session:
        result = await session.execute(
            select(TaskAssignment, Submission)
            .outerjoin(Submission, Submission.task_assignment_id == TaskAssignment.id)
            .where(TaskAssignment.user_id == user_id)
            .order_by(TaskAssignment.id.desc())
            .execution_options(populate_existing=True)
        )
        return [assignment_to_dict(a, s) for a, s in result.all()]


async def list_pending_submissions(db: AsyncSession = None) -> List[Dict[str, Any]]:
    """Unreviewed submissions, oldest first, for the admin review queue."""
    async with get_or_use_session(db) as session:
        result = await session.execute(
            select(Submission)
            .where(Submission.reviewed_at.is_(None))
            .order_by(Submission.submitted_at.asc(), Submission.id.asc())
            .execution_options(populate_existing=True)
        )
        out = []
        for s in result.scalars().unique().all():
            out.append({
                "id": s.id,
                "task_assignment_id": s.task_assignment_id,
                "screenshot_ref": s.screenshot_ref,
                "notes": s.notes,
                "submitted_at": _iso(s.submitted_at),
                "assignment": assignment_to_dict(s.assignment),
            })
        return out
