from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from schemas.account_schema import CurrentUser
from schemas.task_schema import TaskProof
from api.dependencies import get_current_user
from db.session import get_db_session
from services.task_service import start_task, submit_task, complete_task, get_assignment, list_user_assignments, list_available_tasks
from utils.responses import no_store_json

router = APIRouter()

@router.get("/tasks")
async def available_tasks(db: AsyncSession = Depends(get_db_session)):
    return no_store_json(await list_available_tasks(db))

@router.get("/tasks/assignments")
async def my_assignments(current_user: CurrentUser = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    return no_store_json(await list_user_assignments(current_user.user_id, db))

@router.get("/tasks/assignments/{assignment_id}")
async def read_assignment(assignment_id: int, current_user: CurrentUser = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    return no_store_json(await get_assignment(assignment_id, current_user.user_id, db))

@router.post("/tasks/{task_id}/start")
async def start(task_id: int, current_user: CurrentUser = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    return no_store_json(await start_task(current_user.user_id, task_id, db), status_code=201)

@router.post("/tasks/assignments/{assignment_id}/submit")
async def submit(assignment_id: int, proof: TaskProof, current_user: CurrentUser = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    return no_store_json(await submit_task(
        assignment_id,
        screenshot_ref=proof.screenshot_ref,
        notes=proof.notes,
        user_id=current_user.user_id,
        db=db,
    ))

@router.post("/tasks/assignments/{assignment_id}/complete")
async def complete(assignment_id: int, current_user: CurrentUser = Depends(get_current_user), db: AsyncSession = Depends(get_db_session)):
    return no_store_json(await complete_task(assignment_id, user_id=current_user.user_id, db=db))
