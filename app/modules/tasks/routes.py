from fastapi import APIRouter, Depends
from app.database.supabase_client import get_supabase
from app.modules.tasks.schemas import (
    TaskCreate, TaskVersionCreate, TaskFeedbackRequest,
    TaskResponse, TaskVersionsResponse
)
from app.modules.tasks.service import TaskService
from app.modules.tasks.executor import TaskExecutor
from app.modules.uploads.storage import AttachmentStorage, get_attachment_storage
from app.core.dependencies import get_current_user_id
from app.core.llm import LLMClient, get_llm_client
from app.core.limiter import limiter
from app.core.sse import sse_response
from supabase import Client
from typing import List, Dict

router = APIRouter(prefix="/teams/{team_id}/tasks", tags=["tasks"])


def get_task_service(supabase: Client = Depends(get_supabase)) -> TaskService:
    return TaskService(supabase)


@router.post("", response_model=TaskResponse, status_code=201)
async def create_task(
    team_id: str,
    task_data: TaskCreate,
    user_data: Dict = Depends(get_current_user_id),
    service: TaskService = Depends(get_task_service),
    llm: LLMClient = Depends(get_llm_client)
):
    """Create a collaborative task and split it into one subtask per team member"""
    return service.create_task(team_id, task_data, user_data, llm)


@router.get("", response_model=List[TaskResponse])
async def list_tasks(
    team_id: str,
    user_data: Dict = Depends(get_current_user_id),
    service: TaskService = Depends(get_task_service)
):
    """List root tasks of a team (versions are counted, not listed)"""
    return service.list_tasks(team_id, user_data)


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    team_id: str,
    task_id: str,
    user_data: Dict = Depends(get_current_user_id),
    service: TaskService = Depends(get_task_service)
):
    return service.get_task(team_id, task_id, user_data)


@router.get("/{task_id}/versions", response_model=TaskVersionsResponse)
async def get_task_versions(
    team_id: str,
    task_id: str,
    user_data: Dict = Depends(get_current_user_id),
    service: TaskService = Depends(get_task_service)
):
    return service.get_versions(team_id, task_id, user_data)


@router.post("/{task_id}/new-version", response_model=TaskResponse, status_code=201)
async def create_task_version(
    team_id: str,
    task_id: str,
    version_data: TaskVersionCreate,
    user_data: Dict = Depends(get_current_user_id),
    service: TaskService = Depends(get_task_service),
    llm: LLMClient = Depends(get_llm_client)
):
    return service.create_version(team_id, task_id, version_data, user_data, llm)


@router.post("/{task_id}/feedback", response_model=TaskResponse)
async def record_task_feedback(
    team_id: str,
    task_id: str,
    feedback_data: TaskFeedbackRequest,
    user_data: Dict = Depends(get_current_user_id),
    service: TaskService = Depends(get_task_service)
):
    return service.record_feedback(team_id, task_id, feedback_data.feedback, user_data)


@router.post("/{task_id}/execute")
@limiter.exempt
async def execute_task(
    team_id: str,
    task_id: str,
    user_data: Dict = Depends(get_current_user_id),
    service: TaskService = Depends(get_task_service),
    supabase: Client = Depends(get_supabase),
    llm: LLMClient = Depends(get_llm_client),
    storage: AttachmentStorage = Depends(get_attachment_storage)
):
    """Run the task and stream progress as Server-Sent Events"""
    task, _ = service.check_task_access(team_id, task_id, user_data)
    executor = TaskExecutor(supabase, llm, storage)
    return sse_response(executor.execute(task))


@router.delete("/{task_id}", status_code=204)
async def delete_task(
    team_id: str,
    task_id: str,
    user_data: Dict = Depends(get_current_user_id),
    service: TaskService = Depends(get_task_service)
):
    service.delete_task(team_id, task_id, user_data)
    return None
