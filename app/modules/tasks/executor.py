import logging
from typing import Any, Dict, Iterator, List, Tuple
from supabase import Client

from app.config import settings
from app.core.llm import LLMClient
from app.core.sse import format_sse_event
from app.modules.agents.service import agent_model, utc_now
from app.modules.tasks import prompts
from app.modules.teams.service import TeamService
from app.modules.uploads.storage import AttachmentStorage

logger = logging.getLogger(__name__)


class TaskExecutor:
    """
    Runs a collaborative task: each assignment in execution_order gets one
    completion that sees every earlier contribution, then a synthesis call
    produces the task result. Progress is reported as SSE event strings.
    """

    def __init__(self, supabase: Client, llm: LLMClient, storage: AttachmentStorage):
        self.supabase = supabase
        self.llm = llm
        self.storage = storage

    def _update_task(self, task_id: str, data: Dict[str, Any]):
        self.supabase.table("collaborative_tasks")\
            .update(data)\
            .eq("id", task_id)\
            .execute()

    def _update_assignment(self, assignment_id: str, data: Dict[str, Any]):
        self.supabase.table("task_assignments")\
            .update(data)\
            .eq("id", assignment_id)\
            .execute()

    def _rollback(self, task_id: str):
        try:
            self._update_task(task_id, {"status": "PENDING"})
        except Exception as e:
            logger.error(f"Failed to reset task {task_id} to PENDING: {e}")

    def _reset_progress(self, task_id: str):
        """Clear output of a previous run so a retry starts clean"""
        self.supabase.table("agent_contributions")\
            .delete()\
            .eq("task_id", task_id)\
            .execute()
        self.supabase.table("task_assignments")\
            .update({
                "status": "PENDING",
                "result": None,
                "confidence": None,
                "started_at": None,
                "completed_at": None,
            })\
            .eq("task_id", task_id)\
            .execute()

    def load_attachments(self, task_id: str) -> Tuple[List[Dict[str, str]], List[str]]:
        """Split task attachments into vision images (data URLs) and document labels"""
        result = self.supabase.table("task_attachments")\
            .select("*")\
            .eq("task_id", task_id)\
            .execute()
        images = []
        documents = []
        for attachment in result.data or []:
            name = attachment.get("original_file_name") or attachment.get("file_name")
            if (attachment.get("file_type") or "").startswith("image/"):
                url = self.storage.image_data_url(attachment)
                if url:
                    images.append({"file_name": name, "url": url})
            else:
                documents.append(f"{name} ({attachment.get('file_type')})")
        logger.info(f"Task {task_id} attachments: {len(images)} images, {len(documents)} documents")
        return images, documents

    def load_assignments(self, task: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Assignments in execution order with the agent row and team role attached"""
        result = self.supabase.table("task_assignments")\
            .select("*")\
            .eq("task_id", task["id"])\
            .order("execution_order")\
            .execute()
        rows = result.data or []
        members = {m["agent_id"]: m for m in TeamService(self.supabase).get_member_rows(task["team_id"])}
        # Members may have left the team since the task was decomposed
        agents = {}
        if rows:
            agents_result = self.supabase.table("agents")\
                .select("*")\
                .in_("id", list({r["agent_id"] for r in rows}))\
                .execute()
            agents = {a["id"]: a for a in agents_result.data or []}
        assignments = []
        for row in rows:
            member = members.get(row["agent_id"]) or {}
            agent = agents.get(row["agent_id"]) or {"id": row["agent_id"], "name": "Unknown agent"}
            assignments.append({**row, "agent": agent, "role": member.get("role") or "Team member"})
        return assignments

    def run_subtask(
        self,
        task: Dict[str, Any],
        assignment: Dict[str, Any],
        previous: List[Dict[str, Any]],
        images: List[Dict[str, str]],
        documents: List[str],
    ) -> Dict[str, Any]:
        """One completion for one assignment; provider errors become the result text"""
        agent = assignment["agent"]
        messages = [
            {
                "role": "system",
                "content": prompts.subtask_system_prompt(
                    agent["name"], assignment["role"], task["description"],
                    assignment["subtask_description"], previous, documents,
                ),
            },
            {"role": "user", "content": prompts.subtask_user_content(images)},
        ]
        try:
            result = self.llm.complete_with_fallback(
                messages,
                model=agent_model(agent),
                fallback_model=settings.default_model,
                temperature=0.7,
                logprobs=True,
            )
            return {"result": result.content.strip(), "confidence": result.confidence, "ok": True}
        except Exception as e:
            logger.error(f"Subtask for agent {agent['id']} failed: {e}")
            return {"result": f"Error executing subtask: {e}", "confidence": None, "ok": False}

    def synthesize(self, task: Dict[str, Any], contributions: List[Dict[str, Any]]) -> str:
        try:
            result = self.llm.complete_with_fallback(
                [{"role": "user", "content": prompts.synthesis_prompt(task["description"], contributions)}],
                model=settings.default_model,
                fallback_model=settings.fallback_model,
                temperature=0.5,
                max_tokens=1500,
            )
            if result.content.strip():
                return result.content.strip()
            logger.warning(f"Synthesis for task {task['id']} returned no content, joining contributions")
        except Exception as e:
            logger.error(f"Synthesis for task {task['id']} failed, joining contributions: {e}")
        return prompts.join_contributions(contributions)

    def execute(self, task: Dict[str, Any]) -> Iterator[str]:
        """PENDING -> IN_PROGRESS -> COMPLETED; back to PENDING on the first uncaught error"""
        task_id = task["id"]
        finished = False
        try:
            self._update_task(task_id, {"status": "IN_PROGRESS", "completed_at": None})
            self._reset_progress(task_id)
            yield format_sse_event("status", {
                "status": "IN_PROGRESS",
                "message": "Starting collaborative task execution...",
            })

            images, documents = self.load_attachments(task_id)
            contributions: List[Dict[str, Any]] = []
            for assignment in self.load_assignments(task):
                agent = assignment["agent"]
                yield format_sse_event("agent_start", {
                    "agent_id": agent["id"],
                    "agent_name": agent["name"],
                    "role": assignment["role"],
                    "subtask": assignment["subtask_description"],
                })
                self._update_assignment(assignment["id"], {"status": "IN_PROGRESS", "started_at": utc_now()})

                outcome = self.run_subtask(task, assignment, contributions, images, documents)
                if outcome["ok"]:
                    yield format_sse_event("agent_stream", {"agent_id": agent["id"], "content": outcome["result"]})

                self._update_assignment(assignment["id"], {
                    "status": "COMPLETED",
                    "result": outcome["result"],
                    "confidence": outcome["confidence"],
                    "completed_at": utc_now(),
                })
                self.supabase.table("agent_contributions").insert({
                    "task_id": task_id,
                    "agent_id": agent["id"],
                    "contribution": outcome["result"],
                    "confidence": outcome["confidence"],
                }).execute()
                contributions.append({
                    "agent_name": agent["name"],
                    "role": assignment["role"],
                    "result": outcome["result"],
                })
                yield format_sse_event("agent_complete", {
                    "agent_id": agent["id"],
                    "agent_name": agent["name"],
                    "result": outcome["result"],
                    "confidence": outcome["confidence"],
                })

            yield format_sse_event("synthesis", {"message": "Synthesizing team contributions..."})
            final_result = self.synthesize(task, contributions)
            self._update_task(task_id, {
                "status": "COMPLETED",
                "result": final_result,
                "completed_at": utc_now(),
            })
            finished = True
            logger.info(f"Collaborative task completed: {task_id}")
            yield format_sse_event("complete", {"result": final_result})
        except GeneratorExit:
            if not finished:
                logger.warning(f"Client disconnected during task {task_id}, resetting to PENDING")
                self._rollback(task_id)
            raise
        except Exception as e:
            logger.exception(f"Task execution failed for {task_id}: {e}")
            self._rollback(task_id)
            yield format_sse_event("error", {"message": str(e)})
