"""
Prompt builders for task decomposition, per-agent subtasks and synthesis
"""

import json
import re
from typing import Any, Dict, List

SUBTASK_USER_PROMPT = "Complete your assigned subtask based on the above context."
IMAGE_USER_PROMPT = "Analyze the attached image(s) and complete your subtask.\n\nImages: {names}"

_CODE_FENCE = re.compile(r"```(?:json)?\s*")


def default_subtask(role: str) -> str:
    return f"Provide analysis and insights from the perspective of {role}."


def fallback_subtask(role: str) -> str:
    return f"Analyze the task from the perspective of {role}."


def decomposition_prompt(task_description: str, profiles: List[Dict[str, Any]]) -> str:
    team = "\n".join(
        f"- {p['name']} (ID: {p['agent_id']}, Role: {p['role']}, Type: {p['type']}, Primary: {p['is_primary']})"
        for p in profiles
    )
    return f"""You are a task delegation expert. Given a complex task and a team of AI agents, break down the task into specific subtasks for each agent.

Task: {task_description}

Team Members:
{team}

Generate a JSON array of subtasks. Each subtask should have:
- agentId: The agent's ID
- description: Clear, specific subtask description (2-3 sentences)

The primary agent should coordinate and synthesize results. Other agents should handle specific aspects based on their roles.

Respond with ONLY valid JSON array, no other text."""


def parse_subtasks(content: str) -> Dict[str, str]:
    """
    Parse the decomposition reply into {agent_id: description}.
    Markdown code fences are stripped; anything other than a JSON array raises ValueError.
    """
    cleaned = _CODE_FENCE.sub("", content or "").strip()
    data = json.loads(cleaned)
    if not isinstance(data, list):
        raise ValueError("Decomposition reply is not a JSON array")
    subtasks = {}
    for item in data:
        if not isinstance(item, dict):
            continue
        agent_id = item.get("agentId") or item.get("agent_id")
        description = item.get("description")
        if agent_id and isinstance(description, str) and description.strip():
            subtasks.setdefault(str(agent_id), description.strip())
    return subtasks


def subtask_system_prompt(
    agent_name: str,
    role: str,
    task_description: str,
    subtask: str,
    previous: List[Dict[str, Any]],
    documents: List[str],
) -> str:
    doc_context = ""
    if documents:
        doc_context = "\n\nAttached documents:\n" + "\n".join(f"- {d}" for d in documents)
    context = ""
    if previous:
        context = "\n\nPrevious team contributions:\n" + "\n\n".join(
            f"{c['agent_name']} ({c['role']}): {c['result']}" for c in previous
        )
    return f"""You are {agent_name}, a specialized AI agent with the role of {role}.

Main Task: {task_description}{doc_context}

Your specific subtask: {subtask}{context}

Provide a focused, actionable response for your specific subtask. Be concise and professional."""


def subtask_user_content(images: List[Dict[str, str]]) -> Any:
    """Plain instruction, or vision parts when the task has image attachments"""
    if not images:
        return SUBTASK_USER_PROMPT
    names = ", ".join(img["file_name"] for img in images)
    parts: List[Dict[str, Any]] = [{"type": "text", "text": IMAGE_USER_PROMPT.format(names=names)}]
    for img in images:
        parts.append({"type": "image_url", "image_url": {"url": img["url"]}})
    return parts


def synthesis_prompt(task_description: str, contributions: List[Dict[str, Any]]) -> str:
    body = "\n\n---\n".join(
        f"\n{c['agent_name']} ({c['role']}):\n{c['result']}" for c in contributions
    )
    return f"""You are a synthesis coordinator. Multiple AI agents have worked on different aspects of a task. Your job is to combine their contributions into a comprehensive, cohesive final result.

Task: {task_description}

Agent Contributions:
{body}

Synthesize these contributions into a comprehensive final result that:
1. Integrates all key insights from each agent
2. Resolves any conflicts or contradictions
3. Provides clear, actionable recommendations
4. Maintains professional tone

Provide the final synthesized result:"""


def join_contributions(contributions: List[Dict[str, Any]]) -> str:
    return "\n\n".join(f"{c['agent_name']}: {c['result']}" for c in contributions)
