"""Prompt text sent to the completion and chat models."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Iterable, Mapping, Sequence


SUGGEST_TASKS_SYSTEM = """You are a world-class task management assistant. Your purpose is to analyze a user's note and extract a list of actionable tasks.

You MUST adhere to the following rules:
1. Your entire response MUST be a single, valid JSON object: { "tasks": [...] }. Do NOT include any markdown, explanations, or other text.
2. The "tasks" array must contain objects with these exact keys: "title", "description", "status", "priority", "category", "startDate", "dueDate".
3. 'status' must always be "todo".
4. Analyze the text for keywords to determine 'priority':
   - 'urgent', 'asap', 'critical' -> "high"
   - 'important', 'soon' -> "medium"
   - Otherwise, default to "low".
5. Analyze the text for keywords to determine 'category':
   - 'buy', 'order', 'purchase' -> "shopping"
   - 'doctor', 'gym', 'workout', 'appointment' -> "health"
   - 'project', 'meeting', 'report', 'client' -> "work"
   - Otherwise, default to "personal".
6. MOST IMPORTANTLY: Analyze the text for dates. You will be given the current date for context.
   - Convert all relative dates (e.g., 'today', 'tomorrow', 'next Friday', 'in 2 weeks', 'end of the month') into an absolute ISO 8601 date string (YYYY-MM-DDTHH:mm:ss.sssZ).
   - If a task has only one date, use it for both 'startDate' and 'dueDate'.
   - If a date range is implied (e.g., "work on the report this week"), set 'startDate' to the beginning of the range and 'dueDate' to the end.
7. If a field cannot be inferred, provide a sensible default. 'description' can be null.
8. Never repeat a task whose title is listed under "Already suggested".

Example:
User Note: "urgent meeting with the client tomorrow to review the project. also need to buy a new keyboard."
Your JSON Response:
{
  "tasks": [
    {
      "title": "Meeting with client to review project",
      "description": null,
      "status": "todo",
      "priority": "high",
      "category": "work",
      "startDate": "YYYY-MM-DDTHH:mm:ss.sssZ",
      "dueDate": "YYYY-MM-DDTHH:mm:ss.sssZ"
    },
    {
      "title": "Buy a new keyboard",
      "description": null,
      "status": "todo",
      "priority": "low",
      "category": "shopping",
      "startDate": "YYYY-MM-DDTHH:mm:ss.sssZ",
      "dueDate": "YYYY-MM-DDTHH:mm:ss.sssZ"
    }
  ]
}"""


SUGGEST_TITLE_SYSTEM = (
    "You are an expert at summarizing text. Based on the following note content, "
    "generate a concise and descriptive title between 5 and 10 words. Your response "
    'MUST be a single, valid JSON object: { "title": "Your Suggested Title" }. '
    "Do NOT include any markdown or other text."
)


DAILY_SUMMARY_SYSTEM = """You are a friendly and efficient productivity assistant for the TaskFlow app. Your goal is to provide a concise, motivational, and helpful summary of the user's tasks for today.

Guidelines:
- Start with a friendly greeting (e.g., "Here's your plan for today!").
- If there are high-priority tasks, highlight them first. Mention the most important one by name.
- Give a brief overview of the total number of tasks.
- If there are no tasks, provide a positive and encouraging message.
- Keep the entire summary to 2-3 short paragraphs.
- Respond ONLY with the summary text. Do not include any extra formatting, titles, or JSON."""


def build_suggest_tasks_prompt(
    note_title: str,
    note_text: str,
    existing_titles: Sequence[str],
    now: datetime,
) -> str:
    lines = [
        f"Based on the current date of {now.isoformat()}, analyze the following note:",
        "",
        "---",
        "",
        f"Title: {note_title}",
        "",
        note_text,
    ]
    if existing_titles:
        lines += ["", "---", "", "Already suggested (do not repeat):"]
        lines += [f"- {t}" for t in existing_titles]
    return "\n".join(lines)


def format_date_long(day: date) -> str:
    return f"{day:%B} {day.day}, {day.year}"


def format_tasks_for_summary(tasks: Iterable[Any]) -> str:
    lines = [
        f'- "{t.title}" (Priority: {t.priority}, Status: {t.status})' for t in tasks
    ]
    if not lines:
        return "No tasks scheduled for today."
    return "\n".join(lines)


def build_daily_summary_prompt(tasks: Iterable[Any], today: date) -> str:
    return (
        f"Here are my tasks for today, {format_date_long(today)}:\n\n"
        f"{format_tasks_for_summary(tasks)}"
    )


def _field(item: Any, name: str, default: Any = None) -> Any:
    if isinstance(item, Mapping):
        return item.get(name, default)
    return getattr(item, name, default)


def serialize_chat_context(tasks: Iterable[Any], notes: Iterable[Any]) -> str:
    """Render the user's tasks and notes as plain text for the chat model.

    Accepts both store models and the raw dicts a client may post.
    """
    out = ["--- USER'S DATA CONTEXT ---", "", "## TASKS:"]
    task_lines = []
    for t in tasks:
        mark = "x" if _field(t, "status") == "completed" else " "
        due = _field(t, "due_date") or _field(t, "dueDate")
        if isinstance(due, datetime):
            due = due.isoformat()
        task_lines.append(
            f"- [{mark}] {_field(t, 'title')} (Priority: {_field(t, 'priority')}, Due: {due})"
        )
    out += task_lines or ["No tasks found."]

    out += ["", "## NOTES:"]
    note_lines = []
    for n in notes:
        note_lines += [f"### {_field(n, 'title')}", _field(n, "content") or "No content.", "---"]
    out += note_lines or ["No notes found."]

    out += ["", "--- END OF CONTEXT ---"]
    return "\n".join(out)


def build_chat_system_prompt(context: str, now: datetime) -> str:
    return (
        "You are an intelligent assistant for a task management app called TaskFlow.\n"
        f"IMPORTANT: The current date is {now.isoformat()}.\n"
        "The user has provided you with their complete list of tasks and notes as context. "
        "Your role is to answer questions based *only* on this provided context. Be helpful, "
        "concise, and do not make up information. If the answer is not in the context, say "
        "that you cannot find the information in their tasks or notes.\n\n"
        f"{context}"
    )
