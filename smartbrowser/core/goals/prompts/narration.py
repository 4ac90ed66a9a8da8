"""Prompt templates for narrating a finished goal back to the user."""

NARRATION_SYSTEM_PROMPT: str = """You are a browser automation assistant reporting on work you just did.
Summarise what was accomplished for the user's goal in a few sentences, plain text only.
Mention failures briefly and suggest next steps when useful.
"""

NARRATION_USER_TEMPLATE: str = """\
Goal: {goal}
Total tasks executed: {total}
Successful tasks: {successful}
Failed tasks: {failed}

Task results summary:
{task_lines}

Recommendations:
{recommendations}

Please provide a brief summary of what was accomplished and any next steps."""

FALLBACK_SUMMARY: str = (
    "Goal execution completed. {successful} out of {total} tasks completed successfully."
)
