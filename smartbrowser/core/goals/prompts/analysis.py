"""Prompt templates for goal analysis.

Consumed by :class:`~smartbrowser.core.goals.translator.GoalTranslator`.
Bump ``ANALYSIS_PROMPT_VERSION`` whenever the requested JSON shape changes.
"""

ANALYSIS_PROMPT_VERSION: str = "3"

ACTION_VERBS: list[str] = ["navigate", "search", "extract", "summarize", "click", "fill"]

INTENT_TYPES: list[str] = ["search", "booking", "shopping", "social", "summarize", "navigate"]

ANALYSIS_SYSTEM_PROMPT: str = """You are the goal planner of a browser automation assistant.
Given a user goal, identify what the user wants and plan concrete browser steps.

Allowed step actions: {actions}
Allowed intent types: {intents}

Return only a JSON object. Do not wrap it in prose.
"""

ANALYSIS_USER_TEMPLATE: str = """\
Analyze the following user goal and provide detailed insights:

Goal: "{goal}"
Priority: {priority}
{context}
{step_instruction}
{recommendation_instruction}

Provide your response in this JSON format:
{{
  "intent": {{
    "type": "search|booking|shopping|social|summarize|navigate",
    "confidence": 0.9,
    "parameters": {{"key": "value"}}
  }},
  "entities": [{{"type": "location|date|product|person", "value": "entity value", "confidence": 0.8}}],
  "actionPlan": [
    {{"step": 1, "action": "navigate", "description": "Go to website", "url": "https://example.com"}},
    {{"step": 2, "action": "search", "description": "Search for item", "selector": "#search-input"}}
  ],
  "recommendations": ["Recommendation 1", "Recommendation 2"]
}}"""

CONTEXT_TEMPLATE: str = (
    "Current Page: {title} ({url})\n"
    "Recent Pages: {recent}\n"
    "User History: {history}\n"
)

STEP_INSTRUCTION: str = "Generate up to {max_steps} specific action steps."
NO_STEP_INSTRUCTION: str = "Focus on intent analysis only."
RECOMMENDATION_INSTRUCTION: str = "Include relevant recommendations."
