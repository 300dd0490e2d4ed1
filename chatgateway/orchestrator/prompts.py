"""System prompt for streaming turns."""

from datetime import date
from typing import Optional

SYSTEM_PROMPT_TEMPLATE = (
    "You are Gateway, a context-aware AI assistant. You are helpful, accurate, and concise.\n"
    "When you have access to the user's documents via retrieve_docs, use them to provide "
    "grounded, cited answers.\n"
    "Always be honest about uncertainty. Format your responses using Markdown when it "
    "improves readability.\n"
    "Today's date is {date}."
)


def format_system_prompt(context_block: str = "", today: Optional[date] = None) -> str:
    """Build the system prompt, appending retrieved context when present."""
    prompt = SYSTEM_PROMPT_TEMPLATE.format(date=(today or date.today()).isoformat())
    if context_block:
        prompt += "\n\n" + context_block
    return prompt
