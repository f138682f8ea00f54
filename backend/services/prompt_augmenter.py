"""Prompt augmentation with retrieved knowledge base context."""

from typing import Optional

AUGMENTED_PROMPT_TEMPLATE = (
    "Context information from training documents:\n"
    "---\n"
    "{context}\n"
    "---\n"
    "\n"
    "Using the context above, please respond to the following:\n"
    "{prompt}"
)


def augment_prompt(original_prompt: str, context: Optional[str]) -> str:
    """
    Wrap `original_prompt` with a labeled context block.

    With no context the prompt is returned unchanged. Both strings are
    inserted verbatim, never truncated.
    """
    if context is None:
        return original_prompt
    return AUGMENTED_PROMPT_TEMPLATE.format(context=context, prompt=original_prompt)
