"""
Prompt assembly for context-conditioned generation.

PROMPT ANATOMY:

┌─────────────────────────────────────────────────┐
│ Context from knowledge base:   (only if found)  │
│ <snippet 1>                                     │
│                                                 │
│ <snippet 2>                                     │
└─────────────────────────────────────────────────┘
                    +
┌─────────────────────────────────────────────────┐
│ User question: <question>                       │
│ Instruction: use the context when it helps,     │
│ otherwise answer from general knowledge         │
└─────────────────────────────────────────────────┘

Context goes first so the model reads the material before the question.
"""

from typing import Sequence

CONTEXT_HEADER = "Context from knowledge base:"

GROUNDED_INSTRUCTION = (
    "Please provide a comprehensive answer based on the provided context. "
    "If context is provided, reference it in your response. "
    "If no relevant context is available, provide a helpful general answer."
)

GENERAL_INSTRUCTION = (
    "No relevant context was found in the knowledge base. "
    "Please provide a helpful general answer."
)


def build_context_block(context_snippets: Sequence[str]) -> str:
    """Header line followed by the snippets separated by blank lines."""
    return CONTEXT_HEADER + "\n" + "\n\n".join(context_snippets)


def assemble_prompt(query_text: str, context_snippets: Sequence[str]) -> str:
    """
    Build the generation prompt from a question and ordered context snippets.

    Pure and deterministic. With no snippets the prompt has no context
    section at all and asks for a general answer.
    """
    snippets = list(context_snippets)

    if not snippets:
        return f"User question: {query_text}\n\n{GENERAL_INSTRUCTION}"

    return (
        f"{build_context_block(snippets)}\n\n"
        f"User question: {query_text}\n\n"
        f"{GROUNDED_INSTRUCTION}"
    )
