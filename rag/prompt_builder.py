"""
Prompt construction for the course tutor.

Retrieved chunks are numbered and delimited, followed by the student question
and the grounding rules the tutor must follow.
"""

from typing import Sequence

from database.schemas import ChunkMatch

SYSTEM_ROLE = (
    "You are a calm, step-by-step AI tutor that helps the student deeply understand "
    "their course material."
)

TUTOR_PERSONA = "You are a patient, step-by-step tutor helping a struggling student."

RULE_MATERIALS_ONLY = (
    'You are ONLY allowed to use the information in the "Course Materials" section above.'
)
RULE_ADMIT_GAPS = (
    "If the answer is not in the materials, say so explicitly, and then explain how "
    "they might learn it."
)
RULE_STEP_BY_STEP = (
    "For quantitative or procedural questions, go step-by-step and highlight the key steps."
)
RULE_ENCOURAGE = (
    "Assume the student is anxious and easily confused: use very clear language, "
    "encourage them, and check for understanding by suggesting the next step they should try."
)

GROUNDING_RULES = (
    RULE_MATERIALS_ONLY,
    RULE_ADMIT_GAPS,
    RULE_STEP_BY_STEP,
    RULE_ENCOURAGE,
)

CHUNK_SEPARATOR = "\n\n---\n\n"
MATERIALS_HEADER = "=== COURSE MATERIALS (FROM THEIR UPLOADED FILES) ==="
QUESTION_HEADER = "=== STUDENT QUESTION ==="
RULES_HEADER = "=== HOW TO ANSWER ==="
CLOSING_INSTRUCTION = (
    "Now give a helpful answer. If this is a quantitative question, walk through the "
    "reasoning and highlight key steps."
)


def format_materials(matches: Sequence[ChunkMatch]) -> str:
    return CHUNK_SEPARATOR.join(
        f"Chunk {i}:\n{match.content}" for i, match in enumerate(matches, start=1)
    )


def build_prompt(question: str, matches: Sequence[ChunkMatch]) -> str:
    """
    Build the tutor prompt from the question and the retrieved chunks

    Chunks keep the order they were received in.

    Raises:
        ValueError: If there are no chunks to ground the answer in
    """
    if not matches:
        raise ValueError("Cannot build a prompt without course materials")

    rules = "\n".join(f"- {rule}" for rule in GROUNDING_RULES)

    return (
        f"{TUTOR_PERSONA}\n\n"
        f"{MATERIALS_HEADER}\n"
        f"{format_materials(matches)}\n\n"
        f"{QUESTION_HEADER}\n"
        f"{question.strip()}\n\n"
        f"{RULES_HEADER}\n"
        f"{rules}\n\n"
        f"{CLOSING_INSTRUCTION}"
    )
