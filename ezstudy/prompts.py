"""Prompt assembly and content filtering for the EzStudy assistant.

`build_prompt` turns a user message, prior turns, uploaded-file excerpts and
persona settings into the provider-agnostic message list sent to the
Provider Gateway. `moderate_content` is a keyword filter applied before any
provider call; it is a best-effort guard and easy to bypass.
"""

import json
import re
from typing import Iterable, List, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from .files import truncate
from .models import (
    ChatTurn,
    FileExcerpt,
    FileKind,
    Mode,
    ModerationResult,
    ProviderConfig,
    QuizQuestion,
    RequestContext,
    Role,
)

DEFAULT_FILE_CHAR_BUDGET = 3000

MODE_FOCUS = {
    Mode.TUTOR: "Focus on explaining concepts clearly and asking guiding questions.",
    Mode.SUMMARIZER: "Focus on condensing information into high-impact bullet points.",
    Mode.EXAMINER: "Focus on testing the user knowledge and providing critical feedback.",
}

# --- MODERATION ---

BLOCKED_TERMS = {
    "illegal": [
        "heroin", "cocaine", "crack cocaine", "methamphetamine", "meth", "fentanyl",
        "buy drugs", "sell drugs", "make a bomb", "build a bomb", "pipe bomb",
        "counterfeit money", "launder money", "money laundering", "stolen credit card",
        "credit card fraud", "hire a hitman", "child abuse",
    ],
    "adult": [
        "porn", "porno", "pornography", "pornographic", "nsfw", "nude", "nudes",
        "hentai", "xxx", "onlyfans", "explicit sex", "sexual content",
    ],
}

_BLOCKED_PATTERNS = {
    category: re.compile(r"\b(" + "|".join(re.escape(t) for t in terms) + r")\b", re.IGNORECASE)
    for category, terms in BLOCKED_TERMS.items()
}


def moderate_content(text: str) -> ModerationResult:
    """Scan user text for disallowed terms; the first matching category is the reason.

    Terms match as whole words, case-insensitively, rather than as raw
    substrings, so "methodology" does not trip on "meth".
    """
    for category, pattern in _BLOCKED_PATTERNS.items():
        if pattern.search(text or ""):
            return ModerationResult(allowed=False, reason=category)
    return ModerationResult(allowed=True)


# --- CHAT PROMPT ---

def format_file_context(excerpts: Sequence[FileExcerpt], budget: int = DEFAULT_FILE_CHAR_BUDGET) -> str:
    if not excerpts:
        return ""
    lines = ["", "--- Uploaded Files Context ---"]
    for excerpt in excerpts:
        lines.append(f"[FILE: {excerpt.filename}]")
        if excerpt.text is not None:
            label = "PDF CONTENT" if excerpt.kind is FileKind.PDF else "TEXT CONTENT"
            lines.append(f"[{label}]:")
            lines.append(truncate(excerpt.text, budget))
        if excerpt.note:
            lines.append(excerpt.note)
    lines.append("--- End of Files ---")
    return "\n".join(lines)


def format_request_context(context: Optional[RequestContext]) -> str:
    if context is None:
        return ""
    lines = [f"Current date and time: {context.now.strftime('%A, %d %B %Y %H:%M %Z').strip()}"]
    if context.location:
        lines.append(f"User location: {context.location}")
    if context.weather:
        lines.append(f"Current weather: {context.weather}")
    return "\n".join(lines)


def build_system_prompt(
    config: ProviderConfig,
    file_context: str = "",
    request_context: str = "",
) -> str:
    parts = [
        f"You are EzStudy AI, a {config.personality} {config.mode.value}.",
        f"Your tone should be {config.tone.value}.",
        MODE_FOCUS[config.mode],
    ]
    if request_context:
        parts.append(request_context)
    if file_context:
        parts.append(
            "Files have been uploaded. Please carefully read and analyze their content when "
            "answering the user's questions. Use specific information from the files."
            + file_context
        )
    parts.append("Provide answers in clear markdown format.")
    return "\n".join(parts)


def build_prompt(
    user_message: str,
    history: Iterable[ChatTurn],
    uploaded_files: Sequence[FileExcerpt],
    config: ProviderConfig,
    context: Optional[RequestContext] = None,
    file_char_budget: int = DEFAULT_FILE_CHAR_BUDGET,
) -> List[ChatTurn]:
    """Assemble system prompt, prior turns and the new user turn.

    Prior `system` turns are dropped so the generated system prompt is always
    the single first turn.
    """
    system_prompt = build_system_prompt(
        config,
        file_context=format_file_context(uploaded_files, file_char_budget),
        request_context=format_request_context(context),
    )
    messages = [ChatTurn(role=Role.SYSTEM, content=system_prompt)]
    messages.extend(turn for turn in history if turn.role is not Role.SYSTEM)
    messages.append(ChatTurn(role=Role.USER, content=user_message))
    return messages


# --- QUIZ & NOTES ---

def build_quiz_prompt(topic: str, difficulty: str = "medium") -> List[ChatTurn]:
    return [
        ChatTurn(
            role=Role.SYSTEM,
            content="You are a quiz generator. Generate exactly 5 multiple choice questions in JSON "
                    "format. Return ONLY valid JSON array with no markdown or explanation.",
        ),
        ChatTurn(
            role=Role.USER,
            content=f"Generate 5 {difficulty or 'medium'} difficulty quiz questions about: {topic}. "
                    'Format as JSON array: [{"question": "...", "options": ["A", "B", "C", "D"], '
                    '"correct": 0, "explanation": "..."}]',
        ),
    ]


def build_summary_prompt(text: str, style: str = "bullet point") -> List[ChatTurn]:
    return [
        ChatTurn(
            role=Role.SYSTEM,
            content=f"You are a study notes generator. Create {style or 'bullet point'} style notes "
                    "that are clear and easy to study from.",
        ),
        ChatTurn(role=Role.USER, content=f"Create study notes from the following content:\n\n{text}"),
    ]


_JSON_ARRAY = re.compile(r"\[[\s\S]*\]")


def parse_quiz(content: str) -> Optional[List[QuizQuestion]]:
    """Pull the JSON question array out of a model reply.

    Returns None when no well-formed array of questions is found.
    """
    match = _JSON_ARRAY.search(content or "")
    if not match:
        return None
    try:
        raw = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    if not isinstance(raw, list):
        return None
    try:
        return [QuizQuestion.model_validate(item) for item in raw]
    except PydanticValidationError:
        return None
