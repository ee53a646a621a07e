"""Einstein assistant: prompt building and single-shot chat completions."""
import logging
import os

from openai import OpenAI

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.groq.com/openai/v1"
DEFAULT_MODEL = "llama3-70b-8192"
DEFAULT_TIMEOUT = 30.0

EINSTEIN_CHAT_SYSTEM = (
    "You are einstein, a helpful AI assistant for students. Provide concise, accurate answers in "
    "markdown format. Include code examples when relevant. Be friendly and educational."
)
EINSTEIN_NOTES_SYSTEM = (
    "You are Einstein, a helpful AI assistant for students. You provide concise, informative "
    "answers in markdown format."
)


class AIServiceError(RuntimeError):
    """The completion service could not produce an answer."""


def ai_settings(config=None):
    """Resolve AI settings from a Flask config mapping, falling back to the environment."""
    config = config or {}
    api_key = config.get("AI_API_KEY") or os.environ.get("AI_API_KEY") or os.environ.get("GROQ_API_KEY")
    return {
        "api_key": api_key,
        "base_url": config.get("AI_BASE_URL") or os.environ.get("AI_BASE_URL", DEFAULT_BASE_URL),
        "model": config.get("AI_MODEL") or os.environ.get("AI_MODEL", DEFAULT_MODEL),
        "timeout": float(config.get("AI_TIMEOUT") or os.environ.get("AI_TIMEOUT", DEFAULT_TIMEOUT)),
    }


def get_ai_client(settings):
    if not settings.get("api_key"):
        raise AIServiceError("API key not configured")
    return OpenAI(api_key=settings["api_key"], base_url=settings["base_url"], timeout=settings["timeout"])


def call_chat_text(
    system_prompt,
    user_content,
    *,
    settings,
    client=None,
    max_tokens=1000,
    temperature=0.7,
):
    """Single request/response completion; no retry. Returns markdown text."""
    client = client or get_ai_client(settings)
    try:
        response = client.chat.completions.create(
            model=settings["model"],
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content},
            ],
            temperature=temperature,
            max_tokens=max_tokens,
        )
    except Exception as exc:
        logger.warning("AI completion error: %s", exc)
        raise AIServiceError("Failed to get response from AI service") from exc

    choices = getattr(response, "choices", None) or []
    content = choices[0].message.content if choices else None
    if not content:
        raise AIServiceError("AI service returned an empty response")
    return content


def format_notes_for_prompt(notes, modules):
    """One block per note, labelled with its module code and name when it has one."""
    modules_by_id = {m.id: m for m in modules}
    blocks = []
    for note in notes:
        module = modules_by_id.get(note.module_id)
        module_info = f"[{module.code}] {module.name}" if module else "No Module"
        blocks.append(f"--- Note: {note.title} ({module_info}) ---\n{note.content}\n\n")
    return "".join(blocks)


def build_notes_prompt(question, notes_block):
    notes_section = ""
    if notes_block:
        notes_section = f"\nThe student has the following notes that you can reference:\n\n{notes_block}\n"
    return (
        "You are Einstein, a helpful AI assistant for students. You're knowledgeable, friendly, "
        "and provide concise answers.\n"
        f"{notes_section}\n"
        f"The student is asking: \"{question}\"\n\n"
        "Provide a helpful response in markdown format. If the student's notes contain relevant "
        "information, reference it.\n"
        "If not, provide a helpful response based on your knowledge. Keep your responses concise "
        "but informative."
    )


def _require_text(value, label):
    text = (value or "").strip()
    if not text:
        raise ValueError(f"{label} is required")
    return text


def ask_einstein(message, *, settings, client=None):
    """General chat question."""
    message = _require_text(message, "Message")
    return call_chat_text(
        EINSTEIN_CHAT_SYSTEM,
        message,
        settings=settings,
        client=client,
        max_tokens=2048,
    )


def search_notes(question, notes, modules, *, settings, client=None):
    """Answer a question with the user's notes concatenated into the prompt."""
    question = _require_text(question, "Query")
    prompt = build_notes_prompt(question, format_notes_for_prompt(notes, modules))
    return call_chat_text(
        EINSTEIN_NOTES_SYSTEM,
        prompt,
        settings=settings,
        client=client,
        max_tokens=1000,
    )
