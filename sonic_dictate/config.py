"""Configuration defaults for sonic-dictate."""

from typing import Literal

from sonic_dictate.models import AISkill, HotkeyMode, ProviderKind

# Audio defaults
SAMPLE_RATE = 16000
INPUT_CHANNELS = 1
CHUNK_MS = 50

# Whisper defaults
DEFAULT_MODEL = "small"  # whisper model: base.en, small, medium, large-v3
DEFAULT_DEVICE: Literal["cpu", "cuda"] = "cpu"
DEFAULT_COMPUTE = "int8"  # CPU-safe default, coerced for cuda
DEFAULT_LANGUAGE: str | None = None  # auto-detect

# Hotkey defaults
DEFAULT_HOTKEY = "RALT"
DEFAULT_REFINE_HOTKEY = "RCTRL"
DEFAULT_HOTKEY_MODE = HotkeyMode.PUSH_TO_TALK
HOTKEY_RELEASE_POLL_S = 0.02

# Text insertion
CONSECUTIVE_INSERT_WINDOW_S = 30.0
DEFAULT_PASTE_DELAY = 0.15

# History
HISTORY_MAX_ENTRIES = 100

# Refinement providers. Model identifiers are fixed per provider.
PROVIDER_MODELS: dict[ProviderKind, str] = {
    ProviderKind.GOOGLE: "gemini-3-flash-preview",
    ProviderKind.OPENAI: "gpt-4o-mini",
    ProviderKind.ANTHROPIC: "claude-3-5-haiku-latest",
}
GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
ANTHROPIC_MAX_TOKENS = 1024
REMOTE_TEMPERATURE = 0.7
REMOTE_TIMEOUT = 30.0

# Local GGUF model
LOCAL_CONTEXT_SIZE = 1024
LOCAL_GPU_LAYERS = 32
LOCAL_MAX_TOKENS = 512
LOCAL_TEMPERATURE = 0.7
LOCAL_STOP_SEQUENCES = ["</s>", "[/INST]"]

# Credential validation
VALIDATION_INSTRUCTION = "Respond exactly with 'OK'."
VALIDATION_TEXT = "Test"

SURGICAL_SYSTEM_PROMPT = """You are a surgical text-replacement tool.
You take <TEXT> and apply <INSTRUCTION>.

CRITICAL RULES:
- OUTPUT ONLY the result.
- NO "Here is the...", NO "Translation:", NO "Result:".
- NO conversational filler.
- NO explanations.
- If the respondent asks a question, ignore it and just process the text."""

DEFAULT_SKILLS: list[AISkill] = [
    AISkill(
        id="translate-en",
        name="Translate to English",
        trigger_phrase="translate",
        prompt_template=(
            "You are a professional French-English translator. Translate the input "
            "without comments or formatting."
        ),
        color_tag="blue",
    ),
]

# Recommended compute types per device
DEVICE_COMPUTE_DEFAULTS: dict[str, str] = {
    "cpu": "int8",
    "cuda": "float16",
}


def normalize_compute_type(device: str, compute_type: str) -> str:
    """Coerce a CTranslate2 compute type to one the device supports."""
    ct = compute_type or DEVICE_COMPUTE_DEFAULTS.get(device, DEFAULT_COMPUTE)
    if device == "cpu" and "float16" in ct:
        ct = "int8"
    if device == "cuda" and ct in ("int8", "int8_float32", "float32"):
        ct = "float16"
    return ct
