from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _parse_offsets(raw: str, default: tuple[int, ...]) -> tuple[int, ...]:
    offsets: list[int] = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            offsets.append(int(part))
        except ValueError:
            continue
    return tuple(offsets) or default


@dataclass(frozen=True)
class Settings:
    refresh_threshold: float = float(os.getenv("REANCHOR_REFRESH_THRESHOLD", "0.7"))
    early_exit_threshold: float = float(os.getenv("REANCHOR_EARLY_EXIT_THRESHOLD", "0.9"))
    window_offsets_raw: str = os.getenv("REANCHOR_WINDOW_OFFSETS", "0,10,20,-5")
    min_window: int = int(os.getenv("REANCHOR_MIN_WINDOW", "5"))
    prefix_ratio: float = float(os.getenv("REANCHOR_PREFIX_RATIO", "0.8"))
    word_sequence_ratio: float = float(os.getenv("REANCHOR_WORD_SEQUENCE_RATIO", "0.8"))
    min_sequence_words: int = int(os.getenv("REANCHOR_MIN_SEQUENCE_WORDS", "3"))
    undo_limit: int = int(os.getenv("REANCHOR_UNDO_LIMIT", "10"))
    context_chars: int = int(os.getenv("REANCHOR_CONTEXT_CHARS", "200"))
    metrics_enabled: bool = os.getenv("REANCHOR_METRICS_ENABLED", "true").lower() in {"1", "true", "yes"}
    log_level: str = os.getenv("REANCHOR_LOG_LEVEL", "INFO")
    replacement_provider_raw: str = os.getenv("REANCHOR_REPLACEMENT_PROVIDER", "none")
    ollama_base_url: str = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
    ollama_model: str = os.getenv("OLLAMA_MODEL", "llama3.1")
    ollama_temperature: float = float(os.getenv("OLLAMA_TEMPERATURE", "0.2"))
    ollama_max_tokens: int = int(os.getenv("OLLAMA_MAX_TOKENS", "512"))
    ollama_timeout: float = float(os.getenv("OLLAMA_TIMEOUT", "60"))
    openai_api_key: str | None = os.getenv("OPENAI_API_KEY")
    openai_base_url: str = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
    openai_chat_model: str | None = os.getenv("OPENAI_CHAT_MODEL")
    gemini_api_key: str | None = os.getenv("GEMINI_API_KEY")
    gemini_chat_model: str | None = os.getenv("GEMINI_CHAT_MODEL")

    @property
    def window_offsets(self) -> tuple[int, ...]:
        raw = os.getenv("REANCHOR_WINDOW_OFFSETS", self.window_offsets_raw)
        return _parse_offsets(raw, (0, 10, 20, -5))

    @property
    def replacement_provider(self) -> str:
        return os.getenv("REANCHOR_REPLACEMENT_PROVIDER", self.replacement_provider_raw)


settings = Settings()
