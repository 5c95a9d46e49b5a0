from dataclasses import dataclass
import os


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    return default


@dataclass(frozen=True)
class ListenConfig:
    llm_api_base: str
    llm_api_key_env: str
    llm_model: str
    llm_temperature: float
    llm_max_tokens: int
    llm_timeout_s: float
    stt_api_base: str
    stt_model: str
    stt_language: str
    tts_enabled: bool
    tts_api_base: str
    tts_api_key_env: str
    tts_model: str
    tts_voice: str
    tts_format: str
    api_key: str
    api_url: str
    use_remote_api: bool
    require_confirmation: bool
    confirmation_timeout_s: float
    processing_timeout_s: float
    level_poll_interval_s: float
    log_level: str

    @staticmethod
    def from_env() -> "ListenConfig":
        llm_api_base = os.getenv("LLM_API_BASE", "https://api.groq.com/openai/v1")
        return ListenConfig(
            llm_api_base=llm_api_base,
            llm_api_key_env=os.getenv("LLM_API_KEY_ENV", "GROQ_API_KEY"),
            llm_model=os.getenv("LLM_MODEL", "llama-3.3-70b-versatile"),
            llm_temperature=float(os.getenv("LLM_TEMPERATURE", "0.2")),
            llm_max_tokens=int(os.getenv("LLM_MAX_TOKENS", "1024")),
            llm_timeout_s=float(os.getenv("LLM_TIMEOUT_S", "10")),
            stt_api_base=os.getenv("STT_API_BASE", llm_api_base),
            stt_model=os.getenv("STT_MODEL", "whisper-large-v3-turbo"),
            stt_language=os.getenv("STT_LANGUAGE", "en"),
            tts_enabled=_env_flag("TTS_ENABLED", False),
            tts_api_base=os.getenv("TTS_API_BASE", "https://api.openai.com/v1"),
            tts_api_key_env=os.getenv("TTS_API_KEY_ENV", "OPENAI_API_KEY"),
            tts_model=os.getenv("TTS_MODEL", "gpt-4o-mini-tts"),
            tts_voice=os.getenv("TTS_VOICE", "alloy"),
            tts_format=os.getenv("TTS_FORMAT", "mp3"),
            api_key=os.getenv("LISTENOS_API_KEY", "").strip(),
            api_url=os.getenv("LISTENOS_API_URL", "http://127.0.0.1:8000"),
            use_remote_api=_env_flag("LISTENOS_USE_REMOTE_API", False),
            require_confirmation=_env_flag("LISTENOS_REQUIRE_CONFIRMATION", True),
            confirmation_timeout_s=float(os.getenv("CONFIRMATION_TIMEOUT_S", "25")),
            processing_timeout_s=float(os.getenv("PROCESSING_TIMEOUT_S", "15")),
            level_poll_interval_s=float(os.getenv("LEVEL_POLL_INTERVAL_S", "0.05")),
            log_level=os.getenv("LISTENOS_LOG_LEVEL", "INFO").upper(),
        )

    def llm_api_key(self) -> str:
        return os.getenv(self.llm_api_key_env, "").strip()

    def tts_api_key(self) -> str:
        return os.getenv(self.tts_api_key_env, "").strip()
