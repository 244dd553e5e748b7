import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

try:
    from dotenv import load_dotenv

    load_dotenv()
except Exception:
    # .env is optional
    pass


DEFAULT_PROMPT_PATH = str(Path(__file__).resolve().parent / "prompts" / "System.prompty")


def _default_cors_origins() -> List[str]:
    value = os.getenv("CORS_ORIGINS")
    return value.split(",") if value else ["*"]


def _env(*names: str, default: str = "") -> str:
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return default


@dataclass
class Settings:
    """Runtime configuration loaded from environment variables."""

    aas_server: str = os.getenv("AAS_SERVER", "")
    aas_database: str = os.getenv("AAS_DATABASE", "")
    adomd_dll_path: str = os.getenv("ADOMD_DLL_PATH", "")
    azure_openai_endpoint: str = os.getenv("AZURE_OPENAI_ENDPOINT", "")
    openai_api_key: str = _env("AZURE_OPENAI_API_KEY", "OPENAI_API_KEY")
    openai_model: str = _env("AZURE_OPENAI_DEPLOYMENT", "OPENAI_MODEL", default="gpt-4o-mini")
    openai_api_version: str = os.getenv("AZURE_OPENAI_API_VERSION", "2024-06-01")
    llm_backend: str = os.getenv("LLM_BACKEND", "openai")
    temperature: float = float(os.getenv("LLM_TEMPERATURE", "0.0"))
    prompt_path: str = os.getenv("PROMPT_PATH", DEFAULT_PROMPT_PATH)
    cors_origins: List[str] = field(default_factory=_default_cors_origins)
    session_ttl_minutes: int = int(os.getenv("SESSION_TTL_MINUTES", "60"))
    preview_rows: int = int(os.getenv("PREVIEW_ROWS", "200"))
    enable_query_output: bool = bool(int(os.getenv("ENABLE_QUERY_OUTPUT", "1")))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    host: str = os.getenv("HOST", "127.0.0.1")
    port: int = int(os.getenv("PORT", "8000"))

    def missing(self) -> List[str]:
        """Names of the required settings that are empty."""
        required = {
            "AAS_SERVER": self.aas_server,
            "AAS_DATABASE": self.aas_database,
            "AZURE_OPENAI_API_KEY": self.openai_api_key,
            "AZURE_OPENAI_DEPLOYMENT": self.openai_model,
        }
        return [name for name, value in required.items() if not value]


settings = Settings()
