"""Application configuration and settings."""

from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Service Configuration
    service_name: str = "docongo"
    port: int = 5000
    environment: str = "development"
    cors_origins: str = "http://localhost:5173"

    # MongoDB Configuration
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_database: str = "docongo"
    mongodb_collection_sessions: str = "conversations"

    # Model API (OpenAI-compatible endpoint)
    llm_api_key: Optional[str] = None
    llm_endpoint: str = "https://models.inference.ai.azure.com"
    model_name: str = "gpt-4o-mini"
    conversation_temperature: float = 0.7
    prescription_temperature: float = 0.5
    model_max_tokens: int = 2000
    llm_invoke_timeout: float = 60.0

    # JWT Configuration
    jwt_secret: Optional[str] = None
    jwt_algorithm: str = "HS256"
    api_key_header: str = "X-LLM-Api-Key"

    # Safety Settings
    emergency_keywords: str = (
        "chest pain,difficulty breathing,shortness of breath,unconscious,"
        "severe bleeding,head injury,stroke symptoms,heart attack,"
        "severe allergic reaction,suicide,overdose,severe burns,"
        "broken bone,severe abdominal pain,high fever,seizure"
    )

    # Conversation
    title_max_length: int = 50
    prescription_min_messages: int = 5
    prescription_region: str = "India"

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = False
        protected_namespaces = ("settings_",)

    @property
    def emergency_phrases(self) -> List[str]:
        return [
            phrase.strip().lower()
            for phrase in self.emergency_keywords.split(",")
            if phrase.strip()
        ]

    @property
    def cors_origin_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


# Global settings instance
settings = Settings()
