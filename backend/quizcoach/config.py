import os
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings

DATA_DIR = Path(__file__).resolve().parent / "data"
DEFAULT_OBJECTIVES_PATH = DATA_DIR / "objectives.yaml"


class Settings(BaseSettings):
    objectives_path: Path = Field(DEFAULT_OBJECTIVES_PATH, alias="QUIZCOACH_OBJECTIVES_PATH")
    results_dir: Path = Field(Path(".data"), alias="QUIZCOACH_RESULTS_DIR")
    debug_endpoints: bool = Field(False, alias="QUIZCOACH_DEBUG_ENDPOINTS")
    database_url: Optional[str] = Field(None, alias="QUIZCOACH_DATABASE_URL")
    database_pool_size: int = Field(10, alias="QUIZCOACH_DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(10, alias="QUIZCOACH_DATABASE_MAX_OVERFLOW")
    database_echo: bool = Field(False, alias="QUIZCOACH_DATABASE_ECHO")
    persistence_mode: Literal["database", "legacy"] = Field("legacy", alias="QUIZCOACH_PERSISTENCE_MODE")
    weak_threshold: float = Field(0.8, ge=0.0, le=1.0, alias="QUIZCOACH_WEAK_THRESHOLD")
    match_weight_whole_word: int = Field(3, ge=0, alias="QUIZCOACH_MATCH_WEIGHT_WHOLE_WORD")
    match_weight_substring: int = Field(2, ge=0, alias="QUIZCOACH_MATCH_WEIGHT_SUBSTRING")
    match_weight_prefix: int = Field(1, ge=0, alias="QUIZCOACH_MATCH_WEIGHT_PREFIX")
    default_test_total: int = Field(20, ge=1, alias="QUIZCOACH_DEFAULT_TEST_TOTAL")

    class Config:
        env_file = os.getenv("ENV_FILE", ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    try:
        return Settings()  # type: ignore[call-arg]
    except ValidationError as exc:
        raise RuntimeError(f"Invalid quiz coach configuration: {exc}") from exc
