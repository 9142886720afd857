"""
Configuration module for the Memoria knowledge base.

Uses pydantic-settings for configuration management with environment variable support.
Environment variables use MEMORIA_ prefix (e.g., MEMORIA_NOTES_DIRECTORY).
"""

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _get_default_notes_directory() -> Path:
    """Get default notes directory, relative to the working directory."""
    return Path("notes")


class Settings(BaseSettings):
    """Application settings with environment variable support.

    Environment variables:
    - MEMORIA_NOTES_DIRECTORY: Root directory holding the notes
    - MEMORIA_EXTENSIONS: JSON list of note file extensions
    - MEMORIA_MAX_FILE_SIZE: Largest note file parsed, in bytes
    - MEMORIA_SKIP_HIDDEN: Ignore dot-directories and dot-files when scanning
    - MEMORIA_FRONT_MATTER_DELIMITER: Fence line around the front matter block
    - MEMORIA_FUZZY_MAX_DISTANCE: Upper bound of the fuzzy search edit budget
    - MEMORIA_MAX_SEARCH_RESULTS: Default search result limit
    - MEMORIA_MAX_TITLE_LENGTH: Maximum title length for new notes
    - MEMORIA_MAX_CONTENT_SIZE: Maximum body size for new notes, in bytes
    - MEMORIA_LOG_LEVEL: Minimum log level (DEBUG, INFO, WARNING, ...)
    - MEMORIA_LOG_JSON: Render log lines as JSON instead of console output
    """

    notes_directory: Path = Field(default_factory=_get_default_notes_directory)
    extensions: list[str] = Field(default_factory=lambda: ["md", "markdown"])
    max_file_size: int = 10 * 1024 * 1024  # 10MB in bytes
    skip_hidden: bool = True
    front_matter_delimiter: str = "---"
    fuzzy_max_distance: int = 2
    max_search_results: int = 50
    max_title_length: int = 200
    max_content_size: int = 1 * 1024 * 1024  # 1MB in bytes
    log_level: str = "INFO"
    log_json: bool = False

    model_config = SettingsConfigDict(env_prefix="MEMORIA_")

    @field_validator("extensions")
    @classmethod
    def _normalize_extensions(cls, value: list[str]) -> list[str]:
        return [ext.lower().lstrip(".") for ext in value if ext.strip(". ")]

    def is_note_file(self, path: Path) -> bool:
        """Return True if the path carries one of the configured note extensions."""
        return path.suffix.lower().lstrip(".") in self.extensions


# Global default settings; components accept an explicit instance
settings = Settings()
