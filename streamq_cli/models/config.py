"""
Pydantic model for the download settings.
Provides robust validation for all settings.
"""

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, field_validator

DEFAULT_FILE_TEMPLATE = "%%username%%/%%videoid%%"

# Placeholders understood by the templated file mode
TEMPLATE_PLACEHOLDERS = {
    "%%username%%": "Display name of the user who owns the video",
    "%%userid%%": "Identifier of the user",
    "%%videoid%%": "Identifier of the video",
    "%%videotitle%%": "Title of the video ('untitled' when absent)",
    "%%videotime%%": "Timestamp or duration attached to the video",
}


class EngineKind(str, Enum):
    """The download engines that can process a queue item."""

    INTERNAL = "internal"
    FFMPEG = "ffmpeg"


class DownloadSettings(BaseModel):
    """A validated model of the `[downloads]` settings section."""

    model_config = ConfigDict(validate_assignment=True, str_strip_whitespace=True)

    engine: EngineKind = EngineKind.INTERNAL
    directory: Path = Path("downloads")
    filemode: int = 0
    filetemplate: str = DEFAULT_FILE_TEMPLATE
    history: bool = True

    @field_validator("engine", mode="before")
    @classmethod
    def validate_engine(cls, v):
        """Accepts engine names case-insensitively."""
        if isinstance(v, str):
            v = v.strip().lower()
            if v not in {kind.value for kind in EngineKind}:
                raise ValueError("Engine must be one of 'internal' or 'ffmpeg'.")
        return v

    @field_validator("filemode")
    @classmethod
    def validate_filemode(cls, v: int) -> int:
        if v < 0:
            raise ValueError("File mode must be 0 (simple) or a positive number.")
        return v

    @field_validator("filetemplate")
    @classmethod
    def validate_template(cls, v: str) -> str:
        """Rejects templates that would escape the download directory."""
        if ".." in v or v.startswith(("/", "\\")):
            raise ValueError(
                "File template cannot contain relative '..' or absolute paths."
            )
        return v

    @property
    def uses_template(self) -> bool:
        return self.filemode != 0

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        return set(cls.model_fields)
