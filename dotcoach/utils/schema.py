from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

ShellKind = Literal["bash", "zsh", "powershell"]
Severity = Literal["safe", "warning", "danger"]


class HistoryEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    command: str
    timestamp: Optional[datetime] = None
    line_number: int = Field(ge=1)


class CommandPattern(BaseModel):
    model_config = ConfigDict(frozen=True)

    pattern: str
    frequency: int = Field(ge=1)
    last_used: Optional[datetime] = None
    variations: List[str] = []


class SafetyAlert(BaseModel):
    model_config = ConfigDict(frozen=True)

    pattern: str
    frequency: int = Field(ge=1)
    risk: str
    safer_alternative: str
    rule: str = ""
    severity: Literal["warning", "danger"] = "warning"


class RedactionMatch(BaseModel):
    model_config = ConfigDict(frozen=True)

    filter: str
    count: int = Field(ge=1)


class RedactionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    scrubbed: str
    matches: List[RedactionMatch] = []


class AnalysisConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    min_frequency: int = Field(default=5, ge=1)
    top: int = Field(default=20, ge=1)
    similarity_threshold: float = Field(default=0.2, gt=0.0, le=1.0)
    normalize_numbers: bool = False


class AnalysisResult(BaseModel):
    shell: ShellKind
    history_file: Optional[str] = None
    total_commands: int = 0
    unique_commands: int = 0
    patterns: List[CommandPattern] = []
    safety_alerts: List[SafetyAlert] = []


class Suggestion(BaseModel):
    pattern: str
    type: str = Field(pattern="^(alias|function|script)$")
    name: str = ""
    code: str
    explanation: str = ""
    safety: Optional[Severity] = None
