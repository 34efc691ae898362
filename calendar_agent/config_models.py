"""
Configuration models and loaders.

Three user-authored files drive a run:
    scheduling_rules.yaml  Priority tiers, priority-difference rules, learning thresholds
    ai_instructions.yaml   Reasoning-service persona and custom ignore rules
    config.yaml            Timezone, business hours, search window, retention

Each file is validated with pydantic. A path the user names explicitly must
exist; when no path is given and the default file is absent, built-in
defaults are used instead.

Configuration is loaded once at process start and passed explicitly into
each component.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from datetime import date, time
from pathlib import Path
from typing import Any, Generic, Optional, TypeVar
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from calendar_agent import ARGS_DIR, DATA_DIR, DECISIONS_DIR
from calendar_agent.calendar.holidays import DEFAULT_HOLIDAYS
from calendar_agent.models import PriorityLevel, ResolutionAction

logger = logging.getLogger(__name__)

DEFAULT_RULES_PATH = ARGS_DIR / "scheduling_rules.yaml"
DEFAULT_AI_INSTRUCTIONS_PATH = ARGS_DIR / "ai_instructions.yaml"
DEFAULT_CONFIG_PATH = DATA_DIR / "config.yaml"

BUILTIN_SOURCE = "(built-in defaults)"

DAY_NAMES = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

_HHMM = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


class ConfigFileNotFoundError(FileNotFoundError):
    """An explicitly requested configuration file does not exist."""


def _check_regex(value: Optional[str]) -> Optional[str]:
    if value is not None:
        try:
            re.compile(value)
        except re.error as e:
            raise ValueError(f"Invalid regex {value!r}: {e}") from e
    return value


def _check_hhmm(value: Optional[str]) -> Optional[str]:
    if value is not None and not _HHMM.match(value):
        raise ValueError(f"Expected HH:MM, got {value!r}")
    return value


# =============================================================================
# SchedulingRules (args/scheduling_rules.yaml)
# =============================================================================

class AttendeesCountRange(BaseModel):
    model_config = ConfigDict(extra="allow")
    min: Optional[int] = Field(default=None, ge=0)
    max: Optional[int] = Field(default=None, ge=0)
    description: Optional[str] = None


class PriorityRule(BaseModel):
    model_config = ConfigDict(extra="allow")
    pattern: Optional[str] = None
    exclude_pattern: Optional[str] = None
    keywords: list[str] = Field(default_factory=list)
    description: Optional[str] = None
    attendees_count: Optional[AttendeesCountRange] = None
    organizer_patterns: list[str] = Field(default_factory=list)

    @field_validator("pattern", "exclude_pattern")
    @classmethod
    def valid_regex(cls, value: Optional[str]) -> Optional[str]:
        return _check_regex(value)


class PriorityTiers(BaseModel):
    model_config = ConfigDict(extra="allow")
    critical: list[PriorityRule] = Field(default_factory=list)
    high: list[PriorityRule] = Field(default_factory=list)
    medium: list[PriorityRule] = Field(default_factory=list)
    low: list[PriorityRule] = Field(default_factory=list)

    def for_level(self, level: PriorityLevel) -> list[PriorityRule]:
        return getattr(self, level.value)


class PriorityDifferenceRule(BaseModel):
    model_config = ConfigDict(extra="allow")
    if_diff_greater_than: Optional[float] = None
    if_diff_less_than: Optional[float] = None
    then: ResolutionAction
    description: str = Field(default="")

    def matches(self, priority_diff: float) -> bool:
        if self.if_diff_greater_than is not None and priority_diff > self.if_diff_greater_than:
            return True
        if self.if_diff_less_than is not None and priority_diff < self.if_diff_less_than:
            return True
        return False


class ResolutionRulesConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    priority_difference: list[PriorityDifferenceRule] = Field(default_factory=list)


class LearningRulesConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    enabled: bool = Field(default=True)
    approval_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    min_samples: int = Field(default=5, ge=1)


class MessageTemplates(BaseModel):
    model_config = ConfigDict(extra="allow")
    default: str


class MessagesConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    decline: MessageTemplates = Field(
        default_factory=lambda: MessageTemplates(
            default="I have a scheduling conflict at this time.",
        )
    )
    cancel: MessageTemplates = Field(
        default_factory=lambda: MessageTemplates(
            default="This meeting has been cancelled due to a scheduling conflict.",
        )
    )


class SchedulingRules(BaseModel):
    model_config = ConfigDict(extra="allow")
    version: float = Field(default=1.0)
    priorities: PriorityTiers = Field(default_factory=PriorityTiers)
    rules: ResolutionRulesConfig = Field(default_factory=ResolutionRulesConfig)
    learning: LearningRulesConfig = Field(default_factory=LearningRulesConfig)
    messages: MessagesConfig = Field(default_factory=MessagesConfig)


# =============================================================================
# AIInstructions (args/ai_instructions.yaml)
# =============================================================================

class IgnoreCondition(BaseModel):
    model_config = ConfigDict(extra="allow")
    day_of_week: Optional[str] = None
    time: Optional[str] = None
    event1_pattern: Optional[str] = None
    event2_pattern: Optional[str] = None

    @field_validator("time")
    @classmethod
    def valid_time(cls, value: Optional[str]) -> Optional[str]:
        return _check_hhmm(value)

    @field_validator("day_of_week")
    @classmethod
    def known_day(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and value.strip().lower() not in DAY_NAMES:
            raise ValueError(f"Unknown day_of_week: {value!r}")
        return value

    @property
    def weekday(self) -> Optional[int]:
        """Day of week as 0=Monday .. 6=Sunday."""
        if self.day_of_week is None:
            return None
        return DAY_NAMES.index(self.day_of_week.strip().lower())

    @property
    def hour(self) -> Optional[int]:
        if self.time is None:
            return None
        return int(self.time.split(":")[0])


class IgnoreRule(BaseModel):
    model_config = ConfigDict(extra="allow")
    description: str = Field(default="")
    conditions: list[IgnoreCondition] = Field(default_factory=list)
    reason: str = Field(default="")


class NeverRescheduleRule(BaseModel):
    model_config = ConfigDict(extra="allow")
    pattern: str

    @field_validator("pattern")
    @classmethod
    def valid_regex(cls, value: str) -> str:
        return _check_regex(value)


class CustomRulesConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    never_reschedule: list[NeverRescheduleRule] = Field(default_factory=list)
    ignore_conflicts: list[IgnoreRule] = Field(default_factory=list)


class RoleConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    name: str = Field(default="Scheduling assistant")
    description: str = Field(default="You resolve calendar conflicts for a busy professional.")


class ConflictAnalysisConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    instructions: str = Field(
        default="Weigh priority, impact on attendees and available alternatives."
    )


class CommunicationStyleConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    language: str = Field(default="English")
    tone: str = Field(default="polite")
    use_emoji: bool = Field(default=False)


class OutputSettingsConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    show_priority_scores: bool = Field(default=True)
    show_reasoning: bool = Field(default=True)
    show_alternatives: bool = Field(default=True)
    max_alternatives: int = Field(default=3, ge=0)


class AIInstructions(BaseModel):
    model_config = ConfigDict(extra="allow")
    version: float = Field(default=1.0)
    role: RoleConfig = Field(default_factory=RoleConfig)
    conflict_analysis: ConflictAnalysisConfig = Field(default_factory=ConflictAnalysisConfig)
    communication_style: CommunicationStyleConfig = Field(default_factory=CommunicationStyleConfig)
    reschedule_considerations: list[str] = Field(
        default_factory=lambda: [
            "Prefer moving the meeting with fewer attendees",
            "Avoid moving meetings organized by external participants",
            "Keep recurring meetings in place when possible",
        ]
    )
    custom_rules: CustomRulesConfig = Field(default_factory=CustomRulesConfig)
    output_settings: OutputSettingsConfig = Field(default_factory=OutputSettingsConfig)


# =============================================================================
# AppConfig (~/.calendar-agent/config.yaml)
# =============================================================================

class BusinessHoursConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    start: str = Field(default="09:00")
    end: str = Field(default="19:00")

    @field_validator("start", "end")
    @classmethod
    def valid_times(cls, value: str) -> str:
        return _check_hhmm(value)

    @property
    def start_time(self) -> time:
        return time.fromisoformat(self.start)

    @property
    def end_time(self) -> time:
        return time.fromisoformat(self.end)


class SearchConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    days: int = Field(default=14, ge=1)
    slot_minutes: int = Field(default=30, ge=1)
    min_lead_minutes: int = Field(default=30, ge=0)
    max_candidates: int = Field(default=20, ge=1)


class DataRetentionConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    decisions_days: int = Field(default=90, ge=1)


class MemoryConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    stats_window_days: int = Field(default=30, ge=1)
    pattern_window_days: int = Field(default=90, ge=1)
    feedback_lookback_days: int = Field(default=7, ge=1)
    fingerprint_salt: str = Field(default="")


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="allow")
    timezone: str = Field(default="UTC")
    model: str = Field(default="gpt-4o-mini")
    business_hours: BusinessHoursConfig = Field(default_factory=BusinessHoursConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    holidays: list[date] = Field(default_factory=lambda: list(DEFAULT_HOLIDAYS))
    data_retention: DataRetentionConfig = Field(default_factory=DataRetentionConfig)
    learning: MemoryConfig = Field(default_factory=MemoryConfig)
    decisions_dir: Optional[str] = None

    @field_validator("timezone")
    @classmethod
    def known_zone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {value!r}") from e
        return value

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def decisions_path(self) -> Path:
        if self.decisions_dir:
            return Path(self.decisions_dir).expanduser()
        return DECISIONS_DIR


# =============================================================================
# Loaders
# =============================================================================

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass
class LoadedConfig(Generic[ModelT]):
    """A validated model plus where it came from."""

    model: ModelT
    file_path: str
    is_default: bool


def _read_yaml(file_path: Path) -> dict[str, Any]:
    with open(file_path, encoding="utf-8") as f:
        raw = yaml.safe_load(f)
    return raw or {}


def _load_model(
    path: str | Path | None,
    default_path: Path,
    model_class: type[ModelT],
    label: str,
) -> LoadedConfig[ModelT]:
    file_path = Path(path).expanduser() if path else default_path
    is_custom = path is not None

    try:
        raw = _read_yaml(file_path)
    except FileNotFoundError:
        if is_custom:
            raise ConfigFileNotFoundError(f"{label} file not found: {file_path}") from None
        logger.debug(f"No {label} file at {file_path}, using built-in defaults")
        return LoadedConfig(model=model_class(), file_path=BUILTIN_SOURCE, is_default=True)

    return LoadedConfig(
        model=model_class.model_validate(raw),
        file_path=str(file_path),
        is_default=not is_custom,
    )


def load_scheduling_rules(path: str | Path | None = None) -> LoadedConfig[SchedulingRules]:
    """
    Load the priority and resolution rules.

    Raises:
        ConfigFileNotFoundError: If an explicit path does not exist
        pydantic.ValidationError: If the file content is invalid
    """
    return _load_model(path, DEFAULT_RULES_PATH, SchedulingRules, "Scheduling rules")


def load_ai_instructions(path: str | Path | None = None) -> LoadedConfig[AIInstructions]:
    """
    Load the reasoning-service instructions.

    Raises:
        ConfigFileNotFoundError: If an explicit path does not exist
        pydantic.ValidationError: If the file content is invalid
    """
    return _load_model(path, DEFAULT_AI_INSTRUCTIONS_PATH, AIInstructions, "AI instructions")


def load_ignore_rules(path: str | Path | None = None) -> list[IgnoreRule]:
    """Load the "never a real conflict" rules from the AI instructions file."""
    return load_ai_instructions(path).model.custom_rules.ignore_conflicts


def load_config(path: str | Path | None = None) -> AppConfig:
    """
    Load application settings.

    Precedence: environment variables > config file > defaults. An invalid
    file is logged and replaced by defaults.

    Raises:
        ConfigFileNotFoundError: If an explicit path does not exist
    """
    file_path = Path(path).expanduser() if path else DEFAULT_CONFIG_PATH

    try:
        raw = _read_yaml(file_path)
    except FileNotFoundError:
        if path is not None:
            raise ConfigFileNotFoundError(f"Config file not found: {file_path}") from None
        raw = {}

    env_timezone = os.environ.get("CALENDAR_AGENT_TIMEZONE")
    if env_timezone:
        raw["timezone"] = env_timezone
    env_model = os.environ.get("CALENDAR_AGENT_MODEL")
    if env_model:
        raw["model"] = env_model

    try:
        return AppConfig.model_validate(raw)
    except Exception as e:
        logger.warning(f"Config validation failed for {file_path}: {e}, using defaults")
        return AppConfig()
