"""Dataclass models for all persisted entities.

Brew sessions, recipes and task templates live as JSON blobs in kv_store;
brew records map 1:1 to the brews table. Timestamps are ISO-8601 strings,
except current_step_target_ts which is epoch milliseconds. These are plain
data containers with no business logic.
"""

from dataclasses import dataclass, field
from typing import Optional

# Forward-only lifecycles; position in the tuple is the ordering.
SESSION_STATUSES = ("planning", "brewing", "fermenting", "conditioning", "completed")
ACTIVE_SESSION_STATUSES = ("brewing", "fermenting")

BREW_STATUSES = ("brewing", "fermenting", "conditioning", "completed", "archived")
ACTIVE_BREW_STATUSES = ("brewing", "fermenting", "conditioning")

MEASUREMENT_TYPES = ("og", "fg", "temperature", "ph", "volume", "gravity", "taste")


def is_forward(statuses: tuple, current: str, new: str) -> bool:
    """True when new comes strictly after current in the given lifecycle."""
    if current not in statuses or new not in statuses:
        return False
    return statuses.index(new) > statuses.index(current)


@dataclass
class Recipe:
    """A beer recipe. Only the fields the brew day needs are modelled here."""
    id: Optional[str]
    name: str
    style: Optional[str] = None
    boil_time: int = 60  # minutes
    batch_size: Optional[float] = None  # liters


@dataclass
class Measurement:
    """A single reading taken during a session or a brew (og, fg, temperature, ...)."""
    id: str
    type: str
    value: float
    timestamp: str
    unit: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class BrewStepTask:
    """A checklist item scoped to one step of one session."""
    id: str
    text: str
    completed: bool = False


@dataclass
class BrewStep:
    """One stage of the brew day.

    duration is the planned length in minutes, never live countdown state.
    """

    id: str
    name: str
    duration: int
    temperature: Optional[float] = None  # Celsius
    description: Optional[str] = None
    completed: bool = False
    completed_at: Optional[str] = None
    tasks: list = field(default_factory=list)  # list[BrewStepTask]


@dataclass
class BrewSession:
    """One walkthrough of the brew-day steps for a single batch.

    current_step_target_ts is the absolute instant (epoch millis) the running
    countdown reaches zero; None when no timer is running.
    """

    id: str
    recipe_id: str
    recipe_name: str
    status: str
    started_at: str
    completed_at: Optional[str] = None
    current_step_index: int = 0
    current_step_target_ts: Optional[int] = None
    current_step_notification_id: Optional[str] = None
    steps: list = field(default_factory=list)  # list[BrewStep]
    measurements: list = field(default_factory=list)  # list[Measurement]
    notes: list = field(default_factory=list)  # list[str]
    efficiency: Optional[float] = None
    actual_og: Optional[float] = None
    actual_fg: Optional[float] = None
    actual_abv: Optional[float] = None


@dataclass
class QuickNote:
    id: str
    timestamp: str
    text: str


@dataclass
class BrewRecord:
    """Long-horizon tracking of a batch through fermentation and conditioning.

    fermentation_start, conditioning_start and packaging_date are each stamped
    once, by the transition that enters the stage. The actual_*_days fields
    are frozen by the following transition and never change afterwards.
    """

    id: str
    recipe_name: str
    status: str
    brew_date: str
    recipe_id: Optional[str] = None
    fermentation_start: Optional[str] = None
    conditioning_start: Optional[str] = None
    packaging_date: Optional[str] = None
    batch_size: Optional[float] = None
    original_gravity: Optional[float] = None
    final_gravity: Optional[float] = None
    measured_abv: Optional[float] = None
    fermentation_temp: Optional[float] = None
    target_fermentation_days: int = 14
    target_conditioning_days: int = 14
    actual_fermentation_days: Optional[int] = None
    actual_conditioning_days: Optional[int] = None
    notes: Optional[str] = None
    quick_notes: list = field(default_factory=list)  # list[QuickNote]
    measurements: list = field(default_factory=list)  # list[Measurement]
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
