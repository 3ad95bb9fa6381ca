"""
Pydantic models used across the backend.

Entity models mirror the records the client keeps locally. On the wire
fields are camelCase (`imageUri`, `createdAt`), in Python they are
snake_case; `populate_by_name` lets the repository build models from
column names directly.

Guidelines:
- Unknown fields are ignored so older and newer clients can both push.
- Opaque structured fields (`exercises`, `milestones`, `preferences`) are
  typed `Any`: the sync layer never looks inside them.
- Timestamps are epoch milliseconds.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class FoodEntry(WireModel):
    id: str = Field(min_length=1)
    name: str
    calories: Optional[float] = None
    protein: Optional[float] = None
    carbs: Optional[float] = None
    fat: Optional[float] = None
    fiber: Optional[float] = None
    sugar: Optional[float] = None
    sodium: Optional[float] = None
    image_uri: Optional[str] = None
    timestamp: Optional[int] = None
    meal_type: Optional[str] = None
    confidence: Optional[float] = None
    ai_analysis: Optional[str] = None
    portion_multiplier: Optional[float] = None
    portion_unit: Optional[str] = None
    base_calories: Optional[float] = None
    base_protein: Optional[float] = None
    base_carbs: Optional[float] = None
    base_fat: Optional[float] = None
    base_fiber: Optional[float] = None
    base_sugar: Optional[float] = None
    base_sodium: Optional[float] = None
    show_manual_nutrition: Optional[bool] = None


class WorkoutEntry(WireModel):
    id: str = Field(min_length=1)
    name: str
    type: Optional[str] = None
    duration: Optional[int] = None
    calories: Optional[float] = None
    intensity: Optional[str] = None
    exercises: Any = None
    notes: Optional[str] = None
    timestamp: Optional[int] = None


class BiomarkerEntry(WireModel):
    id: str = Field(min_length=1)
    type: Optional[str] = None
    value: Optional[float] = None
    unit: Optional[str] = None
    timestamp: Optional[int] = None
    notes: Optional[str] = None


class Goal(WireModel):
    id: str = Field(min_length=1)
    title: Optional[str] = None
    description: Optional[str] = None
    type: Optional[str] = None
    target_value: Optional[float] = None
    current_value: Optional[float] = None
    unit: Optional[str] = None
    target_date: Optional[int] = None
    created_at: Optional[int] = None
    is_completed: Optional[bool] = None
    milestones: Any = None


class UserProfile(WireModel):
    id: str = Field(min_length=1)
    name: str
    age: Optional[int] = None
    gender: Optional[str] = None
    height: Optional[float] = None
    activity_level: Optional[str] = None
    preferences: Any = None
    created_at: Optional[int] = None
    # Server-side last-modified marker; ignored on push.
    updated_at: Optional[int] = None


class SyncData(WireModel):
    """One batch of records per entity type. Every part may be absent."""

    user_profile: Optional[UserProfile] = None
    food_entries: List[FoodEntry] = Field(default_factory=list)
    workout_entries: List[WorkoutEntry] = Field(default_factory=list)
    biomarker_entries: List[BiomarkerEntry] = Field(default_factory=list)
    goals: List[Goal] = Field(default_factory=list)

    def record_count(self) -> int:
        return (
            (1 if self.user_profile else 0)
            + len(self.food_entries)
            + len(self.workout_entries)
            + len(self.biomarker_entries)
            + len(self.goals)
        )

    def to_payload(self) -> Dict[str, Any]:
        """Render the same shape the push endpoint accepts."""

        return {
            "foodEntries": [e.to_wire() for e in self.food_entries],
            "workoutEntries": [e.to_wire() for e in self.workout_entries],
            "biomarkerEntries": [e.to_wire() for e in self.biomarker_entries],
            "goals": [g.to_wire() for g in self.goals],
            "userProfile": self.user_profile.to_wire() if self.user_profile else None,
        }


class SyncCounts(WireModel):
    user_profile: int = 0
    food_entries: int = 0
    workout_entries: int = 0
    biomarker_entries: int = 0
    goals: int = 0

    def total(self) -> int:
        return (
            self.user_profile
            + self.food_entries
            + self.workout_entries
            + self.biomarker_entries
            + self.goals
        )


# Request bodies. Connection fields are optional here so that missing
# values are reported by the service with a readable message.

class ConnectionRequest(WireModel):
    connection_string: Optional[str] = None
    type: Optional[str] = None


class SyncRequest(ConnectionRequest):
    data: Optional[SyncData] = None


class PullRequest(ConnectionRequest):
    last_sync_timestamp: Optional[int] = None


class BidirectionalSyncRequest(PullRequest):
    local_data: SyncData = Field(default_factory=SyncData)


class InspectRequest(WireModel):
    connection_string: Optional[str] = None
