"""
Deterministic A/B cohort assignment

A player's cohort is a pure function of their persisted identifier, so the
same player lands in the same cohort (and sees the same variants) every
session without storing the assignment itself.
"""
from typing import Any, Dict, Optional
from dataclasses import dataclass, field
import hashlib
import logging
import uuid

from playlens.core.storage import KeyValueStore, safe_load, safe_save

logger = logging.getLogger(__name__)

PLAYER_ID_KEY = "player_id"
COHORT_COUNT = 10


def cohort_for(player_id: str, cohorts: int = COHORT_COUNT) -> int:
    """Hash a player id into one of ``cohorts`` buckets"""
    hash_value = int(hashlib.md5(player_id.encode()).hexdigest()[:8], 16)
    return hash_value % cohorts


def variants_for(cohort_id: int) -> Dict[str, Any]:
    """Variant assignments for every running test, derived from the cohort"""
    if cohort_id < 3:
        xp_scaling = "variant_a"
    elif cohort_id < 6:
        xp_scaling = "variant_b"
    else:
        xp_scaling = "control"

    return {
        "xp_scaling": xp_scaling,
        "event_frequency": ("high", "normal", "low")[cohort_id % 3],
        "grace_period": 3.0 if cohort_id < 5 else 3.5,
        "visual_intensity": "full" if cohort_id % 2 == 0 else "reduced",
    }


@dataclass(frozen=True)
class CohortAssignment:
    """Cohort bucket and the variants it implies"""
    player_id: str
    cohort_id: int
    test_assignments: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_player_id(cls, player_id: str) -> "CohortAssignment":
        cohort_id = cohort_for(player_id)
        return cls(
            player_id=player_id,
            cohort_id=cohort_id,
            test_assignments=variants_for(cohort_id),
        )

    def variant(self, test_name: str) -> Any:
        return self.test_assignments.get(test_name, "control")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "player_id": self.player_id,
            "cohort_id": self.cohort_id,
            "test_assignments": dict(self.test_assignments),
        }


def get_or_create_player_id(store: Optional[KeyValueStore]) -> str:
    """
    Return the persisted player id, generating and saving one if absent.
    """
    player_id = safe_load(store, PLAYER_ID_KEY)
    if isinstance(player_id, str) and player_id:
        return player_id

    player_id = f"player_{uuid.uuid4().hex}"
    safe_save(store, PLAYER_ID_KEY, player_id)
    logger.info(f"Generated new player id {player_id}")
    return player_id
