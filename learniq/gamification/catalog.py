"""Achievement catalog loading and seeding."""

import os
from typing import Any, Dict, List, Optional

import yaml
from sqlalchemy.ext.asyncio import AsyncSession

from learniq.common.db.statements import insert_if_absent
from learniq.common.error_handling import ValidationError
from learniq.common.logger import app_logger
from learniq.config import settings
from learniq.database.models import Achievement
from learniq.gamification.models import (
    AchievementCategory, AchievementRarity, criteria_to_dict, parse_criteria
)

logger = app_logger.getChild("gamification.catalog")

DEFAULT_CATALOG_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), "achievements.yaml")

REQUIRED_FIELDS = ("key", "name", "category", "unlock_criteria")


def _validate_entry(entry: Dict[str, Any]) -> Dict[str, Any]:
    missing = [name for name in REQUIRED_FIELDS if name not in entry]
    if missing:
        raise ValidationError("Catalog entry is missing fields", details={"entry": entry, "missing": missing})

    try:
        category = AchievementCategory(entry["category"])
        rarity = AchievementRarity(entry.get("rarity", "common"))
    except ValueError as e:
        raise ValidationError(f"Catalog entry {entry['key']} is invalid: {e}", cause=e)

    points_reward = entry.get("points_reward", 0)
    if not isinstance(points_reward, int) or points_reward < 0:
        raise ValidationError(f"Catalog entry {entry['key']} has a bad points_reward")

    return {
        "key": entry["key"],
        "name": entry["name"],
        "description": entry.get("description", ""),
        "category": category.value,
        "rarity": rarity.value,
        "icon": entry.get("icon"),
        "points_reward": points_reward,
        "unlock_criteria": criteria_to_dict(parse_criteria(entry["unlock_criteria"])),
    }


def load_catalog(path: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Read and validate the YAML catalog.

    Raises:
        ValidationError: The file is not a list of well-formed entries.
    """
    path = path or settings.ACHIEVEMENT_CATALOG_PATH or DEFAULT_CATALOG_PATH
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or []

    if not isinstance(raw, list):
        raise ValidationError("Achievement catalog must be a list", details={"path": path})

    entries = [_validate_entry(entry) for entry in raw]
    keys = [entry["key"] for entry in entries]
    if len(keys) != len(set(keys)):
        raise ValidationError("Achievement catalog has duplicate keys", details={"path": path})
    return entries


async def seed_achievements(session: AsyncSession, path: Optional[str] = None) -> int:
    """Insert catalog entries whose key is not stored yet. Returns how many were added."""
    added = 0
    for entry in load_catalog(path):
        if await insert_if_absent(session, Achievement, entry):
            added += 1
    if added:
        logger.info(f"Seeded {added} achievements")
    return added
