from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from .data_models import Tag, Thought, User
from .logging_setup import get_logger
from .stores import InMemoryTagStore, InMemoryThoughtStore, InMemoryUserStore

logger = get_logger(__name__)


USER_ALIASES: Dict[str, List[str]] = {
    "id": ["id", "user_id", "userId"],
    "username": ["username", "user_name", "name"],
    "nickname": ["nickname"],
    "dob": ["dob", "date_of_birth", "dateOfBirth"],
    "gender": ["gender"],
    "gender_preference": ["genderPreference", "gender_preference"],
    "preferred_age_min": ["preferredAgeMin", "preferred_age_min"],
    "preferred_age_max": ["preferredAgeMax", "preferred_age_max"],
    "proximity": ["proximity"],
    "latitude": ["latitude", "lat"],
    "longitude": ["longitude", "lon", "lng"],
    "metro_area": ["metro_area", "metroArea"],
}

TAG_ALIASES: Dict[str, List[str]] = {
    "id": ["id", "tag_id", "tagId"],
    "name": ["name"],
    "category": ["category", "tag_category"],
}

USER_TAG_ALIASES: Dict[str, List[str]] = {
    "user_id": ["userId", "user_id"],
    "tag_id": ["tag_id", "tagId"],
}

THOUGHT_ALIASES: Dict[str, List[str]] = {
    "id": ["id", "thought_id"],
    "user_id": ["userId", "user_id"],
    "content": ["content", "text"],
    "embedding": ["embedding"],
    "created_at": ["createdAt", "created_at"],
}

ID_FIELDS = {"id", "user_id"}


def get_alias_column(df: pd.DataFrame, aliases: Dict[str, List[str]], key: str) -> Optional[str]:
    for candidate in aliases.get(key, []):
        if candidate in df.columns:
            return candidate
    return None


def resolve_aliases(df: pd.DataFrame, aliases: Dict[str, List[str]]) -> Dict[str, Optional[str]]:
    return {key: get_alias_column(df, aliases, key) for key in aliases}


def clean_df(df: pd.DataFrame) -> pd.DataFrame:
    """Strip headers and text cells, and turn NaN-like tokens into None."""
    out = df.copy()
    out.columns = [col.strip() if isinstance(col, str) else col for col in out.columns]
    for col in out.columns:
        # text columns load as object or as the dedicated string dtype depending on the pandas version
        if pd.api.types.is_object_dtype(out[col]) or pd.api.types.is_string_dtype(out[col]):
            out[col] = (
                out[col]
                .astype(str)
                .str.replace("\n", " ")
                .str.replace(r"\s+", " ", regex=True)
                .str.strip()
                .astype(object)
                .replace({"nan": None, "None": None, "NaN": None, "<NA>": None, "": None})
            )
    return out.astype(object).where(pd.notnull(out), None)


def _records(df: pd.DataFrame, aliases: Dict[str, List[str]]) -> List[Dict[str, Any]]:
    alias_map = resolve_aliases(df, aliases)
    present = {key: col for key, col in alias_map.items() if col is not None}
    rows: List[Dict[str, Any]] = []
    for raw in df.to_dict(orient="records"):
        row = {key: raw.get(col) for key, col in present.items()}
        for key in ID_FIELDS & row.keys():
            if row[key] is not None:
                row[key] = _id_str(row[key])
        rows.append(row)
    return rows


def _id_str(value: Any) -> str:
    # numeric ids come back from read_csv as floats when the column has gaps
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _read(path: Path) -> pd.DataFrame:
    return clean_df(pd.read_csv(path))


def load_users(path: Path) -> List[User]:
    return [User.model_validate(r) for r in _records(_read(path), USER_ALIASES)]


def load_tags(path: Path) -> List[Tag]:
    return [
        Tag(id=int(r["id"]), name=str(r["name"]), category=str(r["category"]).strip().lower())
        for r in _records(_read(path), TAG_ALIASES)
    ]


def load_user_tags(path: Path) -> List[Tuple[str, int]]:
    return [
        (r["user_id"], int(r["tag_id"]))
        for r in _records(_read(path), USER_TAG_ALIASES)
        if r.get("user_id") is not None and r.get("tag_id") is not None
    ]


def load_thoughts(path: Path) -> List[Thought]:
    thoughts: List[Thought] = []
    for r in _records(_read(path), THOUGHT_ALIASES):
        if r.get("content") is None:
            r["content"] = ""
        thoughts.append(Thought.model_validate(r))
    return thoughts


def load_stores(data_dir: Path) -> Tuple[InMemoryUserStore, InMemoryTagStore, InMemoryThoughtStore]:
    """
    Build in-memory stores from `users.csv`, `tags.csv`, `user_tags.csv` and `thoughts.csv`.

    Args:
        data_dir: Directory holding the CSV files. Only `users.csv` is required.

    Returns:
        (user_store, tag_store, thought_store)

    Raises:
        FileNotFoundError: If `users.csv` is missing.
    """
    users_path = data_dir / "users.csv"
    if not users_path.exists():
        raise FileNotFoundError(f"Users CSV not found: {users_path}")
    users = load_users(users_path)

    tags_path, user_tags_path, thoughts_path = (
        data_dir / "tags.csv",
        data_dir / "user_tags.csv",
        data_dir / "thoughts.csv",
    )
    tags = load_tags(tags_path) if tags_path.exists() else []
    memberships = load_user_tags(user_tags_path) if user_tags_path.exists() else []
    thoughts = load_thoughts(thoughts_path) if thoughts_path.exists() else []

    logger.info(
        "Loaded local stores",
        data_dir=str(data_dir),
        users=len(users),
        tags=len(tags),
        memberships=len(memberships),
        thoughts=len(thoughts),
    )
    return (
        InMemoryUserStore(users),
        InMemoryTagStore(tags, memberships),
        InMemoryThoughtStore(thoughts),
    )
