from typing import Any, Dict, Optional

import aiosqlite

from l2r.db.database import new_id
from l2r.models.voice import VoiceSettings


def _row_to_settings(row: aiosqlite.Row) -> VoiceSettings:
    return VoiceSettings(
        voice_id=row["voice_id"],
        stability=row["stability"],
        similarity_boost=row["similarity_boost"],
        style=row["style"],
        speed=row["speed"],
        use_speaker_boost=bool(row["use_speaker_boost"]),
    )


async def get_voice_settings(db: aiosqlite.Connection, child_id: str) -> Optional[VoiceSettings]:
    cursor = await db.execute("SELECT * FROM voice_settings WHERE child_id = ?", (child_id,))
    row = await cursor.fetchone()
    return _row_to_settings(row) if row else None


async def save_voice_settings(
    db: aiosqlite.Connection, child_id: str, changes: Dict[str, Any]
) -> VoiceSettings:
    """Upsert one child's settings. Fields missing from ``changes`` keep their
    stored value, or the default on first insert."""
    defaults = VoiceSettings()
    merged = {**defaults.model_dump(), **changes}
    speaker_boost = changes.get("use_speaker_boost")

    await db.execute(
        """INSERT INTO voice_settings
             (id, child_id, voice_id, stability, similarity_boost, style, speed, use_speaker_boost)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?)
           ON CONFLICT(child_id) DO UPDATE SET
             voice_id = COALESCE(?, voice_settings.voice_id),
             stability = COALESCE(?, voice_settings.stability),
             similarity_boost = COALESCE(?, voice_settings.similarity_boost),
             style = COALESCE(?, voice_settings.style),
             speed = COALESCE(?, voice_settings.speed),
             use_speaker_boost = COALESCE(?, voice_settings.use_speaker_boost),
             updated_at = datetime('now')""",
        (
            new_id(),
            child_id,
            merged["voice_id"],
            merged["stability"],
            merged["similarity_boost"],
            merged["style"],
            merged["speed"],
            1 if merged["use_speaker_boost"] else 0,
            changes.get("voice_id"),
            changes.get("stability"),
            changes.get("similarity_boost"),
            changes.get("style"),
            changes.get("speed"),
            None if speaker_boost is None else int(bool(speaker_boost)),
        ),
    )
    await db.commit()
    return await get_voice_settings(db, child_id)
