import aiosqlite
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic.alias_generators import to_camel

from l2r.db import children as child_db
from l2r.db import voice_settings as settings_db
from l2r.db.database import get_db
from l2r.models.voice import VOICE_SETTINGS_RANGES, VoiceSettings, VoiceSettingsPayload
from l2r.routes.auth import AuthUser, require_user

router = APIRouter(prefix="/api/voice/settings", tags=["voice-settings"])


def validate_ranges(changes: dict) -> list[dict]:
    errors = []
    for field, (low, high) in VOICE_SETTINGS_RANGES.items():
        value = changes.get(field)
        if value is not None and not low <= value <= high:
            name = to_camel(field)
            errors.append({"field": name, "message": f"{name} must be between {low:g} and {high:g}"})
    return errors


async def _require_child(db: aiosqlite.Connection, auth: AuthUser, child_id: str) -> None:
    if not await child_db.child_belongs_to(db, auth.user_id, child_id):
        raise HTTPException(status_code=404, detail="Child not found")


@router.get("/{child_id}")
async def get_voice_settings(
    child_id: str,
    auth: AuthUser = Depends(require_user),
    db: aiosqlite.Connection = Depends(get_db),
):
    await _require_child(db, auth, child_id)
    stored = await settings_db.get_voice_settings(db, child_id)
    return (stored or VoiceSettings()).model_dump(by_alias=True)


@router.put("/{child_id}")
async def save_voice_settings(
    child_id: str,
    body: VoiceSettingsPayload,
    auth: AuthUser = Depends(require_user),
    db: aiosqlite.Connection = Depends(get_db),
):
    await _require_child(db, auth, child_id)

    changes = body.model_dump(exclude_none=True)
    errors = validate_ranges(changes)
    if errors:
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid voice settings", "validationErrors": errors},
        )

    saved = await settings_db.save_voice_settings(db, child_id, changes)
    return saved.model_dump(by_alias=True)
