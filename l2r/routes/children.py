import aiosqlite
from fastapi import APIRouter, Depends, HTTPException, Response

from l2r.db import children as child_db
from l2r.db.database import get_db
from l2r.models.child import ChildPayload
from l2r.routes.auth import AuthUser, require_user

router = APIRouter(prefix="/api/children", tags=["children"])


@router.get("")
async def list_children(
    auth: AuthUser = Depends(require_user),
    db: aiosqlite.Connection = Depends(get_db),
):
    children = await child_db.list_children(db, auth.user_id)
    return {"children": [c.model_dump() for c in children]}


@router.post("", status_code=201)
async def create_child(
    body: ChildPayload,
    auth: AuthUser = Depends(require_user),
    db: aiosqlite.Connection = Depends(get_db),
):
    if not body.name:
        raise HTTPException(status_code=400, detail="Name is required")

    child = await child_db.create_child(db, auth.user_id, body)
    return {"child": child.model_dump()}


@router.get("/{child_id}")
async def get_child(
    child_id: str,
    auth: AuthUser = Depends(require_user),
    db: aiosqlite.Connection = Depends(get_db),
):
    child = await child_db.get_child(db, auth.user_id, child_id)
    if not child:
        raise HTTPException(status_code=404, detail="Child not found")
    return {"child": child.model_dump()}


@router.put("/{child_id}")
async def update_child(
    child_id: str,
    body: ChildPayload,
    auth: AuthUser = Depends(require_user),
    db: aiosqlite.Connection = Depends(get_db),
):
    if "name" in body.model_fields_set and not body.name:
        raise HTTPException(status_code=400, detail="Name cannot be empty")

    child = await child_db.update_child(db, auth.user_id, child_id, body)
    if not child:
        raise HTTPException(status_code=404, detail="Child not found")
    return {"child": child.model_dump()}


@router.delete("/{child_id}", status_code=204)
async def delete_child(
    child_id: str,
    auth: AuthUser = Depends(require_user),
    db: aiosqlite.Connection = Depends(get_db),
):
    if not await child_db.delete_child(db, auth.user_id, child_id):
        raise HTTPException(status_code=404, detail="Child not found")
    return Response(status_code=204)
