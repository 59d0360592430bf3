"""Admin API for players and the avatar settings document.

- Register players (name + photo), list, edit, deactivate, delete
- Replace a player's photo
- Request avatar regeneration
- Read/update the avatar generation settings
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from pydantic import BaseModel

from app.avatars.settings_reader import fetch_avatar_settings, update_avatar_settings
from app.players.repository import (
    PlayerNotFoundError,
    SettingsRepository,
    get_settings_repository,
)
from app.players.service import PlayerService, PlayerServiceError, get_player_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["players"])


# =============================================================================
# Pydantic Models
# =============================================================================


class UpdatePlayerRequest(BaseModel):
    name: Optional[str] = None
    status: Optional[str] = None


class AvatarSettingsRequest(BaseModel):
    """Partial update of the avatar settings document."""

    avatarPrompt: Optional[str] = None
    placeholderAvatarUrl: Optional[str] = None
    enabled: Optional[bool] = None


def _service_error(e: PlayerServiceError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.message)


def _not_found(e: PlayerNotFoundError) -> HTTPException:
    return HTTPException(status_code=404, detail=f"Player {e.player_id} not found")


# =============================================================================
# Players
# =============================================================================


@router.post("/players", status_code=201)
async def register_player(
    name: str = Form(""),
    photo: UploadFile = File(...),
    service: PlayerService = Depends(get_player_service),
):
    """Register a player. Avatar generation starts once the record is saved."""
    content = await photo.read()
    try:
        player = await service.register_player(name, content, photo.content_type)
    except PlayerServiceError as e:
        raise _service_error(e)
    return player.to_document()


@router.get("/players")
async def list_players(
    status: Optional[str] = Query(None),
    service: PlayerService = Depends(get_player_service),
):
    try:
        players = await service.list_players(status=status)
    except PlayerServiceError as e:
        raise _service_error(e)
    return {"players": [p.to_document() for p in players], "count": len(players)}


@router.get("/players/{player_id}")
async def get_player(player_id: str, service: PlayerService = Depends(get_player_service)):
    try:
        player = await service.get_player(player_id)
    except PlayerNotFoundError as e:
        raise _not_found(e)
    return player.to_document()


@router.patch("/players/{player_id}")
async def update_player(
    player_id: str,
    request: UpdatePlayerRequest,
    service: PlayerService = Depends(get_player_service),
):
    try:
        player = await service.update_player(player_id, name=request.name, status=request.status)
    except PlayerNotFoundError as e:
        raise _not_found(e)
    except PlayerServiceError as e:
        raise _service_error(e)
    return player.to_document()


@router.put("/players/{player_id}/photo")
async def replace_player_photo(
    player_id: str,
    photo: UploadFile = File(...),
    service: PlayerService = Depends(get_player_service),
):
    content = await photo.read()
    try:
        player = await service.replace_photo(player_id, content, photo.content_type)
    except PlayerNotFoundError as e:
        raise _not_found(e)
    except PlayerServiceError as e:
        raise _service_error(e)
    return player.to_document()


@router.post("/players/{player_id}/deactivate")
async def deactivate_player(player_id: str, service: PlayerService = Depends(get_player_service)):
    try:
        player = await service.deactivate_player(player_id)
    except PlayerNotFoundError as e:
        raise _not_found(e)
    return player.to_document()


@router.post("/players/{player_id}/regenerate", status_code=202)
async def request_regeneration(
    player_id: str,
    service: PlayerService = Depends(get_player_service),
):
    """Flag the player for regeneration; the trigger re-runs the pipeline."""
    try:
        player = await service.request_regeneration(player_id)
    except PlayerNotFoundError as e:
        raise _not_found(e)
    return player.to_document()


@router.delete("/players/{player_id}")
async def delete_player(player_id: str, service: PlayerService = Depends(get_player_service)):
    try:
        deleted_objects = await service.delete_player(player_id)
    except PlayerNotFoundError as e:
        raise _not_found(e)
    return {"deleted": player_id, "deleted_objects": deleted_objects}


# =============================================================================
# Avatar settings
# =============================================================================


@router.get("/settings/avatar-generation")
async def get_avatar_settings_document(
    settings: SettingsRepository = Depends(get_settings_repository),
):
    return await fetch_avatar_settings(settings)


@router.put("/settings/avatar-generation")
async def put_avatar_settings_document(
    request: AvatarSettingsRequest,
    settings: SettingsRepository = Depends(get_settings_repository),
):
    fields = request.model_dump(exclude_none=True)
    if "avatarPrompt" in fields and not fields["avatarPrompt"].strip():
        raise HTTPException(status_code=400, detail="Avatar prompt cannot be empty")
    updated = await update_avatar_settings(settings, fields)
    logger.info(f"Avatar settings updated: {sorted(fields)}")
    return updated
