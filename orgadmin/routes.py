"""
HTTP routes for the team hierarchy.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import JSONResponse

from orgadmin.admin import HierarchyAdminOps, MediaUpload, NodeFields
from orgadmin.config import Settings, get_settings
from orgadmin.dependencies import get_admin_ops, get_tree_builder
from orgadmin.errors import (
    InvalidParent,
    MediaTooLarge,
    NodeNotFound,
    OrgAdminError,
    StorageWriteError,
    TreeBuildTimeout,
    UnsupportedMediaType,
)
from orgadmin.schemas import (
    CreateTeamNodeResponse,
    TeamSubtreeResponse,
    TeamTreeResponse,
    UpdateTeamNodeResponse,
)
from orgadmin.tree import TreeBuilder

logger = logging.getLogger(__name__)

router = APIRouter()

_STATUS_BY_ERROR = (
    (NodeNotFound, 404),
    (InvalidParent, 400),
    (UnsupportedMediaType, 415),
    (MediaTooLarge, 413),
    (StorageWriteError, 502),
    (TreeBuildTimeout, 504),
)


def _http_error(exc: OrgAdminError) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


async def _read_upload(image: Optional[UploadFile]) -> Optional[MediaUpload]:
    if image is None or not image.filename:
        return None
    return MediaUpload(
        data=await image.read(),
        content_type=image.content_type or "",
        filename=image.filename,
    )


@router.post("/team", response_model=CreateTeamNodeResponse, status_code=201)
async def create_team_node(
    name: Optional[str] = Form(None),
    role: Optional[str] = Form(None),
    group: Optional[str] = Form(None),
    parentId: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    admin: HierarchyAdminOps = Depends(get_admin_ops),
):
    if parentId == "null":
        parentId = None
    fields = NodeFields(name=name, role=role, group=group, parent_id=parentId or None)
    try:
        node_id = await admin.create(fields, await _read_upload(image))
    except OrgAdminError as exc:
        raise _http_error(exc) from exc
    return CreateTeamNodeResponse(message="Team node created successfully", id=node_id)


# Tree responses are returned as JSONResponse: validating them against the
# recursive TeamTreeNode model trips pydantic's recursion guard on deep trees.
# The models are still listed under ``responses`` for the OpenAPI schema.


@router.get(
    "/team/tree",
    response_model=None,
    responses={200: {"model": TeamTreeResponse}},
)
async def get_team_tree(
    builder: TreeBuilder = Depends(get_tree_builder),
    settings: Settings = Depends(get_settings),
) -> JSONResponse:
    """
    Full organisation tree starting at the configured root node.
    """
    if not settings.team_root_id:
        raise HTTPException(status_code=404, detail="Team root is not configured")
    try:
        tree = await builder.build_tree(settings.team_root_id)
    except OrgAdminError as exc:
        raise _http_error(exc) from exc
    return JSONResponse({"data": [tree.as_dict()]})


@router.get(
    "/team/tree/{node_id}",
    response_model=None,
    responses={200: {"model": TeamSubtreeResponse}},
)
async def get_team_subtree(
    node_id: str, builder: TreeBuilder = Depends(get_tree_builder)
) -> JSONResponse:
    try:
        tree = await builder.build_tree(node_id)
    except OrgAdminError as exc:
        raise _http_error(exc) from exc
    return JSONResponse({"data": tree.as_dict()})


@router.put(
    "/team/{node_id}",
    response_model=None,
    responses={200: {"model": UpdateTeamNodeResponse}},
)
async def update_team_node(
    node_id: str,
    name: Optional[str] = Form(None),
    role: Optional[str] = Form(None),
    group: Optional[str] = Form(None),
    parentId: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    admin: HierarchyAdminOps = Depends(get_admin_ops),
    builder: TreeBuilder = Depends(get_tree_builder),
) -> JSONResponse:
    """
    Partial update. Omitted fields are unchanged; ``parentId=null`` makes the
    node a root; an ``image`` replaces all of the node's current media.
    """
    # Empty form values arrive as None, so detaching uses an explicit "null".
    if parentId == "null":
        parentId = ""
    fields = NodeFields(name=name, role=role, group=group, parent_id=parentId)
    try:
        updated = await admin.update(node_id, fields, await _read_upload(image))
    except OrgAdminError as exc:
        raise _http_error(exc) from exc

    # The write is committed; a slow subtree must not turn it into an error.
    try:
        tree = await builder.build_tree(node_id)
    except TreeBuildTimeout:
        logger.warning("Subtree of %s timed out after update; returning node only", node_id)
        tree = await builder.build_node(updated)
    except OrgAdminError as exc:
        raise _http_error(exc) from exc
    return JSONResponse(
        {
            "success": True,
            "message": "Team member updated successfully",
            "data": tree.as_dict(),
        }
    )
