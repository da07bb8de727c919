"""
Action routes embedded in an Onshape Part Studio

All routes require a signed-in session.
"""
import logging
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import Response

from camel_gateway.app.core.gateway import Gateway
from camel_gateway.app.dependencies.auth import get_gateway, require_identity
from camel_gateway.app.models.document import DocumentContext, Identity, WorkspaceOrVersion
from camel_gateway.app.services.archive import build_zip_archive, safe_archive_name
from camel_gateway.app.services.onshape.errors import AuthError, GatewayError, NotFoundError
from camel_gateway.app.shared.error_handler import parse_gateway_error
from camel_gateway.app.shared.pages import render_panel

logger = logging.getLogger(__name__)

ELEMENT_PATH = "/action/d/{document_id}/{workspace_or_version}/{workspace_or_version_id}/e/{element_id}"

router = APIRouter(prefix=ELEMENT_PATH, tags=["actions"])

MEDIA_TYPES = {
    ".nc": "text/plain",
    ".gcode": "text/plain",
    ".txt": "text/plain",
}


def get_document_context(
    document_id: str,
    workspace_or_version: str,
    workspace_or_version_id: str,
    element_id: str,
    configuration: Optional[str] = Query(None, description="Serialized Part Studio configuration"),
    identity: Identity = Depends(require_identity),
) -> DocumentContext:
    try:
        kind = WorkspaceOrVersion.parse(workspace_or_version)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Unknown workspace/version kind: {workspace_or_version}")
    return DocumentContext(
        document_id=document_id,
        workspace_or_version=kind,
        workspace_or_version_id=workspace_or_version_id,
        element_id=element_id,
        identity=identity,
        configuration=configuration,
    )


def attachment_response(file_name: str, content: bytes, media_type: str) -> Response:
    ascii_name = file_name.encode("ascii", "replace").decode("ascii").replace('"', "_")
    disposition = f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(file_name, safe='')}"
    return Response(content=content, media_type=media_type, headers={"Content-Disposition": disposition})


def media_type_for(file_name: str) -> str:
    lowered = file_name.lower()
    for ext, media_type in MEDIA_TYPES.items():
        if lowered.endswith(ext):
            return media_type
    return "application/octet-stream"


def _download_query(request: Request) -> str:
    configuration = request.query_params.get("configuration")
    return f"configuration={quote(configuration, safe='')}" if configuration else ""


@router.get("/panel")
async def file_panel(
    request: Request,
    context: DocumentContext = Depends(get_document_context),
    gateway: Gateway = Depends(get_gateway),
):
    """The view embedded as an iframe within a Part Studio right side panel"""
    base_path = request.url.path[: -len("/panel")]
    try:
        files = await gateway.resolver.list_file_names(context)
    except AuthError:
        raise
    except GatewayError as e:
        error_info = parse_gateway_error(e)
        return render_panel(base_path, error=error_info.user_message)
    return render_panel(base_path, files=files, query=_download_query(request))


@router.get("/f/{file_name:path}/download")
async def download_file(
    file_name: str,
    context: DocumentContext = Depends(get_document_context),
    gateway: Gateway = Depends(get_gateway),
):
    """Download one generated file"""
    try:
        contents = await gateway.resolver.get_file_contents(context, file_name)
    except NotFoundError as e:
        return Response(content=str(e), status_code=404, media_type="text/plain")
    return attachment_response(
        safe_archive_name(file_name), contents.encode("utf-8"), media_type_for(file_name)
    )


@router.get("/download-all")
async def download_all_files(
    context: DocumentContext = Depends(get_document_context),
    gateway: Gateway = Depends(get_gateway),
):
    """Download every generated file as one zip archive"""
    files = await gateway.resolver.get_all_file_contents(context)
    if not files:
        return Response(content="No files found", status_code=404, media_type="text/plain")
    archive = build_zip_archive(files)
    return attachment_response(f"camel-{context.element_id}.zip", archive, "application/zip")
