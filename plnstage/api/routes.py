"""HTTP routes of the deposit protocol.

Routes are thin: they pull headers and bodies off the request and hand them
to ``IngestProtocolHandler``. Errors surface as ``SwordError`` and are
rendered by the app's exception handler.
"""

from fastapi import APIRouter, Request, Response
from fastapi.responses import FileResponse
from starlette.concurrency import run_in_threadpool

from plnstage.api.deps import Handler, Operator, client_ip, fetch_header

router = APIRouter()

XML = "text/xml"


@router.get("/sd-iri")
def service_document(request: Request, handler: Handler) -> Response:
    """Capability document for a provider."""
    provider_url = fetch_header(request, "Institution-Url") or fetch_header(
        request, "Provider-Url"
    )
    body = handler.service_document(
        fetch_header(request, "On-Behalf-Of"), provider_url, client_ip(request)
    )
    return Response(content=body, media_type=XML)


@router.post("/col-iri/{provider_token}")
async def create_deposit(provider_token: str, request: Request, handler: Handler) -> Response:
    """Register a deposit from an Atom entry."""
    body = await request.body()
    content, location = await run_in_threadpool(
        handler.create_deposit, provider_token, body, client_ip(request)
    )
    return Response(
        content=content, status_code=201, media_type=XML, headers={"Location": location}
    )


@router.get("/cont-iri/{provider_token}/{deposit_id}/state")
def statement(
    provider_token: str,
    deposit_id: str,
    request: Request,
    handler: Handler,
    operator: Operator,
) -> Response:
    """Processing state of a deposit."""
    content = handler.statement(provider_token, deposit_id, client_ip(request), operator=operator)
    return Response(content=content, media_type=XML)


@router.put("/cont-iri/{provider_token}/{deposit_id}/edit")
async def edit_deposit(
    provider_token: str, deposit_id: str, request: Request, handler: Handler
) -> Response:
    """Replace a deposit's content reference."""
    body = await request.body()
    content, location = await run_in_threadpool(
        handler.edit_deposit, provider_token, deposit_id, body, client_ip(request)
    )
    return Response(
        content=content, status_code=201, media_type=XML, headers={"Location": location}
    )


@router.get("/fetch/{provider_token}/{deposit_id}")
def fetch_content(provider_token: str, deposit_id: str, handler: Handler) -> FileResponse:
    """Harvested payload for the preservation network."""
    path, deposit = handler.fetch_path(provider_token, deposit_id)
    return FileResponse(
        path,
        media_type=deposit.content_type or "application/octet-stream",
        filename=deposit.file_name,
    )
