import asyncio
import json
import logging
from functools import partial

from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.responses import Response
from pydantic import TypeAdapter, ValidationError

from .config import LOG_LEVEL
from .document import validate_upload
from .editor import apply_exact_edits, list_page_runs
from .errors import ExactEditError, InvalidDocument, PageNotFound
from .models import ExactTextEdit, PageRunsResponse, TextRunInfo

logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(title="exactedit")

_EDITS_ADAPTER = TypeAdapter(list[ExactTextEdit])


async def _run_sync(fn, *args, **kwargs):
    """Run a blocking function in a thread so it doesn't stall the event loop."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, partial(fn, *args, **kwargs))


async def _read_upload(file: UploadFile) -> bytes:
    content = await file.read()
    try:
        validate_upload(file.filename, content)
    except ValueError as e:
        raise HTTPException(400, str(e))
    return content


def _parse_edits(raw: str) -> list[ExactTextEdit]:
    try:
        return _EDITS_ADAPTER.validate_python(json.loads(raw))
    except json.JSONDecodeError as e:
        raise HTTPException(400, f"Edits payload is not valid JSON: {e}")
    except ValidationError as e:
        raise HTTPException(400, f"Invalid edits payload: {e.errors(include_url=False)}")


def _edit_failure(e: ExactEditError) -> HTTPException:
    if isinstance(e, InvalidDocument):
        return HTTPException(400, str(e))
    if isinstance(e, PageNotFound):
        return HTTPException(404, str(e))
    return HTTPException(
        422,
        {"error": str(e), "kind": e.kind, "pageNumber": e.page_number},
    )


@app.post("/api/edit-pdf")
async def edit_pdf(file: UploadFile = File(...), edits: str = Form(...)):
    content = await _read_upload(file)
    parsed = _parse_edits(edits)
    try:
        pdf_bytes = await _run_sync(apply_exact_edits, content, parsed)
    except ExactEditError as e:
        raise _edit_failure(e)
    logger.info("Exact edit of %s: %d edit(s) applied", file.filename, len(parsed))
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"X-Edit-Mode": "exact"},
    )


@app.post("/api/text-runs", response_model=PageRunsResponse)
async def text_runs(file: UploadFile = File(...), page_number: int = Form(1)):
    content = await _read_upload(file)
    try:
        runs = await _run_sync(list_page_runs, content, page_number)
    except ExactEditError as e:
        raise _edit_failure(e)
    return PageRunsResponse(
        page_number=page_number,
        runs=[
            TextRunInfo(
                index=i,
                text=run.text,
                stream_index=run.stream_index,
                editable=run.editable,
                font=run.encoding.resource_name if run.encoding is not None else None,
                literal_form=run.literal_form,
                code_count=run.code_count,
                x=run.position[0] if run.position else None,
                y=run.position[1] if run.position else None,
            )
            for i, run in enumerate(runs)
        ],
    )
