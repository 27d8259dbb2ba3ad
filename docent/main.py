# Entry point for the FastAPI app
from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel
from typing import List, Optional
import logging

from docent.engine import DocentEngine, build_engine
from docent.errors import DocentError

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="Docent")

ERROR_STATUS = {
    "validation_error": 400,
    "parse_error": 500,
    "storage_error": 500,
    "upstream_service_error": 502,
}

_engine: Optional[DocentEngine] = None


def get_engine() -> DocentEngine:
    global _engine
    if _engine is None:
        _engine = build_engine()
    return _engine


class ChatMessage(BaseModel):
    role: str
    content: str


class ChatRequest(BaseModel):
    message: str
    artwork_id: Optional[str] = None
    museum_id: Optional[str] = None
    history: List[ChatMessage] = []
    stream: bool = False


def not_found(message: str) -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": {"kind": "not_found", "message": message}})


@app.exception_handler(DocentError)
async def docent_error_handler(request: Request, exc: DocentError):
    logger.error(f"[HTTP] {request.method} {request.url.path} failed: {exc.kind}: {exc.message}")
    return JSONResponse(status_code=ERROR_STATUS.get(exc.kind, 500), content={"error": exc.to_dict()})


# Load the catalog and build embeddings before the first request
@app.on_event("startup")
async def startup_event():
    engine = get_engine()
    try:
        await engine.initialize()
    except Exception as e:
        # initialize() is retried lazily by the first request
        logger.exception(f"[STARTUP] Catalog initialization failed: {e}")


@app.get("/")
async def root(engine: DocentEngine = Depends(get_engine)):
    return {"service": "docent", **engine.status()}


@app.get("/museums")
async def list_museums(engine: DocentEngine = Depends(get_engine)):
    collections = await engine.list_collections()
    return {"museums": [c.to_public_dict() for c in collections]}


@app.get("/museums/{museum_id}/artworks")
async def list_museum_artworks(museum_id: str, engine: DocentEngine = Depends(get_engine)):
    collection = await engine.get_collection(museum_id)
    if collection is None:
        return not_found(f"Museum {museum_id} not found")
    artworks = await engine.list_collection_artworks(museum_id)
    return {
        "museum": collection.to_public_dict(),
        "artworks": [a.to_public_dict() for a in artworks],
    }


@app.get("/artworks/{artwork_id}")
async def get_artwork(
    artwork_id: str,
    museum_id: Optional[str] = None,
    engine: DocentEngine = Depends(get_engine),
):
    artwork = await engine.get_artwork(artwork_id, museum_id)
    if artwork is None:
        return not_found(f"Artwork {artwork_id} not found")
    return {"artwork": artwork.to_public_dict()}


@app.get("/search")
async def search(
    q: str = Query(..., min_length=1),
    museum_id: Optional[str] = None,
    top_k: Optional[int] = Query(None, ge=0, le=50),
    engine: DocentEngine = Depends(get_engine),
):
    result = await engine.hybrid_search(q, museum_id, top_k)
    return {
        "query": q,
        "chunks": [c.to_public_dict() for c in result.chunks],
        "artworks": [a.to_public_dict() for a in result.artworks],
    }


@app.post("/chat")
async def chat(body: ChatRequest, engine: DocentEngine = Depends(get_engine)):
    """Answer a visitor question, as JSON or as a plain-text stream."""
    result = await engine.chat_complete(
        body.message,
        artwork_id=body.artwork_id,
        collection_id=body.museum_id,
        history=[{"role": m.role, "content": m.content} for m in body.history],
        stream=body.stream,
    )
    if body.stream:
        headers = {}
        if result.artwork:
            headers["X-Artwork-Id"] = result.artwork["id"]
            headers["X-Museum-Id"] = result.artwork["collection_id"]
        return StreamingResponse(result.response, media_type="text/plain; charset=utf-8", headers=headers)

    return {
        "response": result.response,
        "artwork": result.artwork,
        "referenced_titles": result.referenced_titles,
        "chunks_used": result.chunks_used,
    }
