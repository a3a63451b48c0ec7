from __future__ import annotations

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from ...ai.errors import ProviderChainError
from ...config import configure_logging
from ...engine import AiAttemptsExhaustedError, IngestEngine, ReceiptNotFoundError
from ...models import Category, CategoryMapping, IngestResult, ParsedReceipt
from ...receipt.errors import ReceiptValidationError


class ParseTextRequest(BaseModel):
    text: str = Field(min_length=1)
    store_name: str | None = None


class IngestTextRequest(ParseTextRequest):
    source_name: str | None = None


class ResolveRequest(BaseModel):
    names: list[str] = Field(min_length=1)


class ResolvedName(BaseModel):
    name: str
    category: Category


class ResolveResponse(BaseModel):
    results: list[ResolvedName]


class LearnRequest(BaseModel):
    text: str = Field(min_length=1)


class LearnResponse(BaseModel):
    learned: list[CategoryMapping]


def _unprocessable(exc: ReceiptValidationError) -> HTTPException:
    return HTTPException(
        status_code=422,
        detail=f"{exc}. Retake the photo or enter the items manually.",
    )


def create_app(engine: IngestEngine | None = None) -> FastAPI:
    if engine is None:
        configure_logging()
        engine = IngestEngine.from_paths()

    app = FastAPI(title="Nutriscan Receipt Service", version="0.1.0")
    app.state.engine = engine

    @app.get("/healthz")
    def healthz() -> dict:
        return {"status": "ok"}

    @app.post("/receipts/parse_text", response_model=ParsedReceipt)
    def parse_text(req: ParseTextRequest) -> ParsedReceipt:
        try:
            return engine.receipt_engine.parse_text(req.text, store_name=req.store_name)
        except ReceiptValidationError as exc:
            raise _unprocessable(exc) from exc

    @app.post("/receipts/ingest_text", response_model=IngestResult)
    def ingest_text(req: IngestTextRequest) -> IngestResult:
        try:
            return engine.ingest_text(req.text, store_name=req.store_name, source_name=req.source_name)
        except ReceiptValidationError as exc:
            raise _unprocessable(exc) from exc

    @app.post("/receipts/{receipt_id}/ai_extract", response_model=IngestResult)
    async def ai_extract(receipt_id: str) -> IngestResult:
        try:
            return await engine.ai_extract(receipt_id)
        except ReceiptNotFoundError as exc:
            raise HTTPException(status_code=404, detail=f"Unknown receipt {receipt_id}") from exc
        except AiAttemptsExhaustedError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except ProviderChainError as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        except ReceiptValidationError as exc:
            raise _unprocessable(exc) from exc

    @app.post("/categories/resolve", response_model=ResolveResponse)
    def resolve(req: ResolveRequest) -> ResolveResponse:
        return ResolveResponse(
            results=[ResolvedName(name=name, category=engine.categories.resolve(name)) for name in req.names]
        )

    @app.post("/categories/learn", response_model=LearnResponse)
    async def learn(req: LearnRequest) -> LearnResponse:
        try:
            return LearnResponse(learned=await engine.learn_categories(req.text))
        except ProviderChainError as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc

    return app
