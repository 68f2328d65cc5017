import json
import logging

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

load_dotenv()

from .catalog_client import CatalogClient
from .config import load_settings
from .llm_gateway import LLMGateway
from .models import ChatRequest, ChatResponse
from .pipeline import ConciergePipeline, reorder_products_by_mention
from .search_cache import SearchCache

settings = load_settings()

if not logging.getLogger().handlers:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
logger = logging.getLogger(__name__)

GENERIC_ERROR = "Something went wrong. Please try again."

app = FastAPI(title="Gift Concierge")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

catalog_client = CatalogClient(
    search_url=settings.catalog_search_url,
    base_url=settings.catalog_base_url,
    cache=SearchCache(ttl_seconds=settings.search_cache_ttl_seconds),
    timeout=settings.catalog_timeout_seconds,
)
llm_gateway = LLMGateway(
    api_key=settings.llm_api_key,
    model=settings.llm_model,
    base_url=settings.llm_base_url,
    timeout=settings.llm_timeout_seconds,
)
pipeline = ConciergePipeline(gateway=llm_gateway, catalog=catalog_client)


def _error_response() -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": GENERIC_ERROR})


@app.post("/chat", response_model=ChatResponse)
def chat(request: ChatRequest):
    # Comparison requests bypass intent extraction entirely
    if request.compare_products:
        try:
            result = pipeline.compare_products(
                request.compare_products, request.products, request.context or request.message
            )
        except Exception:
            logger.exception("❌ Comparison failed")
            return _error_response()
        return ChatResponse(message=result.message, products=[], intent={"intent_type": "comparison"})

    if not request.message.strip():
        raise HTTPException(status_code=400, detail="Message is required")

    try:
        result = pipeline.process_message(request.message, request.conversation_history)
    except Exception:
        logger.exception("❌ Chat pipeline failed")
        return _error_response()

    logger.info(
        f"[Chat API] needs_clarification={result.intent.needs_clarification} "
        f"products={len(result.products)} message_length={len(result.message)}"
    )
    return ChatResponse(
        message=result.message,
        products=[p.model_dump(by_alias=True) for p in result.products],
        intent=result.intent.model_dump(),
    )


@app.post("/chat/stream")
def chat_stream(request: ChatRequest):
    if not request.message.strip():
        raise HTTPException(status_code=400, detail="Message is required")

    try:
        result = pipeline.process_message_stream(request.message, request.conversation_history)
    except Exception:
        logger.exception("❌ Chat stream pipeline failed")
        return _error_response()

    def events():
        yield _event(
            type="products",
            products=[p.model_dump(by_alias=True) for p in result.products],
            intent=result.intent.model_dump(),
        )
        parts = []
        try:
            for fragment in result.stream:
                parts.append(fragment)
                yield _event(type="token", text=fragment)
        except Exception:
            logger.exception("❌ Chat stream interrupted")
            yield _event(type="error", error=GENERIC_ERROR)
            return
        finally:
            close = getattr(result.stream, "close", None)
            if close:
                close()

        final = reorder_products_by_mention("".join(parts), result.products, result.available_products)
        yield _event(type="done", products=[p.model_dump(by_alias=True) for p in final])

    return StreamingResponse(events(), media_type="application/x-ndjson")


def _event(**payload) -> str:
    return json.dumps(payload) + "\n"
