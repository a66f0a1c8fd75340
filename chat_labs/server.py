"""
Chat Labs Server
=================

FastAPI server for the conversational chat back-end.

Features:
- Chat turns routed to multimodal, document, tool-augmented or CRM strategies
- Image generation with Vertex AI Imagen and styled text overlays
- Thread, document and extension storage with JSON persistence
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

from .config import load_settings

# Import services
from .services.chat_router import ChatRouter
from .services.chat_strategies import ChatStrategies
from .services.crm_bridge import CrmDirectBridge
from .services.crm_gateway_client import CrmGatewayClient
from .services.extension_aggregator import ExtensionAggregator
from .services.extension_registry import ExtensionRegistry
from .services.image_client import ImageClient
from .services.image_generator import ImageGenerator
from .services.image_tools import ImageTools
from .services.llm_service import LLMService

# Import state stores
from .state.image_store import ImageStore
from .state.layout_memory import FileLayoutMemory, InMemoryLayoutMemory
from .state.thread_store import ThreadStore

# Import API routers
from .api import chat_routes, extension_routes, image_routes


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("[CHAT-LABS] Starting up...")

    settings = load_settings()
    data_dir = settings.storage.data_dir

    # State stores
    thread_store = ThreadStore(data_dir=data_dir)
    image_store = ImageStore(data_dir=data_dir, public_base_url=settings.image.public_image_url)
    if settings.storage.persist_overlay_state:
        layout_memory = FileLayoutMemory(data_dir=data_dir / "images")
    else:
        layout_memory = InMemoryLayoutMemory()

    # Outbound clients
    llm_service = LLMService(settings.llm)
    crm_gateway_client = CrmGatewayClient(settings.crm)
    image_tools = ImageTools(
        generator=ImageGenerator(settings.image),
        compose_client=ImageClient(settings.image.compose_url, timeout=settings.image.compose_timeout),
        store=image_store,
        memory=layout_memory,
    )
    extension_registry = ExtensionRegistry(data_dir=data_dir)

    chat_router = ChatRouter(
        store=thread_store,
        aggregator=ExtensionAggregator(image_tools, extension_registry, settings.crm.extension_id),
        strategies=ChatStrategies(llm_service, extension_registry),
        crm_bridge=CrmDirectBridge(crm_gateway_client, llm_service, settings.crm),
    )

    # Inject into route modules
    chat_routes.chat_router = chat_router
    chat_routes.thread_store = thread_store
    extension_routes.extension_registry = extension_registry
    image_routes.image_store = image_store

    logger.info("[CHAT-LABS] Services initialized")

    yield

    # Cleanup
    logger.info("[CHAT-LABS] Shutting down...")
    await crm_gateway_client.close()


# Create FastAPI app
app = FastAPI(
    title="Chat Labs",
    description="Conversational chat back-end with tool orchestration and image text overlays",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins for development
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(chat_routes.router)
app.include_router(extension_routes.router)
app.include_router(image_routes.router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "chat-labs"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "chat_labs.server:app",
        host="0.0.0.0",
        port=8080,
        reload=True
    )
