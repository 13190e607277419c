"""FastAPI application for the tool-augmented chat service."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from toolchat import __version__
from toolchat.api.endpoints import install_error_handlers, router
from toolchat.config import get_settings
from toolchat.utils.logging import LogConfig, setup_logging

settings = get_settings()
setup_logging(LogConfig(level=settings.log_level))

app = FastAPI(
    title="Toolchat",
    description=(
        "A chat service where the assistant answers with help from web search, "
        "image generation and the user's Google Calendar."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    tags_metadata=[
        {"name": "Chat", "description": "Conversations with the assistant, one endpoint per set of tools."},
        {"name": "Calendar", "description": "Direct access to the signed-in user's calendar events."},
        {"name": "Auth", "description": "Per-user calendar client lifecycle. Sign-in happens in the front end."},
        {"name": "Health", "description": "Service health monitoring and status checks."},
    ],
)

# Credentials cannot be combined with a wildcard origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_credentials="*" not in settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

install_error_handlers(app)
app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("toolchat.main:app", host=settings.host, port=settings.port, reload=True, log_level="info")
