"""Main FastAPI application."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from design_agent import __version__
from design_agent.api.endpoints import router
from design_agent.utils.logging import setup_logging

setup_logging()

app = FastAPI(
    title="Design Agent",
    description=(
        "A design agent that streams model output, runs tool calls inside a per-session "
        "sandbox and relays progress as UI events."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {
            "name": "Chat",
            "description": "Run queries, stop them and inspect or edit the session's conversation.",
        },
        {
            "name": "Health",
            "description": "Service health monitoring and status checks.",
        },
    ],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("design_agent.main:app", host="0.0.0.0", port=8000, reload=True, log_level="info")
