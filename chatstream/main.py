"""Telemetry sink application that chat clients post their records to."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chatstream import __version__
from chatstream.api.endpoints import router

app = FastAPI(title="Chatstream Telemetry", version=__version__)

# Browser clients post from their own origin and send no credentials
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["GET", "POST"], allow_headers=["Content-Type"])
app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=3001, log_level="info")
