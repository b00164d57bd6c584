from __future__ import annotations

import logging
from functools import lru_cache
from typing import Dict

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from mail_engine.config import get_api_host, get_api_port, get_ui_origins
from mail_engine.errors import MailEngineError, describe_error
from mail_engine.models import (
    LoginResult,
    Provider,
    ProviderCredentials,
    RestoreResult,
    SavedOAuthSettings,
)
from mail_engine.providers import get_entry
from mail_engine.session import SessionOrchestrator

logger = logging.getLogger(__name__)

app = FastAPI(title="Mail Engine API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_ui_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache(maxsize=1)
def get_orchestrator() -> SessionOrchestrator:
    return SessionOrchestrator()


def _fail(action: str, error: MailEngineError) -> HTTPException:
    detail = f"{action}: {describe_error(error)}"
    logger.warning(detail)
    return HTTPException(status_code=400, detail=detail)


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/oauth/settings")
def oauth_settings(engine: SessionOrchestrator = Depends(get_orchestrator)) -> SavedOAuthSettings:
    return engine.load_oauth_settings()


@app.put("/oauth/settings/{provider}")
def save_oauth_settings(
    provider: Provider,
    credentials: ProviderCredentials,
    engine: SessionOrchestrator = Depends(get_orchestrator),
) -> SavedOAuthSettings:
    try:
        return engine.save_provider_credentials(provider, credentials)
    except MailEngineError as e:
        raise _fail(f"Could not save {get_entry(provider).label} settings", e)


@app.post("/sessions/{provider}/login")
async def login(provider: Provider, engine: SessionOrchestrator = Depends(get_orchestrator)) -> LoginResult:
    try:
        return await engine.login_and_fetch(provider)
    except MailEngineError as e:
        raise _fail(f"{get_entry(provider).label} sign-in failed", e)


@app.post("/sessions/{provider}/restore")
async def restore(provider: Provider, engine: SessionOrchestrator = Depends(get_orchestrator)) -> RestoreResult:
    try:
        return RestoreResult(session=await engine.try_restore_session(provider))
    except MailEngineError as e:
        raise _fail(f"Could not restore the {get_entry(provider).label} session", e)


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(app, host=get_api_host(), port=get_api_port())
