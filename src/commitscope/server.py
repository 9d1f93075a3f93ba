"""HTTP surface: repository, log, model, analysis, chat and configuration routes."""

import json
from typing import Any, Callable, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel, ValidationError

from commitscope.ai.analysis import build_analysis_request
from commitscope.ai.providers import AIProvider, get_ai_provider
from commitscope.config import AIConfig, ConfigStore, Settings
from commitscope.errors import GitServiceError, MissingInput, is_input_error
from commitscope.relay.server import stream_text
from commitscope.repository.access import GitAccess
from commitscope.repository.log import read_log_with_files
from commitscope.repository.store import looks_like_url, sanitize_repo_name
from commitscope.types.chat import ChatTurn
from commitscope.types.git import LogQuery

ProviderFactory = Callable[[AIConfig], AIProvider]


class RepoRequest(BaseModel):
    url: Optional[str] = None
    dir: Optional[str] = None


class AnalyzeRequest(BaseModel):
    commits: Any = None
    model: Optional[str] = None
    maxCommits: Any = None
    instructions: Optional[str] = None


def error_response(status_code: int, error: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": str(error)})


def parse_chat_turns(body: Any) -> List[ChatTurn]:
    """Decode the ``/read`` body: a list of JSON-encoded chat turns."""
    if not isinstance(body, list):
        raise MissingInput("Expected a list of JSON-encoded messages")
    try:
        return [ChatTurn.model_validate_json(item) if isinstance(item, str) else ChatTurn.model_validate(item) for item in body]
    except ValidationError as e:
        raise MissingInput(f"Invalid message: {e.errors()[0]['msg']}")


def create_app(
    settings: Optional[Settings] = None,
    config_store: Optional[ConfigStore] = None,
    provider_factory: ProviderFactory = get_ai_provider,
) -> FastAPI:
    """Build the FastAPI application.

    ``provider_factory`` is called with a freshly resolved configuration on
    every AI request so configuration changes apply without a restart.
    """
    settings = settings or Settings.from_env()
    config_store = config_store or ConfigStore(settings.config_file)
    access = GitAccess(repos_base=settings.repos_base, default_depth=settings.default_depth)

    app = FastAPI(title="CommitScope")
    app.state.settings = settings
    app.state.config_store = config_store
    app.state.git = access

    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return error_response(400, exc.errors()[0].get("msg", "Invalid request") if exc.errors() else "Invalid request")

    def log_target(url: Optional[str], dir_param: Optional[str]) -> str:
        if url and url.strip():
            return f"{access.repos_base}/{sanitize_repo_name(url.strip())}"
        if dir_param and dir_param.strip():
            raw = dir_param.strip()
            # A URL passed as dir maps onto its local clone.
            return f"{access.repos_base}/{sanitize_repo_name(raw)}" if looks_like_url(raw) else raw
        raise MissingInput("Missing url or dir query parameter")

    @app.post("/api/clone")
    def clone(body: RepoRequest):
        if not body.url or not body.url.strip():
            return error_response(400, "Missing url")
        try:
            target = access.clone(body.url, body.dir)
        except Exception as e:
            logger.error(f"Clone failed: {e}")
            return error_response(400 if is_input_error(e) else 500, e)
        return {"ok": True, "dir": target}

    @app.post("/api/open")
    def open_repo(body: RepoRequest):
        try:
            target = access.open(body.url, body.dir)
        except GitServiceError as e:
            logger.error(f"Open failed: {e}")
            return error_response(400, e)
        return {"ok": True, "dir": target}

    @app.get("/api/repos")
    def list_repos(baseDir: Optional[str] = None):
        try:
            return {"repos": access.list_repos(baseDir)}
        except OSError as e:
            logger.error(f"List repos failed: {e}")
            return error_response(500, e)

    @app.get("/api/log")
    def read_log(
        url: Optional[str] = None,
        dir: Optional[str] = None,
        limit: Optional[str] = None,
        depth: Optional[str] = None,
        ref: Optional[str] = None,
    ):
        try:
            target = log_target(url, dir)
            query = LogQuery.from_params(ref=ref, depth=depth, limit=limit, default_depth=access.default_depth)
            result = read_log_with_files(access, target, ref=query.ref, depth=query.depth)
        except Exception as e:
            logger.error(f"Read log failed: {e}")
            return error_response(400 if is_input_error(e) else 500, e)
        return result.model_dump(mode="json", exclude_none=True)

    @app.get("/api/ollama/models")
    async def list_models():
        try:
            provider = provider_factory(config_store.get_config())
            return {"models": await provider.list_models()}
        except Exception as e:
            logger.error(f"List models failed: {e}")
            return error_response(500, e)

    @app.post("/api/analyze-commits")
    async def analyze_commits(body: AnalyzeRequest):
        config = config_store.get_config()
        try:
            request = build_analysis_request(
                body.commits,
                config,
                model=body.model,
                max_commits=body.maxCommits,
                instructions=body.instructions,
            )
        except MissingInput as e:
            return error_response(400, e)

        logger.info(f"Analyzing {len(request.payload.commits)} commits with {request.model}")
        try:
            provider = provider_factory(config)
            return await stream_text(provider.chat(request.model, request.messages, stream=True))
        except Exception as e:
            logger.error(f"Analyze commits failed: {e}")
            return error_response(500, e)

    @app.post("/read")
    async def chat(request: Request):
        try:
            turns = parse_chat_turns(json.loads(await request.body() or b"null"))
        except (MissingInput, ValueError) as e:
            return error_response(400, e)

        config = config_store.get_config()
        logger.debug(f"Relaying {len(turns)} chat turns to {config.default_model}")
        try:
            provider = provider_factory(config)
            return await stream_text(provider.chat(config.default_model, turns, stream=True))
        except Exception as e:
            logger.error(f"Chat failed: {e}")
            return error_response(500, e)

    @app.get("/api/config")
    def get_config():
        return config_store.get_config().to_json()

    @app.post("/api/config")
    def update_config(body: AIConfig):
        try:
            config_store.update(body)
        except OSError as e:
            logger.error(f"Saving configuration failed: {e}")
            return error_response(500, e)
        return {"ok": True}

    return app
