from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session, sessionmaker

from dong_chinese import config, middleware
from dong_chinese.db import init_db, make_engine, make_session_factory
from dong_chinese.routes import api, auth, dictionary, settings, wiki

logger = logging.getLogger(__name__)


def create_app(session_factory: Optional[sessionmaker[Session]] = None) -> FastAPI:
    """
    Build the application. Without a session factory the app connects to
    DATABASE_URL and creates any missing tables on startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if session_factory is None:
            engine = make_engine()
            init_db(engine)
            app.state.session_factory = make_session_factory(engine)
            logger.info("connected to %s", engine.url.render_as_string(hide_password=True))
            yield
            engine.dispose()
        else:
            yield

    app = FastAPI(title="Dong Chinese", lifespan=lifespan)
    if session_factory is not None:
        app.state.session_factory = session_factory

    middleware.install(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(api.router)
    app.include_router(dictionary.router)
    app.include_router(wiki.router)
    app.include_router(settings.router)
    app.include_router(auth.router)
    return app


def main() -> None:
    import uvicorn

    config.configure_logging()
    uvicorn.run(create_app(), host=config.env("HOST") or "127.0.0.1", port=int(config.env("PORT") or 8000))


if __name__ == "__main__":
    main()
