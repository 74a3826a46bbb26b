#!/usr/bin/env python3
"""
Briefcast FastAPI Server

Turns completed reports into multi-speaker podcasts.
Provides endpoints to request podcasts, poll their status and download them,
and runs the background job processor that generates them.
"""
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from briefcast.config import APP_NAME, APP_VERSION, SERVER_HOST, SERVER_PORT, DATABASE_URL
from briefcast.database import create_engine, create_session_factory, init_db, close_db
from briefcast.routers import health_router, podcasts_router
from briefcast.wiring import build_services


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Startup:
        - Initialize database and create tables
        - Build the service graph
        - Start job processor

    Shutdown:
        - Stop job processor (drains running jobs)
        - Close provider clients
        - Close database connections
    """
    print(f'Starting {APP_NAME} v{APP_VERSION}...')

    # Initialize database
    print('Initializing database...')
    engine = create_engine(DATABASE_URL)
    await init_db(engine)
    session_factory = create_session_factory(engine)

    services = build_services(session_factory)
    app.state.services = services

    if not services.toolchain.is_available():
        print('ffmpeg/ffprobe not found on PATH - podcasts will fail at the mixing stage')

    # Start job processor
    print('Starting job processor...')
    await services.job_processor.start()

    print(f'Server ready at http://{SERVER_HOST}:{SERVER_PORT}')
    print('API documentation available at /docs')

    yield

    # Shutdown
    print('Shutting down...')

    abandoned = await services.job_processor.stop()
    if abandoned:
        print(f'Abandoned podcast jobs (will be recovered as stale): {", ".join(abandoned)}')

    await services.close()

    # Close database
    await close_db(engine)

    print('Shutdown complete.')


# Create FastAPI application
app = FastAPI(
    title=APP_NAME,
    description='Generates multi-speaker podcasts from completed reports.',
    version=APP_VERSION,
    lifespan=lifespan,
)

# Register routers
app.include_router(health_router)
app.include_router(podcasts_router)


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    uvicorn.run(
        app,
        host=SERVER_HOST,
        port=SERVER_PORT,
        reload=False,
        log_level='info',
    )
