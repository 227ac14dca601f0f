import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from migration_hub.config import settings
from migration_hub.api.globals import services
from migration_hub.api.routes import conversion, migration, resources, session, system

# Configure logging
logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)

app = FastAPI(
  title='BI Migration Hub',
  version='0.1.0',
  description='Session context, backend resolution and background conversion orchestration for the migration dashboard.'
)

# CORS
app.add_middleware(
  CORSMiddleware,
  allow_origins=['*'],
  allow_credentials=True,
  allow_methods=['*'],
  allow_headers=['*']
)

# Global Exception Handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
  logger.error('Unhandled error on %s: %s', request.url.path, exc, exc_info=True)
  return JSONResponse(
    status_code=500,
    content={'message': 'Internal Server Error', 'detail': str(exc)},
  )

# Include Routers
app.include_router(system.router, tags=['System'])
app.include_router(session.router, tags=['Session'])
app.include_router(resources.router, tags=['Resources'])
app.include_router(conversion.router, tags=['Conversion'])
app.include_router(migration.router, tags=['Migration'])

@app.on_event('startup')
async def startup_event() -> None:
  logger.info('Hub started on %s:%s', settings.backend_host, settings.backend_port)

@app.on_event('shutdown')
async def shutdown_event() -> None:
  await services.close()

@app.get('/')
async def root():
  return {'message': 'BI Migration Hub API v0.1.0'}
