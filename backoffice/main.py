from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy.exc import DBAPIError

from backoffice.config import settings
from backoffice.errors import ConcurrencyFailureError, JobWorkflowError
from backoffice.logging_config import configure_logging, get_logger
from backoffice.routers import auth, jobs, products, sources
from backoffice.security.csrf import install_csrf_cookie_middleware
from backoffice.security.headers import install_security_headers
from backoffice.security.sessions import install_auth_session_middleware

configure_logging(settings.log_level, json_output=settings.log_json)
logger = get_logger('app')

app = FastAPI(title='Back-office Job Lists')

install_security_headers(app)
install_csrf_cookie_middleware(app)
install_auth_session_middleware(app)

app.include_router(auth.router)
app.include_router(jobs.router)
app.include_router(sources.router)
app.include_router(products.router)


@app.exception_handler(JobWorkflowError)
async def workflow_error_handler(request: Request, exc: JobWorkflowError):
    if exc.status_code >= 500:
        logger.warning('command_failed', extra={'path': request.url.path, 'code': exc.code})
    return JSONResponse(exc.to_detail(), status_code=exc.status_code)


@app.exception_handler(DBAPIError)
async def database_error_handler(request: Request, exc: DBAPIError):
    logger.error('database_error', extra={'path': request.url.path}, exc_info=exc)
    failure = ConcurrencyFailureError('The operation could not be completed, please retry')
    return JSONResponse(failure.to_detail(), status_code=failure.status_code)


@app.get('/health')
def health() -> dict:
    return {'status': 'ok'}


@app.get('/robots.txt', response_class=PlainTextResponse)
def robots_txt() -> str:
    return 'User-agent: *\nDisallow: /\n'
