"""
Web server exposing arrival predictions over HTTP.
"""

import logging
from typing import Optional

from aiohttp import web

from ..core.config import ApplicationConfig
from ..data.models.prediction import PredictionErrorKind
from ..services.ingestion_service import IngestionService
from ..services.prediction_service import PredictionService

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    PredictionErrorKind.STOP_NOT_FOUND: 404,
    PredictionErrorKind.LINE_NOT_SERVING_STOP: 400,
}


def error_response(message: str, status: int) -> web.Response:
    return web.json_response({"error": message}, status=status)


@web.middleware
async def error_middleware(request: web.Request, handler):
    """Turn unexpected failures into a generic JSON 500"""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except Exception as e:
        logger.error(f"Unhandled error serving {request.path}: {e!r}")
        return error_response("An unexpected error occurred. Please try again later.", 500)


class WebServer:
    """HTTP surface for prediction queries and service health"""
    CORS_HEADERS = {
        'Access-Control-Allow-Origin': '*',
        'Access-Control-Allow-Methods': 'GET, OPTIONS',
        'Access-Control-Allow-Headers': '*',
        'Access-Control-Max-Age': '3600',
    }

    def __init__(self, config: ApplicationConfig, prediction_service: PredictionService,
                 ingestion_service: Optional[IngestionService] = None):
        self.config = config
        self.prediction_service = prediction_service
        self.ingestion_service = ingestion_service

        self.app: Optional[web.Application] = None
        self.runner: Optional[web.AppRunner] = None
        self.site: Optional[web.TCPSite] = None

    def create_app(self) -> web.Application:
        """Create and configure the web application"""
        app = web.Application(middlewares=[error_middleware])
        app.router.add_get('/api/bus/prediction', self._handle_prediction)
        app.router.add_get('/health', self._handle_health)
        app.router.add_route('OPTIONS', '/{tail:.*}', self._handle_options)
        app.on_response_prepare.append(self._add_cors_headers)
        return app

    async def _add_cors_headers(self, request: web.Request, response: web.StreamResponse):
        response.headers.update(self.CORS_HEADERS)

    async def _handle_prediction(self, request: web.Request) -> web.Response:
        """GET /api/bus/prediction?stopCode=...&lineNum=..."""
        stop_code = request.query.get('stopCode', '').strip()
        line_number = request.query.get('lineNum', '').strip()
        if not stop_code or not line_number:
            return error_response("Please provide both stop code and bus line number.", 400)

        outcome = await self.prediction_service.predict(stop_code, line_number)
        if not outcome.ok:
            return error_response(outcome.message, ERROR_STATUS[outcome.error])

        response = web.json_response(outcome.result.to_dict())
        response.headers['Cache-Control'] = 'no-store'
        return response

    async def _handle_health(self, request: web.Request) -> web.Response:
        """GET /health"""
        body = {
            "status": "ok",
            "predictions": self.prediction_service.get_prediction_stats(),
        }
        if self.ingestion_service is not None:
            body["ingestion"] = self.ingestion_service.get_service_stats()
        return web.json_response(body)

    async def _handle_options(self, request: web.Request) -> web.Response:
        """Handle OPTIONS preflight requests"""
        return web.Response()

    async def start(self, host: Optional[str] = None, port: Optional[int] = None) -> None:
        """Start the web server"""
        host = host or self.config.host
        port = port or self.config.port
        logger.info(f"Starting web server on {host}:{port}")

        self.app = self.create_app()
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()

        self.site = web.TCPSite(self.runner, host, port)
        await self.site.start()

        logger.info(f"Web server started on {host}:{port}")

    async def stop(self) -> None:
        """Stop the web server gracefully"""
        logger.info("Stopping web server...")
        if self.site:
            await self.site.stop()
        if self.runner:
            await self.runner.cleanup()
        logger.info("Web server stopped")
