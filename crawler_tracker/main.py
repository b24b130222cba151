import base64
import logging
import secrets
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler, SysLogHandler
from typing import Dict, Optional

from fastapi import BackgroundTasks, FastAPI, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.datastructures import Headers

from crawler_tracker.config import Settings, load_settings
from crawler_tracker.crud.events import clamp_limit, list_recent_events, make_record_key, record_event
from crawler_tracker.models.event import EXTRA_HEADER_NAMES, Event
from crawler_tracker.store.base import EventStore
from crawler_tracker.store.factory import get_store

APP_NAME = "crawler-tracker"

PIXEL_GIF = base64.b64decode("R0lGODlhAQABAPAAAAAAAAAAACH5BAEAAAAALAAAAAABAAEAAAICRAEAOw==")
EMPTY_CSS = "/* tracker */"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}
NO_CACHE = "no-store, no-cache, must-revalidate, max-age=0"
BEACON_HEADERS = {"Cache-Control": NO_CACHE, "Expires": "0"}


logger = logging.getLogger("crawler_tracker")


def configure_logging(settings: Settings) -> None:
    if logger.handlers:
        return
    logger.setLevel(logging.INFO)

    file_handler = RotatingFileHandler(settings.log_file, maxBytes=1_000_000, backupCount=5)
    file_handler.setLevel(logging.ERROR)

    try:
        from systemd.journal import JournalHandler

        journal_handler = JournalHandler(SYSLOG_IDENTIFIER=APP_NAME)
    except Exception:  # pragma: no cover - fallback when systemd is unavailable
        journal_handler = SysLogHandler(address="/dev/log")
    journal_handler.setLevel(logging.ERROR)

    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    for handler in (file_handler, journal_handler):
        handler.setFormatter(formatter)
        logger.addHandler(handler)


def _present(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _client_ip(req: Request) -> Optional[str]:
    cf_ip = _present(req.headers.get("cf-connecting-ip"))
    if cf_ip:
        return cf_ip
    xff = req.headers.get("x-forwarded-for")
    if xff:
        return _present(xff.split(",")[0])
    return req.client.host if req.client else None


def _parse_asn(value: Optional[str]) -> Optional[int]:
    try:
        asn = int(value) if value else 0
    except ValueError:
        return None
    return asn if asn > 0 else None


def _colo(headers: Headers) -> Optional[str]:
    # CF-Ray looks like "8f1c2d3e4f5a6b7c-SJC"
    ray = headers.get("cf-ray", "")
    if "-" not in ray:
        return None
    return _present(ray.rsplit("-", 1)[1])


def _extra_headers(headers: Headers) -> Dict[str, Optional[str]]:
    return {name: _present(headers.get(name)) for name in EXTRA_HEADER_NAMES}


def format_timestamp(now: datetime) -> str:
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_event(request: Request, now: datetime) -> Event:
    headers = request.headers
    params = request.query_params
    return Event(
        timestamp=format_timestamp(now),
        method=request.method,
        request_url=str(request.url),
        path=request.url.path,
        page=_present(params.get("page")),
        token=_present(params.get("token")),
        user_agent=_present(headers.get("user-agent")),
        referer=_present(headers.get("referer")),
        client_ip=_client_ip(request),
        country=_present(headers.get("cf-ipcountry")),
        city=_present(headers.get("cf-ipcity")),
        datacenter_colo=_colo(headers),
        asn=_parse_asn(headers.get("cf-asn")),
        as_organization=_present(headers.get("cf-as-organization")),
        extra_headers=_extra_headers(headers),
    )


def _token_accepted(settings: Settings, token: Optional[str]) -> bool:
    if not settings.require_token:
        return True
    if not token or not settings.token:
        return False
    return secrets.compare_digest(token.encode("utf-8"), settings.token.encode("utf-8"))


def create_app(settings: Optional[Settings] = None, store: Optional[EventStore] = None) -> FastAPI:
    if settings is None:
        settings = load_settings()
    configure_logging(settings)
    if store is None:
        store = get_store(settings)
    if not settings.require_token:
        logger.warning("Log retrieval authentication disabled; token is accepted but not checked")

    app = FastAPI(title=APP_NAME)
    app.state.settings = settings
    app.state.store = store

    @app.middleware("http")
    async def cors(request: Request, call_next):
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=CORS_HEADERS)
        response = await call_next(request)
        response.headers.update(CORS_HEADERS)
        return response

    def beacon(request: Request, background_tasks: BackgroundTasks, body, media_type: str) -> Response:
        try:
            now = datetime.now(timezone.utc)
            event = build_event(request, now)
            key = make_record_key(int(now.timestamp() * 1000), settings.key_prefix)
            background_tasks.add_task(record_event, store, event, key, settings.retention_seconds)
        except Exception:
            # The beacon body goes out regardless.
            logger.exception("error processing tracking request")
        return Response(content=body, media_type=media_type, headers=BEACON_HEADERS)

    @app.get("/", response_class=PlainTextResponse)
    def index() -> str:
        return (
            "Crawler Tracker Worker\n"
            f"pixel: {settings.endpoint}/pixel.gif\n"
            f"stylesheet: {settings.endpoint}/log.css\n"
            f"logs: {settings.endpoint}/api/logs\n"
        )

    @app.get("/healthz", response_class=PlainTextResponse)
    def healthz() -> str:
        return "ok"

    @app.api_route("/pixel.gif", methods=["GET", "POST"])
    def pixel(request: Request, background_tasks: BackgroundTasks) -> Response:
        return beacon(request, background_tasks, PIXEL_GIF, "image/gif")

    @app.api_route("/log.css", methods=["GET", "POST"])
    def stylesheet(request: Request, background_tasks: BackgroundTasks) -> Response:
        return beacon(request, background_tasks, EMPTY_CSS, "text/css")

    @app.get("/api/logs")
    async def get_logs(limit: Optional[str] = None, token: Optional[str] = None) -> Response:
        if not _token_accepted(settings, token):
            return PlainTextResponse("Unauthorized", status_code=403)
        try:
            records = await list_recent_events(
                store,
                clamp_limit(limit, settings.default_limit, settings.max_limit),
                settings.key_prefix,
            )
        except Exception as exc:
            logger.exception("error fetching logs")
            return JSONResponse({"error": str(exc)}, status_code=500)
        return JSONResponse(
            [record.to_wire() for record in records],
            headers={"Cache-Control": NO_CACHE},
        )

    return app


app = create_app()
