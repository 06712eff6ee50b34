from __future__ import annotations

import asyncio
import logging
import time
import uuid
from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session
from starlette.middleware.base import BaseHTTPMiddleware

from campus_booking.core.config import settings
from campus_booking.db.session import get_db
from campus_booking.logging_utils import (
    configure_logging,
    get_current_actor,
    get_request_id,
    log_context,
    set_actor_context,
)
from campus_booking.metrics import REQUEST_COUNTER, REQUEST_LATENCY
from campus_booking.services import (
    SchedulingError,
    accept_booking,
    cancel_booking,
    cancel_reservation,
    complete_booking,
    create_booking,
    create_resource,
    create_template,
    delete_resource,
    delete_template,
    get_reservation,
    get_resource,
    list_bookings,
    list_reservations,
    list_resources,
    list_templates,
    list_user_reservations,
    move_reservation,
    provider_availability,
    read_booking,
    reopen_booking,
    reschedule_booking,
    reserve,
    serialize_booking,
    serialize_reservation,
    serialize_resource,
    serialize_template,
    update_resource,
    update_template,
)
from campus_booking.services.errors import Forbidden
from campus_booking.services.scheduling import campus_timezone, to_utc

configure_logging(settings.log_level)

app = FastAPI(title=settings.app_name, version="0.1.0")

logger = logging.getLogger(__name__)


class SimpleRateLimiter:
    """In-memory rate limiter keyed by IP and acting user."""

    def __init__(self, limit: int, window_seconds: int) -> None:
        self.limit = max(1, limit)
        self.window_seconds = max(1, window_seconds)
        self._entries: dict[str, tuple[int, float]] = {}
        self._lock = asyncio.Lock()

    async def allow(self, key: str) -> bool:
        now = time.monotonic()
        async with self._lock:
            count, window_start = self._entries.get(key, (0, now))
            if now - window_start >= self.window_seconds:
                self._entries[key] = (1, now)
                return True
            if count >= self.limit:
                return False
            self._entries[key] = (count + 1, window_start)
            return True


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Populate request and actor context for logging."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        actor_hint = request.headers.get("X-User-ID")

        request.state.request_id = request_id
        with log_context(request_id, actor_hint):
            response = await call_next(request)

        response.headers["X-Request-ID"] = request_id
        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Apply a coarse rate limit per IP and acting user."""

    def __init__(self, app: FastAPI, limiter: SimpleRateLimiter) -> None:  # type: ignore[override]
        super().__init__(app)
        self.limiter = limiter

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        if request.method == "OPTIONS":
            return await call_next(request)

        client_host = request.client.host if request.client else "unknown"
        actor_value = request.headers.get("X-User-ID") or "anonymous"
        rate_key = f"{client_host}:{actor_value}"

        allowed = await self.limiter.allow(rate_key)
        if not allowed:
            logger.warning(
                "rate limit exceeded",
                extra={"client_ip": client_host, "actor": actor_value},
            )
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"detail": "Rate limit exceeded"},
            )

        return await call_next(request)


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Emit structured access logs and feed metrics."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        start_time = time.perf_counter()
        path = request.scope.get("root_path", "") + request.scope.get("path", request.url.path)
        method = request.method

        try:
            response = await call_next(request)
        except Exception:
            elapsed = time.perf_counter() - start_time
            REQUEST_COUNTER.labels(method=method, path=path, status="500").inc()
            REQUEST_LATENCY.labels(method=method, path=path).observe(elapsed)
            logger.exception(
                "request failed",
                extra={
                    "method": method,
                    "path": path,
                    "duration_ms": round(elapsed * 1000, 2),
                },
            )
            raise

        elapsed = time.perf_counter() - start_time
        status_code = response.status_code

        REQUEST_COUNTER.labels(method=method, path=path, status=str(status_code)).inc()
        REQUEST_LATENCY.labels(method=method, path=path).observe(elapsed)

        logger.info(
            "request completed",
            extra={
                "method": method,
                "path": path,
                "status_code": status_code,
                "duration_ms": round(elapsed * 1000, 2),
            },
        )

        return response


rate_limiter = SimpleRateLimiter(
    settings.rate_limit_requests, settings.rate_limit_window_seconds
)


app.add_middleware(RequestContextMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RateLimitMiddleware, limiter=rate_limiter)
app.add_middleware(AccessLogMiddleware)


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError) -> JSONResponse:
    level = logging.WARNING if exc.status_code in (403, 409) else logging.INFO
    logger.log(
        level,
        "request rejected",
        extra={
            "error": exc.code,
            "detail": exc.message,
            "path": request.url.path,
            "actor": get_current_actor(),
            "request": get_request_id(),
        },
    )
    return JSONResponse(status_code=exc.status_code, content=exc.as_dict())


def acting_user(x_user_id: str | None = Header(default=None)) -> str:
    """Identity resolved by the page layer; the API only checks ownership."""

    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-ID header required",
        )
    set_actor_context(x_user_id.strip())
    return x_user_id.strip()


def acting_is_admin(x_user_role: str | None = Header(default=None)) -> bool:
    return (x_user_role or "").strip().lower() == "admin"


def _require_admin(is_admin: bool) -> None:
    if not is_admin:
        raise Forbidden("Only admins can manage resources")


def _utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    return to_utc(value, campus_timezone())


class TemplateCreate(BaseModel):
    subject: str
    modality: str
    day_of_week: str
    start_time: str
    end_time: str
    location: str | None = None
    active: bool = True


class TemplateUpdate(BaseModel):
    subject: str | None = None
    modality: str | None = None
    day_of_week: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    location: str | None = None
    active: bool | None = None


class BookingCreate(BaseModel):
    provider_id: str
    start_ts: datetime
    end_ts: datetime
    topic: str
    modality: str = "presencial"
    location: str | None = None
    description: str | None = None
    notes: str | None = None


class BookingReschedule(BaseModel):
    start_ts: datetime
    end_ts: datetime


class ResourceCreate(BaseModel):
    name: str
    kind: str
    capacity: int = 1
    location: str | None = None
    description: str | None = None
    active: bool = True


class ResourceUpdate(BaseModel):
    name: str | None = None
    kind: str | None = None
    capacity: int | None = None
    location: str | None = None
    description: str | None = None
    active: bool | None = None


class ReservationCreate(BaseModel):
    start_ts: datetime
    duration_hours: float = Field(default=1.0)
    notes: str | None = None


class ReservationMove(BaseModel):
    start_ts: datetime


@app.get("/metrics")
def metrics() -> Response:
    """Expose Prometheus metrics for scraping."""

    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/health")
def health() -> dict[str, str]:
    """Health check endpoint used by infrastructure probes."""

    return {"status": "ok"}


@app.get("/api/v1/providers/{provider_id}/availability")
def get_provider_availability(
    provider_id: str,
    horizon_days: int | None = Query(default=None),
    granularity_minutes: int | None = Query(default=None),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Return open slots for a provider over the requested horizon."""

    tz = campus_timezone()
    slots = provider_availability(
        db,
        provider_id,
        horizon_days=horizon_days,
        granularity_minutes=granularity_minutes,
        tz=tz,
    )
    return {
        "provider_id": provider_id,
        "timezone": getattr(tz, "key", str(tz)),
        "slots": [slot.as_dict(tz) for slot in slots],
    }


@app.post("/api/v1/templates", status_code=status.HTTP_201_CREATED)
def post_template(
    payload: TemplateCreate,
    user_id: str = Depends(acting_user),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    template = create_template(db, provider_id=user_id, **payload.model_dump())
    return {"template": serialize_template(template)}


@app.get("/api/v1/templates")
def get_templates(
    provider_id: str | None = None,
    include_inactive: bool = False,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    templates = list_templates(
        db, provider_id=provider_id, include_inactive=include_inactive
    )
    return {"templates": [serialize_template(item) for item in templates]}


@app.api_route("/api/v1/templates/{template_id}", methods=["PUT", "PATCH"])
def put_template(
    template_id: UUID,
    payload: TemplateUpdate,
    user_id: str = Depends(acting_user),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Full or partial update; only the fields sent are applied."""

    template = update_template(
        db,
        template_id,
        acting_user_id=user_id,
        changes=payload.model_dump(exclude_unset=True),
    )
    return {"template": serialize_template(template)}


@app.delete("/api/v1/templates/{template_id}")
def remove_template(
    template_id: UUID,
    user_id: str = Depends(acting_user),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    delete_template(db, template_id, acting_user_id=user_id)
    return {"status": "deleted", "template_id": str(template_id)}


@app.post("/api/v1/bookings", status_code=status.HTTP_201_CREATED)
def post_booking(
    payload: BookingCreate,
    user_id: str = Depends(acting_user),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Request a session with a provider; the booking starts pending."""

    tz = campus_timezone()
    booking = create_booking(
        db,
        provider_id=payload.provider_id,
        requester_id=user_id,
        start=to_utc(payload.start_ts, tz),
        end=to_utc(payload.end_ts, tz),
        topic=payload.topic,
        modality=payload.modality,
        location=payload.location,
        description=payload.description,
        notes=payload.notes,
    )
    return {"booking": serialize_booking(booking, tz=tz)}


@app.get("/api/v1/bookings")
def get_bookings(
    provider_id: str | None = None,
    requester_id: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int | None = Query(default=None),
    page: int | None = Query(default=None),
    user_id: str = Depends(acting_user),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """List bookings for a provider and/or requester; defaults to the caller's own."""

    if not provider_id and not requester_id:
        requester_id = user_id
    tz = campus_timezone()
    bookings = list_bookings(
        db,
        provider_id=provider_id,
        requester_id=requester_id,
        window_start=_utc(start),
        window_end=_utc(end),
        limit=limit,
        page=page,
    )
    return {"bookings": [serialize_booking(item, tz=tz) for item in bookings]}


@app.get("/api/v1/bookings/{booking_id}")
def get_one_booking(
    booking_id: UUID,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    booking = read_booking(db, booking_id)
    return {"booking": serialize_booking(booking, tz=campus_timezone())}


@app.post("/api/v1/bookings/{booking_id}/accept")
def post_accept_booking(
    booking_id: UUID,
    user_id: str = Depends(acting_user),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    booking = accept_booking(db, booking_id, acting_provider_id=user_id)
    return {"booking": serialize_booking(booking, tz=campus_timezone())}


@app.post("/api/v1/bookings/{booking_id}/reopen")
def post_reopen_booking(
    booking_id: UUID,
    user_id: str = Depends(acting_user),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    booking = reopen_booking(db, booking_id, acting_provider_id=user_id)
    return {"booking": serialize_booking(booking, tz=campus_timezone())}


@app.post("/api/v1/bookings/{booking_id}/cancel")
def post_cancel_booking(
    booking_id: UUID,
    user_id: str = Depends(acting_user),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    booking = cancel_booking(db, booking_id, acting_user_id=user_id)
    return {"booking": serialize_booking(booking, tz=campus_timezone())}


@app.post("/api/v1/bookings/{booking_id}/reschedule")
def post_reschedule_booking(
    booking_id: UUID,
    payload: BookingReschedule,
    user_id: str = Depends(acting_user),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    tz = campus_timezone()
    booking = reschedule_booking(
        db,
        booking_id,
        acting_provider_id=user_id,
        new_start=to_utc(payload.start_ts, tz),
        new_end=to_utc(payload.end_ts, tz),
    )
    return {"booking": serialize_booking(booking, tz=tz)}


@app.post("/api/v1/bookings/{booking_id}/complete")
def post_complete_booking(
    booking_id: UUID,
    user_id: str = Depends(acting_user),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    booking = complete_booking(db, booking_id, acting_user_id=user_id)
    return {"booking": serialize_booking(booking, tz=campus_timezone())}


@app.post("/api/v1/resources", status_code=status.HTTP_201_CREATED)
def post_resource(
    payload: ResourceCreate,
    user_id: str = Depends(acting_user),
    is_admin: bool = Depends(acting_is_admin),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    _require_admin(is_admin)
    resource = create_resource(db, **payload.model_dump())
    return {"resource": serialize_resource(resource)}


@app.get("/api/v1/resources")
def get_resources(
    kind: str | None = None,
    active: bool | None = None,
    limit: int | None = Query(default=None),
    page: int | None = Query(default=None),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    resources = list_resources(db, kind=kind, active=active, limit=limit, page=page)
    return {"resources": [serialize_resource(item) for item in resources]}


@app.get("/api/v1/resources/{resource_id}")
def get_one_resource(
    resource_id: UUID,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    return {"resource": serialize_resource(get_resource(db, resource_id))}


@app.api_route("/api/v1/resources/{resource_id}", methods=["PUT", "PATCH"])
def put_resource(
    resource_id: UUID,
    payload: ResourceUpdate,
    user_id: str = Depends(acting_user),
    is_admin: bool = Depends(acting_is_admin),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    _require_admin(is_admin)
    resource = update_resource(db, resource_id, payload.model_dump(exclude_unset=True))
    return {"resource": serialize_resource(resource)}


@app.delete("/api/v1/resources/{resource_id}")
def remove_resource(
    resource_id: UUID,
    user_id: str = Depends(acting_user),
    is_admin: bool = Depends(acting_is_admin),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Delete a resource together with its reservations."""

    _require_admin(is_admin)
    removed = delete_resource(db, resource_id, actor=user_id)
    return {"deleted": True, "reservations_removed": removed}


@app.post(
    "/api/v1/resources/{resource_id}/reservations",
    status_code=status.HTTP_201_CREATED,
)
def post_reservation(
    resource_id: UUID,
    payload: ReservationCreate,
    user_id: str = Depends(acting_user),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Reserve a resource; the reservation is confirmed immediately."""

    tz = campus_timezone()
    reservation = reserve(
        db,
        resource_id=resource_id,
        requester_id=user_id,
        start=to_utc(payload.start_ts, tz),
        duration_hours=payload.duration_hours,
        notes=payload.notes,
    )
    return {"reservation": serialize_reservation(reservation, tz=tz)}


@app.get("/api/v1/resources/{resource_id}/reservations")
def get_reservations(
    resource_id: UUID,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int | None = Query(default=None),
    page: int | None = Query(default=None),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    tz = campus_timezone()
    reservations = list_reservations(
        db,
        resource_id,
        window_start=_utc(start),
        window_end=_utc(end),
        limit=limit,
        page=page,
    )
    return {
        "resource_id": str(resource_id),
        "reservations": [serialize_reservation(item, tz=tz) for item in reservations],
    }


@app.get("/api/v1/resources/{resource_id}/reservations/{reservation_id}")
def get_one_reservation(
    resource_id: UUID,
    reservation_id: UUID,
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    reservation = get_reservation(db, reservation_id, resource_id)
    return {"reservation": serialize_reservation(reservation, tz=campus_timezone())}


@app.put("/api/v1/resources/{resource_id}/reservations/{reservation_id}")
def put_reservation(
    resource_id: UUID,
    reservation_id: UUID,
    payload: ReservationMove,
    user_id: str = Depends(acting_user),
    is_admin: bool = Depends(acting_is_admin),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Move a reservation to a new start, keeping its duration."""

    tz = campus_timezone()
    reservation = move_reservation(
        db,
        reservation_id=reservation_id,
        acting_user_id=user_id,
        resource_id=resource_id,
        new_start=to_utc(payload.start_ts, tz),
        acting_is_admin=is_admin,
    )
    return {"reservation": serialize_reservation(reservation, tz=tz)}


@app.delete("/api/v1/resources/{resource_id}/reservations/{reservation_id}")
def delete_reservation(
    resource_id: UUID,
    reservation_id: UUID,
    user_id: str = Depends(acting_user),
    is_admin: bool = Depends(acting_is_admin),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    """Cancel a reservation. The record is kept with status ``cancelled``."""

    reservation = cancel_reservation(
        db,
        reservation_id=reservation_id,
        acting_user_id=user_id,
        resource_id=resource_id,
        acting_is_admin=is_admin,
    )
    return {"reservation": serialize_reservation(reservation, tz=campus_timezone())}


@app.get("/api/v1/reservations/mine")
def get_my_reservations(
    limit: int | None = Query(default=None, ge=1),
    user_id: str = Depends(acting_user),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    tz = campus_timezone()
    reservations = list_user_reservations(db, user_id, limit=limit)
    return {
        "user_id": user_id,
        "reservations": [serialize_reservation(item, tz=tz) for item in reservations],
    }
