"""
Tracking Microservice API

Real-time delivery tracking: order status transitions, partner location
ingest and live order events for customers, vendors and delivery partners.
"""

import asyncio
import os
import sys
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect, status
from fastapi.responses import JSONResponse
import uvicorn

# Add parent directory to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../.."))
from core.auth_dependencies import Identity, optional_identity
from core.config_manager import ConfigManager
from core.consul_registry import ConsulRegistry
from core.logger import setup_service_logger
from core.nats_client import get_event_bus

from .factory import create_tracking_service
from .models import (
    AvailabilityRequest,
    DeliveryPartner,
    HealthResponse,
    LocationPing,
    LocationReportResponse,
    Order,
    OrderCreateRequest,
    OrderListResponse,
    PartnerCreateRequest,
    PartnerListResponse,
    ServiceInfo,
    TransitionRequest,
    VendorStats,
)
from .protocols import (
    Conflict,
    DuplicateRecordError,
    InvalidTransition,
    OrderNotFound,
    OrderValidationError,
    PartnerNotFound,
    PartnerUnavailable,
    TrackingServiceError,
)
from .routes_registry import SERVICE_METADATA, get_routes_for_consul
from .subscription_registry import ViewerChannel
from .tracking_service import TrackingService

# Initialize config manager
config_manager = ConfigManager("tracking_service")
config = config_manager.get_service_config()

# Configure logger
logger = setup_service_logger("tracking_service", level=config.log_level.upper())

# Print config info (development)
if config.debug:
    config_manager.print_config_summary(show_secrets=False)

# Global variables
tracking_service: Optional[TrackingService] = None
event_bus = None
consul_registry = None
SERVICE_PORT = config.service_port or 8260


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle management"""
    global tracking_service, event_bus, consul_registry

    try:
        # Initialize NATS JetStream event bus
        if config.nats_enabled:
            try:
                event_bus = await get_event_bus("tracking_service", config=config_manager)
                logger.info("Event bus initialized successfully")
            except Exception as e:
                logger.warning(f"Failed to initialize event bus: {e}. Continuing without event publishing.")
                event_bus = None

        # Create tracking service using factory
        tracking_service = create_tracking_service(config=config_manager, event_bus=event_bus)
        await tracking_service.initialize()

        # Consul service registration
        if config.consul_enabled:
            try:
                route_meta = get_routes_for_consul()

                consul_meta = {
                    "version": SERVICE_METADATA["version"],
                    "capabilities": ",".join(SERVICE_METADATA["capabilities"]),
                    **route_meta,
                }

                consul_registry = ConsulRegistry(
                    service_name=SERVICE_METADATA["service_name"],
                    service_port=config.service_port,
                    consul_host=config.consul_host,
                    consul_port=config.consul_port,
                    tags=SERVICE_METADATA["tags"],
                    meta=consul_meta,
                )
                consul_registry.register()
                consul_registry.start_maintenance()
                logger.info(f"Service registered with Consul: {route_meta.get('route_count')} routes")
            except Exception as e:
                logger.warning(f"Failed to register with Consul: {e}")
                consul_registry = None

        logger.info(f"Tracking service started on port {SERVICE_PORT}")
        yield

    except Exception as e:
        logger.error(f"Failed to initialize tracking service: {e}")
        raise
    finally:
        # Cleanup
        if consul_registry:
            try:
                consul_registry.stop_maintenance()
                consul_registry.deregister()
                logger.info("Tracking service deregistered from Consul")
            except Exception as e:
                logger.error(f"Failed to deregister from Consul: {e}")
            consul_registry = None

        if event_bus:
            try:
                await event_bus.close()
                logger.info("Tracking event bus closed")
            except Exception as e:
                logger.error(f"Error closing event bus: {e}")
            event_bus = None

        if tracking_service:
            await tracking_service.close()
            tracking_service = None
            logger.info("Tracking service resources closed")


# Create FastAPI app
app = FastAPI(
    title="Tracking Service",
    description="Real-time delivery tracking: order status, partner locations and live order events",
    version="1.0.0",
    lifespan=lifespan,
)


# ====================
# Dependency Injection
# ====================


async def get_tracking_service() -> TrackingService:
    """Get tracking service instance"""
    if not tracking_service:
        raise HTTPException(status_code=503, detail="Tracking service not initialized")
    return tracking_service


# ====================
# Error Handlers
# ====================

ERROR_STATUS = {
    InvalidTransition: status.HTTP_409_CONFLICT,
    PartnerUnavailable: status.HTTP_409_CONFLICT,
    Conflict: status.HTTP_409_CONFLICT,
    DuplicateRecordError: status.HTTP_409_CONFLICT,
    OrderNotFound: status.HTTP_404_NOT_FOUND,
    PartnerNotFound: status.HTTP_404_NOT_FOUND,
    OrderValidationError: status.HTTP_400_BAD_REQUEST,
}


@app.exception_handler(TrackingServiceError)
async def tracking_error_handler(request: Request, exc: TrackingServiceError):
    status_code = ERROR_STATUS.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {status_code} {exc.error_code}: {exc}")
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error_code": exc.error_code},
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error", "error_code": "INTERNAL_ERROR"},
    )


# ====================
# Health Check and Service Info
# ====================


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check"""
    dependencies = {
        "store": config.tracking_store,
        "event_bus": "connected" if event_bus and event_bus.is_connected else "disabled",
    }
    service_status = "starting"
    subscribers = 0
    if tracking_service:
        service_status = "healthy"
        subscribers = tracking_service.registry.subscriber_count()
        if await tracking_service.check_store() is False:
            dependencies["store"] = f"{config.tracking_store} (unreachable)"
            service_status = "degraded"

    return HealthResponse(
        status=service_status,
        service="tracking_service",
        port=SERVICE_PORT,
        version="1.0.0",
        dependencies=dependencies,
        subscribers=subscribers,
    )


@app.get("/api/v1/tracking/info", response_model=ServiceInfo)
async def get_service_info():
    """Get service information"""
    return ServiceInfo(
        service="tracking_service",
        version="1.0.0",
        description="Real-time delivery tracking: order status, partner locations and live order events",
        capabilities=SERVICE_METADATA["capabilities"],
    )


# ====================
# Orders API
# ====================


@app.post("/api/v1/orders", response_model=Order, status_code=status.HTTP_201_CREATED)
async def create_order(
    request: OrderCreateRequest,
    service: TrackingService = Depends(get_tracking_service),
):
    """Place a new order (pending)"""
    return await service.create_order(request)


@app.get("/api/v1/orders/available", response_model=OrderListResponse)
async def list_available_orders(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    service: TrackingService = Depends(get_tracking_service),
):
    """Accepted orders awaiting a delivery partner"""
    orders = await service.list_available_orders(limit=limit, offset=offset)
    return OrderListResponse(orders=orders, count=len(orders))


@app.get("/api/v1/orders/{order_id}", response_model=Order)
async def get_order(
    order_id: str,
    service: TrackingService = Depends(get_tracking_service),
):
    """Get order with its tracking history"""
    return await service.get_order(order_id)


@app.post("/api/v1/orders/{order_id}/transition", response_model=Order)
async def transition_order(
    order_id: str,
    request: TransitionRequest,
    identity: Optional[Identity] = Depends(optional_identity),
    service: TrackingService = Depends(get_tracking_service),
):
    """Move an order to its next status"""
    if identity and identity.role and identity.role != request.acting_role.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Caller role '{identity.role}' does not match acting_role '{request.acting_role.value}'",
        )

    return await service.transition_order(
        order_id=order_id,
        target_status=request.target_status,
        acting_role=request.acting_role,
        partner_id=request.partner_id,
        note=request.note,
        acting_user_id=identity.user_id if identity else None,
    )


@app.get("/api/v1/customers/{customer_id}/orders", response_model=OrderListResponse)
async def list_customer_orders(
    customer_id: str,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    service: TrackingService = Depends(get_tracking_service),
):
    """Orders of a customer, newest first"""
    orders = await service.list_customer_orders(customer_id, limit=limit, offset=offset)
    return OrderListResponse(orders=orders, count=len(orders))


@app.get("/api/v1/vendors/{vendor_id}/orders", response_model=OrderListResponse)
async def list_vendor_orders(
    vendor_id: str,
    pending_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    service: TrackingService = Depends(get_tracking_service),
):
    """Orders of a vendor; pending_only for the acceptance queue"""
    orders = await service.list_vendor_orders(
        vendor_id, pending_only=pending_only, limit=limit, offset=offset
    )
    return OrderListResponse(orders=orders, count=len(orders))


@app.get("/api/v1/vendors/{vendor_id}/stats", response_model=VendorStats)
async def get_vendor_stats(
    vendor_id: str,
    service: TrackingService = Depends(get_tracking_service),
):
    """Order counts per dashboard bucket"""
    return await service.get_vendor_stats(vendor_id)


# ====================
# Delivery Partners API
# ====================


@app.post("/api/v1/partners", response_model=DeliveryPartner, status_code=status.HTTP_201_CREATED)
async def register_partner(
    request: PartnerCreateRequest,
    service: TrackingService = Depends(get_tracking_service),
):
    """Register a delivery partner"""
    return await service.register_partner(request)


@app.get("/api/v1/partners", response_model=PartnerListResponse)
async def list_partners(
    online_only: bool = Query(False),
    service: TrackingService = Depends(get_tracking_service),
):
    """Registered partners; online_only for the assignment picker"""
    partners = await service.list_partners(online_only=online_only)
    return PartnerListResponse(partners=partners, count=len(partners))


@app.get("/api/v1/partners/{partner_id}", response_model=DeliveryPartner)
async def get_partner(
    partner_id: str,
    service: TrackingService = Depends(get_tracking_service),
):
    """Get partner profile and live state"""
    return await service.get_partner(partner_id)


@app.get("/api/v1/partners/{partner_id}/active-order", response_model=Optional[Order])
async def get_active_order(
    partner_id: str,
    service: TrackingService = Depends(get_tracking_service),
):
    """Order the partner is currently delivering (null when idle)"""
    return await service.get_active_order(partner_id)


@app.put("/api/v1/partners/{partner_id}/availability", response_model=DeliveryPartner)
async def set_availability(
    partner_id: str,
    request: AvailabilityRequest,
    service: TrackingService = Depends(get_tracking_service),
):
    """Go online or offline"""
    return await service.set_availability(partner_id, request.is_online)


@app.post("/api/v1/partners/{partner_id}/location", response_model=LocationReportResponse)
async def report_location(
    partner_id: str,
    ping: LocationPing,
    service: TrackingService = Depends(get_tracking_service),
):
    """Ingest a GPS ping; rejected pings are answered accepted=false"""
    return await service.report_location(partner_id, ping)


# ====================
# Live Order Events
# ====================


async def _forward_events(websocket: WebSocket, channel: ViewerChannel):
    """Push channel events to the socket until the channel closes"""
    while True:
        event = await channel.get()
        if event is None:
            return
        await websocket.send_json(event.model_dump(mode="json"))


async def _wait_for_disconnect(websocket: WebSocket):
    """Client messages are ignored; returns when the client goes away"""
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        return


@app.websocket("/api/v1/orders/{order_id}/events")
async def order_events(
    websocket: WebSocket,
    order_id: str,
    viewer_id: Optional[str] = Query(None),
):
    """Subscription channel: streams status_changed and location_changed events"""
    service = tracking_service
    if service is None:
        await websocket.close(code=status.WS_1013_TRY_AGAIN_LATER)
        return

    viewer = viewer_id or websocket.headers.get("x-user-id") or f"viewer_{uuid.uuid4().hex[:8]}"
    try:
        channel = await service.subscribe(viewer, order_id)
    except OrderNotFound:
        logger.info(f"Viewer {viewer} tried to watch unknown order {order_id}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    sender = asyncio.create_task(_forward_events(websocket, channel))
    receiver = asyncio.create_task(_wait_for_disconnect(websocket))
    try:
        done, _ = await asyncio.wait({sender, receiver}, return_when=asyncio.FIRST_COMPLETED)
        if sender in done:
            if sender.exception() is not None:
                logger.warning(f"Event stream to viewer {viewer} failed: {sender.exception()}")
            else:
                await websocket.close()
    finally:
        for task in (sender, receiver):
            task.cancel()
        service.unsubscribe(channel.connection_id)


if __name__ == "__main__":
    uvicorn.run(
        "microservices.tracking_service.main:app",
        host=config.service_host,
        port=SERVICE_PORT,
        reload=config.debug,
        log_level=config.log_level.lower(),
    )
