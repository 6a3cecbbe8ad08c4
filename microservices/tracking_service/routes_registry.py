"""
Tracking Service Routes Registry

Defines service metadata and routes for Consul registration.
"""

SERVICE_METADATA = {
    "service_name": "tracking_service",
    "version": "1.0.0",
    "tags": ["v1", "tracking", "delivery", "realtime", "microservice"],
    "capabilities": [
        "order_state_machine",
        "location_ingest",
        "live_order_events",
        "partner_availability",
        "vendor_dashboard",
    ],
}

# Route definitions for API documentation and Consul
ROUTES = [
    # Health endpoints
    {"path": "/health", "methods": ["GET"], "description": "Health check"},

    # Service info
    {"path": "/api/v1/tracking/info", "methods": ["GET"], "description": "Service information"},

    # Orders
    {"path": "/api/v1/orders", "methods": ["POST"], "description": "Place order"},
    {"path": "/api/v1/orders/available", "methods": ["GET"], "description": "Accepted orders awaiting a partner"},
    {"path": "/api/v1/orders/{order_id}", "methods": ["GET"], "description": "Get order"},
    {"path": "/api/v1/orders/{order_id}/transition", "methods": ["POST"], "description": "Change order status"},
    {"path": "/api/v1/orders/{order_id}/events", "methods": ["WEBSOCKET"], "description": "Live order events"},
    {"path": "/api/v1/customers/{customer_id}/orders", "methods": ["GET"], "description": "Customer orders"},
    {"path": "/api/v1/vendors/{vendor_id}/orders", "methods": ["GET"], "description": "Vendor orders"},
    {"path": "/api/v1/vendors/{vendor_id}/stats", "methods": ["GET"], "description": "Vendor order stats"},

    # Delivery partners
    {"path": "/api/v1/partners", "methods": ["POST"], "description": "Register partner"},
    {"path": "/api/v1/partners", "methods": ["GET"], "description": "List partners"},
    {"path": "/api/v1/partners/{partner_id}", "methods": ["GET"], "description": "Get partner"},
    {"path": "/api/v1/partners/{partner_id}/location", "methods": ["POST"], "description": "Report location"},
    {"path": "/api/v1/partners/{partner_id}/active-order", "methods": ["GET"], "description": "Partner active order"},
    {"path": "/api/v1/partners/{partner_id}/availability", "methods": ["PUT"], "description": "Go online/offline"},
]


def get_routes_for_consul():
    """Get route metadata for Consul registration"""
    route_paths = [r["path"] for r in ROUTES]
    return {
        "route_count": str(len(ROUTES)),
        "routes": ",".join(route_paths[:10]),
        "api_version": "v1",
        "base_path": "/api/v1",
    }


__all__ = ["SERVICE_METADATA", "ROUTES", "get_routes_for_consul"]
