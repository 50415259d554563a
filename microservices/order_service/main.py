"""
Order Microservice

Responsibilities:
- Razorpay order creation
- Razorpay webhook processing and order lifecycle
- Shiprocket shipments, tracking and serviceability
- Order tracking timelines and summary
"""

from fastapi import FastAPI, HTTPException, Depends, Header, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import uvicorn
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from core.config import get_settings
from core.logger import setup_service_logger
from .factory import create_order_service
from .order_service import OrderService
from .tracking_service import TrackingService
from .models import (
    OrderCreateRequest, OrderCreateResponse, ServiceabilityRequest,
    ShipmentCreateRequest, ShipmentResponse,
)
from .protocols import (
    DuplicateOrderError, OrderNotFoundError, OrderServiceError,
    OrderValidationError, SignatureInvalidError,
)

# Initialize configuration
config = get_settings()

# Setup loggers
logger = setup_service_logger(config.service_name, level=config.logging.log_level)


class OrderMicroservice:
    """Order microservice core class"""

    def __init__(self):
        self.order_service: Optional[OrderService] = None
        self.tracking_service: Optional[TrackingService] = None

    async def initialize(self):
        """Initialize the microservice"""
        try:
            self.order_service, self.tracking_service = create_order_service(config)
            logger.info("Order microservice initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize order microservice: {e}")
            raise

    async def shutdown(self):
        """Close provider HTTP clients"""
        if not self.order_service:
            return
        for client in (
            self.order_service.payment_gateway,
            self.order_service.carrier,
            self.order_service.notifier,
        ):
            close = getattr(client, "close", None)
            if close is None:
                continue
            try:
                await close()
            except Exception as e:
                logger.error(f"Error closing {type(client).__name__}: {e}")
        logger.info("Order microservice shutdown completed")


# Global microservice instance
order_microservice = OrderMicroservice()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management"""
    await order_microservice.initialize()
    yield
    await order_microservice.shutdown()


# Create FastAPI application
app = FastAPI(
    title="Order Service",
    description="Order creation, payment webhooks, shipping and tracking",
    version="1.0.0",
    lifespan=lifespan
)


# Dependency injection
def get_order_service() -> OrderService:
    """Get order service instance"""
    if not order_microservice.order_service:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Order service not initialized"
        )
    return order_microservice.order_service


def get_tracking_service() -> TrackingService:
    """Get tracking service instance"""
    if not order_microservice.tracking_service:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Tracking service not initialized"
        )
    return order_microservice.tracking_service


# Health check endpoints
@app.get("/health")
async def health_check():
    """Service health check"""
    return {
        "status": "healthy",
        "service": config.service_name,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": config.environment,
    }


# Order endpoints

@app.post("/api/orders/create", response_model=OrderCreateResponse)
async def create_order(
    request: OrderCreateRequest,
    order_service: OrderService = Depends(get_order_service)
):
    """Create a new Razorpay order"""
    return await order_service.create_order(request)


@app.get("/api/orders")
async def list_orders(order_service: OrderService = Depends(get_order_service)):
    """Get all orders"""
    return await order_service.list_orders()


@app.get("/api/orders/{order_id}")
async def get_order(order_id: str, order_service: OrderService = Depends(get_order_service)):
    """Get order by local or Razorpay order id"""
    return await order_service.get_order(order_id)


# Webhook endpoints

@app.post("/api/webhooks/razorpay")
async def razorpay_webhook(
    request: Request,
    x_razorpay_signature: Optional[str] = Header(None),
    order_service: OrderService = Depends(get_order_service)
):
    """Handle Razorpay webhooks; the signature covers the raw body"""
    raw_body = await request.body()
    try:
        await order_service.handle_webhook(raw_body, x_razorpay_signature)
    except (SignatureInvalidError, OrderValidationError):
        raise
    except Exception as e:
        logger.error(f"Webhook processing error: {e}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Webhook processing failed"}
        )
    return {"status": "success"}


@app.get("/api/webhooks/logs")
async def webhook_logs(order_service: OrderService = Depends(get_order_service)):
    """Last 50 payment activity entries"""
    return await order_service.payment_logs(limit=50)


# Shipment endpoints

@app.post("/api/shipments/create", response_model=ShipmentResponse, response_model_exclude_none=True)
async def create_shipment(
    request: ShipmentCreateRequest,
    order_service: OrderService = Depends(get_order_service)
):
    """Create shipment for a paid order"""
    return await order_service.create_shipment(request)


@app.get("/api/shipments/track/{awb}")
async def track_shipment(awb: str, order_service: OrderService = Depends(get_order_service)):
    """Live tracking by AWB number"""
    tracking_data = await order_service.track_awb(awb)
    return {"success": True, "tracking_data": tracking_data}


@app.post("/api/shipments/serviceability")
async def check_serviceability(
    request: ServiceabilityRequest,
    order_service: OrderService = Depends(get_order_service)
):
    """Check delivery serviceability"""
    couriers = await order_service.check_serviceability(request)
    return {"success": True, "serviceability": couriers}


@app.get("/api/shipments/logs")
async def shipment_logs(order_service: OrderService = Depends(get_order_service)):
    """All shipment activity entries"""
    return await order_service.shipment_logs()


# Tracking endpoints

@app.get("/api/tracking/order/{order_id}")
async def track_order(order_id: str, tracking_service: TrackingService = Depends(get_tracking_service)):
    """Order timeline"""
    tracking = await tracking_service.get_order_tracking(order_id)
    return {"success": True, "tracking": tracking}


@app.get("/api/tracking/shipment/{awb}")
async def track_shipment_logs(awb: str, tracking_service: TrackingService = Depends(get_tracking_service)):
    """Stored shipment activity for an AWB"""
    logs = await tracking_service.get_shipment_logs(awb)
    return {"success": True, "awb": awb, "logs": logs}


@app.get("/api/tracking/summary")
async def tracking_summary(tracking_service: TrackingService = Depends(get_tracking_service)):
    """Dashboard summary"""
    summary = await tracking_service.get_summary()
    return {"success": True, "summary": summary}


# Error handlers

def _error_response(status_code: int, exc: OrderServiceError) -> JSONResponse:
    content = {"error": exc.message}
    if exc.details:
        content["details"] = exc.details
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request, exc):
    details = "; ".join(
        f"{'.'.join(str(p) for p in err['loc'][1:]) or 'body'}: {err['msg']}" for err in exc.errors()
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Invalid request", "details": details}
    )


@app.exception_handler(OrderValidationError)
async def validation_error_handler(request, exc):
    return _error_response(status.HTTP_400_BAD_REQUEST, exc)


@app.exception_handler(SignatureInvalidError)
async def signature_error_handler(request, exc):
    return _error_response(status.HTTP_400_BAD_REQUEST, exc)


@app.exception_handler(OrderNotFoundError)
async def not_found_error_handler(request, exc):
    return _error_response(status.HTTP_404_NOT_FOUND, exc)


@app.exception_handler(DuplicateOrderError)
async def duplicate_error_handler(request, exc):
    return _error_response(status.HTTP_409_CONFLICT, exc)


@app.exception_handler(OrderServiceError)
async def service_error_handler(request, exc):
    logger.error(f"{request.method} {request.url.path} failed: {exc.message} {exc.details or ''}")
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, exc)


if __name__ == "__main__":
    uvicorn.run(
        "microservices.order_service.main:app",
        host=config.service_host,
        port=config.service_port,
        reload=config.debug,
        log_level=config.logging.log_level.lower()
    )
