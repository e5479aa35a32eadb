import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from gateway.core.config import settings
from gateway.core.routes import router
from servicing.ordering import PaymentOrderError
from servicing.utils.api_client import UpstreamError

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.PROJECT_NAME)

# Enable CORS for Frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(UpstreamError)
async def upstream_error_handler(request: Request, exc: UpstreamError):
    logger.warning(f"{request.method} {request.url.path} -> upstream {exc.status_code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(PaymentOrderError)
async def payment_order_handler(request: Request, exc: PaymentOrderError):
    logger.info(f"Out-of-order payment refused: EMI {exc.emi_id}, next payable {exc.next_emi_id}")
    return JSONResponse(
        status_code=409,
        content={"detail": str(exc), "next_emi_id": exc.next_emi_id},
    )


app.include_router(router, prefix="/api")

@app.get("/health")
def health_check():
    return {"status": "ok", "service": "servicing-gateway"}
