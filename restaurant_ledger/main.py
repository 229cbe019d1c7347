# restaurant_ledger/main.py
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.utils import get_openapi

from restaurant_ledger.api.error_handlers import register_exception_handlers
from restaurant_ledger.api.routers import (
    auth,
    coupons,
    customers,
    expenses,
    orders,
    rewards,
    sales,
)
from restaurant_ledger.core.config import settings
from restaurant_ledger.core.logging import setup_logging
from restaurant_ledger.core.metrics import export_metrics
from restaurant_ledger.middleware import ObservabilityMiddleware

# --- Models registration (necesario para que Alembic los detecte) ---
import restaurant_ledger.models.record  # noqa: F401

setup_logging()

# --- Metadatos de la API para la documentación ---
TAGS_METADATA = [
    {"name": "auth", "description": "Login del administrador y emision de tokens."},
    {"name": "customers", "description": "Registro y consulta de clientes."},
    {"name": "rewards", "description": "Libro de puntos: altas, consultas y canje FIFO."},
    {"name": "coupons", "description": "Cupones y contador de usos."},
    {"name": "orders", "description": "Pedidos por mesa."},
    {"name": "expenses", "description": "Gastos del restaurante por fecha."},
    {"name": "sales", "description": "Ventas del restaurante y resumenes."},
]

app = FastAPI(
    title=settings.PROJECT_NAME,
    version="0.1.0",
    description=(
        "API del restaurante sobre una unica tabla clave-valor.\n\n"
        "- **Rewards**: Puntos por cliente con canje FIFO e idempotente.\n"
        "- **Coupons**: Contador atomico de usos.\n"
        "- **Orders / Expenses / Sales**: Registros por fecha y resumenes.\n\n"
        "Usa el botón **Authorize** para probar los endpoints protegidos."
    ),
    openapi_tags=TAGS_METADATA,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    swagger_ui_parameters={
        "persistAuthorization": True,
        "displayRequestDuration": True,
        "tryItOutEnabled": True,
    },
)

# --- Middlewares ---
app.add_middleware(ObservabilityMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Ajustar en producción para mayor seguridad
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# --- Routers ---
app.include_router(auth.router, prefix=settings.API_V1_STR)
app.include_router(customers.router, prefix=settings.API_V1_STR)
app.include_router(rewards.router, prefix=settings.API_V1_STR)
app.include_router(coupons.router, prefix=settings.API_V1_STR)
app.include_router(orders.router, prefix=settings.API_V1_STR)
app.include_router(expenses.router, prefix=settings.API_V1_STR)
app.include_router(sales.router, prefix=settings.API_V1_STR)


# --- Configuración personalizada de OpenAPI ---
def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema

    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
        tags=TAGS_METADATA,
    )

    comps = openapi_schema.setdefault("components", {}).setdefault("securitySchemes", {})
    comps["BearerAuth"] = {
        "type": "http",
        "scheme": "bearer",
        "bearerFormat": "JWT",
        "description": "Pega tu access token aquí. Formato: `Bearer <token>`",
    }
    openapi_schema["security"] = [{"BearerAuth": []}]

    app.openapi_schema = openapi_schema
    return app.openapi_schema

app.openapi = custom_openapi


# --- Endpoint raíz ---
@app.get("/", include_in_schema=False)
def root():
    return {"status": "ok", "docs_url": "/docs", "redoc_url": "/redoc"}


@app.get("/metrics", include_in_schema=False)
def metrics():
    body, content_type = export_metrics()
    return Response(content=body, media_type=content_type)
