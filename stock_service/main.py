import os
import logging
from typing import List, Optional
from fastapi import FastAPI, Depends, Query, Request, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from stock_service import __version__, catalog, database, ledger, models, schemas
from stock_service.exceptions import StockError
from stock_service.utils import parse_date, utcnow

# Environment variables
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "CORS_ORIGINS",
        "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4000",
    ).split(",")
    if origin.strip()
]
MAX_PAGE_SIZE = 100

# Configure logging
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="SimpleStock",
    description="Products, stock movements and derived stock balances",
    version=__version__,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Create database tables
models.Base.metadata.create_all(bind=database.engine)

get_db = database.get_db


def _page(page: int, page_size: int):
    return max(page, 1), min(max(page_size, 1), MAX_PAGE_SIZE)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info(f"{request.method} {request.url.path}")
    return await call_next(request)


@app.exception_handler(StockError)
async def stock_error_handler(request: Request, exc: StockError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Invalid request to {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


@app.get("/", tags=["Root"])
def read_root():
    """Root endpoint for health checks"""
    return {"status": "ok", "service": "simplestock"}


@app.get("/health", tags=["Root"])
def health_check():
    return {
        "status": "ok",
        "timestamp": utcnow().isoformat(),
        "environment": ENVIRONMENT,
    }


@app.get("/api/products", response_model=schemas.ProductPage, tags=["Products"])
def read_products(
    search: Optional[str] = None,
    status_filter: Optional[List[str]] = Query(None, alias="status"),
    sort_by: str = "name",
    sort_dir: str = "asc",
    page: int = 1,
    page_size: int = 10,
    db: Session = Depends(get_db),
):
    """List products with balance and status, filtered, sorted and paginated"""
    page, page_size = _page(page, page_size)
    items, total = catalog.list_products(
        db,
        search=search,
        statuses=status_filter,
        sort_by=sort_by,
        sort_dir=sort_dir,
        page=page,
        page_size=page_size,
    )
    return {"items": items, "total": total, "page": page, "page_size": page_size}


@app.post("/api/products", response_model=schemas.ProductWithBalance, status_code=status.HTTP_201_CREATED, tags=["Products"])
def create_product(product: schemas.ProductCreate, db: Session = Depends(get_db)):
    """Create a new product"""
    logger.info(f"Creating product: {product.name} ({product.sku})")
    return catalog.create_product(
        db,
        name=product.name,
        sku=product.sku,
        min_stock=product.min_stock,
        description=product.description,
        initial_stock=product.initial_stock,
    )


@app.get("/api/products/{product_id}", response_model=schemas.ProductWithBalance, tags=["Products"])
def read_product(product_id: int, db: Session = Depends(get_db)):
    """Get product by ID with its current balance"""
    return catalog.get_product(db, product_id)


@app.put("/api/products/{product_id}", response_model=schemas.ProductWithBalance, tags=["Products"])
def update_product(product_id: int, product: schemas.ProductUpdate, db: Session = Depends(get_db)):
    """Update a product"""
    logger.info(f"Updating product with ID: {product_id}")
    return catalog.update_product(db, product_id, product.model_dump(exclude_unset=True))


@app.delete("/api/products/{product_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["Products"])
def delete_product(product_id: int, db: Session = Depends(get_db)):
    """Delete a product and all of its movements"""
    logger.info(f"Deleting product with ID: {product_id}")
    catalog.delete_product(db, product_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/api/products/{product_id}/movements", response_model=schemas.MovementPage, tags=["Movements"])
def read_movements(
    product_id: int,
    movement_type: Optional[models.MovementType] = Query(None, alias="type"),
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    q: Optional[str] = None,
    page: int = 1,
    page_size: int = 20,
    db: Session = Depends(get_db),
):
    """Get a page of a product's movements, newest first"""
    page, page_size = _page(page, page_size)
    items, total = ledger.list_movements(
        db,
        product_id,
        movement_type=movement_type,
        date_from=parse_date(date_from),
        date_to=parse_date(date_to),
        note_contains=(q or "").strip() or None,
        page=page,
        page_size=page_size,
    )
    return {"items": items, "total": total, "page": page, "page_size": page_size}


@app.post("/api/products/{product_id}/movements", response_model=schemas.Movement, status_code=status.HTTP_201_CREATED, tags=["Movements"])
def create_movement(product_id: int, movement: schemas.MovementCreate, db: Session = Depends(get_db)):
    """Record an IN or OUT movement; OUT may not exceed the current balance"""
    logger.info(f"Recording {movement.type.value} of {movement.quantity} for product ID: {product_id}")
    return ledger.record_movement(
        db,
        product_id,
        movement.type,
        movement.quantity,
        date=movement.date,
        note=movement.note,
    )


@app.post("/api/products/{product_id}/zero-out", response_model=schemas.ZeroOutResult, tags=["Movements"])
def zero_out_product(product_id: int, db: Session = Depends(get_db)):
    """Bring a product's balance to zero with one OUT movement"""
    logger.info(f"Zeroing stock for product ID: {product_id}")
    movement = ledger.zero_out(db, product_id)
    return {
        "product_id": product_id,
        "movement": movement,
        "balance": ledger.compute_balance(db, product_id),
    }


@app.post("/api/quick-out", response_model=schemas.QuickOutResult, tags=["Quick out"])
def quick_out(payload: schemas.QuickOutCreate, db: Session = Depends(get_db)):
    """Quick OUT movement for a product, returning the new balance"""
    logger.info(f"Quick out of {payload.quantity} for product ID: {payload.product_id}")
    return ledger.quick_out(db, payload.product_id, payload.quantity, note=payload.note)


@app.get("/api/quick-out/history", response_model=schemas.QuickOutHistoryPage, tags=["Quick out"])
def quick_out_history(
    q: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    page: int = 1,
    page_size: int = 20,
    db: Session = Depends(get_db),
):
    """OUT movements across all products, searchable by product name, SKU or note"""
    page, page_size = _page(page, page_size)
    items, total = ledger.quick_out_history(
        db,
        q=(q or "").strip() or None,
        date_from=parse_date(date_from),
        date_to=parse_date(date_to),
        page=page,
        page_size=page_size,
    )
    return {"items": items, "total": total, "page": page, "page_size": page_size}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "stock_service.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=ENVIRONMENT == "development",
    )
