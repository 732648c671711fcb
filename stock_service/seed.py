"""
Seed the database with stationery products spread over the three stock statuses.

    python -m stock_service.seed --count 50
"""
import argparse
import logging
import random
import re

from stock_service import catalog, database, models
from stock_service.exceptions import DuplicateSku
from stock_service.models import StockStatus
from stock_service.utils import normalize

logger = logging.getLogger(__name__)

PRODUCT_NAMES = [
    "Caneta Azul", "Caneta Preta", "Caneta Vermelha", "Caneta Verde", "Caneta Amarela", "Caneta Marrom",
    "Lápis HB", "Lápis 2B", "Lápis Preto", "Lapiseira 0.5mm", "Lapiseira 0.7mm",
    "Borracha Branca", "Borracha Escolar",
    "Caderno Universitário", "Caderno de Desenho", "Caderno Pequeno", "Caderno Pautado", "Caderno Quadriculado",
    "Marcador de Texto Amarelo", "Marcador de Texto Rosa", "Marcador de Texto Verde", "Marcador de Texto Azul",
    "Post-it Amarelo", "Post-it Colorido",
    "Régua 30cm", "Régua 15cm",
    "Clips Metálico", "Clips Colorido",
    "Grampeador Pequeno", "Grampeador Médio",
    "Grampo 26/6", "Grampo 24/6",
    "Fita Adesiva Transparente", "Fita Adesiva Marrom", "Fita Dupla Face",
    "Tesoura Escolar", "Tesoura de Escritório",
    "Cola Branca 90g", "Cola Bastão",
    "Pasta Catálogo", "Pasta Sanfonada", "Pasta L",
    "Envelope A4", "Envelope Ofício",
    "Apontador Simples", "Apontador com Depósito",
    "Canetão Quadro Branco Preto", "Canetão Quadro Branco Azul",
    "Pincel Atômico Preto", "Pincel Atômico Vermelho",
]

# 40% OK, 30% ATTN, 30% OUT
STATUS_WEIGHTS = ((StockStatus.OK, 4), (StockStatus.ATTN, 3), (StockStatus.OUT, 3))


def make_sku(name, index):
    slug = re.sub(r"[^a-z0-9]+", "_", normalize(name)).strip("_")
    return f"{slug.upper()}_{index:03d}"


def status_plan(count, rng):
    """Shuffled list of target statuses following STATUS_WEIGHTS."""
    total_weight = sum(weight for _, weight in STATUS_WEIGHTS)
    plan = []
    for status, weight in STATUS_WEIGHTS:
        plan.extend([status] * (count * weight // total_weight))
    plan.extend([StockStatus.OK] * (count - len(plan)))
    rng.shuffle(plan)
    return plan


def opening_balance(status, min_stock, rng):
    if status is StockStatus.OK:
        return rng.randint(min_stock, min_stock + 25)
    if status is StockStatus.ATTN:
        return rng.randint(1, max(1, min_stock - 1))
    return 0


def seed(db, count=len(PRODUCT_NAMES), rng=None):
    """Create up to ``count`` products; SKUs that already exist are skipped."""
    rng = rng or random.Random()
    names = PRODUCT_NAMES[:count]
    created = []
    for index, (name, status) in enumerate(zip(names, status_plan(len(names), rng)), start=1):
        sku = make_sku(name, index)
        min_stock = rng.randint(3, 20)
        try:
            product = catalog.create_product(
                db,
                name=name,
                sku=sku,
                min_stock=min_stock,
                description=f"{name} de papelaria.",
                initial_stock=opening_balance(status, min_stock, rng),
            )
        except DuplicateSku:
            logger.info(f"Product already exists, skipping: {sku}")
            continue
        logger.info(
            f"Created {name} | SKU={sku} | min={min_stock} | balance={product['balance']} | status={product['status'].value}"
        )
        created.append(product)
    return created


def main(argv=None):
    parser = argparse.ArgumentParser(description="Seed SimpleStock with stationery products")
    parser.add_argument("--count", type=int, default=len(PRODUCT_NAMES),
                        help=f"number of products to create (max {len(PRODUCT_NAMES)})")
    parser.add_argument("--random-seed", type=int, default=None,
                        help="seed for reproducible quantities")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    models.Base.metadata.create_all(bind=database.engine)

    db = database.SessionLocal()
    try:
        created = seed(db, count=max(0, min(args.count, len(PRODUCT_NAMES))), rng=random.Random(args.random_seed))
    finally:
        db.close()
    logger.info(f"Seed finished: {len(created)} product(s) created")


if __name__ == "__main__":
    main()
