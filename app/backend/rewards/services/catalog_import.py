"""
Catalog import for operators: loads products from a JSON file and upserts
them by name.
"""

import json
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

import structlog

from rewards.models.product import Product
from rewards.core.exceptions import ValidationError


logger = structlog.get_logger(__name__)


class ProductRecord(BaseModel):
    """One product entry of an import file."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str = Field(min_length=1, max_length=200)
    price: Decimal = Field(ge=0)
    description: Optional[str] = None
    image: Optional[str] = None
    is_task: bool = True
    status: bool = True


@dataclass
class ImportSummary:
    created: int = 0
    updated: int = 0

    @property
    def total(self) -> int:
        return self.created + self.updated


def load_products_file(path: Union[str, Path]) -> List[ProductRecord]:
    """
    Parse a product import file.

    Accepts either a JSON list of products or an object with a "products" list.

    Raises:
        ValidationError: Unreadable file, bad JSON or invalid entries
    """
    path = Path(path)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ValidationError(f"Cannot read {path}", {"file": str(e)})
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid JSON in {path}", {"file": str(e)})

    if isinstance(raw, dict):
        raw = raw.get("products")
    if not isinstance(raw, list):
        raise ValidationError("Import file must contain a list of products", {"file": str(path)})

    records = []
    for index, entry in enumerate(raw):
        try:
            records.append(ProductRecord.model_validate(entry))
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid product at position {index}",
                {str(err["loc"][-1]) if err["loc"] else "entry": err["msg"] for err in e.errors()}
            )
    return records


async def import_products(db: AsyncSession, records: List[ProductRecord]) -> ImportSummary:
    """Insert new products and update existing ones matched by name. Flushes only."""
    summary = ImportSummary()

    for record in records:
        result = await db.execute(select(Product).where(Product.name == record.name))
        product = result.scalar_one_or_none()

        if product is None:
            db.add(Product(
                name=record.name,
                price=record.price,
                description=record.description,
                image=record.image,
                is_task=record.is_task,
                status=record.status
            ))
            summary.created += 1
        else:
            product.price = record.price
            product.description = record.description
            product.image = record.image
            product.is_task = record.is_task
            product.status = record.status
            summary.updated += 1

    await db.flush()
    logger.info("Products imported", created=summary.created, updated=summary.updated)
    return summary
