from typing import Dict, List, Optional
from pydantic import BaseModel, ValidationError, field_validator
from models import Product

REQUIRED_FIELDS = ("id", "name", "price", "quantity")


class DraftError(ValueError):
    """Raised when a form draft cannot be turned into a Product."""

    def __init__(self, errors: Dict[str, str]):
        self.errors = errors
        super().__init__("; ".join(f"{field}: {message}" for field, message in errors.items()))


class ProductDraft(BaseModel):
    """Form state for the create and edit flows. Every field starts empty."""

    id: str = ""
    name: str = ""
    price: str = ""
    quantity: str = ""

    @field_validator(*REQUIRED_FIELDS, mode="before")
    @classmethod
    def coerce_to_text(cls, v):
        if v is None:
            return ""
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v.strip() if isinstance(v, str) else v

    @classmethod
    def from_product(cls, product: Product) -> "ProductDraft":
        return cls(**product.model_dump())

    def to_product(self) -> Product:
        missing = {field: "Field required" for field in REQUIRED_FIELDS if not getattr(self, field)}
        if missing:
            raise DraftError(missing)
        try:
            return Product(id=self.id, name=self.name, price=self.price, quantity=self.quantity)
        except ValidationError as e:
            raise DraftError(
                {".".join(str(part) for part in err["loc"]): err["msg"] for err in e.errors()}
            ) from e


class StoreState(BaseModel):
    products: List[Product]
    selected: Optional[Product] = None
    loading: bool
    status: str
    error: Optional[str] = None
