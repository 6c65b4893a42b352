from abc import ABC, abstractmethod
from typing import Optional

from models.data_models import CategorizationResult, ExpenseRecord

# First category with a keyword contained in "description merchant" wins
CATEGORY_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Alimentación", ("restaurant", "restaurante", "comida", "food", "super", "supermercado", "grocery", "mercado")),
    ("Transporte", ("gasolina", "gas", "combustible", "uber", "taxi", "transporte")),
    ("Servicios", ("electricidad", "agua", "telefono", "internet", "cable", "servicio")),
    ("Entretenimiento", ("cine", "movie", "teatro", "entertainment", "entretenimiento")),
    ("Salud", ("farmacia", "medicina", "doctor", "hospital", "clinica", "salud")),
    ("Compras", ("tienda", "store", "compra", "shopping", "mall", "centro comercial")),
)


class Categorizer(ABC):
    """Suggests a category for a stored expense.

    Returning None means "no idea". Raising is allowed too; the caller
    treats both the same way and leaves the expense uncategorized.
    """

    @abstractmethod
    def categorize(self, expense: ExpenseRecord) -> Optional[CategorizationResult]:
        ...


class KeywordCategorizer(Categorizer):
    """Matches a bilingual keyword table against description and merchant."""

    def __init__(
        self,
        keywords: tuple[tuple[str, tuple[str, ...]], ...] = CATEGORY_KEYWORDS,
        confidence: float = 0.8,
    ):
        self.keywords = keywords
        self.confidence = confidence

    def categorize(self, expense: ExpenseRecord) -> Optional[CategorizationResult]:
        text = " ".join(part for part in (expense.description, expense.merchant_name) if part).lower()
        if not text.strip():
            return None
        for category, words in self.keywords:
            if any(word in text for word in words):
                return CategorizationResult(category=category, confidence=self.confidence, method="keyword")
        return None
