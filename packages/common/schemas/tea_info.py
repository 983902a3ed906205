"""
Parsed tea info schema (Pydantic models)
Structured fields recognized from a drink label or receipt
"""
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

TEA_FIELDS = ("brand", "name", "sugar", "ice", "price")


class ParsedTeaInfo(BaseModel):
    """
    Fields extracted from OCR text.

    Every field is independently optional. None means "not found", never an
    error, and the record carries no cross-field consistency rules.
    """
    brand: Optional[str] = Field(None, description="Known brand name as listed")
    name: Optional[str] = Field(None, description="Drink name line")
    sugar: Optional[str] = Field(None, description="Canonical sugar level, e.g. 半糖")
    ice: Optional[str] = Field(None, description="Canonical ice level, e.g. 少冰")
    price: Optional[float] = Field(None, gt=0, description="Price in yuan")

    model_config = {
        "json_schema_extra": {
            "example": {
                "brand": "喜茶",
                "name": "多肉葡萄",
                "sugar": "少糖",
                "ice": "少冰",
                "price": 28,
            }
        }
    }

    def filled_fields(self) -> List[str]:
        """Names of the fields that were recognized"""
        return [field for field in TEA_FIELDS if getattr(self, field) is not None]

    def missing_fields(self) -> List[str]:
        """Names of the fields that were not recognized"""
        return [field for field in TEA_FIELDS if getattr(self, field) is None]

    def is_empty(self) -> bool:
        return not self.filled_fields()


def merge_into_form(
    form: Dict[str, Any],
    parsed: ParsedTeaInfo,
    edited_fields: Iterable[str] = (),
    force: bool = False,
) -> Dict[str, Any]:
    """
    Merge recognized fields into user-editable form state.

    Only non-null fields are applied. Fields the user already edited by hand
    are left alone unless force=True (the user explicitly re-ran recognition).
    Price is stored as a string, the same way the form input holds it.

    Args:
        form: Current form state
        parsed: Recognition result
        edited_fields: Field names the user has touched in this session
        force: Overwrite hand-edited fields too

    Returns:
        New form state dict (the input is not mutated)
    """
    merged = dict(form)
    edited = set(edited_fields)

    for field in parsed.filled_fields():
        if field in edited and not force:
            continue
        value = getattr(parsed, field)
        if field == "price":
            value = f"{value:g}"
        merged[field] = value

    return merged
