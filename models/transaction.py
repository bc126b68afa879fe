from pydantic import BaseModel, Field, field_validator, model_validator
from datetime import date as date_type, datetime
from typing import List, Literal, Optional

TransactionType = Literal["income", "expense"]


class Attachment(BaseModel):
    filename: str
    url: str


def _strip(value):
    return value.strip() if isinstance(value, str) else value


def _clean_tags(tags):
    if tags is None:
        return []
    return [t.strip() for t in tags if isinstance(t, str) and t.strip()]


class TransactionBase(BaseModel):
    type: TransactionType
    category: str = Field(..., min_length=1, max_length=100)
    amount: float = Field(..., ge=0, allow_inf_nan=False)
    description: str = Field(..., min_length=1, max_length=200)
    date: date_type
    tags: List[str] = Field(default_factory=list)
    attachments: List[Attachment] = Field(default_factory=list)

    @field_validator("category", "description", mode="before")
    @classmethod
    def strip_text(cls, value):
        return _strip(value)

    @field_validator("tags", mode="before")
    @classmethod
    def clean_tags(cls, value):
        if isinstance(value, list):
            return _clean_tags(value)
        return value


class TransactionCreate(TransactionBase):
    pass


class TransactionUpdate(BaseModel):
    """Mise à jour partielle : seuls les champs envoyés sont modifiés"""
    type: Optional[TransactionType] = None
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    amount: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    description: Optional[str] = Field(None, min_length=1, max_length=200)
    date: Optional[date_type] = None
    tags: Optional[List[str]] = None
    attachments: Optional[List[Attachment]] = None

    @field_validator("category", "description", mode="before")
    @classmethod
    def strip_text(cls, value):
        return _strip(value)

    @field_validator("tags", mode="before")
    @classmethod
    def clean_tags(cls, value):
        if isinstance(value, list):
            return _clean_tags(value)
        return value

    @model_validator(mode="after")
    def required_fields_not_null(self):
        # Un champ obligatoire peut être omis mais pas remis à null
        for name in ("type", "category", "amount", "description", "date"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"Le champ '{name}' ne peut pas être vide")
        return self


class Transaction(TransactionBase):
    id: int
    user_id: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TransactionFilters(BaseModel):
    """Filtres communs à la liste, aux statistiques et aux exports"""
    type: Optional[TransactionType] = None
    category: Optional[str] = None
    start_date: Optional[date_type] = None
    end_date: Optional[date_type] = None
    search: Optional[str] = None

    @field_validator("category", "search", mode="before")
    @classmethod
    def blank_to_none(cls, value):
        value = _strip(value)
        return value or None
