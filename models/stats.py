from pydantic import BaseModel
from typing import List, Literal


class Summary(BaseModel):
    income: float = 0
    expense: float = 0
    balance: float = 0
    totalTransactions: int = 0


class CategoryStat(BaseModel):
    category: str
    type: Literal["income", "expense"]
    total: float
    count: int


class MonthStat(BaseModel):
    month: int  # 1-12
    type: Literal["income", "expense"]
    total: float
    count: int


class SummaryResponse(BaseModel):
    success: bool = True
    data: Summary


class CategoryStatsResponse(BaseModel):
    success: bool = True
    data: List[CategoryStat]


class MonthStatsResponse(BaseModel):
    success: bool = True
    data: List[MonthStat]
