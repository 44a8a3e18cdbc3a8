from pydantic import BaseModel, Field
from typing import Optional, List, Dict
from datetime import datetime
from enum import Enum


class TopContactsMetric(str, Enum):
    VALUE = "value"
    COUNT = "count"

class TrendDirection(str, Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"

class ContactStatsItem(BaseModel):
    contact_id: int
    count: int
    total_value: float

class DocumentStats(BaseModel):
    document_type: str
    total_count: int = 0
    total_value: float = 0.0
    average_value: float = 0.0
    count_by_status: Dict[str, int] = Field(default_factory=dict)
    value_by_status: Dict[str, float] = Field(default_factory=dict)
    count_by_contact: Dict[int, int] = Field(default_factory=dict)
    top_contacts: List[ContactStatsItem] = Field(default_factory=list)
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None

class ContactConversion(BaseModel):
    contact_id: int
    quotations: int
    converted: int
    conversion_rate: float

class ConversionStats(BaseModel):
    total_quotations: int = 0
    converted_quotations: int = 0
    conversion_rate: float = 0.0
    total_quoted_value: float = 0.0
    converted_value: float = 0.0
    value_conversion_rate: float = 0.0
    average_days_to_convert: float = 0.0
    conversion_by_contact: List[ContactConversion] = Field(default_factory=list)
    expiry_distribution: Dict[str, int] = Field(default_factory=dict)

class AgingBucket(str, Enum):
    CURRENT = "current"
    DAYS_1_30 = "1-30"
    DAYS_31_60 = "31-60"
    DAYS_61_90 = "61-90"
    DAYS_91_PLUS = "91+"

class AgingItem(BaseModel):
    bucket: AgingBucket
    count: int = 0
    amount: float = 0.0

class AgingReport(BaseModel):
    as_of: datetime
    buckets: List[AgingItem]
    total_outstanding: float = 0.0
    invoice_count: int = 0

    def bucket(self, name: AgingBucket) -> AgingItem:
        return next(item for item in self.buckets if item.bucket == name)

class PeriodComparison(BaseModel):
    current_start: datetime
    current_end: datetime
    previous_start: datetime
    previous_end: datetime
    current_value: float
    previous_value: float
    current_count: int
    previous_count: int
    change_percentage: float
    trend: TrendDirection

class ConversionRateComparison(BaseModel):
    current_rate: float
    previous_rate: float
    change: float
    trend: TrendDirection

class MonthlyTrendItem(BaseModel):
    month: str
    count: int
    value: float
