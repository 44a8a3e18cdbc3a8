"""
Human readable document numbers: PREFIX-YYYYMMDD-NNNN.
"""

import threading
import time
from datetime import datetime
from typing import Dict, Optional

from config.settings import Settings, get_settings
from schemas.common import DocumentType
from utils.date_utils import Clock, DateUtils, SystemClock


class SequenceGenerator:
    """In-process counter wrapped at ``modulo``; assumes one writer per process."""

    def __init__(self, modulo: int = 10000, start: int = 0):
        if modulo <= 0:
            raise ValueError("modulo must be positive")
        self.modulo = modulo
        self._value = start % modulo
        self._lock = threading.Lock()

    def next_sequence(self) -> int:
        with self._lock:
            self._value = (self._value + 1) % self.modulo
            return self._value


class TimestampSequenceGenerator(SequenceGenerator):
    """Unix seconds modulo ``modulo``. Two calls in the same second repeat."""

    def __init__(self, modulo: int = 10000, time_func=time.time):
        super().__init__(modulo=modulo)
        self._time_func = time_func

    def next_sequence(self) -> int:
        return int(self._time_func()) % self.modulo


def format_document_number(prefix: str, when: datetime, sequence: int, width: int = 4) -> str:
    return f"{prefix}-{DateUtils.code_date(when)}-{sequence:0{width}d}"


class DocumentNumberGenerator:
    """Numbers documents per type, one sequence per type."""

    def __init__(self, settings: Optional[Settings] = None, clock: Optional[Clock] = None,
                 sequences: Optional[Dict[DocumentType, SequenceGenerator]] = None):
        self.settings = settings or get_settings()
        self.clock = clock or SystemClock(self.settings.TIMEZONE)
        self.prefixes = {
            DocumentType.QUOTATION: self.settings.QUOTATION_PREFIX,
            DocumentType.SALES_ORDER: self.settings.SALES_ORDER_PREFIX,
            DocumentType.PURCHASE_ORDER: self.settings.PURCHASE_ORDER_PREFIX,
            DocumentType.INVOICE: self.settings.INVOICE_PREFIX,
            DocumentType.DELIVERY: self.settings.DELIVERY_PREFIX,
        }
        self.sequences = sequences or {doc_type: self._new_sequence() for doc_type in DocumentType}
        self._width = len(str(self.settings.SEQUENCE_MODULO - 1))

    def _new_sequence(self) -> SequenceGenerator:
        if self.settings.USE_TIMESTAMP_SEQUENCE:
            return TimestampSequenceGenerator(modulo=self.settings.SEQUENCE_MODULO)
        return SequenceGenerator(modulo=self.settings.SEQUENCE_MODULO)

    def next_number(self, doc_type: DocumentType) -> str:
        doc_type = DocumentType(doc_type)
        sequence = self.sequences[doc_type].next_sequence()
        return format_document_number(self.prefixes[doc_type], self.clock.now(), sequence, self._width)
