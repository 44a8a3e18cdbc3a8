from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Generic, List, Optional, Type, TypeVar
from pydantic import BaseModel
import time

from config.logging import log_repository_operation
from core.exceptions import NotFoundError
from schemas.common import PagedResult, PaginationParams
from schemas.sales import DocumentFilter, SalesDocument

ModelType = TypeVar("ModelType", bound=BaseModel)
DocType = TypeVar("DocType", bound=SalesDocument)


class DocumentRepository(ABC, Generic[DocType]):
    """Storage contract the workflow services depend on, one per document type."""

    model: Type[DocType]

    @abstractmethod
    def get_by_id(self, document_id: int) -> DocType:
        """Return the document or raise NotFoundError"""

    @abstractmethod
    def create(self, document: DocType) -> DocType:
        """Persist a new document, assigning its id and item ids"""

    @abstractmethod
    def update(self, document: DocType) -> DocType:
        """Replace a stored document"""

    @abstractmethod
    def delete(self, document_id: int) -> None:
        """Remove a document"""

    @abstractmethod
    def get_by_status(self, status: Any, params: Optional[PaginationParams] = None) -> PagedResult[DocType]:
        """Page of documents in a status"""

    @abstractmethod
    def get_by_contact(self, contact_id: int, params: Optional[PaginationParams] = None) -> PagedResult[DocType]:
        """Page of documents for a contact"""

    @abstractmethod
    def get_by_origin_document(self, origin_id: int) -> Optional[DocType]:
        """First document derived from the given origin, if any"""

    @abstractmethod
    def list_by_origin_document(self, origin_id: int) -> List[DocType]:
        """Every document derived from the given origin"""

    @abstractmethod
    def get_all(self, params: Optional[PaginationParams] = None) -> PagedResult[DocType]:
        """Page over every document"""

    @abstractmethod
    def list_all(self) -> List[DocType]:
        """Every stored document, ordered by id"""

    @abstractmethod
    def find(self, criteria: DocumentFilter, params: Optional[PaginationParams] = None) -> PagedResult[DocType]:
        """Page of documents matching every given criterion"""


class InMemoryStore(Generic[ModelType]):
    """
    Dict-backed storage with id assignment and paging.
    Stores and returns deep copies so callers never share state with the store.
    """

    def __init__(self, model: Type[ModelType]):
        self.model = model
        self.resource_name = model.__name__
        self._rows: Dict[int, ModelType] = {}
        self._next_id = 1

    def _copy(self, obj: ModelType) -> ModelType:
        return obj.model_copy(deep=True)

    def _allocate_id(self) -> int:
        new_id = self._next_id
        self._next_id += 1
        return new_id

    def _get_row(self, obj_id: int) -> ModelType:
        row = self._rows.get(obj_id)
        if row is None:
            raise NotFoundError(self.resource_name, obj_id)
        return row

    def _insert(self, obj: ModelType) -> ModelType:
        start_time = time.perf_counter()
        stored = self._copy(obj)
        stored.id = self._allocate_id()
        self._rows[stored.id] = stored
        log_repository_operation("create", self.resource_name, duration=time.perf_counter() - start_time, row_count=1)
        return self._copy(stored)

    def _filter(self, predicate: Callable[[ModelType], bool]) -> List[ModelType]:
        return [self._copy(row) for _, row in sorted(self._rows.items()) if predicate(row)]

    def _page(self, rows: List[ModelType], params: Optional[PaginationParams]) -> PagedResult:
        params = params or PaginationParams()
        items = rows[params.offset:params.offset + params.page_size]
        return PagedResult.build(items=items, total_items=len(rows), params=params)

    def count(self) -> int:
        return len(self._rows)

    def exists(self, obj_id: int) -> bool:
        return obj_id in self._rows

    def snapshot(self) -> Dict[str, Any]:
        return {
            "rows": {key: self._copy(row) for key, row in self._rows.items()},
            "next_id": self._next_id,
        }

    def restore(self, state: Dict[str, Any]) -> None:
        self._rows = state["rows"]
        self._next_id = state["next_id"]


def matches_filter(document: SalesDocument, criteria: DocumentFilter) -> bool:
    if criteria.status is not None and getattr(document.status, "value", document.status) != criteria.status:
        return False
    if criteria.contact_id is not None and document.contact_id != criteria.contact_id:
        return False

    created = document.created_at.date() if document.created_at else None
    if criteria.date_from is not None and (created is None or created < criteria.date_from):
        return False
    if criteria.date_to is not None and (created is None or created > criteria.date_to):
        return False

    value = getattr(document, "grand_total", None)
    if criteria.min_value is not None and (value is None or value < criteria.min_value):
        return False
    if criteria.max_value is not None and (value is None or value > criteria.max_value):
        return False

    if criteria.query:
        text = [document.number, document.notes, getattr(document, "terms", "")]
        for item in getattr(document, "items", []):
            fields = getattr(item, "line", item)
            text.extend([fields.product_name, fields.product_code, fields.description])
        needle = criteria.query.lower()
        return any(needle in field.lower() for field in text if field)
    return True


class ItemIdCounter:
    """Line item ids; one counter may be shared by several repositories."""

    def __init__(self, start: int = 1):
        self.value = start

    def next_id(self) -> int:
        item_id = self.value
        self.value += 1
        return item_id


class InMemoryDocumentRepository(InMemoryStore[DocType], DocumentRepository[DocType]):
    """In-memory DocumentRepository used for tests and embedding."""

    def __init__(self, model: Type[DocType], item_ids: Optional[ItemIdCounter] = None):
        super().__init__(model)
        self.origin_field = model.origin_field
        self.item_ids = item_ids or ItemIdCounter()

    def _assign_item_ids(self, document: DocType) -> None:
        for item in getattr(document, "items", []):
            if item.id is None:
                item.id = self.item_ids.next_id()

    def get_by_id(self, document_id: int) -> DocType:
        return self._copy(self._get_row(document_id))

    def create(self, document: DocType) -> DocType:
        document = self._copy(document)
        self._assign_item_ids(document)
        return self._insert(document)

    def update(self, document: DocType) -> DocType:
        self._get_row(document.id)
        stored = self._copy(document)
        self._assign_item_ids(stored)
        self._rows[stored.id] = stored
        log_repository_operation("update", self.resource_name, row_count=1)
        return self._copy(stored)

    def delete(self, document_id: int) -> None:
        self._get_row(document_id)
        del self._rows[document_id]
        log_repository_operation("delete", self.resource_name, row_count=1)

    def get_by_status(self, status: Any, params: Optional[PaginationParams] = None) -> PagedResult[DocType]:
        wanted = getattr(status, "value", status)
        rows = self._filter(lambda doc: getattr(doc.status, "value", doc.status) == wanted)
        return self._page(rows, params)

    def get_by_contact(self, contact_id: int, params: Optional[PaginationParams] = None) -> PagedResult[DocType]:
        rows = self._filter(lambda doc: doc.contact_id == contact_id)
        return self._page(rows, params)

    def list_by_origin_document(self, origin_id: int) -> List[DocType]:
        if self.origin_field is None:
            return []
        return self._filter(lambda doc: getattr(doc, self.origin_field) == origin_id)

    def get_by_origin_document(self, origin_id: int) -> Optional[DocType]:
        matches = self.list_by_origin_document(origin_id)
        return matches[0] if matches else None

    def get_all(self, params: Optional[PaginationParams] = None) -> PagedResult[DocType]:
        return self._page(self._filter(lambda doc: True), params)

    def list_all(self) -> List[DocType]:
        return self._filter(lambda doc: True)

    def find(self, criteria: DocumentFilter, params: Optional[PaginationParams] = None) -> PagedResult[DocType]:
        return self._page(self._filter(lambda doc: matches_filter(doc, criteria)), params)

    def snapshot(self) -> Dict[str, Any]:
        state = super().snapshot()
        state["next_item_id"] = self.item_ids.value
        return state

    def restore(self, state: Dict[str, Any]) -> None:
        super().restore(state)
        self.item_ids.value = state["next_item_id"]
