from typing import List, NamedTuple, Optional, Sequence


class ArborError(Exception):
    pass


class FieldError(NamedTuple):
    field: str
    reason: str


class ValidationError(ArborError):
    def __init__(self, errors: Sequence[FieldError]):
        self.errors: List[FieldError] = list(errors)
        summary = "; ".join(f"{e.field} {e.reason}" for e in self.errors)
        super().__init__(f"Validation failed: {summary}")

    @property
    def field(self) -> Optional[str]:
        return self.errors[0].field if self.errors else None

    @property
    def reason(self) -> Optional[str]:
        return self.errors[0].reason if self.errors else None

    def on(self, field: str) -> List[str]:
        return [e.reason for e in self.errors if e.field == field]


class DeleteRejected(ArborError):
    def __init__(self, node_id: int):
        self.node_id = node_id
        super().__init__(f"Cannot delete record {node_id} because it has nested children.")


class IntegrityError(ArborError):
    def __init__(self, node_id: Optional[int], missing_ids: Sequence[int]):
        self.node_id = node_id
        self.missing_ids = list(missing_ids)
        super().__init__(f"Ancestry of node {node_id} references missing ids: {self.missing_ids}")


class NodeNotFoundError(ArborError):
    def __init__(self, kind: str, node_id: int):
        self.kind = kind
        self.node_id = node_id
        super().__init__(f"{kind} {node_id} not found.")


class ConfigurationError(ArborError):
    pass


class CascadeError(ArborError):
    def __init__(self, node_id: Optional[int], cause: Exception):
        self.node_id = node_id
        self.cause = cause
        super().__init__(f"Cascade aborted at node {node_id}: {cause}")
