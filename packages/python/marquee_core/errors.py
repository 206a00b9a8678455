class DomainError(Exception):
    code: str = "domain_error"
    status: int = 400

    def __init__(self, message: str = "", *, code: str | None = None, status: int | None = None):
        super().__init__(message or self.__class__.__name__)
        if code: self.code = code
        if status: self.status = status

class NotFound(DomainError):
    code = "not_found"
    status = 404

class DimensionMismatch(DomainError):
    code = "dimension_mismatch"
    status = 422

    def __init__(self, expected: int, got: int):
        super().__init__(f"expected vector of length {expected}, got {got}")
        self.expected = expected
        self.got = got

class InvalidInteraction(DomainError):
    code = "invalid_interaction"
    status = 422

class EmbeddingUnavailable(DomainError):
    """Raised when every embedding strategy failed.

    kind is one of: auth, quota, timeout, unavailable, rejected
    """

    code = "embedding_unavailable"
    status = 503

    def __init__(self, kind: str, message: str = ""):
        super().__init__(message or f"embedding backend unavailable ({kind})")
        self.kind = kind
