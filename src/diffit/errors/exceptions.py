"""Exception hierarchy for the diffit API and diff pipeline."""


class DiffitError(Exception):
    """Base exception for diffit.

    Carries a stable machine-readable ``code`` and the HTTP status the API
    layer renders it with.
    """

    def __init__(self, code: str, message: str, details=None, status_code: int = 500):
        self.code = code
        self.message = message
        self.details = details
        self.status_code = status_code
        super().__init__(message)


class ValidationError(DiffitError):
    """Request validation failure."""

    def __init__(self, message: str, details=None):
        super().__init__("VALIDATION_ERROR", message, details, status_code=400)


class NotFoundError(DiffitError):
    """Resource not found."""

    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            "NOT_FOUND",
            f"{resource} '{resource_id}' not found",
            status_code=404,
        )


class ConflictError(DiffitError):
    """Resource state conflict."""

    def __init__(self, message: str, details=None):
        super().__init__("CONFLICT", message, details, status_code=409)


class DecodeError(DiffitError):
    """Image bytes could not be decoded into a pixel buffer."""

    def __init__(self, message: str, details=None):
        super().__init__("DECODE_ERROR", message, details, status_code=422)


class DimensionMismatch(DiffitError):
    """Base and comparison images have different sizes; no pixel scan was done."""

    diff_percentage = 100.0

    def __init__(self, base_size: tuple[int, int], comparison_size: tuple[int, int]):
        self.base_size = base_size
        self.comparison_size = comparison_size
        super().__init__(
            "DIMENSION_MISMATCH",
            "Image dimensions differ: base %dx%d, comparison %dx%d"
            % (base_size[0], base_size[1], comparison_size[0], comparison_size[1]),
            {
                "base": {"width": base_size[0], "height": base_size[1]},
                "comparison": {"width": comparison_size[0], "height": comparison_size[1]},
            },
            status_code=422,
        )


class NoBaseline(DiffitError):
    """No current baseline exists for a (project, name, branch, browser, viewport) tuple."""

    def __init__(self, name: str, branch: str):
        super().__init__(
            "NO_BASELINE",
            f"No baseline for '{name}' on branch '{branch}'",
            status_code=404,
        )


class PromotionConflict(DiffitError):
    """Another promotion for the same baseline tuple won the race."""

    def __init__(self, message: str = "Baseline promotion already in progress for this tuple"):
        super().__init__("PROMOTION_CONFLICT", message, status_code=409)


class NotReady(DiffitError):
    """Build finalize attempted while snapshots are still pending or processing."""

    def __init__(self, build_id: str, in_flight: int):
        super().__init__(
            "NOT_READY",
            f"Build '{build_id}' has {in_flight} snapshot(s) still in flight",
            {"build_id": build_id, "in_flight": in_flight},
            status_code=409,
        )


class StorageError(DiffitError):
    """Blob store read or write failure."""

    def __init__(self, message: str, details=None):
        super().__init__("STORAGE_ERROR", message, details, status_code=500)
