class NotFoundError(ValueError):
    pass


class PermissionDeniedError(ValueError):
    pass


class DuplicateActionError(ValueError):
    pass


class UpstreamServiceError(RuntimeError):
    pass
