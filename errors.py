class NotFoundError(ValueError):
    """Entity is missing or belongs to another owner.

    Both cases carry the same message so callers cannot discover other
    users' data.
    """


class ValidationError(ValueError):
    pass


class ConflictError(ValueError):
    pass
