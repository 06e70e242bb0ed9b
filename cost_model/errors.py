"""Exceptions raised by the cost model."""


class CostModelError(Exception):
    """Base class for cost model errors."""


class ShapeMismatch(CostModelError, ValueError):
    """A weight, statistic or feature tensor has the wrong shape."""


class InvalidConfiguration(CostModelError, ValueError):
    """A per-call setting (stage count, batch size, step size...) is out of range."""
