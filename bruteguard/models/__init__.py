from .failure_counter import FailureCounter, TABLE_NAME

__all__ = [
    "FailureCounter",
    "TABLE_NAME",
]
