from app.models.finances import FinanceEntry, FinanceException, FinanceSeries
from app.models.households import Household
from app.models.tasks import Task, TaskException, TaskOccurrenceStatus

__all__ = [
    "FinanceEntry",
    "FinanceException",
    "FinanceSeries",
    "Household",
    "Task",
    "TaskException",
    "TaskOccurrenceStatus",
]
