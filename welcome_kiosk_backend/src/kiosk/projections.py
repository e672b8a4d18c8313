"""
Screen state derived from the live employee and visitor-log queries.
Everything here is recomputed from the latest snapshots; nothing is cached.
"""

from typing import Callable, Dict, List, Optional

from .live import LiveQuery, Subscription, combine_latest
from .schemas import EmployeeOut, VisitorLogOut, VisitorLogRow

UNKNOWN_HOST = "Unknown"


# PUBLIC_INTERFACE
def employee_name_map(employees: List[EmployeeOut]) -> Dict[str, str]:
    return {employee.id: employee.display_name for employee in employees}


# PUBLIC_INTERFACE
def visitor_log_rows(logs: List[VisitorLogOut], employees: List[EmployeeOut]) -> List[VisitorLogRow]:
    """Pairs each log with its host's current name, or "Unknown"."""
    names = employee_name_map(employees)
    return [
        VisitorLogRow(log=log, host_name=names.get(log.employee_visited_id, UNKNOWN_HOST))
        for log in logs
    ]


# PUBLIC_INTERFACE
def filter_employees(employees: List[EmployeeOut], query: Optional[str]) -> List[EmployeeOut]:
    """
    Case-insensitive substring search on first name, last name or email.
    A blank query returns the list unchanged.
    """
    needle = (query or "").strip().lower()
    if not needle:
        return list(employees)
    return [
        employee for employee in employees
        if needle in employee.first_name.lower()
        or needle in employee.last_name.lower()
        or needle in employee.email.lower()
    ]


# PUBLIC_INTERFACE
class EmployeeSelectState:
    """
    Employee picker: live directory plus the guest's search text.
    The listener receives the filtered list after every change of either.
    """

    def __init__(self, employees: LiveQuery, listener: Optional[Callable[[List[EmployeeOut]], None]] = None):
        self.search_query = ""
        self.all_employees: List[EmployeeOut] = []
        self._listener = listener
        self._subscription = employees.subscribe(self._on_employees)

    @property
    def filtered_employees(self) -> List[EmployeeOut]:
        return filter_employees(self.all_employees, self.search_query)

    def on_search_query_change(self, query: str):
        self.search_query = query
        self._emit()

    def on_clear_search(self):
        self.on_search_query_change("")

    def close(self):
        self._subscription.remove()

    def _on_employees(self, employees):
        self.all_employees = employees
        self._emit()

    def _emit(self):
        if self._listener is not None:
            self._listener(self.filtered_employees)


# PUBLIC_INTERFACE
class VisitorHistoryState:
    """
    Admin visitor log: every log with its host's name.
    """

    def __init__(self, logs: LiveQuery, employees: LiveQuery,
                 listener: Optional[Callable[[List[VisitorLogRow]], None]] = None):
        self.rows: List[VisitorLogRow] = []
        self._listener = listener
        self._subscription: Subscription = combine_latest(logs, employees, visitor_log_rows, self._on_rows)

    def _on_rows(self, rows):
        self.rows = rows
        if self._listener is not None:
            self._listener(rows)

    def close(self):
        self._subscription.remove()
