"""
Guest check-out and the live list of visitors still on site.
"""

import logging
from typing import Callable, List, Optional

from .live import LiveQuery
from .projections import VisitorHistoryState
from .repositories import VisitorLogRepository
from .schemas import VisitorLogOut, VisitorLogRow

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
def check_out_visitor(visitor_logs: VisitorLogRepository, log_id: str) -> VisitorLogOut:
    """
    Marks a visit as checked out. Checking out twice leaves the first
    check-out time in place.
    Raises VisitorLogNotFound for an unknown id.
    """
    log = visitor_logs.check_out(log_id)
    logger.info("Checked out visitor log %s at %s", log.id, log.check_out_time)
    return log


# PUBLIC_INTERFACE
class CheckOutState(VisitorHistoryState):
    """
    Check-out screen: visitors who have not left yet, with host names.
    Construct with the checked-in live query; on_check_out removes the row
    through the same live update as any other change.
    """

    def __init__(self, checked_in_logs: LiveQuery, employees: LiveQuery, visitor_logs: VisitorLogRepository,
                 listener: Optional[Callable[[List[VisitorLogRow]], None]] = None):
        self.visitor_logs = visitor_logs
        super().__init__(checked_in_logs, employees, listener)

    @property
    def checked_in_visitors(self) -> List[VisitorLogRow]:
        return self.rows

    def on_check_out(self, log_id: str) -> VisitorLogOut:
        return check_out_visitor(self.visitor_logs, log_id)

