"""
Task planning: which sub-tasks a request kind runs, in order.
"""

import logging
from enum import Enum
from typing import Dict, List, Union

from .errors import UnsupportedRequestKind
from .models import RequestKind

logger = logging.getLogger(__name__)


class SubTask(str, Enum):
    DRAFT = "draft"
    ANALYZE = "analyze"
    PRIORITIZE = "prioritize"
    EXTRACT_ACTIONS = "extract_actions"
    SUMMARIZE = "summarize"
    CATEGORIZE = "categorize"


PLANS: Dict[RequestKind, List[SubTask]] = {
    RequestKind.DRAFT: [SubTask.DRAFT],
    RequestKind.ANALYZE: [SubTask.ANALYZE, SubTask.PRIORITIZE, SubTask.EXTRACT_ACTIONS],
    RequestKind.SUMMARIZE: [SubTask.SUMMARIZE],
    RequestKind.CATEGORIZE: [SubTask.CATEGORIZE],
}


def parse_request_kind(kind: Union[RequestKind, str]) -> RequestKind:
    if isinstance(kind, RequestKind):
        return kind
    try:
        return RequestKind(str(kind).strip().lower())
    except ValueError:
        raise UnsupportedRequestKind(kind) from None


class TaskPlanner:
    def plan(self, kind: Union[RequestKind, str]) -> List[SubTask]:
        """Return a fresh, ordered plan for kind."""
        request_kind = parse_request_kind(kind)
        plan = PLANS.get(request_kind)
        if plan is None:
            raise UnsupportedRequestKind(kind)
        logger.debug("Planned %s -> %s", request_kind.value, [t.value for t in plan])
        return list(plan)
