"""
Folds sub-task outcomes into the single value returned to the caller.
"""

import logging
from typing import Any, Dict, Mapping

from .errors import PrimaryTaskFailed
from .executor import SubTaskFailure
from .models import EmailAnalysis
from .planner import SubTask

logger = logging.getLogger(__name__)


def _succeeded(results: Mapping[SubTask, Any], subtask: SubTask) -> bool:
    return subtask in results and not isinstance(results[subtask], SubTaskFailure)


def _primary(results: Mapping[SubTask, Any], subtask: SubTask) -> Any:
    outcome = results[subtask]
    if isinstance(outcome, SubTaskFailure):
        raise PrimaryTaskFailed(subtask.value, outcome.error)
    return outcome


class ResultAggregator:
    """
    Precedence, first match wins:

    1. draft       -> the draft
    2. analyze     -> the analysis, with priority from prioritize and
                      action items from extract_actions when those succeeded
    3. summarize   -> the summary
    4. categorize  -> the categorization
    5. otherwise   -> the raw outcome mapping
    """

    def aggregate(self, results: Mapping[SubTask, Any]) -> Any:
        if SubTask.DRAFT in results:
            return _primary(results, SubTask.DRAFT)

        if SubTask.ANALYZE in results:
            analysis = _primary(results, SubTask.ANALYZE)
            return self._merge_analysis(analysis, results)

        if SubTask.SUMMARIZE in results:
            return _primary(results, SubTask.SUMMARIZE)

        if SubTask.CATEGORIZE in results:
            return _primary(results, SubTask.CATEGORIZE)

        logger.warning("No primary sub-task in results %s; returning them unmerged.", list(results))
        return results

    def _merge_analysis(self, analysis: Any, results: Mapping[SubTask, Any]) -> Any:
        overrides: Dict[str, Any] = {}
        if _succeeded(results, SubTask.PRIORITIZE):
            overrides["priority"] = results[SubTask.PRIORITIZE]
        if _succeeded(results, SubTask.EXTRACT_ACTIONS):
            overrides["action_items"] = list(results[SubTask.EXTRACT_ACTIONS])

        if isinstance(analysis, EmailAnalysis):
            return analysis.model_copy(update=overrides)
        if isinstance(analysis, dict):
            return {**analysis, **overrides}
        return analysis
