"""Service layer components."""

from care_board_service.services.reputation import ReputationAggregator
from care_board_service.services.roster import ApplicantRoster
from care_board_service.services.task_manager import TaskManager
from care_board_service.services.token_validator import Actor, TokenValidator

__all__ = [
    "Actor",
    "ApplicantRoster",
    "ReputationAggregator",
    "TaskManager",
    "TokenValidator",
]
