"""
Progress Factory
Centralizes the logic for selecting the progress store and building the service.
"""

import logging

from mnemo.application.config import AppConfig
from mnemo.application.progress_service import ProgressService
from mnemo.application.scheduling.fsrs import FsrsScheduler
from mnemo.application.scheduling.selector import AlgorithmSelector
from mnemo.domain.progress.ports import ProgressRepository
from mnemo.infrastructure.adapters.progress import (
    InMemoryProgressRepository,
    JsonProgressRepository,
)

logger = logging.getLogger(__name__)


def get_progress_repository(config: AppConfig) -> ProgressRepository:
    """
    Returns the ProgressRepository implementation named by ``config.backend``.
    """
    if config.backend == "memory":
        logger.debug("Backend: memory")
        return InMemoryProgressRepository()

    logger.debug(f"Backend: json ({config.store_path})")
    return JsonProgressRepository(config.store_path)


def get_selector(config: AppConfig) -> AlgorithmSelector:
    return AlgorithmSelector(FsrsScheduler(config.fsrs_parameters()))


def get_progress_service(config: AppConfig) -> ProgressService:
    return ProgressService(get_progress_repository(config), get_selector(config))
