# File: /grc-risk-dashboard/grc-risk-dashboard/src/grc_risk_dashboard/services/risk_service.py

"""
Risk Service Module

Loads the dashboard working set from the configured data service. Every call
issues a fresh query; nothing is cached between loads.
"""

import logging
from typing import List

from grc_risk_dashboard.config import AppConfig
from grc_risk_dashboard.db import CsvRiskStore
from grc_risk_dashboard.models import FilterState, Risk
from grc_risk_dashboard.services.data_service import DataService, RestDataService

logger = logging.getLogger(__name__)


def create_data_service(config: AppConfig) -> DataService:
    """
    Build the data service named by ``config.backend``.

    Args:
        config (AppConfig): Application configuration.

    Returns:
        DataService: ``CsvRiskStore`` for "csv", ``RestDataService`` for "rest".
    """
    if config.backend == "csv":
        return CsvRiskStore(config.csv_path)
    if config.backend == "rest":
        if not config.service_url:
            raise ValueError("RISK_SERVICE_URL is required for the rest backend")
        return RestDataService(
            config.service_url,
            api_key=config.service_key,
            reorder_rpc=config.reorder_rpc,
            timeout=config.request_timeout,
        )
    raise ValueError(f"Unknown risk backend: {config.backend}")


class WorkingSetLoader:
    def __init__(self, service: DataService):
        self.service = service

    async def load(self, filters: FilterState) -> List[Risk]:
        """
        Query the data service for the risks matching ``filters``.

        Raises:
            DataServiceError: when the query fails.
        """
        records = await self.service.query_risks(filters)
        logger.info("Loaded %d risks for filters %s", len(records), filters.to_query())
        return records
