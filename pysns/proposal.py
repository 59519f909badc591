"""Submitting the creation proposal and waiting for the factory to deploy it."""

import time
from typing import Callable, Optional

from pysns.backend.base import DeployedServiceSet
from pysns.config import DeploymentConfig
from pysns.context import ConnectionContext
from pysns.exception import (
    DeployedServiceNotFoundException,
    PollTimeoutException,
    PySNSException,
)
from pysns.logging import log_state, logger
from pysns.polling import poll
from pysns.sns_config import SnsParameters, create_service_nervous_system

__all__ = ["REQUIRED_ENDPOINTS", "ProposalStage"]

REQUIRED_ENDPOINTS = ("governance", "ledger", "swap")


class ProposalStage:
    """Submit a CreateServiceNervousSystem proposal and fetch the resulting service set.

    The factory's "deployed by proposal" query is polled until it succeeds. Any
    failure of that query is treated as "not deployed yet": the factory does not
    distinguish a pending deployment from a failed one. Running out of attempts only
    logs a warning; the single fetch that follows is the one whose failure is fatal.
    """

    def __init__(
        self,
        context: ConnectionContext,
        config: DeploymentConfig,
        parameters: Optional[SnsParameters] = None,
        logo: Optional[str] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.context = context
        self.config = config
        self.parameters = parameters or SnsParameters()
        self.logo = logo
        self.sleep = sleep
        self.proposal_id = None
        self.deployed = None

    def submit(self, position_id: int) -> int:
        ctx = self.context
        payload = create_service_nervous_system(
            ctx.operator.principal, self.parameters, self.logo
        )
        proposal_id = ctx.network.make_proposal(
            ctx.operator,
            ctx.governance,
            position_id,
            self.config.proposal_title,
            self.parameters.proposal_summary,
            self.parameters.url,
            payload,
        )
        logger.info(f"Submitted proposal {proposal_id} from neuron {position_id}")
        return proposal_id

    def _fetch(self, proposal_id: int) -> DeployedServiceSet:
        return self.context.network.get_deployed_sns(self.context.snsw, proposal_id)

    def wait_for_deployment(self, proposal_id: int) -> DeployedServiceSet:
        """Poll the factory, then make one final fetch whose failure propagates.

        Raises:
            :class:`DeployedServiceNotFoundException`: When the final fetch finds nothing.
            :class:`MissingEndpointException`: When a required canister id is absent.
        """
        budget = self.config.proposal_poll
        logger.info(
            f"Waiting up to {budget.max_elapsed:g}s for proposal {proposal_id} to deploy the SNS"
        )
        try:
            deployed = poll(
                lambda: self._fetch(proposal_id),
                lambda _: True,
                budget,
                f"SNS deployment of proposal {proposal_id}",
                tolerate=(PySNSException,),
                sleep_first=True,
                log_every=6,
                sleep=self.sleep,
            )
        except PollTimeoutException as e:
            logger.warning(f"{e}. Trying one final fetch.")
            try:
                deployed = self._fetch(proposal_id)
            except PySNSException as err:
                raise DeployedServiceNotFoundException(
                    f"No SNS deployed for proposal {proposal_id} after "
                    f"{e.elapsed:g}s: {err}"
                ) from err
        deployed.require(*REQUIRED_ENDPOINTS)
        logger.info(
            f"SNS deployed: governance {deployed.governance}, ledger {deployed.ledger}, "
            f"swap {deployed.swap}"
        )
        return deployed

    @log_state
    def run(self, position_id: int) -> DeployedServiceSet:
        self.proposal_id = self.submit(position_id)
        self.deployed = self.wait_for_deployment(self.proposal_id)
        return self.deployed
