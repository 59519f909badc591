"""The end-to-end deployment pipeline."""

import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from pysns.backend.base import DeployedServiceSet
from pysns.config import DeploymentConfig
from pysns.context import ConnectionContext
from pysns.logging import logger
from pysns.participants import Participant, ParticipantOrchestrator
from pysns.proposal import ProposalStage
from pysns.record import DeploymentRecord, DeploymentRecorder, ParticipantRecord
from pysns.sns_config import SnsParameters
from pysns.staking import FundedPosition, PositionConfigStage, StakeFundingStage
from pysns.swap import FinalizationOutcome, SaleFinalizer, SaleOpenWaiter

__all__ = ["DeploymentResult", "DeploymentPipeline"]


@dataclass(frozen=True)
class DeploymentResult:
    position: FundedPosition

    proposal_id: int

    deployed: DeployedServiceSet

    participants: List[Participant]

    finalization: FinalizationOutcome

    record: DeploymentRecord


class DeploymentPipeline:
    """Run every stage in order, persisting the record only when all of them return.

    Args:
        context (ConnectionContext): Connection and identities of the run.
        config (DeploymentConfig): Amounts, addresses and poll budgets.
        parameters (Optional[SnsParameters]): Settings of the SNS to create.
        logo (Optional[str]): Logo data URI, the built-in logo if None.
        sleep: Sleep function used by every waiting stage.
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
        self.parameters = parameters
        self.logo = logo
        self.sleep = sleep
        self.recorder = DeploymentRecorder(config.output_dir)

    def run(self) -> DeploymentResult:
        ctx, cfg = self.context, self.config
        cfg.validate()

        logger.info("Step 1/7: funding and staking the developer neuron")
        position = StakeFundingStage(ctx, cfg, sleep=self.sleep).run()

        logger.info("Step 2/7: configuring the dissolve delay")
        position = PositionConfigStage(ctx, cfg).run(position)

        logger.info("Step 3/7: submitting the SNS creation proposal")
        proposal_stage = ProposalStage(
            ctx, cfg, parameters=self.parameters, logo=self.logo, sleep=self.sleep
        )
        deployed = proposal_stage.run(position.position_id)
        (swap,) = deployed.require("swap")

        logger.info("Step 4/7: waiting for the sale to open")
        SaleOpenWaiter(ctx, cfg, sleep=self.sleep).run(swap)

        logger.info("Step 5/7: funding and registering participants")
        participants = ParticipantOrchestrator(ctx, cfg).run(swap)

        logger.info("Step 6/7: finalizing the sale")
        finalization = SaleFinalizer(ctx, cfg, sleep=self.sleep).run(swap)

        logger.info("Step 7/7: recording the deployment")
        record = DeploymentRecord(
            position_id=position.position_id,
            proposal_id=proposal_stage.proposal_id,
            operator_principal=str(ctx.operator.principal),
            deployed=deployed,
            participants=[ParticipantRecord.from_participant(p) for p in participants],
        )
        self.recorder.write(record)

        unregistered = [p.ordinal for p in participants if not p.registered]
        if unregistered:
            logger.warning(f"Participants not registered: {unregistered}")
        logger.info(f"SNS deployment complete, proposal {proposal_stage.proposal_id}")
        return DeploymentResult(
            position=position,
            proposal_id=proposal_stage.proposal_id,
            deployed=deployed,
            participants=participants,
            finalization=finalization,
            record=record,
        )
