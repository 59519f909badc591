"""The persisted result of a deployment run."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Union

from pysns.backend.base import DeployedServiceSet
from pysns.exception import InvalidDataException, RecordException
from pysns.logging import logger
from pysns.participants import Participant
from pysns.types import JsonDict

__all__ = [
    "RECORD_FILENAME",
    "ParticipantRecord",
    "DeploymentRecord",
    "DeploymentRecorder",
]

RECORD_FILENAME = "sns_deployment_data.json"


@dataclass(frozen=True)
class ParticipantRecord:
    principal: str

    seed_file: str

    registered: bool = True

    @classmethod
    def from_participant(cls, participant: Participant) -> ParticipantRecord:
        return cls(
            principal=str(participant.principal),
            seed_file=str(participant.seed_file),
            registered=participant.registered,
        )

    def to_primitive(self) -> JsonDict:
        return {
            "principal": self.principal,
            "seed_file": self.seed_file,
            "registered": self.registered,
        }

    @classmethod
    def from_primitive(cls, values: JsonDict) -> ParticipantRecord:
        return cls(
            principal=values["principal"],
            seed_file=values["seed_file"],
            registered=values.get("registered", True),
        )


@dataclass(frozen=True)
class DeploymentRecord:
    position_id: int

    proposal_id: int

    operator_principal: str

    deployed: DeployedServiceSet

    participants: List[ParticipantRecord] = field(default_factory=list)

    def to_primitive(self) -> JsonDict:
        return {
            "icp_neuron_id": self.position_id,
            "proposal_id": self.proposal_id,
            "owner_principal": self.operator_principal,
            "deployed_sns": self.deployed.to_primitive(),
            "participants": [p.to_primitive() for p in self.participants],
        }

    @classmethod
    def from_primitive(cls, values: JsonDict) -> DeploymentRecord:
        return cls(
            position_id=int(values["icp_neuron_id"]),
            proposal_id=int(values["proposal_id"]),
            operator_principal=values["owner_principal"],
            deployed=DeployedServiceSet.from_primitive(values.get("deployed_sns", {})),
            participants=[
                ParticipantRecord.from_primitive(p) for p in values.get("participants", [])
            ],
        )


class DeploymentRecorder:
    """Reads and writes ``sns_deployment_data.json`` under the output directory."""

    def __init__(self, output_dir: Union[str, Path] = "generated"):
        self.output_dir = Path(output_dir)

    @property
    def path(self) -> Path:
        return self.output_dir / RECORD_FILENAME

    def write(self, record: DeploymentRecord) -> Path:
        os.makedirs(self.output_dir, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump(record.to_primitive(), f, indent=2)
        logger.info(f"Deployment record written to {self.path}")
        return self.path

    def read(self) -> DeploymentRecord:
        """Load the record of the last successful run.

        Raises:
            :class:`RecordException`: When the record is missing or malformed.
        """
        if not self.path.is_file():
            raise RecordException(
                f"No deployment record at {self.path}. Run the deployment first."
            )
        try:
            with open(self.path) as f:
                return DeploymentRecord.from_primitive(json.load(f))
        except (InvalidDataException, KeyError, TypeError, ValueError) as e:
            raise RecordException(f"Malformed deployment record {self.path}: {e}") from e
