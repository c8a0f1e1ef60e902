"""The input document a fired rule delivers to its compute target.

The target needs the caller's payload to do its job, and the rule's own
coordinates (rule name, target id, bus) to delete itself afterwards::

    {
      "lambdaInput": {...caller payload...},
      "eventBridgeRuleName": "ett-dev-3-rule-6f1c...",
      "targetId": "ett-dev-3-rule-6f1c...-targetId",
      "eventBusName": "ett-dev-3"
    }
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from rulepool.protocol import DEFAULT_BUS_NAME


def target_id_for(rule_name: str) -> str:
    """Target attachment id used for a rule's single compute target."""
    return f"{rule_name}-targetId"


class ScheduledTaskInput(BaseModel):
    """Input a compute target must expect when triggered by a pool rule."""

    model_config = ConfigDict(populate_by_name=True)

    lambda_input: Any = Field(default=None, alias="lambdaInput")
    rule_name: str = Field(alias="eventBridgeRuleName")
    target_id: str = Field(alias="targetId")
    bus_name: str = Field(default=DEFAULT_BUS_NAME, alias="eventBusName")

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_event(cls, event: dict[str, Any] | str) -> ScheduledTaskInput:
        """Parse the event a compute target was invoked with."""
        if isinstance(event, str):
            event = json.loads(event)
        return cls.model_validate(event)
