"""
Managed Rotation Steps
======================
Maps the four-step managed-secret rotation event onto the coordinator:

    {"SecretId": "...", "ClientRequestToken": "...", "Step": "createSecret"}

    createSecret  -> store a pending value (no-op if one exists)
    setSecret     -> reload sidecars, push the pending value to the edge
    testSecret    -> confirm pending is stored and sidecars reloaded
    finishSecret  -> wait out the grace window, promote pending to current
"""

from enum import Enum
from typing import Any, Dict, Optional

import structlog

from ..errors import InvalidRotationStep
from .coordinator import RotationCoordinator

logger = structlog.get_logger(__name__)


class RotationStep(str, Enum):
    CREATE = "createSecret"
    SET = "setSecret"
    TEST = "testSecret"
    FINISH = "finishSecret"


class RotationStepHandler:
    """Handles one managed rotation step per call."""

    def __init__(self, coordinator: RotationCoordinator, secret_id: Optional[str] = None):
        self.coordinator = coordinator
        self.secret_id = secret_id

    async def __call__(self, event: Dict[str, Any], context: Any = None) -> Dict[str, Any]:
        raw_step = event.get("Step", "")
        try:
            step = RotationStep(raw_step)
        except ValueError:
            raise InvalidRotationStep(raw_step)

        secret_id = event.get("SecretId")
        if self.secret_id and secret_id and secret_id != self.secret_id:
            logger.warning("rotation_step_secret_mismatch", step=step.value)

        logger.info("rotation_step_started", step=step.value, secret_id=secret_id)
        try:
            if step is RotationStep.CREATE:
                await self.coordinator.create_step()
            elif step is RotationStep.SET:
                await self.coordinator.publish_step()
            elif step is RotationStep.TEST:
                await self.coordinator.test_step()
            else:
                await self.coordinator.finish_step()
        except Exception:
            logger.exception("rotation_step_failed", step=step.value)
            raise

        return {"step": step.value, "state": self.coordinator.state.value}
